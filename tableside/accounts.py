"""
Table & Account Manager

Manages dining tables and their accounts (tabs):

- Tables: create, update, manual status changes, token regeneration
- Accounts: open, close (aggregate unpaid orders), pay, cancel
- Revenue: one ledger entry per paid account with a positive total

Closing and paying are delegated to the store's two atomic routines.
The revenue entry is written after payment in a separate step; when it
fails the payment still stands and the outcome says so.

Author: Tableside Team
Version: 1.0.0
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from tableside.errors import (
    AccountNotFound,
    InvalidTransition,
    TablesideError,
    TableNotFound,
)
from tableside.identity import Identity
from tableside.models import AccountStatus, PaymentMethod, TableStatus
from tableside.money import ZERO, to_money
from tableside.policy import AccessPolicy
from tableside.schemas import (
    AccountResponse,
    PaymentOutcome,
    RevenueEntryResponse,
    RevenueSummary,
    TableResponse,
)
from tableside.store.base import BaseStore
from tableside.transitions import can_set_table_status

logger = logging.getLogger(__name__)

LEDGER_FAILURE_MESSAGE = "payment succeeded, ledger entry failed; do not retry the payment"

RevenueCallback = Callable[[RevenueEntryResponse], None]


def new_access_token() -> str:
    return uuid.uuid4().hex


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


class TableAccountManager:
    """
    Table and account operations. Every operation is manager only.

    Attributes:
        store: Persistent store
        on_revenue_recorded: Called with every new ledger entry (e.g. to
            queue the Excel export); its failures are logged and ignored
    """

    def __init__(
        self,
        store: BaseStore,
        policy: Optional[AccessPolicy] = None,
        on_revenue_recorded: Optional[RevenueCallback] = None,
    ):
        self.store = store
        self.policy = policy or AccessPolicy()
        self.on_revenue_recorded = on_revenue_recorded

    # ==========================================================================
    # TABLES
    # ==========================================================================

    async def _table(self, table_id: int) -> TableResponse:
        table = await self.store.get_table(table_id)
        if table is None:
            raise TableNotFound(f"Table #{table_id} not found")
        return table

    async def list_tables(self, identity: Identity) -> list[TableResponse]:
        self.policy.require_manager(identity, "manage tables")
        return await self.store.list_tables()

    async def get_table(self, identity: Identity, table_id: int) -> TableResponse:
        self.policy.require_manager(identity, "manage tables")
        return await self._table(table_id)

    async def get_table_by_number(self, identity: Identity, number: int) -> TableResponse:
        self.policy.require_manager(identity, "manage tables")
        table = await self.store.get_table_by_number(number)
        if table is None:
            raise TableNotFound(f"Table number {number} not found")
        return table

    async def create_table(
        self,
        identity: Identity,
        number: int,
        capacity: int = 4,
        notes: Optional[str] = None,
    ) -> TableResponse:
        self.policy.require_manager(identity, "manage tables")
        table = await self.store.insert_table(number, capacity, new_access_token(), notes)
        logger.info(f"Table #{table.number} created (capacity {table.capacity})")
        return table

    async def update_table(
        self,
        identity: Identity,
        table_id: int,
        capacity: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TableResponse:
        self.policy.require_manager(identity, "manage tables")
        values = {}
        if capacity is not None:
            values["capacity"] = capacity
        if notes is not None:
            values["notes"] = notes
        if not values:
            return await self._table(table_id)
        return await self.store.update_table(table_id, **values)

    async def set_table_status(
        self,
        identity: Identity,
        table_id: int,
        status: TableStatus,
    ) -> TableResponse:
        """
        Manual status change. Occupied tables are freed by payment only.

        Raises:
            InvalidTransition: Not a manual move from the current status
        """
        self.policy.require_manager(identity, "manage tables")
        table = await self._table(table_id)
        if table.status == status:
            return table
        if not can_set_table_status(table.status, status):
            raise InvalidTransition(
                f"Table #{table.number} cannot go from {table.status.value} to {status.value}"
            )
        updated = await self.store.update_table(table_id, status=status)
        logger.info(f"Table #{table.number}: {table.status.value} -> {status.value}")
        return updated

    async def regenerate_token(self, identity: Identity, table_id: int) -> TableResponse:
        """Issue a new access token; the previous one stops working at once."""
        self.policy.require_manager(identity, "manage tables")
        table = await self.store.update_table(table_id, access_token=new_access_token())
        logger.info(f"Table #{table.number}: access token regenerated")
        return table

    async def delete_table(self, identity: Identity, table_id: int) -> None:
        """
        Raises:
            InvalidTransition: Table is occupied, or has order or account history
        """
        self.policy.require_manager(identity, "manage tables")
        table = await self._table(table_id)
        if table.status == TableStatus.OCCUPIED:
            raise InvalidTransition(f"Table #{table.number} is occupied")
        if await self.store.list_orders(table_id=table_id):
            raise InvalidTransition(
                f"Table #{table.number} has order history; set it inactive instead"
            )
        if await self.store.list_accounts(table_id=table_id):
            raise InvalidTransition(
                f"Table #{table.number} has account history; set it inactive instead"
            )
        await self.store.delete_table(table_id)
        logger.info(f"Table #{table.number} deleted")

    # ==========================================================================
    # ACCOUNTS
    # ==========================================================================

    async def open_account(self, identity: Identity, table_id: int) -> AccountResponse:
        self.policy.require_manager(identity, "manage accounts")
        account = await self.store.open_table_account(table_id)
        logger.info(f"Account #{account.id} opened for table id {table_id}")
        return account

    async def close_account(self, identity: Identity, table_id: int) -> AccountResponse:
        """
        Aggregate the table's unpaid orders into one closed account.

        Raises:
            NoPendingOrders: Nothing to close
            InvalidTransition: An account is already awaiting payment
        """
        self.policy.require_manager(identity, "close accounts")
        return await self.store.close_table_account(table_id)

    async def finalize_payment(
        self,
        identity: Identity,
        account_id: int,
        payment_method: PaymentMethod,
    ) -> PaymentOutcome:
        """
        Pay a closed account, then record the revenue entry.

        The payment is final once the store routine returns. A ledger
        failure afterwards is reported in the outcome, never raised.
        """
        self.policy.require_manager(identity, "finalize payments")
        account = await self.store.finalize_account_payment(account_id, payment_method)

        if account.total == ZERO:
            logger.info(f"Account #{account_id} paid with zero total, no ledger entry")
            return PaymentOutcome(
                account=account,
                ledger_recorded=False,
                message="payment succeeded, nothing to record in the ledger",
            )

        try:
            entry = await self._record_revenue(account)
        except TablesideError as e:
            logger.error(f"Ledger entry for account #{account_id} failed: {e}")
            return PaymentOutcome(
                account=account,
                ledger_recorded=False,
                ledger_error=e.message,
                message=LEDGER_FAILURE_MESSAGE,
            )

        return PaymentOutcome(
            account=account,
            revenue_entry=entry,
            ledger_recorded=True,
            message="payment succeeded",
        )

    async def retry_revenue_entry(self, identity: Identity, account_id: int) -> RevenueEntryResponse:
        """
        Write the missing ledger entry of a paid account. Never touches
        the payment itself; returns the existing entry if there is one.
        """
        self.policy.require_manager(identity, "record revenue")
        account = await self.store.get_account(account_id)
        if account is None:
            raise AccountNotFound(account_id)
        if account.status != AccountStatus.PAID:
            raise InvalidTransition(f"Account #{account_id} is {account.status.value}, not paid")
        if account.total == ZERO:
            raise InvalidTransition(f"Account #{account_id} has a zero total")

        existing = await self.store.get_revenue_entry(account_id)
        if existing is not None:
            return existing
        return await self._record_revenue(account)

    async def _record_revenue(self, account: AccountResponse) -> RevenueEntryResponse:
        entry = await self.store.insert_revenue_entry(
            account_id=account.id,
            amount=account.total,
            payment_method=account.payment_method,
            paid_at=account.paid_at or datetime.now(timezone.utc),
        )
        logger.info(f"Revenue entry recorded: account #{account.id}, {entry.amount}")

        if self.on_revenue_recorded is not None:
            try:
                self.on_revenue_recorded(entry)
            except Exception as e:
                logger.warning(f"Revenue hook failed for account #{account.id}: {e}")
        return entry

    async def cancel_account(self, identity: Identity, account_id: int) -> AccountResponse:
        """Cancel an open or closed account; its orders can be closed again."""
        self.policy.require_manager(identity, "manage accounts")
        account = await self.store.cancel_table_account(account_id)
        logger.info(f"Account #{account_id} canceled")
        return account

    async def get_account(self, identity: Identity, account_id: int) -> AccountResponse:
        self.policy.require_manager(identity, "view accounts")
        account = await self.store.get_account(account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account

    async def list_accounts(
        self,
        identity: Identity,
        table_id: Optional[int] = None,
        statuses: Optional[Iterable[AccountStatus]] = None,
    ) -> list[AccountResponse]:
        self.policy.require_manager(identity, "view accounts")
        return await self.store.list_accounts(table_id=table_id, statuses=statuses)

    # ==========================================================================
    # REVENUE
    # ==========================================================================

    async def list_revenue(
        self,
        identity: Identity,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        payment_method: Optional[PaymentMethod] = None,
    ) -> list[RevenueEntryResponse]:
        self.policy.require_manager(identity, "view revenue")
        return await self.store.list_revenue(start=start, end=end, payment_method=payment_method)

    async def revenue_summary(
        self,
        identity: Identity,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        payment_method: Optional[PaymentMethod] = None,
        now: Optional[datetime] = None,
    ) -> RevenueSummary:
        """Totals for today and the current month (UTC) plus a filtered period."""
        self.policy.require_manager(identity, "view revenue")
        now = now or datetime.now(timezone.utc)

        entries = await self.store.list_revenue(start=start, end=end, payment_method=payment_method)
        today = await self.store.list_revenue(start=start_of_day(now))
        month = await self.store.list_revenue(start=start_of_month(now))

        return RevenueSummary(
            today=to_money(sum((e.amount for e in today), ZERO)),
            month=to_money(sum((e.amount for e in month), ZERO)),
            period_total=to_money(sum((e.amount for e in entries), ZERO)),
            entries=entries,
        )
