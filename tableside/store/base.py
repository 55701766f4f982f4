"""
Persistent Store Abstract Base Class

Defines the contract the ordering engine consumes from the persistent
store: row-level reads and writes with filters, plus exactly two atomic
multi-row routines (close_table_account and finalize_account_payment).
The engine never assumes cross-entity transactions beyond those two.

Design Pattern: Strategy Pattern
    - The engine depends on this interface only
    - SqlStore is the SQLAlchemy implementation

Author: Tableside Team
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from tableside.models import AccountStatus, OrderKind, OrderStatus, PaymentMethod
from tableside.schemas import (
    AccountResponse,
    OrderResponse,
    ProductResponse,
    RevenueEntryResponse,
    TableResponse,
    UserSummary,
)


@dataclass
class DraftLine:
    """Priced line ready for insertion."""
    product_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    note: Optional[str] = None


@dataclass
class OrderDraft:
    """
    Priced order header plus its lines, produced by the composer.

    Attributes:
        kind: dine_in / delivery / pickup
        user_id: Owning user (None for anonymous table orders)
        table_id: Owning table (None for pickup/delivery orders)
        subtotal: Sum of line subtotals
        service_fee: round(subtotal * rate, 2)
        delivery_fee: Flat delivery charge
        total: subtotal + service_fee + delivery_fee
    """
    kind: OrderKind
    user_id: Optional[int]
    table_id: Optional[int]
    subtotal: Decimal
    service_fee: Decimal
    delivery_fee: Decimal
    total: Decimal
    lines: list[DraftLine] = field(default_factory=list)
    note: Optional[str] = None
    delivery_address: Optional[str] = None


class BaseStore(ABC):
    """
    Abstract base class for the persistent store.

    Every method may raise UpstreamFailure when the underlying store is
    unreachable or rejects the statement.
    """

    # ==========================================================================
    # PRODUCTS & USERS
    # ==========================================================================

    @abstractmethod
    async def fetch_products(self, product_ids: Iterable[int]) -> dict[int, ProductResponse]:
        """
        Batch-read current product prices.

        Returns:
            dict: product id -> product, missing ids are simply absent
        """
        pass

    @abstractmethod
    async def list_products(self) -> list[ProductResponse]:
        pass

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[UserSummary]:
        pass

    # ==========================================================================
    # ORDERS
    # ==========================================================================

    @abstractmethod
    async def insert_order_header(self, draft: OrderDraft) -> int:
        """
        Insert the order header with status and payment status pending.

        Returns:
            int: The new order id
        """
        pass

    @abstractmethod
    async def get_order_header(self, order_id: int) -> Optional[OrderResponse]:
        """Read the bare header (no lines, no relations)."""
        pass

    @abstractmethod
    async def insert_order_lines(self, order_id: int, lines: list[DraftLine]) -> None:
        """Insert all lines of an order as one batch."""
        pass

    @abstractmethod
    async def delete_order(self, order_id: int) -> None:
        pass

    @abstractmethod
    async def get_order(self, order_id: int) -> Optional[OrderResponse]:
        """Read the order with lines, products, table and user."""
        pass

    @abstractmethod
    async def get_order_by_number(self, number: int) -> Optional[OrderResponse]:
        """Read the full order with the given display number."""
        pass

    @abstractmethod
    async def update_order_status(self, order_id: int, status: OrderStatus) -> None:
        pass

    @abstractmethod
    async def list_orders(
        self,
        user_id: Optional[int] = None,
        table_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
        unpaid_only: bool = False,
    ) -> list[OrderResponse]:
        """List full orders, newest first, filtered by the given fields."""
        pass

    # ==========================================================================
    # TABLES
    # ==========================================================================

    @abstractmethod
    async def insert_table(
        self,
        number: int,
        capacity: int,
        access_token: str,
        notes: Optional[str] = None,
    ) -> TableResponse:
        pass

    @abstractmethod
    async def get_table(self, table_id: int) -> Optional[TableResponse]:
        pass

    @abstractmethod
    async def get_table_by_token(self, access_token: str) -> Optional[TableResponse]:
        pass

    @abstractmethod
    async def get_table_by_number(self, number: int) -> Optional[TableResponse]:
        pass

    @abstractmethod
    async def list_tables(self) -> list[TableResponse]:
        pass

    @abstractmethod
    async def update_table(self, table_id: int, **values) -> TableResponse:
        """Update table columns; raises TableNotFound."""
        pass

    @abstractmethod
    async def occupy_table(self, table_id: int) -> bool:
        """Set a free table to occupied. Returns False if it was not free."""
        pass

    @abstractmethod
    async def delete_table(self, table_id: int) -> None:
        pass

    # ==========================================================================
    # ACCOUNTS
    # ==========================================================================

    @abstractmethod
    async def open_table_account(self, table_id: int) -> AccountResponse:
        pass

    @abstractmethod
    async def close_table_account(self, table_id: int) -> AccountResponse:
        """
        Atomically close the table's tab.

        Selects every order of the table whose payment is pending, whose
        status is not canceled and that is not yet linked to an account;
        sums their totals into one closed account and links the orders.

        Raises:
            NoPendingOrders: Nothing to close
            InvalidTransition: A closed account is already awaiting payment
        """
        pass

    @abstractmethod
    async def finalize_account_payment(
        self,
        account_id: int,
        payment_method: PaymentMethod,
    ) -> AccountResponse:
        """
        Atomically pay a closed account.

        Marks the account paid, every linked order paid, and frees the
        table, all in one indivisible step.

        Raises:
            InvalidTransition: Account is not closed
        """
        pass

    @abstractmethod
    async def cancel_table_account(self, account_id: int) -> AccountResponse:
        """Cancel an open or closed account and unlink its orders."""
        pass

    @abstractmethod
    async def get_account(self, account_id: int) -> Optional[AccountResponse]:
        pass

    @abstractmethod
    async def list_accounts(
        self,
        table_id: Optional[int] = None,
        statuses: Optional[Iterable[AccountStatus]] = None,
    ) -> list[AccountResponse]:
        pass

    # ==========================================================================
    # REVENUE LEDGER
    # ==========================================================================

    @abstractmethod
    async def insert_revenue_entry(
        self,
        account_id: int,
        amount: Decimal,
        payment_method: PaymentMethod,
        paid_at: datetime,
    ) -> RevenueEntryResponse:
        pass

    @abstractmethod
    async def get_revenue_entry(self, account_id: int) -> Optional[RevenueEntryResponse]:
        pass

    @abstractmethod
    async def list_revenue(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        payment_method: Optional[PaymentMethod] = None,
    ) -> list[RevenueEntryResponse]:
        """List ledger rows with start <= paid_at < end, newest first."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass
