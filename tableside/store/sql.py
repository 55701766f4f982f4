"""
SQLAlchemy Store Implementation

Implements BaseStore on an async SQLAlchemy session factory. Every public
method opens its own session, so a call never observes another caller's
uncommitted work. The two atomic routines (close_table_account and
finalize_account_payment) each run inside a single transaction.

Author: Tableside Team
Version: 1.0.0
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from tableside.errors import (
    AccountNotFound,
    InvalidTransition,
    NoPendingOrders,
    OrderNotFound,
    TableNotFound,
    TablesideError,
    UpstreamFailure,
    ValidationError,
)
from tableside.models import (
    AccountStatus,
    DiningTable,
    Order,
    OrderLine,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    RevenueEntry,
    TableAccount,
    TableStatus,
    User,
)
from tableside.money import ZERO, to_money
from tableside.schemas import (
    AccountResponse,
    OrderResponse,
    ProductResponse,
    RevenueEntryResponse,
    TableResponse,
    UserSummary,
)
from tableside.store.base import BaseStore, DraftLine, OrderDraft
from tableside.transitions import can_transition_account

logger = logging.getLogger(__name__)

UNSETTLED_ACCOUNT_STATUSES = (AccountStatus.OPEN, AccountStatus.CLOSED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _full_order_options():
    return (
        selectinload(Order.lines).selectinload(OrderLine.product),
        selectinload(Order.table),
        selectinload(Order.user),
    )


def _header(order: Order) -> OrderResponse:
    """Build a response from column values only, without touching relations."""
    values = {column.key: getattr(order, column.key) for column in Order.__table__.columns}
    return OrderResponse.model_validate(values)


class SqlStore(BaseStore):
    """
    SQLAlchemy implementation of the persistent store.

    Attributes:
        session_maker: async_sessionmaker created with expire_on_commit=False

    Example:
        >>> store = SqlStore(async_session_maker)
        >>> prices = await store.fetch_products([1, 2])
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open a session and translate driver errors into UpstreamFailure."""
        try:
            async with self.session_maker() as session:
                yield session
        except TablesideError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Store operation '{operation}' failed: {e}")
            raise UpstreamFailure(operation, e) from e

    # ==========================================================================
    # PRODUCTS & USERS
    # ==========================================================================

    async def fetch_products(self, product_ids: Iterable[int]) -> dict[int, ProductResponse]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        async with self._session("fetch_products") as session:
            result = await session.execute(select(Product).where(Product.id.in_(ids)))
            return {p.id: ProductResponse.model_validate(p) for p in result.scalars()}

    async def list_products(self) -> list[ProductResponse]:
        async with self._session("list_products") as session:
            result = await session.execute(select(Product).order_by(Product.name))
            return [ProductResponse.model_validate(p) for p in result.scalars()]

    async def get_user(self, user_id: int) -> Optional[UserSummary]:
        async with self._session("get_user") as session:
            user = await session.get(User, user_id)
            if user is None or not user.is_active:
                return None
            return UserSummary.model_validate(user)

    # ==========================================================================
    # ORDERS
    # ==========================================================================

    async def insert_order_header(self, draft: OrderDraft) -> int:
        async with self._session("insert_order_header") as session:
            async with session.begin():
                result = await session.execute(select(func.coalesce(func.max(Order.number), 0)))
                number = result.scalar_one() + 1
                order = Order(
                    number=number,
                    kind=draft.kind,
                    status=OrderStatus.PENDING,
                    payment_status=PaymentStatus.PENDING,
                    subtotal=draft.subtotal,
                    service_fee=draft.service_fee,
                    delivery_fee=draft.delivery_fee,
                    total=draft.total,
                    note=draft.note,
                    delivery_address=draft.delivery_address,
                    user_id=draft.user_id,
                    table_id=draft.table_id,
                )
                session.add(order)
                await session.flush()
                order_id = order.id
            return order_id

    async def get_order_header(self, order_id: int) -> Optional[OrderResponse]:
        async with self._session("get_order_header") as session:
            result = await session.execute(select(Order).where(Order.id == order_id))
            order = result.scalar_one_or_none()
            return _header(order) if order is not None else None

    async def insert_order_lines(self, order_id: int, lines: list[DraftLine]) -> None:
        async with self._session("insert_order_lines") as session:
            async with session.begin():
                session.add_all(
                    OrderLine(
                        order_id=order_id,
                        product_id=line.product_id,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        subtotal=line.subtotal,
                        note=line.note,
                    )
                    for line in lines
                )

    async def delete_order(self, order_id: int) -> None:
        async with self._session("delete_order") as session:
            async with session.begin():
                await session.execute(delete(OrderLine).where(OrderLine.order_id == order_id))
                await session.execute(delete(Order).where(Order.id == order_id))

    async def get_order(self, order_id: int) -> Optional[OrderResponse]:
        async with self._session("get_order") as session:
            result = await session.execute(
                select(Order).options(*_full_order_options()).where(Order.id == order_id)
            )
            order = result.scalar_one_or_none()
            return OrderResponse.model_validate(order) if order is not None else None

    async def get_order_by_number(self, number: int) -> Optional[OrderResponse]:
        async with self._session("get_order_by_number") as session:
            result = await session.execute(
                select(Order).options(*_full_order_options()).where(Order.number == number)
            )
            order = result.scalar_one_or_none()
            return OrderResponse.model_validate(order) if order is not None else None

    async def update_order_status(self, order_id: int, status: OrderStatus) -> None:
        async with self._session("update_order_status") as session:
            async with session.begin():
                result = await session.execute(
                    update(Order).where(Order.id == order_id).values(status=status)
                )
                if result.rowcount == 0:
                    raise OrderNotFound(order_id)

    async def list_orders(
        self,
        user_id: Optional[int] = None,
        table_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
        unpaid_only: bool = False,
    ) -> list[OrderResponse]:
        query = select(Order).options(*_full_order_options())
        if user_id is not None:
            query = query.where(Order.user_id == user_id)
        if table_id is not None:
            query = query.where(Order.table_id == table_id)
        if status is not None:
            query = query.where(Order.status == status)
        if unpaid_only:
            query = query.where(
                Order.payment_status == PaymentStatus.PENDING,
                Order.status != OrderStatus.CANCELED,
            )
        query = query.order_by(Order.created_at.desc(), Order.id.desc())

        async with self._session("list_orders") as session:
            result = await session.execute(query)
            return [OrderResponse.model_validate(o) for o in result.scalars()]

    # ==========================================================================
    # TABLES
    # ==========================================================================

    async def insert_table(
        self,
        number: int,
        capacity: int,
        access_token: str,
        notes: Optional[str] = None,
    ) -> TableResponse:
        async with self._session("insert_table") as session:
            table = DiningTable(
                number=number,
                capacity=capacity,
                access_token=access_token,
                notes=notes,
                status=TableStatus.FREE,
            )
            session.add(table)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ValidationError(f"Table number {number} already exists") from e
            await session.refresh(table)
            return TableResponse.model_validate(table)

    async def get_table(self, table_id: int) -> Optional[TableResponse]:
        async with self._session("get_table") as session:
            table = await session.get(DiningTable, table_id)
            return TableResponse.model_validate(table) if table is not None else None

    async def get_table_by_token(self, access_token: str) -> Optional[TableResponse]:
        async with self._session("get_table_by_token") as session:
            result = await session.execute(
                select(DiningTable).where(DiningTable.access_token == access_token)
            )
            table = result.scalar_one_or_none()
            return TableResponse.model_validate(table) if table is not None else None

    async def get_table_by_number(self, number: int) -> Optional[TableResponse]:
        async with self._session("get_table_by_number") as session:
            result = await session.execute(select(DiningTable).where(DiningTable.number == number))
            table = result.scalar_one_or_none()
            return TableResponse.model_validate(table) if table is not None else None

    async def list_tables(self) -> list[TableResponse]:
        async with self._session("list_tables") as session:
            result = await session.execute(select(DiningTable).order_by(DiningTable.number))
            return [TableResponse.model_validate(t) for t in result.scalars()]

    async def update_table(self, table_id: int, **values) -> TableResponse:
        async with self._session("update_table") as session:
            table = await session.get(DiningTable, table_id)
            if table is None:
                raise TableNotFound(f"Table #{table_id} not found")
            for key, value in values.items():
                setattr(table, key, value)
            await session.commit()
            await session.refresh(table)
            return TableResponse.model_validate(table)

    async def occupy_table(self, table_id: int) -> bool:
        async with self._session("occupy_table") as session:
            async with session.begin():
                result = await session.execute(
                    update(DiningTable)
                    .where(DiningTable.id == table_id, DiningTable.status == TableStatus.FREE)
                    .values(status=TableStatus.OCCUPIED)
                )
            return result.rowcount > 0

    async def delete_table(self, table_id: int) -> None:
        async with self._session("delete_table") as session:
            async with session.begin():
                result = await session.execute(
                    delete(DiningTable).where(DiningTable.id == table_id)
                )
                if result.rowcount == 0:
                    raise TableNotFound(f"Table #{table_id} not found")

    # ==========================================================================
    # ACCOUNTS
    # ==========================================================================

    async def _load_account(self, session: AsyncSession, account_id: int) -> AccountResponse:
        result = await session.execute(
            select(TableAccount)
            .options(selectinload(TableAccount.table))
            .where(TableAccount.id == account_id)
            .execution_options(populate_existing=True)
        )
        return AccountResponse.model_validate(result.scalar_one())

    async def _unsettled_account(
        self, session: AsyncSession, table_id: int
    ) -> Optional[TableAccount]:
        result = await session.execute(
            select(TableAccount)
            .where(
                TableAccount.table_id == table_id,
                TableAccount.status.in_(UNSETTLED_ACCOUNT_STATUSES),
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def open_table_account(self, table_id: int) -> AccountResponse:
        async with self._session("open_table_account") as session:
            try:
                async with session.begin():
                    if await session.get(DiningTable, table_id) is None:
                        raise TableNotFound(f"Table #{table_id} not found")
                    existing = await self._unsettled_account(session, table_id)
                    if existing is not None:
                        raise InvalidTransition(
                            f"Table #{table_id} already has account #{existing.id} "
                            f"({existing.status.value})"
                        )
                    account = TableAccount(
                        table_id=table_id,
                        status=AccountStatus.OPEN,
                        total=ZERO,
                        opened_at=utcnow(),
                    )
                    session.add(account)
                    await session.flush()
                    account_id = account.id
            except IntegrityError as e:
                raise InvalidTransition(
                    f"Table #{table_id} already has an unsettled account"
                ) from e
            return await self._load_account(session, account_id)

    async def close_table_account(self, table_id: int) -> AccountResponse:
        async with self._session("close_table_account") as session:
            try:
                async with session.begin():
                    if await session.get(DiningTable, table_id) is None:
                        raise TableNotFound(f"Table #{table_id} not found")

                    account = await self._unsettled_account(session, table_id)
                    if account is not None and account.status == AccountStatus.CLOSED:
                        raise InvalidTransition(
                            f"Table #{table_id} already has account #{account.id} "
                            f"awaiting payment"
                        )

                    result = await session.execute(
                        select(Order)
                        .where(
                            Order.table_id == table_id,
                            Order.payment_status == PaymentStatus.PENDING,
                            Order.status != OrderStatus.CANCELED,
                            Order.account_id.is_(None),
                        )
                        .with_for_update()
                    )
                    orders = list(result.scalars())
                    if not orders:
                        raise NoPendingOrders(table_id)

                    now = utcnow()
                    if account is None:
                        account = TableAccount(table_id=table_id, opened_at=now)
                        session.add(account)
                    account.status = AccountStatus.CLOSED
                    account.total = to_money(sum((o.total for o in orders), ZERO))
                    account.closed_at = now
                    await session.flush()

                    for order in orders:
                        order.account_id = account.id
                    account_id = account.id
            except IntegrityError as e:
                raise InvalidTransition(
                    f"Table #{table_id} already has an unsettled account"
                ) from e

            logger.info(
                f"Account #{account_id} closed for table #{table_id} "
                f"({len(orders)} orders)"
            )
            return await self._load_account(session, account_id)

    async def finalize_account_payment(
        self,
        account_id: int,
        payment_method: PaymentMethod,
    ) -> AccountResponse:
        async with self._session("finalize_account_payment") as session:
            async with session.begin():
                account = await session.get(TableAccount, account_id, with_for_update=True)
                if account is None:
                    raise AccountNotFound(account_id)
                if account.status != AccountStatus.CLOSED:
                    raise InvalidTransition(
                        f"Account #{account_id} is {account.status.value}; "
                        f"only closed accounts can be paid"
                    )

                account.status = AccountStatus.PAID
                account.payment_method = payment_method
                account.paid_at = utcnow()

                await session.execute(
                    update(Order)
                    .where(Order.account_id == account_id)
                    .values(payment_status=PaymentStatus.PAID)
                )
                await session.execute(
                    update(DiningTable)
                    .where(DiningTable.id == account.table_id)
                    .values(status=TableStatus.FREE)
                )

            logger.info(f"Account #{account_id} paid ({payment_method.value})")
            return await self._load_account(session, account_id)

    async def cancel_table_account(self, account_id: int) -> AccountResponse:
        async with self._session("cancel_table_account") as session:
            async with session.begin():
                account = await session.get(TableAccount, account_id, with_for_update=True)
                if account is None:
                    raise AccountNotFound(account_id)
                if not can_transition_account(account.status, AccountStatus.CANCELED):
                    raise InvalidTransition(
                        f"Account #{account_id} is {account.status.value} and cannot be canceled"
                    )
                account.status = AccountStatus.CANCELED
                await session.execute(
                    update(Order)
                    .where(Order.account_id == account_id)
                    .values(account_id=None)
                )
            return await self._load_account(session, account_id)

    async def get_account(self, account_id: int) -> Optional[AccountResponse]:
        async with self._session("get_account") as session:
            result = await session.execute(
                select(TableAccount)
                .options(selectinload(TableAccount.table))
                .where(TableAccount.id == account_id)
            )
            account = result.scalar_one_or_none()
            return AccountResponse.model_validate(account) if account is not None else None

    async def list_accounts(
        self,
        table_id: Optional[int] = None,
        statuses: Optional[Iterable[AccountStatus]] = None,
    ) -> list[AccountResponse]:
        query = select(TableAccount).options(selectinload(TableAccount.table))
        if table_id is not None:
            query = query.where(TableAccount.table_id == table_id)
        if statuses:
            query = query.where(TableAccount.status.in_(list(statuses)))
        query = query.order_by(TableAccount.opened_at.desc(), TableAccount.id.desc())

        async with self._session("list_accounts") as session:
            result = await session.execute(query)
            return [AccountResponse.model_validate(a) for a in result.scalars()]

    # ==========================================================================
    # REVENUE LEDGER
    # ==========================================================================

    async def insert_revenue_entry(
        self,
        account_id: int,
        amount: Decimal,
        payment_method: PaymentMethod,
        paid_at: datetime,
    ) -> RevenueEntryResponse:
        async with self._session("insert_revenue_entry") as session:
            entry = RevenueEntry(
                account_id=account_id,
                amount=amount,
                payment_method=payment_method,
                paid_at=paid_at,
            )
            session.add(entry)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise InvalidTransition(
                    f"Revenue for account #{account_id} is already recorded"
                ) from e
            return RevenueEntryResponse.model_validate(entry)

    async def get_revenue_entry(self, account_id: int) -> Optional[RevenueEntryResponse]:
        async with self._session("get_revenue_entry") as session:
            result = await session.execute(
                select(RevenueEntry).where(RevenueEntry.account_id == account_id)
            )
            entry = result.scalar_one_or_none()
            return RevenueEntryResponse.model_validate(entry) if entry is not None else None

    async def list_revenue(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        payment_method: Optional[PaymentMethod] = None,
    ) -> list[RevenueEntryResponse]:
        query = select(RevenueEntry)
        if start is not None:
            query = query.where(RevenueEntry.paid_at >= start)
        if end is not None:
            query = query.where(RevenueEntry.paid_at < end)
        if payment_method is not None:
            query = query.where(RevenueEntry.payment_method == payment_method)
        query = query.order_by(RevenueEntry.paid_at.desc(), RevenueEntry.id.desc())

        async with self._session("list_revenue") as session:
            result = await session.execute(query)
            return [RevenueEntryResponse.model_validate(r) for r in result.scalars()]

    async def health_check(self) -> bool:
        async with self._session("health_check") as session:
            await session.execute(select(1))
            return True
