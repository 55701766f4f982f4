from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tableside.errors import (
    Forbidden,
    InvalidTransition,
    OrderNotFound,
    OrderPersistenceFailure,
    UpstreamFailure,
    ValidationError,
)
from tableside.identity import Identity
from tableside.models import Order, OrderKind, OrderLine, OrderStatus, PaymentStatus, TableStatus
from tableside.orders import OrderRepository
from tableside.pricing import OrderComposer
from tableside.schemas import OrderItemCreate
from tableside.store.base import DraftLine, OrderDraft
from tableside.store.sql import SqlStore

pytestmark = pytest.mark.anyio


class FailingLinesStore(SqlStore):
    async def insert_order_lines(self, order_id, lines):
        raise UpstreamFailure("insert_order_lines", RuntimeError("connection reset"))


class FailingLinesAndDeleteStore(FailingLinesStore):
    async def delete_order(self, order_id):
        raise UpstreamFailure("delete_order", RuntimeError("connection reset"))


class LostHeaderStore(SqlStore):
    async def get_order_header(self, order_id):
        return None


class BrokenEnrichmentStore(SqlStore):
    async def get_order(self, order_id):
        raise UpstreamFailure("get_order", RuntimeError("timeout"))


async def draft_for(store, identity, *items):
    return await OrderComposer(store).compose(
        identity, [OrderItemCreate(product_id=pid, quantity=qty) for pid, qty in items]
    )


async def count_rows(session_maker, model):
    async with session_maker() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def test_create_returns_full_order(store, seed):
    repo = OrderRepository(store)
    order = await repo.create(await draft_for(store, seed.alice, (seed.burger, 2), (seed.fries, 1)))

    assert order.number == 1
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PENDING
    assert order.user_id == seed.alice.user_id
    assert [line.product.name for line in order.lines] == ["X-Burger", "Fries"]
    assert order.total == Decimal("68.75")
    assert order.user.email == "alice@example.com"


async def test_order_numbers_are_sequential(store, seed):
    repo = OrderRepository(store)
    first = await repo.create(await draft_for(store, seed.alice, (seed.soda, 1)))
    second = await repo.create(await draft_for(store, seed.bob, (seed.soda, 1)))

    assert second.number == first.number + 1


async def test_table_order_occupies_table(store, seed):
    repo = OrderRepository(store)
    order = await repo.create(await draft_for(store, Identity(table_id=seed.table1), (seed.soda, 2)))

    assert order.table.number == 1
    assert order.user_id is None
    assert (await store.get_table(seed.table1)).status == TableStatus.OCCUPIED


async def test_line_failure_rolls_back_header(session_maker, seed):
    store = FailingLinesStore(session_maker)
    repo = OrderRepository(store)

    with pytest.raises(UpstreamFailure):
        await repo.create(await draft_for(store, seed.alice, (seed.burger, 1)))

    assert await count_rows(session_maker, Order) == 0
    assert await count_rows(session_maker, OrderLine) == 0


async def test_failed_compensation_still_surfaces_line_error(session_maker, seed):
    store = FailingLinesAndDeleteStore(session_maker)

    with pytest.raises(UpstreamFailure) as exc_info:
        await OrderRepository(store).create(await draft_for(store, seed.alice, (seed.burger, 1)))

    assert exc_info.value.operation == "insert_order_lines"


async def test_unreadable_header_is_persistence_failure(session_maker, seed):
    store = LostHeaderStore(session_maker)

    with pytest.raises(OrderPersistenceFailure):
        await OrderRepository(store).create(await draft_for(store, seed.alice, (seed.burger, 1)))

    assert await count_rows(session_maker, OrderLine) == 0


async def test_enrichment_failure_returns_bare_header(session_maker, seed):
    store = BrokenEnrichmentStore(session_maker)

    order = await OrderRepository(store).create(
        await draft_for(store, seed.alice, (seed.burger, 1))
    )

    assert order.id is not None
    assert order.lines == []
    assert order.total == Decimal("27.50")
    assert await count_rows(session_maker, OrderLine) == 1


async def test_cancel_pending_order(store, seed):
    repo = OrderRepository(store)
    order = await repo.create(await draft_for(store, seed.alice, (seed.burger, 1)))

    canceled = await repo.cancel(seed.alice, order.id)

    assert canceled.status == OrderStatus.CANCELED


async def test_cancel_ready_order_fails(store, seed):
    repo = OrderRepository(store)
    order = await repo.create(await draft_for(store, seed.alice, (seed.burger, 1)))
    for status in (OrderStatus.CONFIRMED, OrderStatus.IN_PREPARATION, OrderStatus.READY):
        await repo.update_status(seed.operator, order.id, status)

    with pytest.raises(InvalidTransition):
        await repo.cancel(seed.alice, order.id)
    with pytest.raises(InvalidTransition):
        await repo.cancel(seed.owner, order.id)


async def test_customer_cannot_cancel_someone_elses_order(store, seed):
    repo = OrderRepository(store)
    order = await repo.create(await draft_for(store, seed.alice, (seed.burger, 1)))

    with pytest.raises(Forbidden):
        await repo.cancel(seed.bob, order.id)
    assert (await repo.get(seed.alice, order.id)).status == OrderStatus.PENDING


async def test_status_update_requires_manager(store, seed):
    repo = OrderRepository(store)
    order = await repo.create(await draft_for(store, seed.alice, (seed.burger, 1)))

    with pytest.raises(Forbidden):
        await repo.update_status(seed.alice, order.id, OrderStatus.CONFIRMED)


async def test_status_update_validates_machine(store, seed):
    repo = OrderRepository(store)
    order = await repo.create(await draft_for(store, seed.alice, (seed.burger, 1)))

    with pytest.raises(InvalidTransition):
        await repo.update_status(seed.owner, order.id, OrderStatus.DELIVERED)

    confirmed = await repo.update_status(seed.owner, order.id, OrderStatus.CONFIRMED)
    assert confirmed.status == OrderStatus.CONFIRMED
    assert confirmed.lines


async def test_listing_is_scoped_by_role(store, seed):
    repo = OrderRepository(store)
    mine = await repo.create(await draft_for(store, seed.alice, (seed.burger, 1)))
    await repo.create(await draft_for(store, seed.bob, (seed.fries, 1)))
    anonymous = await repo.create(
        await draft_for(store, Identity(table_id=seed.table2), (seed.soda, 1))
    )

    alice_orders = await repo.list(seed.alice)
    assert [o.id for o in alice_orders] == [mine.id]

    all_orders = await repo.list(seed.owner)
    assert len(all_orders) == 3
    table_order = next(o for o in all_orders if o.id == anonymous.id)
    assert table_order.table.number == 2
    assert table_order.user is None


async def test_anonymous_session_lists_only_its_table(store, seed):
    repo = OrderRepository(store)
    await repo.create(await draft_for(store, seed.alice, (seed.burger, 1)))
    ours = await repo.create(await draft_for(store, Identity(table_id=seed.table1), (seed.soda, 1)))
    await repo.create(await draft_for(store, Identity(table_id=seed.table2), (seed.soda, 1)))

    session = Identity(table_id=seed.table1)
    assert [o.id for o in await repo.list(session)] == [ours.id]
    assert (await repo.get(session, ours.id)).table_id == seed.table1


async def test_stats_for_managers(store, seed):
    repo = OrderRepository(store)
    a = await repo.create(await draft_for(store, seed.alice, (seed.burger, 1)))
    await repo.create(await draft_for(store, seed.bob, (seed.fries, 1)))
    await repo.cancel(seed.alice, a.id)

    stats = await repo.stats(seed.owner)

    assert stats.total_orders == 2
    assert stats.pending == 1
    assert stats.finished == 1
    assert stats.total_value == Decimal("41.25")

    with pytest.raises(Forbidden):
        await repo.stats(seed.alice)


def owned_draft(seed, user_id, table_id):
    price = Decimal("8.00")
    return OrderDraft(
        kind=OrderKind.DINE_IN,
        user_id=user_id,
        table_id=table_id,
        subtotal=price,
        service_fee=Decimal("0.80"),
        delivery_fee=Decimal("0.00"),
        total=Decimal("8.80"),
        lines=[DraftLine(product_id=seed.soda, quantity=1, unit_price=price, subtotal=price)],
    )


@pytest.mark.parametrize("owners", ["both", "neither"])
async def test_order_needs_exactly_one_owner(store, seed, session_maker, owners):
    if owners == "both":
        draft = owned_draft(seed, seed.alice.user_id, seed.table1)
    else:
        draft = owned_draft(seed, None, None)

    with pytest.raises(ValidationError):
        await OrderRepository(store).create(draft)
    assert await count_rows(session_maker, Order) == 0


async def test_anonymous_session_cannot_cancel(store, seed):
    repo = OrderRepository(store)
    session = Identity(table_id=seed.table1)
    order = await repo.create(await draft_for(store, session, (seed.soda, 1)))

    with pytest.raises(Forbidden):
        await repo.cancel(session, order.id)


async def test_missing_order_cannot_be_canceled(store, seed):
    with pytest.raises(OrderNotFound):
        await OrderRepository(store).cancel(seed.alice, 4242)


async def test_get_by_number(store, seed):
    repo = OrderRepository(store)
    await repo.create(await draft_for(store, seed.alice, (seed.soda, 1)))
    second = await repo.create(await draft_for(store, seed.bob, (seed.fries, 1)))

    found = await repo.get_by_number(seed.operator, second.number)
    assert found.id == second.id
    assert found.lines[0].product_id == seed.fries

    assert (await repo.get_by_number(seed.bob, 2)).id == second.id
    with pytest.raises(OrderNotFound):
        await repo.get_by_number(seed.alice, 2)
    with pytest.raises(OrderNotFound):
        await repo.get_by_number(seed.operator, 99)
