"""Allowed lifecycle transitions for orders, accounts and tables."""

from __future__ import annotations

from tableside.models import AccountStatus, OrderStatus, TableStatus


ORDER_TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.PENDING: [OrderStatus.CONFIRMED, OrderStatus.CANCELED],
    OrderStatus.CONFIRMED: [OrderStatus.IN_PREPARATION, OrderStatus.CANCELED],
    OrderStatus.IN_PREPARATION: [OrderStatus.READY],
    OrderStatus.READY: [OrderStatus.OUT_FOR_DELIVERY],
    OrderStatus.OUT_FOR_DELIVERY: [OrderStatus.DELIVERED],
    OrderStatus.DELIVERED: [],
    OrderStatus.CANCELED: [],
}

CANCELABLE_ORDER_STATUSES = frozenset(
    src for src, targets in ORDER_TRANSITIONS.items() if OrderStatus.CANCELED in targets
)

ACCOUNT_TRANSITIONS: dict[AccountStatus, list[AccountStatus]] = {
    AccountStatus.OPEN: [AccountStatus.CLOSED, AccountStatus.CANCELED],
    AccountStatus.CLOSED: [AccountStatus.PAID, AccountStatus.CANCELED],
    AccountStatus.PAID: [],
    AccountStatus.CANCELED: [],
}

# Transitions a manager may request by hand. ``occupied -> free`` is left
# to payment finalization.
TABLE_TRANSITIONS: dict[TableStatus, list[TableStatus]] = {
    TableStatus.FREE: [TableStatus.OCCUPIED, TableStatus.RESERVED, TableStatus.INACTIVE],
    TableStatus.OCCUPIED: [],
    TableStatus.RESERVED: [TableStatus.FREE, TableStatus.INACTIVE],
    TableStatus.INACTIVE: [TableStatus.FREE],
}

# Tables that accept orders through their access token.
ORDERABLE_TABLE_STATUSES = frozenset({TableStatus.FREE, TableStatus.OCCUPIED})


def can_transition(src: OrderStatus, dst: OrderStatus) -> bool:
    """Return ``True`` if an order can move from ``src`` to ``dst``."""

    return dst in ORDER_TRANSITIONS.get(src, [])


def can_transition_account(src: AccountStatus, dst: AccountStatus) -> bool:
    return dst in ACCOUNT_TRANSITIONS.get(src, [])


def can_set_table_status(src: TableStatus, dst: TableStatus) -> bool:
    return dst in TABLE_TRANSITIONS.get(src, [])
