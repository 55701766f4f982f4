import pytest

from tableside.models import AccountStatus, OrderStatus, TableStatus
from tableside.transitions import (
    CANCELABLE_ORDER_STATUSES,
    can_set_table_status,
    can_transition,
    can_transition_account,
)


@pytest.mark.parametrize(
    "src,dst",
    [
        (OrderStatus.PENDING, OrderStatus.CONFIRMED),
        (OrderStatus.CONFIRMED, OrderStatus.IN_PREPARATION),
        (OrderStatus.IN_PREPARATION, OrderStatus.READY),
        (OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY),
        (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED),
        (OrderStatus.PENDING, OrderStatus.CANCELED),
        (OrderStatus.CONFIRMED, OrderStatus.CANCELED),
    ],
)
def test_allowed_order_transitions(src, dst):
    assert can_transition(src, dst)


@pytest.mark.parametrize(
    "src,dst",
    [
        (OrderStatus.PENDING, OrderStatus.READY),
        (OrderStatus.READY, OrderStatus.CANCELED),
        (OrderStatus.DELIVERED, OrderStatus.CANCELED),
        (OrderStatus.CANCELED, OrderStatus.PENDING),
        (OrderStatus.READY, OrderStatus.CONFIRMED),
    ],
)
def test_rejected_order_transitions(src, dst):
    assert not can_transition(src, dst)


def test_cancelable_statuses():
    assert CANCELABLE_ORDER_STATUSES == {OrderStatus.PENDING, OrderStatus.CONFIRMED}


def test_account_machine():
    assert can_transition_account(AccountStatus.OPEN, AccountStatus.CLOSED)
    assert can_transition_account(AccountStatus.CLOSED, AccountStatus.PAID)
    assert can_transition_account(AccountStatus.CLOSED, AccountStatus.CANCELED)
    assert not can_transition_account(AccountStatus.OPEN, AccountStatus.PAID)
    assert not can_transition_account(AccountStatus.PAID, AccountStatus.CANCELED)
    assert not can_transition_account(AccountStatus.CANCELED, AccountStatus.OPEN)


def test_manual_table_moves():
    assert can_set_table_status(TableStatus.FREE, TableStatus.RESERVED)
    assert can_set_table_status(TableStatus.INACTIVE, TableStatus.FREE)
    assert not can_set_table_status(TableStatus.OCCUPIED, TableStatus.FREE)
    assert not can_set_table_status(TableStatus.RESERVED, TableStatus.OCCUPIED)
