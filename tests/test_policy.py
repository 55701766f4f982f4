from decimal import Decimal

import pytest

from tableside.errors import AuthenticationRequired, Forbidden
from tableside.identity import ANONYMOUS, Identity
from tableside.models import OrderKind, OrderStatus, PaymentStatus, Role
from tableside.policy import AccessPolicy, OrderScope
from tableside.schemas import OrderResponse

OWNER = Identity(user_id=1, role=Role.OWNER)
OPERATOR = Identity(user_id=2, role=Role.OPERATOR)
ALICE = Identity(user_id=3, role=Role.CUSTOMER)
BOB = Identity(user_id=4, role=Role.CUSTOMER)
TABLE_SESSION = Identity(table_id=7)


def make_order(user_id=None, table_id=None) -> OrderResponse:
    money = Decimal("10.00")
    return OrderResponse(
        id=1,
        number=1,
        kind=OrderKind.PICKUP,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        subtotal=money,
        service_fee=Decimal("1.00"),
        delivery_fee=Decimal("0.00"),
        total=Decimal("11.00"),
        user_id=user_id,
        table_id=table_id,
    )


@pytest.mark.parametrize("identity", [OWNER, OPERATOR])
def test_managers_pass(identity):
    AccessPolicy.require_manager(identity)


def test_customer_is_forbidden():
    with pytest.raises(Forbidden):
        AccessPolicy.require_manager(ALICE, "close accounts")


@pytest.mark.parametrize("identity", [ANONYMOUS, TABLE_SESSION])
def test_no_user_needs_authentication(identity):
    with pytest.raises(AuthenticationRequired):
        AccessPolicy.require_manager(identity)


def test_order_visibility():
    own = make_order(user_id=ALICE.user_id)
    table_order = make_order(table_id=7)

    assert AccessPolicy.can_view_order(OWNER, own)
    assert AccessPolicy.can_view_order(ALICE, own)
    assert not AccessPolicy.can_view_order(BOB, own)
    assert AccessPolicy.can_view_order(TABLE_SESSION, table_order)
    assert not AccessPolicy.can_view_order(TABLE_SESSION, make_order(table_id=8))
    assert not AccessPolicy.can_view_order(ANONYMOUS, table_order)


def test_list_scope():
    assert AccessPolicy.order_list_scope(OPERATOR) == OrderScope()
    assert AccessPolicy.order_list_scope(ALICE) == OrderScope(user_id=ALICE.user_id)
    assert AccessPolicy.order_list_scope(TABLE_SESSION) == OrderScope(table_id=7)
    with pytest.raises(AuthenticationRequired):
        AccessPolicy.order_list_scope(ANONYMOUS)


def test_cancel_rules():
    own = make_order(user_id=ALICE.user_id, table_id=7)

    AccessPolicy.require_cancel(ALICE, own)
    AccessPolicy.require_cancel(OPERATOR, own)
    with pytest.raises(Forbidden):
        AccessPolicy.require_cancel(BOB, own)
    with pytest.raises(Forbidden):
        AccessPolicy.require_cancel(TABLE_SESSION, own)
