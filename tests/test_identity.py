from decimal import Decimal
from types import SimpleNamespace

import pytest

from tableside.accounts import TableAccountManager
from tableside.cart import CartStore, FileCartStorage, table_cart_key
from tableside.checkout import CheckoutService
from tableside.context import SessionContext
from tableside.errors import AuthenticationRequired, TableNotFound, ValidationError
from tableside.identity import IdentityResolver
from tableside.models import OrderKind, Role, TableStatus
from tableside.orders import OrderRepository
from tableside.pricing import OrderComposer
from tableside.services.identity import HeaderIdentityProvider, StaticIdentityProvider

pytestmark = pytest.mark.anyio


@pytest.fixture
def checkout(store):
    return CheckoutService(OrderComposer(store), OrderRepository(store))


async def test_header_provider_resolves_user(store, seed):
    provider = HeaderIdentityProvider(store, str(seed.alice.user_id))

    user = await provider.current_user()

    assert user.id == seed.alice.user_id
    assert user.role == Role.CUSTOMER
    assert provider.provider_name == "header"


async def test_header_provider_rejects_malformed_value(store):
    provider = HeaderIdentityProvider(store, "alice")
    with pytest.raises(ValidationError, match="Malformed identity"):
        await provider.current_user()


async def test_header_provider_unknown_user_is_no_session(store, seed):
    assert await HeaderIdentityProvider(store, "4242").current_user() is None
    assert await HeaderIdentityProvider(store, None).current_user() is None


async def test_header_provider_sign_out(store, seed):
    provider = HeaderIdentityProvider(store, str(seed.alice.user_id))
    assert await provider.current_user() is not None

    await provider.sign_out()

    assert await provider.current_user() is None


async def test_resolve_authenticated_requires_session(store):
    resolver = IdentityResolver(store, StaticIdentityProvider())
    with pytest.raises(AuthenticationRequired):
        await resolver.resolve_authenticated()


async def test_resolve_table(store, seed):
    resolver = IdentityResolver(store, StaticIdentityProvider())

    identity, table = await resolver.resolve_table(seed.table1_token)

    assert identity.is_anonymous
    assert identity.table_id == seed.table1
    assert table.number == 1


async def test_resolve_table_attaches_signed_in_user(store, seed):
    user = await store.get_user(seed.alice.user_id)
    resolver = IdentityResolver(store, StaticIdentityProvider(user))

    identity, _ = await resolver.resolve_table(seed.table1_token)
    assert identity.user_id == seed.alice.user_id
    assert identity.table_id == seed.table1
    assert not identity.is_anonymous

    bare, _ = await resolver.resolve_table(seed.table1_token, attach_user=False)
    assert bare.user_id is None


@pytest.mark.parametrize("token", ["", "   "])
async def test_resolve_table_requires_token(store, token):
    resolver = IdentityResolver(store, StaticIdentityProvider())
    with pytest.raises(ValidationError):
        await resolver.resolve_table(token)


async def test_regenerated_token_stops_resolving(store, seed):
    await TableAccountManager(store).regenerate_token(seed.owner, seed.table1)
    resolver = IdentityResolver(store, StaticIdentityProvider())

    with pytest.raises(TableNotFound):
        await resolver.resolve_table(seed.table1_token)


async def test_inactive_table_is_readable_but_not_orderable(store, seed):
    await TableAccountManager(store).set_table_status(seed.owner, seed.table2, TableStatus.INACTIVE)
    resolver = IdentityResolver(store, StaticIdentityProvider())

    with pytest.raises(ValidationError, match="not taking orders"):
        await resolver.resolve_table(seed.table2_token)

    identity, table = await resolver.resolve_table(seed.table2_token, require_orderable=False)
    assert identity.table_id == seed.table2
    assert table.status == TableStatus.INACTIVE


async def test_anonymous_checkout_signs_out_and_clears_cart(store, seed, checkout, tmp_path):
    user = await store.get_user(seed.alice.user_id)
    anon_auth = StaticIdentityProvider(user)
    identity, _ = await IdentityResolver(store, StaticIdentityProvider()).resolve_table(
        seed.table1_token
    )
    cart = CartStore(FileCartStorage(tmp_path), table_cart_key(seed.table1))
    burger = (await store.fetch_products([seed.burger]))[seed.burger]
    cart.add(burger, quantity=2, note="Medium")

    order = await checkout.place_order(SessionContext(identity, cart=cart, anon_auth=anon_auth))

    assert anon_auth.sign_out_calls == 1
    assert await anon_auth.current_user() is None
    assert cart.is_empty
    assert order.kind == OrderKind.DINE_IN
    assert order.user_id is None
    assert order.table_id == seed.table1
    assert order.total == Decimal("55.00")
    assert order.lines[0].note == "Medium"

    visible = await OrderRepository(store).get(identity, order.id)
    assert visible.id == order.id


async def test_explicit_items_leave_cart_alone(store, seed, checkout, tmp_path):
    cart = CartStore(FileCartStorage(tmp_path))
    soda = (await store.fetch_products([seed.soda]))[seed.soda]
    cart.add(soda)
    items = [SimpleNamespace(product_id=seed.fries, quantity=1, note=None)]

    order = await checkout.place_order(SessionContext(seed.alice, cart=cart), items=items)

    assert order.user_id == seed.alice.user_id
    assert order.kind == OrderKind.PICKUP
    assert cart.item_count == 1


async def test_failed_checkout_keeps_cart(store, seed, checkout, tmp_path):
    cart = CartStore(FileCartStorage(tmp_path))
    burger = (await store.fetch_products([seed.burger]))[seed.burger]
    cart.add(burger)

    with pytest.raises(ValidationError):
        await checkout.place_order(SessionContext(seed.alice, cart=cart), kind=OrderKind.DELIVERY)

    assert cart.item_count == 1


async def test_checkout_without_items_or_cart(seed, checkout):
    with pytest.raises(ValidationError):
        await checkout.place_order(SessionContext(seed.alice))


async def test_signed_in_user_on_table_path_does_not_own_order(store, seed, checkout):
    user = await store.get_user(seed.bob.user_id)
    session = StaticIdentityProvider(user)
    identity, _ = await IdentityResolver(store, session).resolve_table(seed.table2_token)
    assert identity.user_id == seed.bob.user_id

    items = [SimpleNamespace(product_id=seed.soda, quantity=1, note=None)]
    order = await checkout.place_order(
        SessionContext(identity, anon_auth=session), items=items
    )

    assert order.table_id == seed.table2
    assert order.user_id is None
    assert session.sign_out_calls == 1
