import httpx
import pytest

from tableside.main import app
from tableside.store import get_store, reset_store

pytestmark = pytest.mark.anyio


@pytest.fixture
async def client(store):
    app.dependency_overrides[get_store] = lambda: store
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def as_user(identity) -> dict:
    return {"X-User-Id": str(identity.user_id)}


async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["documentation"] == "/docs"


async def test_products(client, seed):
    response = await client.get("/api/products")
    assert response.status_code == 200
    assert {p["name"] for p in response.json()} == {"X-Burger", "Fries", "Soda"}


async def test_customer_order_needs_sign_in(client, seed):
    response = await client.post(
        "/api/orders", json={"items": [{"product_id": seed.burger, "quantity": 1}]}
    )
    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "authentication_required"


async def test_malformed_identity_header(client, seed):
    response = await client.get("/api/orders", headers={"X-User-Id": "not-a-number"})
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


async def test_customer_order_and_listing(client, seed):
    response = await client.post(
        "/api/orders",
        json={
            "kind": "pickup",
            "items": [
                {"product_id": seed.burger, "quantity": 1},
                {"product_id": seed.soda, "quantity": 2, "note": "No ice"},
            ],
        },
        headers=as_user(seed.alice),
    )
    assert response.status_code == 201
    order = response.json()
    assert order["total"] == "45.10"
    assert order["user_id"] == seed.alice.user_id
    assert len(order["lines"]) == 2

    mine = await client.get("/api/orders", headers=as_user(seed.alice))
    assert mine.json()["total"] == 1

    theirs = await client.get(f"/api/orders/{order['id']}", headers=as_user(seed.bob))
    assert theirs.status_code == 404
    assert theirs.json()["error"] == "order_not_found"


async def test_unknown_product(client, seed):
    response = await client.post(
        "/api/orders",
        json={"items": [{"product_id": 999, "quantity": 1}]},
        headers=as_user(seed.alice),
    )
    assert response.status_code == 404
    assert response.json()["error"] == "product_not_found"


async def test_invalid_table_token(client, seed):
    response = await client.post(
        "/api/tables/nope/orders",
        json={"items": [{"product_id": seed.burger, "quantity": 1}]},
    )
    assert response.status_code == 404
    assert response.json()["error"] == "table_not_found"


async def test_manager_routes_are_guarded(client, seed):
    anonymous = await client.get("/api/manage/tables")
    assert anonymous.status_code == 401

    customer = await client.get("/api/manage/tables", headers=as_user(seed.alice))
    assert customer.status_code == 403
    assert customer.json()["error"] == "forbidden"


async def test_table_lifecycle(client, seed):
    manager = as_user(seed.operator)
    token = seed.table1_token

    for quantity in (1, 2):
        response = await client.post(
            f"/api/tables/{token}/orders",
            json={"items": [{"product_id": seed.fries, "quantity": quantity}]},
        )
        assert response.status_code == 201
        assert response.json()["table_id"] == seed.table1
        assert response.json()["user_id"] is None

    session_orders = await client.get(f"/api/tables/{token}/orders")
    assert session_orders.json()["total"] == 2

    table = await client.get(f"/api/manage/tables/{seed.table1}", headers=manager)
    assert table.json()["status"] == "occupied"

    unpaid = await client.get(
        f"/api/manage/tables/{seed.table1}/orders", params={"unpaid_only": True}, headers=manager
    )
    assert unpaid.json()["total"] == 2

    closed = await client.post(f"/api/manage/tables/{seed.table1}/close", headers=manager)
    assert closed.status_code == 200
    account = closed.json()
    assert account["status"] == "closed"
    assert account["total"] == "41.25"

    again = await client.post(f"/api/manage/tables/{seed.table1}/close", headers=manager)
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_transition"

    paid = await client.post(
        f"/api/manage/accounts/{account['id']}/pay",
        json={"payment_method": "credit_card"},
        headers=manager,
    )
    assert paid.status_code == 200
    outcome = paid.json()
    assert outcome["ledger_recorded"] is True
    assert outcome["account"]["status"] == "paid"
    assert outcome["revenue_entry"]["amount"] == "41.25"

    table = await client.get(f"/api/manage/tables/{seed.table1}", headers=manager)
    assert table.json()["status"] == "free"

    nothing_left = await client.post(f"/api/manage/tables/{seed.table1}/close", headers=manager)
    assert nothing_left.status_code == 409
    assert nothing_left.json()["error"] == "no_pending_orders"

    summary = await client.get("/api/manage/revenue/summary", headers=manager)
    assert summary.json()["today"] == "41.25"


async def test_table_management_routes(client, seed):
    owner = as_user(seed.owner)

    created = await client.post("/api/manage/tables", json={"number": 9, "capacity": 2}, headers=owner)
    assert created.status_code == 201
    table = created.json()

    duplicate = await client.post("/api/manage/tables", json={"number": 9}, headers=owner)
    assert duplicate.status_code == 422

    status = await client.put(
        f"/api/manage/tables/{table['id']}/status", json={"status": "reserved"}, headers=owner
    )
    assert status.json()["status"] == "reserved"

    refused = await client.post(
        f"/api/tables/{table['access_token']}/orders",
        json={"items": [{"product_id": seed.soda, "quantity": 1}]},
    )
    assert refused.status_code == 422

    rotated = await client.post(f"/api/manage/tables/{table['id']}/token", headers=owner)
    assert rotated.json()["access_token"] != table["access_token"]

    deleted = await client.delete(f"/api/manage/tables/{table['id']}", headers=owner)
    assert deleted.status_code == 204
    missing = await client.get(f"/api/manage/tables/{table['id']}", headers=owner)
    assert missing.status_code == 404

async def test_lookup_by_number_routes(client, seed):
    created = await client.post(
        "/api/orders",
        json={"items": [{"product_id": seed.soda, "quantity": 1}]},
        headers=as_user(seed.alice),
    )
    number = created.json()["number"]

    mine = await client.get(f"/api/orders/by-number/{number}", headers=as_user(seed.alice))
    assert mine.status_code == 200
    assert mine.json()["id"] == created.json()["id"]

    theirs = await client.get(f"/api/orders/by-number/{number}", headers=as_user(seed.bob))
    assert theirs.status_code == 404

    table = await client.get("/api/manage/tables/by-number/1", headers=as_user(seed.owner))
    assert table.status_code == 200
    assert table.json()["id"] == seed.table1


async def test_cancel_someone_elses_order_is_forbidden(client, seed):
    created = await client.post(
        "/api/orders",
        json={"items": [{"product_id": seed.soda, "quantity": 1}]},
        headers=as_user(seed.alice),
    )

    response = await client.post(
        f"/api/orders/{created.json()['id']}/cancel", headers=as_user(seed.bob)
    )
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"



def test_store_factory_is_cached():
    first = get_store()
    assert get_store() is first

    reset_store()
    assert get_store() is not first
    reset_store()
