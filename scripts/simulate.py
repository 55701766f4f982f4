"""
Dining Room Simulation Script

Drives the full table lifecycle through the HTTP API under concurrency:
anonymous orders on several tables at once, then closing and paying
every table. Run from project root: python scripts/simulate.py

Requires seeded products and a manager user (python scripts/seed.py).

Author: Tableside Team
Version: 1.0.0
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
PAYMENT_METHODS = ["cash", "debit_card", "credit_card", "pix"]
NOTES = [None, None, "No onions", "Extra ice", "Well done"]


def generate_random_items(products: list[dict]) -> list[dict]:
    """Pick 1-4 random products with small quantities."""
    picks = random.sample(products, k=min(len(products), random.randint(1, 4)))
    return [
        {
            "product_id": p["id"],
            "quantity": random.randint(1, 3),
            "note": random.choice(NOTES),
        }
        for p in picks
    ]


async def place_table_order(
    client: httpx.AsyncClient,
    table: dict,
    products: list[dict],
    order_num: int,
) -> dict[str, Any]:
    """Send one anonymous order through the table access token."""
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/tables/{table['access_token']}/orders",
            json={"items": generate_random_items(products)},
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)
        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "table": table["number"],
                "success": True,
                "order_id": data["id"],
                "total": Decimal(str(data["total"])),
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "table": table["number"],
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "table": table["number"],
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


async def settle_table(client: httpx.AsyncClient, table: dict, headers: dict) -> dict[str, Any]:
    """Close the table account and pay it."""
    response = await client.post(
        f"{API_BASE_URL}/api/manage/tables/{table['id']}/close", headers=headers
    )
    if response.status_code != 200:
        return {"table": table["number"], "success": False, "error": response.json().get("detail")}

    account = response.json()
    response = await client.post(
        f"{API_BASE_URL}/api/manage/accounts/{account['id']}/pay",
        json={"payment_method": random.choice(PAYMENT_METHODS)},
        headers=headers,
    )
    if response.status_code != 200:
        return {"table": table["number"], "success": False, "error": response.json().get("detail")}

    outcome = response.json()
    return {
        "table": table["number"],
        "success": True,
        "account_id": account["id"],
        "total": Decimal(str(outcome["account"]["total"])),
        "ledger_recorded": outcome["ledger_recorded"],
        "message": outcome["message"],
    }


async def prepare_tables(client: httpx.AsyncClient, headers: dict, count: int) -> list[dict]:
    """Reuse free tables, creating new ones when there are not enough."""
    response = await client.get(f"{API_BASE_URL}/api/manage/tables", headers=headers)
    response.raise_for_status()
    tables = response.json()
    free = [t for t in tables if t["status"] == "free"]

    next_number = max((t["number"] for t in tables), default=0) + 1
    while len(free) < count:
        response = await client.post(
            f"{API_BASE_URL}/api/manage/tables",
            json={"number": next_number, "capacity": random.choice([2, 4, 6])},
            headers=headers,
        )
        response.raise_for_status()
        free.append(response.json())
        next_number += 1
    return free[:count]


async def run_simulation(
    num_tables: int = 5,
    orders_per_table: int = 4,
    manager_id: int = 1,
) -> dict[str, Any]:
    """
    Run the dining room simulation.

    Args:
        num_tables: Tables served at the same time
        orders_per_table: Concurrent anonymous orders per table
        manager_id: User id of an operator or owner
    """
    headers = {"X-User-Id": str(manager_id)}

    print("=" * 70)
    print("DINING ROOM SIMULATION")
    print("=" * 70)
    print(f"Tables: {num_tables}  Orders per table: {orders_per_table}")
    print(f"Target: {API_BASE_URL}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        response = await client.get(f"{API_BASE_URL}/api/products")
        response.raise_for_status()
        products = response.json()
        if not products:
            print("\nNo products on the menu. Run: python scripts/seed.py")
            return {"success": False}

        tables = await prepare_tables(client, headers, num_tables)

        print("\nPlacing orders...\n")
        tasks = [
            place_table_order(client, table, products, i * orders_per_table + j + 1)
            for i, table in enumerate(tables)
            for j in range(orders_per_table)
        ]
        orders = await asyncio.gather(*tasks)

        print("Settling tables...\n")
        settlements = []
        for table in tables:
            settlements.append(await settle_table(client, table, headers))

        response = await client.get(f"{API_BASE_URL}/api/manage/revenue/summary", headers=headers)
        summary = response.json() if response.status_code == 200 else {}

    total_time = round(time.time() - start_time, 2)

    placed = [o for o in orders if o["success"]]
    failed = [o for o in orders if not o["success"]]
    paid = [s for s in settlements if s["success"]]
    ordered_total = sum((o["total"] for o in placed), Decimal("0"))
    paid_total = sum((s["total"] for s in paid), Decimal("0"))

    print("=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)
    print(f"\nOrders placed: {len(placed)}/{len(orders)}")
    print(f"Tables paid:   {len(paid)}/{len(tables)}")
    print(f"Total time:    {total_time}s")

    if placed:
        avg_time = round(sum(o["time"] for o in placed) / len(placed), 3)
        print(f"\nAverage order response: {avg_time}s")

    print(f"\nOrdered total: {ordered_total:.2f}")
    print(f"Paid total:    {paid_total:.2f}")
    if ordered_total != paid_total:
        print("WARNING: paid total does not match the ordered total")

    missing_ledger = [s for s in paid if not s["ledger_recorded"]]
    if missing_ledger:
        print(f"\nLedger entries missing for {len(missing_ledger)} account(s):")
        for s in missing_ledger:
            print(f"   Account #{s['account_id']}: {s['message']}")

    if failed:
        print("\nFailed orders (first 5):")
        for f in failed[:5]:
            print(f"   Order {f['order_num']} (table {f['table']}): {f.get('error')}")

    if summary:
        print(f"\nRevenue today: {summary.get('today')}  This month: {summary.get('month')}")

    print("=" * 70)

    return {
        "success": not failed and len(paid) == len(tables),
        "orders": len(orders),
        "placed": len(placed),
        "paid": len(paid),
        "total_time": total_time,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Dining Room Simulation")
    parser.add_argument("--tables", type=int, default=5, help="Number of tables")
    parser.add_argument("--orders", type=int, default=4, help="Orders per table")
    parser.add_argument("--manager-id", type=int, default=1, help="Manager user id")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url
    result = asyncio.run(run_simulation(args.tables, args.orders, args.manager_id))
    sys.exit(0 if result.get("success") else 1)
