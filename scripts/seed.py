"""
Demo Data Seeding Script

Creates the tables and inserts a small menu plus one user per role.
Existing rows are left alone. Run from project root: python scripts/seed.py

Author: Tableside Team
Version: 1.0.0
"""

import asyncio
import sys
from decimal import Decimal

from sqlalchemy import select

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from tableside.core.config import setup_logging
from tableside.database import async_session_maker, engine, init_db
from tableside.models import Product, Role, User

MENU = [
    ("X-Burger", "Beef patty, cheese, brioche bun", Decimal("25.00")),
    ("Fries", "Crispy potato fries", Decimal("12.50")),
    ("Caesar Salad", "Romaine, parmesan, croutons", Decimal("22.90")),
    ("Lemonade", "Fresh squeezed", Decimal("8.00")),
    ("Chocolate Cake", "Slice of the house cake", Decimal("15.00")),
]

USERS = [
    ("Olivia Owner", "owner@tableside.local", Role.OWNER),
    ("Oscar Operator", "operator@tableside.local", Role.OPERATOR),
    ("Carla Customer", "customer@tableside.local", Role.CUSTOMER),
]


async def seed() -> None:
    await init_db()

    async with async_session_maker() as session:
        async with session.begin():
            existing = set((await session.execute(select(Product.name))).scalars())
            for name, description, price in MENU:
                if name not in existing:
                    session.add(Product(name=name, description=description, price=price))

            emails = set((await session.execute(select(User.email))).scalars())
            for full_name, email, role in USERS:
                if email not in emails:
                    session.add(User(full_name=full_name, email=email, role=role))

        users = (await session.execute(select(User).order_by(User.id))).scalars().all()

    print("Seeded users:")
    for user in users:
        print(f"   #{user.id} {user.email} ({user.role.value})")

    await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed())
