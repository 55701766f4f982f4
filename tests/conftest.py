import os
from decimal import Decimal
from types import SimpleNamespace

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REVENUE_EXPORT_ENABLED", "false")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tableside.database import Base
from tableside.identity import Identity
from tableside.models import DiningTable, Product, Role, TableStatus, User
from tableside.store.sql import SqlStore


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_maker):
    return SqlStore(session_maker)


@pytest.fixture
async def seed(session_maker):
    """Three products, an owner, an operator, two customers and two free tables."""
    async with session_maker() as session:
        async with session.begin():
            burger = Product(name="X-Burger", price=Decimal("25.00"))
            fries = Product(name="Fries", price=Decimal("12.50"))
            soda = Product(name="Soda", price=Decimal("8.00"))
            owner = User(full_name="Olivia Owner", email="owner@example.com", role=Role.OWNER)
            operator = User(full_name="Oscar Operator", email="op@example.com", role=Role.OPERATOR)
            alice = User(full_name="Alice", email="alice@example.com", role=Role.CUSTOMER)
            bob = User(full_name="Bob", email="bob@example.com", role=Role.CUSTOMER)
            table1 = DiningTable(number=1, capacity=4, status=TableStatus.FREE, access_token="token-table-1")
            table2 = DiningTable(number=2, capacity=2, status=TableStatus.FREE, access_token="token-table-2")
            session.add_all([burger, fries, soda, owner, operator, alice, bob, table1, table2])
            await session.flush()

        return SimpleNamespace(
            burger=burger.id,
            fries=fries.id,
            soda=soda.id,
            owner=Identity(user_id=owner.id, role=Role.OWNER),
            operator=Identity(user_id=operator.id, role=Role.OPERATOR),
            alice=Identity(user_id=alice.id, role=Role.CUSTOMER),
            bob=Identity(user_id=bob.id, role=Role.CUSTOMER),
            table1=table1.id,
            table2=table2.id,
            table1_token="token-table-1",
            table2_token="token-table-2",
        )
