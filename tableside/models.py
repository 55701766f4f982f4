"""
SQLAlchemy Database Models

Persistent entities of the ordering engine:
- Products (read-only menu prices)
- Users (identity and role, owned by the auth provider)
- Dining tables with their anonymous access token
- Orders and their immutable line items
- Table accounts (tabs) and the revenue ledger

Author: Tableside Team
Version: 1.0.0
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, Enum, Boolean,
    ForeignKey, CheckConstraint, Index, text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from tableside.database import Base


MONEY = Numeric(10, 2)


class Role(str, enum.Enum):
    """User roles. Operators and owners are both managers."""
    CUSTOMER = "customer"
    OPERATOR = "operator"
    OWNER = "owner"

    @property
    def is_manager(self) -> bool:
        return self in (Role.OPERATOR, Role.OWNER)


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PREPARATION = "in_preparation"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELED = "canceled"


class OrderKind(str, enum.Enum):
    """Where the order is consumed."""
    DINE_IN = "dine_in"
    DELIVERY = "delivery"
    PICKUP = "pickup"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELED = "canceled"


class TableStatus(str, enum.Enum):
    FREE = "free"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    INACTIVE = "inactive"


class AccountStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
    PAID = "paid"
    CANCELED = "canceled"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    PIX = "pix"


class Product(Base):
    """Menu product. Source of truth for unit prices."""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(MONEY, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Product #{self.id} - {self.name} - {self.price}>"


class User(Base):
    """Registered user as seen by the ordering engine."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    full_name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(Enum(Role), default=Role.CUSTOMER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<User #{self.id} - {self.email} - {self.role.value}>"


class DiningTable(Base):
    """
    Physical seating unit.

    The access token is the only credential needed to order anonymously
    for the table; regenerating it invalidates the previous one.
    """
    __tablename__ = "dining_tables"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    number = Column(Integer, nullable=False, unique=True)
    capacity = Column(Integer, nullable=False, default=4)
    status = Column(Enum(TableStatus), default=TableStatus.FREE, nullable=False, index=True)
    access_token = Column(String(64), nullable=False, unique=True, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<DiningTable #{self.number} - {self.status.value}>"


class Order(Base):
    """
    Priced order owned by exactly one user or one table.

    Totals are snapshotted at creation and never recomputed.
    """
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (table_id IS NULL)",
            name="ck_orders_single_owner",
        ),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    number = Column(Integer, nullable=False, unique=True)

    # =========================================================================
    # ORDER TYPE & STATUS
    # =========================================================================
    kind = Column(Enum(OrderKind), default=OrderKind.DINE_IN, nullable=False)
    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    payment_status = Column(
        Enum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(MONEY, nullable=False)
    service_fee = Column(MONEY, nullable=False)
    delivery_fee = Column(MONEY, nullable=False, default=0)
    total = Column(MONEY, nullable=False)

    note = Column(Text, nullable=True)
    delivery_address = Column(String(255), nullable=True)

    # =========================================================================
    # OWNERSHIP
    # =========================================================================
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    table_id = Column(Integer, ForeignKey("dining_tables.id"), nullable=True, index=True)
    account_id = Column(Integer, ForeignKey("table_accounts.id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    lines = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.id",
    )
    user = relationship("User")
    table = relationship("DiningTable")

    def __repr__(self):
        return f"<Order #{self.number} - {self.kind.value} - {self.status.value}>"


class OrderLine(Base):
    """Immutable line item with the unit price snapshot."""
    __tablename__ = "order_lines"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_lines_quantity"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(MONEY, nullable=False)
    subtotal = Column(MONEY, nullable=False)
    note = Column(Text, nullable=True)

    order = relationship("Order", back_populates="lines")
    product = relationship("Product")


class TableAccount(Base):
    """A table's tab: snapshot of its unpaid orders at closing time."""
    __tablename__ = "table_accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    table_id = Column(Integer, ForeignKey("dining_tables.id"), nullable=False, index=True)
    status = Column(Enum(AccountStatus), default=AccountStatus.OPEN, nullable=False, index=True)
    total = Column(MONEY, nullable=False, default=0)
    payment_method = Column(Enum(PaymentMethod), nullable=True)
    notes = Column(Text, nullable=True)

    opened_at = Column(DateTime(timezone=True), nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    table = relationship("DiningTable")

    def __repr__(self):
        return f"<TableAccount #{self.id} - table {self.table_id} - {self.status.value}>"


# One unsettled (open or closed) account per table at a time.
Index(
    "uq_table_accounts_unsettled",
    TableAccount.table_id,
    unique=True,
    sqlite_where=text("status IN ('OPEN', 'CLOSED')"),
    postgresql_where=text("status IN ('OPEN', 'CLOSED')"),
)


class RevenueEntry(Base):
    """Append-only ledger row, one per paid account with a positive total."""
    __tablename__ = "revenue_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_id = Column(
        Integer,
        ForeignKey("table_accounts.id"),
        nullable=False,
        unique=True,
    )
    amount = Column(MONEY, nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<RevenueEntry account {self.account_id} - {self.amount}>"
