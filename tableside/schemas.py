"""
Pydantic Schemas for Request/Response Validation

Response schemas double as the read models returned by the store, so
every layer above the database works with validated, detached objects.

Author: Tableside Team
Version: 1.0.0
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tableside.models import (
    AccountStatus,
    OrderKind,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Role,
    TableStatus,
)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single item in an order. Prices are never taken from the client."""
    product_id: int = Field(..., ge=1, examples=[3])
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    note: Optional[str] = Field(None, max_length=200, examples=["No onions"])


class OrderCreate(BaseModel):
    """Request schema for an order placed by an authenticated customer."""
    kind: OrderKind = Field(default=OrderKind.PICKUP, examples=["pickup"])
    items: List[OrderItemCreate] = Field(..., min_length=1)
    note: Optional[str] = Field(None, max_length=500)
    delivery_address: Optional[str] = Field(None, max_length=255)
    delivery_fee: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)

    @model_validator(mode="after")
    def require_address_for_delivery(self) -> "OrderCreate":
        if self.kind == OrderKind.DELIVERY and not self.delivery_address:
            raise ValueError("delivery_address is required for delivery orders")
        return self


class TableOrderCreate(BaseModel):
    """Request schema for an order placed through a table access token."""
    items: List[OrderItemCreate] = Field(..., min_length=1)
    note: Optional[str] = Field(None, max_length=500)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class TableCreate(BaseModel):
    number: int = Field(..., ge=1, examples=[12])
    capacity: int = Field(default=4, ge=1, le=50)
    notes: Optional[str] = Field(None, max_length=500)


class TableUpdate(BaseModel):
    capacity: Optional[int] = Field(None, ge=1, le=50)
    notes: Optional[str] = Field(None, max_length=500)


class TableStatusUpdate(BaseModel):
    status: TableStatus


class PaymentRequest(BaseModel):
    payment_method: PaymentMethod = Field(..., examples=["pix"])


# =============================================================================
# READ MODELS / RESPONSE SCHEMAS
# =============================================================================

class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    price: Decimal


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    email: str
    role: Role


class TableSummary(BaseModel):
    """Table as shown next to an order; never exposes the access token."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    number: int
    capacity: int
    status: TableStatus


class TableResponse(TableSummary):
    """Full table record for managers."""
    access_token: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class OrderLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    note: Optional[str] = None
    product: Optional[ProductResponse] = None


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    number: int
    kind: OrderKind
    status: OrderStatus
    payment_status: PaymentStatus
    subtotal: Decimal
    service_fee: Decimal
    delivery_fee: Decimal
    total: Decimal
    note: Optional[str] = None
    delivery_address: Optional[str] = None
    user_id: Optional[int] = None
    table_id: Optional[int] = None
    account_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    lines: List[OrderLineResponse] = Field(default_factory=list)
    table: Optional[TableSummary] = None
    user: Optional[UserSummary] = None


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class OrderStats(BaseModel):
    total_orders: int
    pending: int
    in_preparation: int
    finished: int
    total_value: Decimal


class AccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    table_id: int
    status: AccountStatus
    total: Decimal
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    opened_at: datetime
    closed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    table: Optional[TableSummary] = None


class RevenueEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    amount: Decimal
    payment_method: PaymentMethod
    paid_at: datetime


class PaymentOutcome(BaseModel):
    """
    Result of finalizing a table payment.

    ``ledger_recorded`` is False when the revenue entry could not be
    written; the payment itself stands and must not be retried.
    """
    account: AccountResponse
    revenue_entry: Optional[RevenueEntryResponse] = None
    ledger_recorded: bool
    ledger_error: Optional[str] = None
    message: str


class RevenueSummary(BaseModel):
    today: Decimal
    month: Decimal
    period_total: Decimal
    entries: List[RevenueEntryResponse]


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None
    retry_safe: bool = True


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    timestamp: datetime
