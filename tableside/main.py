"""
FastAPI Application Entry Point

Tableside Ordering - Order & Table-Account Lifecycle Engine

Identity comes from the X-User-Id header; anonymous table sessions
present the table access token in the path.

Endpoints:
    - GET  /health: System health check
    - GET  /api/products: Menu
    - POST /api/orders: Order by a signed-in customer
    - POST /api/tables/{token}/orders: Anonymous table order
    - GET  /api/orders: List orders (scoped by role)
    - /api/manage/...: Tables, accounts and revenue (managers)

Author: Tableside Team
Version: 1.0.0
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import redis
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from tableside.accounts import TableAccountManager
from tableside.checkout import CheckoutService
from tableside.context import SessionContext
from tableside.core.config import get_settings, setup_logging
from tableside.database import engine, init_db
from tableside.errors import TablesideError
from tableside.identity import Identity, IdentityResolver
from tableside.models import AccountStatus, OrderStatus, PaymentMethod
from tableside.orders import OrderRepository
from tableside.pricing import OrderComposer
from tableside.schemas import (
    AccountResponse,
    ErrorResponse,
    HealthResponse,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStats,
    OrderStatusUpdate,
    PaymentOutcome,
    PaymentRequest,
    ProductResponse,
    RevenueEntryResponse,
    RevenueSummary,
    TableCreate,
    TableOrderCreate,
    TableResponse,
    TableStatusUpdate,
    TableUpdate,
)
from tableside.services.identity import BaseIdentityProvider, HeaderIdentityProvider
from tableside.store import BaseStore, get_store
from tableside.tasks import queue_revenue_export

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info(f"   Service fee rate: {settings.service_fee_rate}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    problems = settings.validate_production_config()
    if problems:
        logger.warning(f"Unsafe configuration for {settings.env_mode.value}: {problems}")

    logger.info("Application ready")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Restaurant ordering backend: carts become priced orders, table "
        "orders are grouped into accounts, accounts are paid and tables released."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_identity_provider(
    store: BaseStore = Depends(get_store),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> BaseIdentityProvider:
    return HeaderIdentityProvider(store, x_user_id)


def get_resolver(
    store: BaseStore = Depends(get_store),
    provider: BaseIdentityProvider = Depends(get_identity_provider),
) -> IdentityResolver:
    return IdentityResolver(store, provider)


async def current_identity(resolver: IdentityResolver = Depends(get_resolver)) -> Identity:
    return await resolver.resolve_optional()


def get_orders(store: BaseStore = Depends(get_store)) -> OrderRepository:
    return OrderRepository(store)


def get_checkout(
    store: BaseStore = Depends(get_store),
    orders: OrderRepository = Depends(get_orders),
) -> CheckoutService:
    return CheckoutService(OrderComposer(store, settings.service_fee_rate), orders)


def get_accounts(store: BaseStore = Depends(get_store)) -> TableAccountManager:
    hook = queue_revenue_export if settings.revenue_export_enabled else None
    return TableAccountManager(store, on_revenue_recorded=hook)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(store: BaseStore = Depends(get_store)) -> HealthResponse:
    """Verify the database and the Celery broker are reachable."""

    db_status = "healthy"
    try:
        await store.health_check()
    except TablesideError as e:
        db_status = f"unhealthy: {e.message}"
        logger.error(f"Database health check failed: {e}")

    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except redis.RedisError as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    overall = "operational" if db_status == redis_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# MENU
# =============================================================================

@app.get("/api/products", response_model=list[ProductResponse], tags=["Menu"])
async def list_products(store: BaseStore = Depends(get_store)) -> list[ProductResponse]:
    return await store.list_products()


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Create Order (signed-in customer)",
)
async def create_order(
    order_data: OrderCreate,
    resolver: IdentityResolver = Depends(get_resolver),
    checkout: CheckoutService = Depends(get_checkout),
) -> OrderResponse:
    """Price the items at current menu prices and create the order."""
    identity = await resolver.resolve_authenticated()
    logger.info(f"Creating {order_data.kind.value} order for user #{identity.user_id}")

    return await checkout.place_order(
        SessionContext(identity=identity),
        items=order_data.items,
        kind=order_data.kind,
        note=order_data.note,
        delivery_fee=order_data.delivery_fee,
        delivery_address=order_data.delivery_address,
    )


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    identity: Identity = Depends(current_identity),
    orders: OrderRepository = Depends(get_orders),
) -> OrderListResponse:
    """Customers see their own orders; managers see every order."""
    found = await orders.list(identity, status=status)
    return OrderListResponse(total=len(found), orders=found)


@app.get("/api/orders/stats", response_model=OrderStats, responses=ERROR_RESPONSES, tags=["Orders"])
async def order_stats(
    identity: Identity = Depends(current_identity),
    orders: OrderRepository = Depends(get_orders),
) -> OrderStats:
    return await orders.stats(identity)


@app.get(
    "/api/orders/by-number/{number}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order_by_number(
    number: int,
    identity: Identity = Depends(current_identity),
    orders: OrderRepository = Depends(get_orders),
) -> OrderResponse:
    return await orders.get_by_number(identity, number)


@app.get("/api/orders/{order_id}", response_model=OrderResponse, responses=ERROR_RESPONSES, tags=["Orders"])
async def get_order(
    order_id: int,
    identity: Identity = Depends(current_identity),
    orders: OrderRepository = Depends(get_orders),
) -> OrderResponse:
    return await orders.get(identity, order_id)


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def update_order_status(
    order_id: int,
    body: OrderStatusUpdate,
    identity: Identity = Depends(current_identity),
    orders: OrderRepository = Depends(get_orders),
) -> OrderResponse:
    return await orders.update_status(identity, order_id, body.status)


@app.post(
    "/api/orders/{order_id}/cancel",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def cancel_order(
    order_id: int,
    identity: Identity = Depends(current_identity),
    orders: OrderRepository = Depends(get_orders),
) -> OrderResponse:
    return await orders.cancel(identity, order_id)


# =============================================================================
# ANONYMOUS TABLE PATH
# =============================================================================

@app.post(
    "/api/tables/{access_token}/orders",
    response_model=OrderResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Table Session"],
    summary="Create Order (table access token)",
)
async def create_table_order(
    access_token: str,
    order_data: TableOrderCreate,
    provider: BaseIdentityProvider = Depends(get_identity_provider),
    store: BaseStore = Depends(get_store),
    checkout: CheckoutService = Depends(get_checkout),
) -> OrderResponse:
    """The order belongs to the table; any session on the request is signed out."""
    identity, table = await IdentityResolver(store, provider).resolve_table(access_token)
    logger.info(f"Creating table order for table #{table.number}")

    ctx = SessionContext(identity=identity, anon_auth=provider)
    return await checkout.place_order(ctx, items=order_data.items, note=order_data.note)


@app.get(
    "/api/tables/{access_token}/orders",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Table Session"],
)
async def list_table_session_orders(
    access_token: str,
    resolver: IdentityResolver = Depends(get_resolver),
    orders: OrderRepository = Depends(get_orders),
) -> OrderListResponse:
    identity, _ = await resolver.resolve_table(
        access_token, attach_user=False, require_orderable=False
    )
    found = await orders.list(identity)
    return OrderListResponse(total=len(found), orders=found)


@app.get(
    "/api/tables/{access_token}/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Table Session"],
)
async def get_table_session_order(
    access_token: str,
    order_id: int,
    resolver: IdentityResolver = Depends(get_resolver),
    orders: OrderRepository = Depends(get_orders),
) -> OrderResponse:
    identity, _ = await resolver.resolve_table(
        access_token, attach_user=False, require_orderable=False
    )
    return await orders.get(identity, order_id)


# =============================================================================
# TABLE MANAGEMENT
# =============================================================================

@app.get("/api/manage/tables", response_model=list[TableResponse], responses=ERROR_RESPONSES, tags=["Tables"])
async def list_tables(
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> list[TableResponse]:
    return await accounts.list_tables(identity)


@app.post(
    "/api/manage/tables",
    response_model=TableResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Tables"],
)
async def create_table(
    body: TableCreate,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> TableResponse:
    return await accounts.create_table(identity, body.number, body.capacity, body.notes)


@app.get(
    "/api/manage/tables/by-number/{number}",
    response_model=TableResponse,
    responses=ERROR_RESPONSES,
    tags=["Tables"],
)
async def get_table_by_number(
    number: int,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> TableResponse:
    return await accounts.get_table_by_number(identity, number)


@app.get("/api/manage/tables/{table_id}", response_model=TableResponse, responses=ERROR_RESPONSES, tags=["Tables"])
async def get_table(
    table_id: int,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> TableResponse:
    return await accounts.get_table(identity, table_id)


@app.patch("/api/manage/tables/{table_id}", response_model=TableResponse, responses=ERROR_RESPONSES, tags=["Tables"])
async def update_table(
    table_id: int,
    body: TableUpdate,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> TableResponse:
    return await accounts.update_table(identity, table_id, capacity=body.capacity, notes=body.notes)


@app.put(
    "/api/manage/tables/{table_id}/status",
    response_model=TableResponse,
    responses=ERROR_RESPONSES,
    tags=["Tables"],
)
async def set_table_status(
    table_id: int,
    body: TableStatusUpdate,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> TableResponse:
    return await accounts.set_table_status(identity, table_id, body.status)


@app.post(
    "/api/manage/tables/{table_id}/token",
    response_model=TableResponse,
    responses=ERROR_RESPONSES,
    tags=["Tables"],
    summary="Regenerate Access Token",
)
async def regenerate_table_token(
    table_id: int,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> TableResponse:
    return await accounts.regenerate_token(identity, table_id)


@app.delete("/api/manage/tables/{table_id}", status_code=204, responses=ERROR_RESPONSES, tags=["Tables"])
async def delete_table(
    table_id: int,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> None:
    await accounts.delete_table(identity, table_id)


@app.get(
    "/api/manage/tables/{table_id}/orders",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Tables"],
)
async def list_table_orders(
    table_id: int,
    unpaid_only: bool = Query(False),
    identity: Identity = Depends(current_identity),
    orders: OrderRepository = Depends(get_orders),
) -> OrderListResponse:
    found = await orders.list_for_table(identity, table_id, unpaid_only=unpaid_only)
    return OrderListResponse(total=len(found), orders=found)


# =============================================================================
# ACCOUNTS
# =============================================================================

@app.post(
    "/api/manage/tables/{table_id}/account",
    response_model=AccountResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Accounts"],
    summary="Open Account",
)
async def open_account(
    table_id: int,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> AccountResponse:
    return await accounts.open_account(identity, table_id)


@app.post(
    "/api/manage/tables/{table_id}/close",
    response_model=AccountResponse,
    responses=ERROR_RESPONSES,
    tags=["Accounts"],
    summary="Close Account",
)
async def close_account(
    table_id: int,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> AccountResponse:
    """Aggregate every unpaid order of the table into one closed account."""
    return await accounts.close_account(identity, table_id)


@app.get("/api/manage/accounts", response_model=list[AccountResponse], responses=ERROR_RESPONSES, tags=["Accounts"])
async def list_accounts(
    table_id: Optional[int] = Query(None),
    status: Optional[list[AccountStatus]] = Query(None),
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> list[AccountResponse]:
    return await accounts.list_accounts(identity, table_id=table_id, statuses=status)


@app.get(
    "/api/manage/accounts/{account_id}",
    response_model=AccountResponse,
    responses=ERROR_RESPONSES,
    tags=["Accounts"],
)
async def get_account(
    account_id: int,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> AccountResponse:
    return await accounts.get_account(identity, account_id)


@app.post(
    "/api/manage/accounts/{account_id}/pay",
    response_model=PaymentOutcome,
    responses=ERROR_RESPONSES,
    tags=["Accounts"],
    summary="Finalize Payment",
)
async def pay_account(
    account_id: int,
    body: PaymentRequest,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> PaymentOutcome:
    """
    Pay a closed account. A failed ledger entry is reported in the
    outcome; retry it with /revenue, never by paying again.
    """
    return await accounts.finalize_payment(identity, account_id, body.payment_method)


@app.post(
    "/api/manage/accounts/{account_id}/cancel",
    response_model=AccountResponse,
    responses=ERROR_RESPONSES,
    tags=["Accounts"],
)
async def cancel_account(
    account_id: int,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> AccountResponse:
    return await accounts.cancel_account(identity, account_id)


@app.post(
    "/api/manage/accounts/{account_id}/revenue",
    response_model=RevenueEntryResponse,
    responses=ERROR_RESPONSES,
    tags=["Accounts"],
    summary="Retry Revenue Entry",
)
async def retry_revenue_entry(
    account_id: int,
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> RevenueEntryResponse:
    return await accounts.retry_revenue_entry(identity, account_id)


# =============================================================================
# REVENUE
# =============================================================================

@app.get(
    "/api/manage/revenue",
    response_model=list[RevenueEntryResponse],
    responses=ERROR_RESPONSES,
    tags=["Revenue"],
)
async def list_revenue(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    payment_method: Optional[PaymentMethod] = Query(None),
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> list[RevenueEntryResponse]:
    return await accounts.list_revenue(identity, start=start, end=end, payment_method=payment_method)


@app.get(
    "/api/manage/revenue/summary",
    response_model=RevenueSummary,
    responses=ERROR_RESPONSES,
    tags=["Revenue"],
)
async def revenue_summary(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    payment_method: Optional[PaymentMethod] = Query(None),
    identity: Identity = Depends(current_identity),
    accounts: TableAccountManager = Depends(get_accounts),
) -> RevenueSummary:
    return await accounts.revenue_summary(
        identity, start=start, end=end, payment_method=payment_method
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(TablesideError)
async def tableside_exception_handler(request: Request, exc: TablesideError) -> JSONResponse:
    """Map engine errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.code} - {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path}: {exc.code} - {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "internal_error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
            "retry_safe": False,
        },
    )


# =============================================================================
# ENTRY POINT
# =============================================================================

def run() -> None:
    import uvicorn

    uvicorn.run(
        "tableside.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )


if __name__ == "__main__":
    run()
