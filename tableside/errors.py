"""
Error Taxonomy

Every caller-facing failure raised by the ordering engine derives from
TablesideError. Each error carries a machine-readable code, the HTTP
status the API layer maps it to, and whether the caller can safely
retry (nothing was applied).

Author: Tableside Team
Version: 1.0.0
"""

from typing import Iterable, Optional


class TablesideError(Exception):
    """Base class for ordering engine errors."""

    code = "error"
    status_code = 400
    retry_safe = True

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": False,
            "error": self.code,
            "detail": self.message,
            "retry_safe": self.retry_safe,
        }


class ValidationError(TablesideError):
    """Missing required field or malformed identity; nothing persisted."""

    code = "validation_error"
    status_code = 422


class AuthenticationRequired(ValidationError):
    code = "authentication_required"
    status_code = 401


class ProductNotFound(TablesideError):
    """One or more requested products have no current price."""

    code = "product_not_found"
    status_code = 404

    def __init__(self, product_ids: Iterable[int]):
        self.product_ids = sorted(product_ids)
        ids = ", ".join(str(pid) for pid in self.product_ids)
        super().__init__(f"Product(s) not found: {ids}")


class NotFound(TablesideError):
    code = "not_found"
    status_code = 404


class OrderNotFound(NotFound):
    code = "order_not_found"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order #{order_id} not found")


class TableNotFound(NotFound):
    code = "table_not_found"


class AccountNotFound(NotFound):
    code = "account_not_found"

    def __init__(self, account_id: int):
        self.account_id = account_id
        super().__init__(f"Account #{account_id} not found")


class OrderPersistenceFailure(TablesideError):
    """The store accepted the header write but it could not be read back."""

    code = "order_persistence_failure"
    status_code = 502


class InvalidTransition(TablesideError):
    code = "invalid_transition"
    status_code = 409


class Forbidden(TablesideError):
    code = "forbidden"
    status_code = 403


class NoPendingOrders(TablesideError):
    code = "no_pending_orders"
    status_code = 409

    def __init__(self, table_id: int):
        self.table_id = table_id
        super().__init__(f"Table #{table_id} has no unpaid orders to close")


class UpstreamFailure(TablesideError):
    """Generic store/network failure; the message keeps the underlying cause."""

    code = "upstream_failure"
    status_code = 503

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")
