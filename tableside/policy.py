"""
Access Policy

Single place for role-sensitive visibility and mutation rules. Every
mutation path asks the policy before touching the store.

Rules:
    - Customers see and cancel only their own orders
    - Managers (operator, owner) see and mutate everything
    - An anonymous table session sees only the orders of its table
"""

from dataclasses import dataclass
from typing import Optional

from tableside.errors import AuthenticationRequired, Forbidden
from tableside.identity import Identity
from tableside.schemas import OrderResponse


@dataclass(frozen=True)
class OrderScope:
    """Store filters an identity is allowed to list with."""
    user_id: Optional[int] = None
    table_id: Optional[int] = None


class AccessPolicy:

    @staticmethod
    def require_manager(identity: Identity, action: str = "perform this action") -> None:
        if identity.user_id is None:
            raise AuthenticationRequired(f"Sign in to {action}")
        if not identity.is_manager:
            raise Forbidden(f"Only managers can {action}")

    @staticmethod
    def can_view_order(identity: Identity, order: OrderResponse) -> bool:
        if identity.is_manager:
            return True
        if identity.user_id is not None and order.user_id == identity.user_id:
            return True
        return identity.table_id is not None and order.table_id == identity.table_id

    @staticmethod
    def order_list_scope(identity: Identity) -> OrderScope:
        """
        Filters for listing orders.

        Raises:
            AuthenticationRequired: Neither user nor table session
        """
        if identity.is_manager:
            return OrderScope()
        if identity.is_anonymous:
            return OrderScope(table_id=identity.table_id)
        if identity.user_id is None:
            raise AuthenticationRequired("Sign in to list orders")
        return OrderScope(user_id=identity.user_id)

    @staticmethod
    def require_cancel(identity: Identity, order: OrderResponse) -> None:
        """Owners of an order may cancel it; managers may cancel any."""
        if identity.is_manager:
            return
        if identity.user_id is None:
            raise Forbidden("Anonymous sessions cannot cancel orders")
        if order.user_id != identity.user_id:
            raise Forbidden(f"Order #{order.number} belongs to another customer")
