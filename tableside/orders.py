"""
Order Repository

Create, read and update orders against the store. Order creation is an
explicit create-verify-compensate routine because the header and the
lines are written by separate store calls:

    1. Insert the header (status pending, payment pending)
    2. Re-read the header; a failed read means the order was not created
    3. Insert all lines in one batch
    4. If the lines fail, delete the header, then surface the line error
    5. Mark the owning table occupied (best effort)
    6. Re-read the full order; if that fails, return the bare header

The enrichment read in step 6 never turns a created order into an error.

Author: Tableside Team
Version: 1.0.0
"""

from __future__ import annotations

import logging
from typing import Optional

from tableside.errors import (
    InvalidTransition,
    OrderNotFound,
    OrderPersistenceFailure,
    TablesideError,
    TableNotFound,
    ValidationError,
)
from tableside.identity import Identity
from tableside.models import OrderStatus
from tableside.money import ZERO, to_money
from tableside.policy import AccessPolicy
from tableside.schemas import OrderResponse, OrderStats
from tableside.store.base import BaseStore, OrderDraft
from tableside.transitions import CANCELABLE_ORDER_STATUSES, can_transition

logger = logging.getLogger(__name__)

FINISHED_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELED)


class OrderRepository:
    """
    Order operations with access checks.

    Attributes:
        store: Persistent store
        policy: Access policy consulted before every read and mutation
    """

    def __init__(self, store: BaseStore, policy: Optional[AccessPolicy] = None):
        self.store = store
        self.policy = policy or AccessPolicy()

    # ==========================================================================
    # CREATE
    # ==========================================================================

    async def create(self, draft: OrderDraft) -> OrderResponse:
        """
        Persist a priced draft.

        Raises:
            OrderPersistenceFailure: Header could not be read back
            ValidationError: Draft has no owner, or both a user and a table
            TablesideError: Line insertion failed (header already removed)
        """
        if (draft.user_id is None) == (draft.table_id is None):
            raise ValidationError("An order must belong to exactly one user or one table")

        order_id = await self.store.insert_order_header(draft)
        logger.info(f"Order header #{order_id} inserted ({draft.kind.value}, total {draft.total})")

        try:
            header = await self.store.get_order_header(order_id)
        except TablesideError as e:
            logger.error(f"Verify-after-write failed for order #{order_id}: {e}")
            raise OrderPersistenceFailure(
                "Order was not created",
                detail=f"header #{order_id} could not be read back: {e}",
            ) from e
        if header is None:
            logger.error(f"Verify-after-write found no header for order #{order_id}")
            raise OrderPersistenceFailure(
                "Order was not created",
                detail=f"header #{order_id} is missing after insert",
            )

        try:
            await self.store.insert_order_lines(order_id, draft.lines)
        except TablesideError as e:
            logger.error(f"Line insert failed for order #{order_id}, removing header: {e}")
            await self._compensate(order_id)
            raise
        logger.info(f"Order #{header.number}: {len(draft.lines)} line(s) inserted")

        if draft.table_id is not None:
            await self._occupy_table(draft.table_id)

        try:
            order = await self.store.get_order(order_id)
        except TablesideError as e:
            logger.warning(f"Enrichment read failed for order #{order_id}, returning header: {e}")
            return header
        if order is None:
            logger.warning(f"Enrichment read found no order #{order_id}, returning header")
            return header

        logger.info(f"Order #{order.number} created")
        return order

    async def _compensate(self, order_id: int) -> None:
        try:
            await self.store.delete_order(order_id)
            logger.info(f"Compensating delete of order #{order_id} done")
        except TablesideError as e:
            logger.error(f"Compensating delete of order #{order_id} failed, header is orphaned: {e}")

    async def _occupy_table(self, table_id: int) -> None:
        try:
            if await self.store.occupy_table(table_id):
                logger.info(f"Table id {table_id} marked occupied")
        except TablesideError as e:
            logger.warning(f"Could not mark table id {table_id} occupied: {e}")

    # ==========================================================================
    # READ
    # ==========================================================================

    async def get(self, identity: Identity, order_id: int) -> OrderResponse:
        """
        Raises:
            OrderNotFound: Missing, or not visible to this identity
        """
        order = await self.store.get_order(order_id)
        if order is None or not self.policy.can_view_order(identity, order):
            raise OrderNotFound(order_id)
        return order

    async def get_by_number(self, identity: Identity, number: int) -> OrderResponse:
        """
        Look an order up by its display number.

        Raises:
            OrderNotFound: Missing, or not visible to this identity
        """
        order = await self.store.get_order_by_number(number)
        if order is None or not self.policy.can_view_order(identity, order):
            raise OrderNotFound(number)
        return order

    async def list(
        self,
        identity: Identity,
        status: Optional[OrderStatus] = None,
    ) -> list[OrderResponse]:
        scope = self.policy.order_list_scope(identity)
        return await self.store.list_orders(
            user_id=scope.user_id,
            table_id=scope.table_id,
            status=status,
        )

    async def list_for_table(
        self,
        identity: Identity,
        table_id: int,
        unpaid_only: bool = False,
    ) -> list[OrderResponse]:
        """Orders of one table, for managers or that table's own session."""
        if identity.table_id != table_id:
            self.policy.require_manager(identity, "view table orders")
        if await self.store.get_table(table_id) is None:
            raise TableNotFound(f"Table #{table_id} not found")
        return await self.store.list_orders(table_id=table_id, unpaid_only=unpaid_only)

    async def stats(self, identity: Identity) -> OrderStats:
        self.policy.require_manager(identity, "view order statistics")
        orders = await self.store.list_orders()
        return OrderStats(
            total_orders=len(orders),
            pending=sum(1 for o in orders if o.status == OrderStatus.PENDING),
            in_preparation=sum(1 for o in orders if o.status == OrderStatus.IN_PREPARATION),
            finished=sum(1 for o in orders if o.status in FINISHED_STATUSES),
            total_value=to_money(sum((o.total for o in orders), ZERO)),
        )

    # ==========================================================================
    # UPDATE
    # ==========================================================================

    async def update_status(
        self,
        identity: Identity,
        order_id: int,
        new_status: OrderStatus,
    ) -> OrderResponse:
        """
        Move an order through its workflow.

        Raises:
            Forbidden: Caller is not a manager
            InvalidTransition: Not reachable from the current status
        """
        self.policy.require_manager(identity, "change order status")
        return await self._apply_status(order_id, new_status)

    async def cancel(self, identity: Identity, order_id: int) -> OrderResponse:
        """
        Cancel a pending or confirmed order.

        Raises:
            Forbidden: Not the owning customer and not a manager
            InvalidTransition: Order is past confirmation
        """
        order = await self.store.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        self.policy.require_cancel(identity, order)
        if order.status not in CANCELABLE_ORDER_STATUSES:
            raise InvalidTransition(
                f"Order #{order.number} is {order.status.value} and can no longer be canceled"
            )
        return await self._apply_status(order_id, OrderStatus.CANCELED, current=order)

    async def _apply_status(
        self,
        order_id: int,
        new_status: OrderStatus,
        current: Optional[OrderResponse] = None,
    ) -> OrderResponse:
        if current is None:
            current = await self.store.get_order_header(order_id)
            if current is None:
                raise OrderNotFound(order_id)

        if not can_transition(current.status, new_status):
            raise InvalidTransition(
                f"Order #{current.number} cannot go from "
                f"{current.status.value} to {new_status.value}"
            )

        await self.store.update_order_status(order_id, new_status)
        logger.info(f"Order #{current.number}: {current.status.value} -> {new_status.value}")

        order = await self.store.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order
