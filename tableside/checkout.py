"""
Checkout

Wires the first leg of the lifecycle: cart -> composer -> repository.
The cart is cleared only after the order exists.
"""

import logging
from decimal import Decimal
from typing import Optional, Sequence

from tableside.context import SessionContext
from tableside.errors import ValidationError
from tableside.models import OrderKind
from tableside.money import ZERO
from tableside.orders import OrderRepository
from tableside.pricing import OrderComposer
from tableside.schemas import OrderResponse

logger = logging.getLogger(__name__)


class CheckoutService:

    def __init__(self, composer: OrderComposer, orders: OrderRepository):
        self.composer = composer
        self.orders = orders

    async def place_order(
        self,
        ctx: SessionContext,
        items: Optional[Sequence] = None,
        kind: Optional[OrderKind] = None,
        note: Optional[str] = None,
        delivery_fee: Decimal = ZERO,
        delivery_address: Optional[str] = None,
    ) -> OrderResponse:
        """
        Submit an order for the session.

        ``items`` defaults to the session cart. On the anonymous table
        path the anonymous session handle is signed out first, so the
        order is attributed to the table only, even when a user was
        signed in on the same device.
        """
        from_cart = items is None
        if from_cart:
            if ctx.cart is None:
                raise ValidationError("No items and no cart to order from")
            items = ctx.cart.items

        if ctx.identity.table_id is not None and ctx.anon_auth is not None:
            await ctx.anon_auth.sign_out()

        draft = await self.composer.compose(
            ctx.identity,
            items,
            kind=kind,
            note=note,
            delivery_fee=delivery_fee,
            delivery_address=delivery_address,
        )
        order = await self.orders.create(draft)

        if from_cart:
            ctx.cart.clear()
            logger.debug(f"Cart '{ctx.cart.key}' cleared after order #{order.number}")
        return order
