"""
Pricing & Order Composer

Turns a cart or an ad-hoc item list plus a resolved identity into a
priced order draft. Prices always come from the store at submission
time; prices cached on the client are never trusted.

Pricing rules:
    - line subtotal = unit price * quantity
    - service fee  = round(subtotal * rate, 2), half-up
    - total        = round(subtotal + service fee + delivery fee, 2)

Author: Tableside Team
Version: 1.0.0
"""

import logging
from decimal import Decimal
from typing import Optional, Sequence

from tableside.errors import ProductNotFound, ValidationError
from tableside.identity import Identity
from tableside.models import OrderKind
from tableside.money import ZERO, to_money
from tableside.store.base import BaseStore, DraftLine, OrderDraft

logger = logging.getLogger(__name__)


def compute_totals(
    subtotal: Decimal,
    service_fee_rate: Decimal,
    delivery_fee: Decimal = ZERO,
) -> tuple[Decimal, Decimal, Decimal]:
    """
    Apply the fee rules to a subtotal.

    Returns:
        (subtotal, service_fee, total), all rounded to cents
    """
    subtotal = to_money(subtotal)
    service_fee = to_money(subtotal * Decimal(service_fee_rate))
    total = to_money(subtotal + service_fee + to_money(delivery_fee))
    return subtotal, service_fee, total


class OrderComposer:
    """
    Prices order drafts.

    Items are any objects exposing ``product_id``, ``quantity`` and
    ``note`` (request items or cart entries).

    Example:
        >>> composer = OrderComposer(store, Decimal("0.10"))
        >>> draft = await composer.compose(identity, cart.items)
        >>> draft.total
        Decimal('49.50')
    """

    def __init__(self, store: BaseStore, service_fee_rate: Decimal = Decimal("0.10")):
        self.store = store
        self.service_fee_rate = Decimal(service_fee_rate)

    async def compose(
        self,
        identity: Identity,
        items: Sequence,
        kind: Optional[OrderKind] = None,
        note: Optional[str] = None,
        delivery_fee: Decimal = ZERO,
        delivery_address: Optional[str] = None,
    ) -> OrderDraft:
        """
        Validate the request and price it.

        Raises:
            ValidationError: No owner, no items, bad quantity or fee
            ProductNotFound: Some product has no current price
        """
        if not identity.is_resolved:
            raise ValidationError("An order needs an owning user or table")
        if not items:
            raise ValidationError("An order needs at least one item")
        for item in items:
            if item.quantity < 1:
                raise ValidationError(
                    f"Quantity must be at least 1 for product {item.product_id}"
                )

        delivery_fee = to_money(delivery_fee if delivery_fee is not None else ZERO)
        if delivery_fee < 0:
            raise ValidationError("Delivery fee cannot be negative")

        if kind is None:
            kind = OrderKind.DINE_IN if identity.table_id is not None else OrderKind.PICKUP
        if kind == OrderKind.DELIVERY and not delivery_address:
            raise ValidationError("Delivery orders need a delivery address")

        products = await self.store.fetch_products(item.product_id for item in items)
        missing = {item.product_id for item in items} - products.keys()
        if missing:
            raise ProductNotFound(missing)

        lines = []
        for item in items:
            unit_price = to_money(products[item.product_id].price)
            lines.append(
                DraftLine(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    subtotal=to_money(unit_price * item.quantity),
                    note=item.note,
                )
            )

        subtotal, service_fee, total = compute_totals(
            sum((line.subtotal for line in lines), ZERO),
            self.service_fee_rate,
            delivery_fee,
        )
        logger.debug(
            f"Priced {len(lines)} line(s): subtotal={subtotal} "
            f"service_fee={service_fee} total={total}"
        )

        # An order belongs to its table or to its user, never to both.
        user_id = None if identity.table_id is not None else identity.user_id

        return OrderDraft(
            kind=kind,
            user_id=user_id,
            table_id=identity.table_id,
            subtotal=subtotal,
            service_fee=service_fee,
            delivery_fee=delivery_fee,
            total=total,
            lines=lines,
            note=note,
            delivery_address=delivery_address,
        )
