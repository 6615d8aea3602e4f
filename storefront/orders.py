"""
Order Service client

Creates orders from cart contents and reads them back. Payment updates go
through PaymentStatusPoller.reconcile.
"""

import logging
import random
import string
from datetime import datetime
from typing import Any, Iterable, Optional

from pydantic import ValidationError as ModelValidationError

from .core.errors import ProviderError, ValidationError
from .models.cart import CartLineItem, CartTotals
from .models.order import Order, OrderItem
from .transport import HttpTransport

logger = logging.getLogger(__name__)

_ORDER_SUFFIX_CHARS = string.ascii_uppercase + string.digits


def generate_order_number(now: Optional[datetime] = None, rng: Optional[random.Random] = None) -> str:
    """Human-readable order number: LNB-YYMMDD-XXXX"""
    now = now or datetime.now()
    rng = rng or random.Random()
    suffix = "".join(rng.choice(_ORDER_SUFFIX_CHARS) for _ in range(4))
    return f"LNB-{now:%y%m%d}-{suffix}"


def order_items_from(lines: Iterable[CartLineItem]) -> list[OrderItem]:
    return [
        OrderItem(
            product_id=line.product_id,
            name=line.name,
            quantity=line.quantity,
            price=line.unit_price,
            size=line.size,
            variant_id=line.selected_variant.id if line.selected_variant else None,
        )
        for line in lines
    ]


def _order_from(payload: Any) -> Order:
    body = payload.get("order", payload) if isinstance(payload, dict) else payload
    try:
        return Order.model_validate(body)
    except ModelValidationError as e:
        raise ProviderError("Malformed order returned by the Order Service", payload=payload) from e


class OrderClient:
    """Client for the Order Service endpoints"""

    def __init__(self, transport: HttpTransport):
        self.transport = transport

    async def create_order(
        self,
        lines: Iterable[CartLineItem],
        totals: CartTotals,
        customer: Optional[dict[str, Any]] = None,
        order_number: Optional[str] = None,
    ) -> Order:
        """
        Create an order for the given cart lines.

        Raises:
            ValidationError: no lines to order
            TransportError / ProviderError: the Order Service call failed
        """
        items = order_items_from(lines)
        if not items:
            raise ValidationError("Cannot create an order from an empty cart")

        body = {
            "orderNumber": order_number or generate_order_number(),
            "items": [item.model_dump(mode="json", by_alias=True) for item in items],
            "subtotal": totals.subtotal,
            "shipping": totals.shipping,
            "total": totals.total,
            "customer": customer or {},
            "paymentMethod": "mpesa",
        }
        payload = await self.transport.request("POST", "/orders", json=body)
        order = _order_from(payload)
        logger.info(f"Created order {order.order_number} ({order.id}) for {order.total} KES")
        return order

    async def get_order(self, order_id: str) -> Order:
        """Get order by ID"""
        return _order_from(await self.transport.request("GET", f"/orders/{order_id}"))
