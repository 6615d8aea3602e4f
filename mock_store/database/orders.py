"""Order storage for the mock store"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from ..models.order import CreateOrderRequest, Order, PaymentStatus, PaymentUpdate

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderDatabase:
    """In-memory order storage"""

    def __init__(self):
        self.orders: dict[str, Order] = {}
        self.payment_keys: dict[str, str] = {}  # idempotency key -> order id
        self.payment_update_counts: dict[str, int] = {}

    def reset(self) -> None:
        self.orders.clear()
        self.payment_keys.clear()
        self.payment_update_counts.clear()

    def create_order(self, request: CreateOrderRequest) -> Order:
        """Create an order awaiting payment"""
        now = _now()
        order = Order(
            id=uuid.uuid4().hex[:24],
            order_number=request.order_number or f"LNB-{now:%y%m%d}-{uuid.uuid4().hex[:4].upper()}",
            items=request.items,
            subtotal=request.subtotal,
            shipping=request.shipping,
            total=request.total,
            customer=request.customer,
            payment_method=request.payment_method,
            created_at=now,
            updated_at=now,
        )
        self.orders[order.id] = order
        return order

    def get_order(self, order_id: str) -> Optional[Order]:
        """Get an order by id or order number"""
        order = self.orders.get(order_id)
        if order is None:
            order = next((o for o in self.orders.values() if o.order_number == order_id), None)
        return order

    def set_payment_status(
        self, order_id: str, payment_status: PaymentStatus, status: Optional[str] = None
    ) -> Optional[Order]:
        order = self.get_order(order_id)
        if not order:
            return None
        order.payment_status = payment_status
        if status:
            order.status = status
        order.updated_at = _now()
        return order

    def apply_payment(
        self, order_id: str, update: PaymentUpdate, idempotency_key: Optional[str] = None
    ) -> Optional[Order]:
        """
        Attach payment details to an order.

        A key that was already applied, or a paid update for an order that
        already carries the same paid payment, leaves the order untouched.
        """
        order = self.get_order(order_id)
        if not order:
            return None

        if idempotency_key and idempotency_key in self.payment_keys:
            logger.info(f"Payment update {idempotency_key} for {order.order_number} already applied")
            return order

        already_paid = (
            update.status == PaymentStatus.PAID
            and order.payment_status == PaymentStatus.PAID
            and order.payment is not None
            and order.payment.checkout_request_id == update.checkout_request_id
        )
        if already_paid:
            logger.info(f"Order {order.order_number} already paid, ignoring repeated update")
        else:
            order.payment = update.model_copy(update={"idempotency_key": idempotency_key})
            order.payment_status = update.status
            if update.status == PaymentStatus.PAID:
                order.status = "processing"
            elif update.status == PaymentStatus.FAILED:
                order.status = "payment-failed"
            order.updated_at = _now()
            self.payment_update_counts[order.id] = self.payment_update_counts.get(order.id, 0) + 1

        if idempotency_key:
            self.payment_keys[idempotency_key] = order.id
        return order


# Singleton instance
order_db = OrderDatabase()
