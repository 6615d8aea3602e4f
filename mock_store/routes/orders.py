"""Order API routes for the mock store"""

import logging
from typing import Optional
from fastapi import APIRouter, Header, HTTPException

from ..models.order import CreateOrderRequest, Order, PaymentUpdate
from ..database.orders import order_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.post("", response_model=Order, status_code=201)
async def create_order(request: CreateOrderRequest):
    """Create an order awaiting M-Pesa payment"""
    order = order_db.create_order(request)
    logger.info(f"Order {order.order_number} created: {order.total} KES")
    return order


@router.get("/{order_id}", response_model=Order)
async def get_order(order_id: str):
    """Get order details"""
    order = order_db.get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.api_route("/{order_id}/payment", methods=["PATCH", "POST"], response_model=Order)
async def update_payment(
    order_id: str,
    update: PaymentUpdate,
    x_idempotency_key: Optional[str] = Header(None),
):
    """
    Attach payment details to an order.

    Idempotent on X-Idempotency-Key (or idempotencyKey in the body).
    """
    key = x_idempotency_key or update.idempotency_key
    order = order_db.apply_payment(order_id, update, idempotency_key=key)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order
