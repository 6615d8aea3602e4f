"""Order models for the mock store"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from .product import CamelModel


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"


class OrderItem(CamelModel):
    """Item in an order"""
    product_id: str
    name: str
    quantity: int = Field(ge=1)
    price: int = Field(ge=0)
    size: Optional[str] = None
    variant_id: Optional[str] = None


class CreateOrderRequest(CamelModel):
    """Request to create an order"""
    order_number: Optional[str] = None
    items: list[OrderItem] = Field(min_length=1)
    subtotal: int = Field(ge=0)
    shipping: int = Field(ge=0, default=0)
    total: int = Field(ge=0)
    customer: dict[str, Any] = {}
    payment_method: str = "mpesa"


class PaymentUpdate(CamelModel):
    """Payment details attached to an order"""
    status: PaymentStatus = PaymentStatus.PAID
    checkout_request_id: Optional[str] = None
    mpesa_receipt_number: Optional[str] = None
    amount: Optional[int] = None
    phone_number: Optional[str] = None
    result_desc: Optional[str] = None
    idempotency_key: Optional[str] = None


class Order(CamelModel):
    """Order record"""
    id: str
    order_number: str
    items: list[OrderItem]
    subtotal: int
    shipping: int
    total: int
    status: str = "pending-payment"
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment: Optional[PaymentUpdate] = None
    payment_method: str = "mpesa"
    customer: dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime
