"""Order models (owned by the Order Service, referenced here)"""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Optional


class OrderPaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: Any) -> "OrderPaymentStatus":
        """Map backend vocabulary (COMPLETED, SUCCESS, ...) onto the enum"""
        text = str(value or "").strip().lower()
        if text in ("paid", "completed", "complete", "success", "successful"):
            return cls.PAID
        if text in ("failed", "failure", "cancelled", "canceled"):
            return cls.FAILED
        if text == "processing":
            return cls.PROCESSING
        return cls.PENDING


class OrderItem(BaseModel):
    """Item in an order"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    product_id: str
    name: str
    quantity: int
    price: int
    size: Optional[str] = None
    variant_id: Optional[str] = None


class PaymentConfirmation(BaseModel):
    """Payment details attached to an order once the provider has answered"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    status: OrderPaymentStatus = OrderPaymentStatus.PAID
    checkout_request_id: Optional[str] = None
    mpesa_receipt_number: Optional[str] = None
    amount: Optional[int] = None
    phone_number: Optional[str] = None
    result_desc: Optional[str] = None


class Order(BaseModel):
    """Order as returned by the Order Service"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    order_number: str
    items: list[OrderItem] = []
    subtotal: int = 0
    shipping: int = 0
    total: int = 0
    status: str = "pending"
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PENDING
    payment: Optional[PaymentConfirmation] = None
    customer: dict[str, Any] = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("payment_status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> OrderPaymentStatus:
        return OrderPaymentStatus.parse(value)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == OrderPaymentStatus.PAID
