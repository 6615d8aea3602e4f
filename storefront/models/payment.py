"""M-Pesa payment data models"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class PaymentStatus(str, Enum):
    """Normalized three-state payment status"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentState(str, Enum):
    """Lifecycle of one STK push attempt"""
    INITIATED = "initiated"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PaymentState.COMPLETED, PaymentState.FAILED, PaymentState.TIMEOUT)

    @property
    def status(self) -> PaymentStatus:
        if self == PaymentState.COMPLETED:
            return PaymentStatus.COMPLETED
        if self in (PaymentState.FAILED, PaymentState.TIMEOUT):
            return PaymentStatus.FAILED
        return PaymentStatus.PENDING


@dataclass
class PaymentRequest:
    """STK push request built client-side"""
    idempotency_key: str
    phone_number: str  # 254XXXXXXXXX
    amount: int
    order_reference: str
    description: str = ""
    checkout_request_id: Optional[str] = None  # Assigned by the provider
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> dict[str, Any]:
        return {
            "phoneNumber": self.phone_number,
            "amount": self.amount,
            "orderId": self.order_reference,
            "description": self.description,
            "idempotencyKey": self.idempotency_key,
        }


@dataclass
class PaymentInitiation:
    """Result of an accepted STK push"""
    checkout_request_id: str
    idempotency_key: str
    phone_number: str
    amount: int
    order_reference: str
    merchant_request_id: Optional[str] = None
    customer_message: Optional[str] = None


@dataclass
class StatusResult:
    """Provider status translated into our vocabulary"""
    status: PaymentStatus
    state: PaymentState
    message: str
    result_code: Optional[str] = None
    receipt_number: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentEvent:
    """Asynchronous update delivered on the real-time channel"""
    type: str  # payment_initiated, payment_success, payment_failed, order_updated
    key: str  # checkout request id, or order id for order_updated
    payload: dict[str, Any] = field(default_factory=dict)
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
