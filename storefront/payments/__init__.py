# M-Pesa Payments

from .phone import normalize_phone, require_phone
from .gateway import INITIATION_GUARD, PaymentGateway, SingleFlight
from .status import (
    PaymentHandle,
    PaymentStatusPoller,
    describe_result,
    normalize_status,
    result_from_event,
)

__all__ = [
    "normalize_phone",
    "require_phone",
    "INITIATION_GUARD",
    "PaymentGateway",
    "SingleFlight",
    "PaymentHandle",
    "PaymentStatusPoller",
    "describe_result",
    "normalize_status",
    "result_from_event",
]
