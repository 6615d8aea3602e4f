"""M-Pesa (Daraja-shaped) models for the mock store"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from .product import CamelModel


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StkPushRequest(CamelModel):
    """STK push initiation request"""
    phone_number: str
    amount: float
    order_id: str
    description: str = ""
    idempotency_key: Optional[str] = None


class StatusQueryRequest(BaseModel):
    """Legacy status query; accepts both spellings of the id"""
    checkoutRequestId: Optional[str] = None
    CheckoutRequestID: Optional[str] = None

    @property
    def checkout_request_id(self) -> Optional[str]:
        return self.checkoutRequestId or self.CheckoutRequestID


class CancelRequest(CamelModel):
    checkout_request_id: str


class StkCallbackItem(BaseModel):
    Name: str
    Value: Any = None


class StkCallbackMetadata(BaseModel):
    Item: list[StkCallbackItem] = []


class StkCallback(BaseModel):
    MerchantRequestID: Optional[str] = None
    CheckoutRequestID: str
    ResultCode: int
    ResultDesc: str = ""
    CallbackMetadata: Optional[StkCallbackMetadata] = None

    def metadata_value(self, name: str) -> Any:
        if not self.CallbackMetadata:
            return None
        return next((i.Value for i in self.CallbackMetadata.Item if i.Name == name), None)


class CallbackBody(BaseModel):
    stkCallback: StkCallback


class CallbackEnvelope(BaseModel):
    """Safaricom STK callback payload"""
    Body: CallbackBody


class Transaction(CamelModel):
    """One STK push attempt"""
    checkout_request_id: str
    merchant_request_id: str
    order_id: str
    phone_number: str
    amount: int = Field(ge=1)
    idempotency_key: Optional[str] = None
    status: TransactionStatus = TransactionStatus.PENDING
    result_code: Optional[str] = None
    result_desc: Optional[str] = None
    mpesa_receipt_number: Optional[str] = None
    cancel_requested: bool = False
    created_at: datetime
    updated_at: datetime
