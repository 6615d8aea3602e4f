"""
M-Pesa API routes for the mock store

Simulates the Daraja STK push flow: initiation, status query (current and
legacy), cancellation and the provider callback.
"""

import logging
import os
from typing import Optional
from fastapi import APIRouter, Header, HTTPException

from storefront.models.money import round_amount
from storefront.payments.phone import normalize_phone

from ..models.mpesa import (
    CallbackEnvelope,
    CancelRequest,
    StatusQueryRequest,
    StkPushRequest,
    TransactionStatus,
)
from ..models.order import PaymentStatus
from ..database.orders import order_db
from ..database.transactions import transaction_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mpesa", tags=["M-Pesa"])

ACCEPTED = "Success. Request accepted for processing"


def _initiate(request: StkPushRequest, idempotency_key: Optional[str]) -> dict:
    key = idempotency_key or request.idempotency_key

    existing = transaction_db.find_by_key(key)
    if existing:
        logger.info(f"Duplicate STK push {key}, returning {existing.checkout_request_id}")
        return _accepted(existing.checkout_request_id, existing.merchant_request_id)

    phone = normalize_phone(request.phone_number)
    if not phone:
        raise HTTPException(
            status_code=400,
            detail="Invalid phone number format. Please use 2547XXXXXXXX or 07XXXXXXXX.",
        )
    amount = round_amount(request.amount)
    if amount < 1:
        raise HTTPException(status_code=400, detail="Amount must be at least 1 KES")

    order = order_db.get_order(request.order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found.")
    if order.payment_status == PaymentStatus.PAID:
        raise HTTPException(status_code=400, detail="This order has already been paid for.")

    transaction = transaction_db.create(order.id, phone, amount, idempotency_key=key)
    order_db.set_payment_status(order.id, PaymentStatus.PROCESSING)
    logger.info(
        f"[STK_PUSH] Order {order.order_number}: {amount} KES to {phone}, "
        f"CheckoutRequestID {transaction.checkout_request_id}"
    )
    return _accepted(transaction.checkout_request_id, transaction.merchant_request_id)


def _accepted(checkout_request_id: str, merchant_request_id: str) -> dict:
    return {
        "success": True,
        "message": "Payment initiated. Please check your phone to enter your M-Pesa PIN.",
        "MerchantRequestID": merchant_request_id,
        "CheckoutRequestID": checkout_request_id,
        "ResponseCode": "0",
        "ResponseDescription": ACCEPTED,
        "CustomerMessage": ACCEPTED,
    }


@router.post("/stk-push")
async def stk_push(request: StkPushRequest, x_idempotency_key: Optional[str] = Header(None)):
    """Initiate an STK push"""
    return _initiate(request, x_idempotency_key)


@router.post("/stkpush")
async def stk_push_legacy(request: StkPushRequest, x_idempotency_key: Optional[str] = Header(None)):
    """Legacy path of the STK push initiation"""
    return _initiate(request, x_idempotency_key)


@router.get("/status/{checkout_request_id}")
async def transaction_status(checkout_request_id: str):
    """Status of an STK push from the local transaction record"""
    transaction = transaction_db.get(checkout_request_id)
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")

    body = {
        "success": True,
        "status": transaction.status.value,
        "CheckoutRequestID": transaction.checkout_request_id,
    }
    if transaction.status != TransactionStatus.PENDING:
        body.update({
            "ResultCode": transaction.result_code,
            "ResultDesc": transaction.result_desc,
            "MpesaReceiptNumber": transaction.mpesa_receipt_number,
        })
    return body


@router.post("/query")
async def query_legacy(request: StatusQueryRequest):
    """Daraja-style STK push query"""
    checkout_request_id = request.checkout_request_id
    if not checkout_request_id:
        raise HTTPException(status_code=400, detail="Checkout Request ID is required.")
    transaction = transaction_db.get(checkout_request_id)
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")

    if transaction.status == TransactionStatus.PENDING:
        return {
            "requestId": checkout_request_id,
            "errorCode": "500.001.1001",
            "errorMessage": "The transaction is being processed",
        }
    return {
        "ResponseCode": "0",
        "ResponseDescription": "The service request has been accepted successsfully",
        "MerchantRequestID": transaction.merchant_request_id,
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": transaction.result_code,
        "ResultDesc": transaction.result_desc,
    }


@router.post("/cancel")
async def cancel_payment(request: CancelRequest):
    """
    Record that the customer abandoned the payment.

    The transaction keeps its status; the provider may still complete it.
    """
    transaction = transaction_db.request_cancel(request.checkout_request_id)
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return {"success": True, "message": "Cancellation requested"}


@router.post("/callback/{secret}")
async def stk_callback(secret: str, envelope: CallbackEnvelope):
    """Safaricom STK push result callback"""
    if secret != os.getenv("MPESA_CALLBACK_SECRET", "dev-callback-secret"):
        raise HTTPException(status_code=403, detail="Invalid callback secret")

    callback = envelope.Body.stkCallback
    receipt = callback.metadata_value("MpesaReceiptNumber")
    transaction = transaction_db.resolve(
        callback.CheckoutRequestID,
        callback.ResultCode,
        callback.ResultDesc,
        receipt_number=str(receipt) if receipt is not None else None,
    )
    if transaction is None:
        logger.info(f"[Callback] {callback.CheckoutRequestID} unknown or already processed, ignoring")
        return {"ResultCode": 0, "ResultDesc": "Accepted"}

    if transaction.status == TransactionStatus.COMPLETED:
        order_db.set_payment_status(transaction.order_id, PaymentStatus.PAID, status="processing")
        logger.info(f"[Callback] SUCCESS: {callback.CheckoutRequestID} receipt {receipt}")
    else:
        order_db.set_payment_status(transaction.order_id, PaymentStatus.FAILED, status="payment-failed")
        logger.warning(f"[Callback] FAILED: {callback.CheckoutRequestID} ({callback.ResultCode}) {callback.ResultDesc}")

    return {"ResultCode": 0, "ResultDesc": "Accepted"}
