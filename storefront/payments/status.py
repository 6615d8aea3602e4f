"""
Payment Status Poller / Reconciler

Translates the provider's many status shapes into pending / completed /
failed, tracks outstanding STK pushes through both polling and pushed
events, and attaches confirmed payments to their orders.
"""

import asyncio
import logging
import re
import uuid
from collections import OrderedDict
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError as ModelValidationError

from ..core.config import Settings, get_settings
from ..core.errors import ReconciliationError, StorefrontError, ValidationError
from ..identity import get_field
from ..models.order import Order, OrderPaymentStatus, PaymentConfirmation
from ..models.payment import PaymentInitiation, PaymentState, PaymentStatus, StatusResult
from ..realtime import (
    ORDER_UPDATED,
    PAYMENT_CANCELLED,
    PAYMENT_FAILED,
    PAYMENT_INITIATED,
    PAYMENT_SUCCESS,
    PaymentEventChannel,
)
from ..transport import IDEMPOTENCY_HEADER, HttpTransport, Route

logger = logging.getLogger(__name__)

# ==================== Normalisation ====================

# Daraja codes that mean "not resolved yet"
PENDING_RESULT_CODES = {"4999"}
PENDING_ERROR_CODES = {"500.001.1001"}

TIMEOUT_RESULT_CODE = "1037"

RESULT_MESSAGES = {
    "0": "Payment successful! Your order has been confirmed.",
    "1": "Payment failed due to insufficient funds.",
    "1032": "You cancelled the transaction. Please try again if this was a mistake.",
    "1037": "The transaction timed out. Please try again.",
    "2001": "Invalid M-Pesa PIN. Please try again with the correct PIN.",
}
PENDING_MESSAGE = "Your transaction is still being processed. Please wait."
FAILED_MESSAGE = "Payment failed. Please try again."

_COMPLETED_WORDS = {"completed", "complete", "success", "successful", "succeeded", "paid"}
_FAILED_WORDS = {
    "failed", "failure", "fail", "error", "rejected", "declined",
    "cancelled", "canceled", "timeout", "timed_out", "expired",
}
_TIMEOUT_WORDS = {"timeout", "timed_out", "expired"}

_NUMERIC = re.compile(r"^-?\d+$")


def _sources(payload: Any) -> list[Any]:
    """The payload plus any nested data / stkCallback objects"""
    sources = [payload]
    if isinstance(payload, dict):
        for key in ("data", "Body", "stkCallback", "result"):
            nested = payload.get(key)
            if isinstance(nested, dict):
                sources.extend(_sources(nested))
    return sources


def _first(payload: Any, *names: str) -> Optional[str]:
    for source in _sources(payload):
        value = get_field(source, *names)
        if value is not None:
            return str(value).strip()
    return None


def _status_word(payload: Any) -> Optional[str]:
    if isinstance(payload, str):
        return payload.strip().lower() or None
    word = _first(payload, "status", "Status", "paymentStatus", "payment_status", "state")
    return word.lower() if word else None


def result_code(payload: Any) -> Optional[str]:
    if isinstance(payload, str):
        return None
    return _first(payload, "ResultCode", "resultCode", "result_code")


def normalize_status(payload: Any) -> PaymentStatus:
    """
    Map any provider status payload onto pending / completed / failed.

    Unrecognised values are treated as pending; providers add new transient
    states and a payment must never be failed on vocabulary alone.
    """
    if payload is None:
        return PaymentStatus.PENDING

    if not isinstance(payload, str):
        error_code = _first(payload, "errorCode", "error_code")
        if error_code in PENDING_ERROR_CODES:
            return PaymentStatus.PENDING

        code = result_code(payload)
        if code is not None:
            if code == "0":
                return PaymentStatus.COMPLETED
            if code in PENDING_RESULT_CODES:
                return PaymentStatus.PENDING
            if _NUMERIC.match(code):
                return PaymentStatus.FAILED

    word = _status_word(payload)
    if word in _COMPLETED_WORDS:
        return PaymentStatus.COMPLETED
    if word in _FAILED_WORDS:
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


def _receipt_number(payload: Any) -> Optional[str]:
    receipt = _first(payload, "MpesaReceiptNumber", "mpesaReceiptNumber", "receiptNumber", "mpesa_receipt_number")
    if receipt:
        return receipt
    for source in _sources(payload):
        metadata = get_field(source, "CallbackMetadata")
        items = get_field(metadata, "Item") if metadata else None
        for item in items or []:
            if isinstance(item, dict) and item.get("Name") == "MpesaReceiptNumber":
                return str(item.get("Value"))
    return None


def describe_result(payload: Any) -> StatusResult:
    """Normalised status plus the finer lifecycle state and a customer-facing message"""
    status = normalize_status(payload)
    code = result_code(payload)
    raw = payload if isinstance(payload, dict) else {"status": payload}

    if status == PaymentStatus.COMPLETED:
        state = PaymentState.COMPLETED
        message = RESULT_MESSAGES["0"]
    elif status == PaymentStatus.FAILED:
        word = _status_word(payload)
        timed_out = code == TIMEOUT_RESULT_CODE or (code is None and word in _TIMEOUT_WORDS)
        state = PaymentState.TIMEOUT if timed_out else PaymentState.FAILED
        desc = _first(payload, "ResultDesc", "resultDesc")
        message = RESULT_MESSAGES.get(code or "") or desc or FAILED_MESSAGE
    else:
        state = PaymentState.PROCESSING
        message = PENDING_MESSAGE

    return StatusResult(
        status=status,
        state=state,
        message=message,
        result_code=code,
        receipt_number=_receipt_number(payload) if status == PaymentStatus.COMPLETED else None,
        raw=raw,
    )


def result_from_event(event_type: str, payload: dict[str, Any]) -> Optional[StatusResult]:
    """Terminal StatusResult carried by a pushed payment event, if any"""
    if event_type == PAYMENT_SUCCESS:
        return StatusResult(
            status=PaymentStatus.COMPLETED,
            state=PaymentState.COMPLETED,
            message=payload.get("message") or RESULT_MESSAGES["0"],
            result_code=result_code(payload) or "0",
            receipt_number=_receipt_number(payload),
            raw=payload,
        )
    if event_type == PAYMENT_FAILED:
        described = describe_result({**payload, "status": payload.get("status") or "failed"})
        return StatusResult(
            status=PaymentStatus.FAILED,
            state=described.state if described.state.is_terminal else PaymentState.FAILED,
            message=(
                RESULT_MESSAGES.get(described.result_code or "")
                or payload.get("reason")
                or payload.get("message")
                or described.message
            ),
            result_code=described.result_code,
            raw=payload,
        )
    return None


# ==================== Tracking ====================


class PaymentHandle:
    """
    One outstanding STK push.

    Resolves on the first terminal result from either a pushed event or a
    poll. cancel() only stops the local wait; the provider may still finish
    the payment, and a result arriving afterwards is still recorded here.
    """

    def __init__(self, poller: "PaymentStatusPoller", initiation: PaymentInitiation):
        self.poller = poller
        self.initiation = initiation
        self.state = PaymentState.PROCESSING
        self.result: Optional[StatusResult] = None
        self.cancelled = False
        self._wakeup = asyncio.Event()
        self._remove_listeners: list[Callable[[], None]] = []

    @property
    def checkout_request_id(self) -> str:
        return self.initiation.checkout_request_id

    @property
    def status(self) -> PaymentStatus:
        return self.state.status

    @property
    def done(self) -> bool:
        return self.state.is_terminal or self.cancelled

    def _on_event(self, event) -> None:
        result = result_from_event(event.type, event.payload)
        if result is not None:
            self.resolve(result)

    def resolve(self, result: StatusResult) -> None:
        """Record a terminal result; the first one wins"""
        if not result.state.is_terminal or self.result is not None:
            return
        self.result = result
        self.state = result.state
        if self.cancelled:
            logger.warning(
                f"Payment {self.checkout_request_id} resolved as {result.state.value} "
                f"after it was cancelled locally"
            )
        else:
            logger.info(f"Payment {self.checkout_request_id} resolved: {result.state.value}")
        self._wakeup.set()
        self.poller.release(self)

    def cancel(self) -> None:
        """Stop waiting for this payment (client-side only)"""
        if self.state.is_terminal or self.cancelled:
            return
        self.cancelled = True
        self.state = PaymentState.CANCELLED
        logger.info(f"Payment {self.checkout_request_id} cancelled locally")
        self._wakeup.set()
        # Listeners stay attached so a late result is still recorded
        self.poller.release(self, keep_listening=True)

    def _cancelled_result(self) -> StatusResult:
        return StatusResult(
            status=PaymentStatus.PENDING,
            state=PaymentState.CANCELLED,
            message="Payment cancelled. If you completed it on your phone it will still be recorded.",
        )

    async def wait(self, poll_interval: Optional[float] = None) -> StatusResult:
        """
        Wait for a terminal result.

        There is no built-in timeout; wrap in asyncio.wait_for and call
        cancel() to give up.

        Args:
            poll_interval: Seconds between status polls (default from settings)
        """
        interval = poll_interval if poll_interval is not None else self.poller.settings.payment_poll_interval
        try:
            while True:
                if self.result is not None:
                    return self.result
                if self.cancelled:
                    return self._cancelled_result()

                try:
                    polled = await self.poller.check_result(
                        self.checkout_request_id, self.initiation.idempotency_key
                    )
                except StorefrontError as e:
                    logger.warning(f"Status poll for {self.checkout_request_id} failed: {e}")
                else:
                    if polled.state.is_terminal:
                        self.resolve(polled)
                        continue

                if self.result is not None or self.cancelled:
                    continue
                self._wakeup.clear()
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            self.cancel()
            raise

    def close(self) -> None:
        """Stop listening for events"""
        for remove in self._remove_listeners:
            remove()
        self._remove_listeners = []


class PaymentStatusPoller:
    """Status queries, tracking, reconciliation and cancellation of STK pushes"""

    def __init__(
        self,
        transport: HttpTransport,
        channel: Optional[PaymentEventChannel] = None,
        settings: Optional[Settings] = None,
        key_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        max_reconciled: int = 256,
    ):
        self.transport = transport
        self.channel = channel or PaymentEventChannel()
        self.settings = settings or get_settings()
        self._new_key = key_factory
        self._registered: dict[str, PaymentInitiation] = {}
        self._handles: dict[str, PaymentHandle] = {}
        # (order id, idempotency key) -> order, oldest first
        self._reconciled: OrderedDict[tuple[str, str], Order] = OrderedDict()
        self.max_reconciled = max_reconciled

    def register(self, initiation: PaymentInitiation) -> None:
        """Record an accepted STK push so events for it can be tracked"""
        self._registered[initiation.checkout_request_id] = initiation
        self.channel.publish(
            PAYMENT_INITIATED,
            initiation.checkout_request_id,
            {
                "message": "Payment initiated. Please check your phone to enter your M-Pesa PIN.",
                "orderId": initiation.order_reference,
            },
        )

    def registration(self, checkout_request_id: str) -> Optional[PaymentInitiation]:
        return self._registered.get(checkout_request_id)

    # ==================== Pull model ====================

    async def check_result(
        self, checkout_request_id: str, idempotency_key: Optional[str] = None
    ) -> StatusResult:
        """Query the provider and describe the result"""
        if not checkout_request_id or not str(checkout_request_id).strip():
            raise ValidationError("A checkout request id is required")

        key = idempotency_key or self._new_key()
        routes = [
            Route("GET", self.settings.status_path.format(checkout_request_id=checkout_request_id)),
            Route("POST", self.settings.legacy_query_path, idempotent=True),
        ]
        payload = await self.transport.request_with_fallback(
            routes,
            json={"checkoutRequestId": checkout_request_id, "idempotencyKey": key},
            headers={IDEMPOTENCY_HEADER: key},
        )
        result = describe_result(payload)
        logger.debug(f"Status of {checkout_request_id}: {result.status.value} ({result.result_code})")
        return result

    async def check_status(
        self, checkout_request_id: str, idempotency_key: Optional[str] = None
    ) -> PaymentStatus:
        """
        Normalised status of an STK push.

        Raises:
            ValidationError: empty checkout request id
            TransportError / ProviderError: both query routes failed
        """
        return (await self.check_result(checkout_request_id, idempotency_key)).status

    # ==================== Push model ====================

    def track(
        self,
        initiation: Union[PaymentInitiation, str],
        order_id: Optional[str] = None,
    ) -> PaymentHandle:
        """
        Handle that resolves from pushed events or polling.

        Args:
            initiation: The initiation (or its checkout request id)
            order_id: Also listen for events published on the order's key
        """
        if isinstance(initiation, str):
            registered = self._registered.get(initiation)
            if registered is None:
                registered = PaymentInitiation(
                    checkout_request_id=initiation,
                    idempotency_key=self._new_key(),
                    phone_number="",
                    amount=0,
                    order_reference=order_id or "",
                )
            initiation = registered

        cid = initiation.checkout_request_id
        if cid in self._handles:
            return self._handles[cid]

        handle = PaymentHandle(self, initiation)
        keys = {cid}
        if order_id:
            keys.add(str(order_id))
        for key in keys:
            handle._remove_listeners.append(self.channel.add_listener(key, handle._on_event))
            last = self.channel.last_event(key)
            if last is not None:
                handle._on_event(last)
        if handle.state.is_terminal:
            # Already answered before tracking started
            self.release(handle)
        else:
            self._handles[cid] = handle
        return handle

    def handle_for(self, checkout_request_id: str) -> Optional[PaymentHandle]:
        return self._handles.get(checkout_request_id)

    def release(self, handle: PaymentHandle, keep_listening: bool = False) -> None:
        """Forget a finished handle: drop its registration and (unless asked not to) its listeners"""
        if not keep_listening:
            handle.close()
        cid = handle.checkout_request_id
        if self._handles.get(cid) is handle:
            del self._handles[cid]
        self._registered.pop(cid, None)

    @property
    def outstanding(self) -> int:
        """Number of handles still waiting for a terminal result"""
        return len(self._handles)

    # ==================== Reconciliation ====================

    @staticmethod
    def confirmation_from(result: StatusResult, initiation: PaymentInitiation) -> PaymentConfirmation:
        return PaymentConfirmation(
            status=OrderPaymentStatus.PAID if result.status == PaymentStatus.COMPLETED else OrderPaymentStatus.FAILED,
            checkout_request_id=initiation.checkout_request_id,
            mpesa_receipt_number=result.receipt_number,
            amount=initiation.amount or None,
            phone_number=initiation.phone_number or None,
            result_desc=result.message,
        )

    async def reconcile(
        self,
        order_id: str,
        payment_details: Union[PaymentConfirmation, dict[str, Any]],
        idempotency_key: Optional[str] = None,
    ) -> Order:
        """
        Attach confirmed payment details to an order.

        Repeating a call for the same order with the same idempotency key
        returns the cached order without another request.

        Raises:
            ReconciliationError: the order could not be updated. Money may
                have moved, so this must be retried or escalated.
        """
        key = idempotency_key or self._new_key()
        cache_key = (str(order_id), key)
        if cache_key in self._reconciled:
            logger.debug(f"Reconciliation {key} for order {order_id} already applied")
            return self._reconciled[cache_key].model_copy(deep=True)

        if isinstance(payment_details, PaymentConfirmation):
            details = payment_details.model_dump(mode="json", by_alias=True, exclude_none=True)
        else:
            details = dict(payment_details)

        path = f"/orders/{order_id}/payment"
        routes = [Route("PATCH", path, idempotent=True), Route("POST", path, idempotent=True)]
        try:
            payload = await self.transport.request_with_fallback(
                routes,
                json={**details, "idempotencyKey": key},
                headers={IDEMPOTENCY_HEADER: key},
            )
            body = payload.get("order", payload) if isinstance(payload, dict) else payload
            order = Order.model_validate(body)
        except (StorefrontError, ModelValidationError) as e:
            logger.error(f"Failed to reconcile payment for order {order_id} (key {key}): {e}", exc_info=True)
            raise ReconciliationError(
                f"Payment could not be attached to order {order_id}: {e}",
                order_id=order_id,
                idempotency_key=key,
            ) from e

        self._reconciled[cache_key] = order
        while len(self._reconciled) > self.max_reconciled:
            self._reconciled.popitem(last=False)
        logger.info(f"Order {order.order_number} reconciled: payment {order.payment_status.value}")
        self.channel.publish(
            ORDER_UPDATED,
            order.id,
            {"orderId": order.id, "orderNumber": order.order_number, "paymentStatus": order.payment_status.value},
        )
        return order.model_copy(deep=True)

    # ==================== Cancellation ====================

    async def cancel(self, checkout_request_id: str) -> bool:
        """
        Ask the provider to disregard a pending request (best effort).

        The local handle, if any, is marked cancelled regardless of the
        outcome; a late completion is still recorded on it.
        """
        handle = self._handles.get(checkout_request_id)
        if handle is not None:
            handle.cancel()
        self.channel.publish(
            PAYMENT_CANCELLED,
            checkout_request_id,
            {"checkoutRequestId": checkout_request_id, "message": "Payment cancelled"},
        )
        try:
            await self.transport.request(
                "POST",
                self.settings.cancel_path,
                json={"checkoutRequestId": checkout_request_id},
            )
        except StorefrontError as e:
            logger.warning(f"Cancel request for {checkout_request_id} failed: {e}")
            return False
        return True
