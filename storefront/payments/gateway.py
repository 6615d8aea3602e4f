"""
Payment Initiation Gateway

Starts an M-Pesa STK push for an order. Input is validated before any
network call, only one initiation may be outstanding at a time, and every
attempt carries a fresh idempotency key so the provider can deduplicate
retried requests.
"""

import logging
import uuid
from typing import Any, Callable, Optional

from ..core.config import Settings, get_settings
from ..core.errors import ConcurrencyError, ProviderError, ValidationError
from ..identity import get_field
from ..models.money import round_amount
from ..models.payment import PaymentInitiation, PaymentRequest
from ..transport import IDEMPOTENCY_HEADER, HttpTransport, Route, provider_message
from .phone import require_phone

logger = logging.getLogger(__name__)


class SingleFlight:
    """Non-blocking guard: entering while held raises ConcurrencyError"""

    def __init__(self, name: str):
        self.name = name
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def __enter__(self) -> "SingleFlight":
        if self._held:
            raise ConcurrencyError(f"{self.name} already in progress")
        self._held = True
        return self

    def __exit__(self, *exc) -> None:
        self._held = False


# Shared by every gateway in the process
INITIATION_GUARD = SingleFlight("Payment initiation")


def _response_field(payload: Any, *names: str) -> Optional[str]:
    value = get_field(payload, *names)
    if value is None and isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        value = get_field(payload["data"], *names)
    return str(value) if value is not None else None


class PaymentGateway:
    """Client for STK push initiation"""

    def __init__(
        self,
        transport: HttpTransport,
        poller: Optional[Any] = None,  # PaymentStatusPoller
        settings: Optional[Settings] = None,
        guard: SingleFlight = INITIATION_GUARD,
        key_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.transport = transport
        self.poller = poller
        self.settings = settings or get_settings()
        self.guard = guard
        self._new_key = key_factory

    @property
    def routes(self) -> list[Route]:
        return [
            Route("POST", self.settings.stk_push_path),
            Route("POST", self.settings.legacy_stk_push_path),
        ]

    def build_request(
        self,
        phone_number: Any,
        amount: Any,
        order_reference: Any,
        description: str = "",
    ) -> PaymentRequest:
        """
        Validate and normalise an initiation request.

        Raises:
            ValidationError: bad phone number, amount or order reference
        """
        phone = require_phone(phone_number)
        try:
            rounded = round_amount(amount)
        except ValueError as e:
            raise ValidationError(f"Invalid amount: {amount!r}") from e
        if rounded < 1:
            raise ValidationError(f"Amount must be at least 1 KES, got {amount!r}")
        if order_reference is None or not str(order_reference).strip():
            raise ValidationError("An order reference is required")

        return PaymentRequest(
            idempotency_key=self._new_key(),
            phone_number=phone,
            amount=rounded,
            order_reference=str(order_reference).strip(),
            description=description or f"Payment for order {order_reference}",
        )

    async def initiate(
        self,
        phone_number: Any,
        amount: Any,
        order_reference: Any,
        description: str = "",
    ) -> PaymentInitiation:
        """
        Send an STK push to the customer's phone.

        Args:
            phone_number: Customer phone (07XXXXXXXX, +254..., 2547XXXXXXXX)
            amount: Amount in KES, rounded half-up to a whole shilling
            order_reference: Order number the payment settles
            description: Transaction description shown to the customer

        Returns:
            PaymentInitiation with the provider's checkout request id

        Raises:
            ValidationError: invalid input (no request is sent)
            ConcurrencyError: another initiation is outstanding
            TransportError / ProviderError: both routes failed
        """
        request = self.build_request(phone_number, amount, order_reference, description)

        with self.guard:
            logger.info(
                f"Initiating STK push for order {request.order_reference}: "
                f"{request.amount} KES (key {request.idempotency_key})"
            )
            payload = await self.transport.request_with_fallback(
                self.routes,
                json=request.to_payload(),
                headers={IDEMPOTENCY_HEADER: request.idempotency_key},
            )

            if isinstance(payload, dict) and payload.get("success") is False:
                raise ProviderError(provider_message(payload, "Payment request was rejected"), payload=payload)
            response_code = _response_field(payload, "ResponseCode", "responseCode")
            if response_code not in (None, "0"):
                raise ProviderError(provider_message(payload, "Payment request was rejected"), payload=payload)

            checkout_request_id = _response_field(payload, "checkoutRequestId", "CheckoutRequestID")
            if checkout_request_id is None:
                raise ProviderError("Payment provider did not return a checkout request id", payload=payload)

            request.checkout_request_id = checkout_request_id
            initiation = PaymentInitiation(
                checkout_request_id=checkout_request_id,
                idempotency_key=request.idempotency_key,
                phone_number=request.phone_number,
                amount=request.amount,
                order_reference=request.order_reference,
                merchant_request_id=_response_field(payload, "merchantRequestId", "MerchantRequestID"),
                customer_message=_response_field(payload, "CustomerMessage", "customerMessage", "message"),
            )

            if self.poller is not None:
                self.poller.register(initiation)

            logger.info(f"STK push accepted for order {request.order_reference}: {checkout_request_id}")
            return initiation
