import asyncio
import json
import uuid
import httpx
import pytest
from unittest.mock import MagicMock

from storefront.core.errors import ConcurrencyError, ProviderError, ValidationError
from storefront.payments.gateway import INITIATION_GUARD, PaymentGateway, SingleFlight
from storefront.transport import HttpTransport, RetryPolicy

ACCEPTED = {
    "success": True,
    "MerchantRequestID": "m-1",
    "CheckoutRequestID": "ws_CO_1",
    "ResponseCode": "0",
    "CustomerMessage": "Success. Request accepted for processing",
}


def make_gateway(settings, handler, poller=None):
    transport = HttpTransport(
        settings.api_base_url,
        retry_policy=RetryPolicy(max_retries=0, base_delay=0),
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return PaymentGateway(transport, poller=poller, settings=settings, guard=SingleFlight("Payment initiation"))


@pytest.mark.asyncio
async def test_initiate_sends_normalized_request(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=ACCEPTED)

    poller = MagicMock()
    gateway = make_gateway(settings, handler, poller=poller)

    initiation = await gateway.initiate("0712 345 678", 2299.5, "LNB-261018-AB12", "Order")

    request = seen[0]
    body = json.loads(request.content)
    assert request.url.path == "/api/mpesa/stk-push"
    assert body["phoneNumber"] == "254712345678"
    assert body["amount"] == 2300
    assert body["orderId"] == "LNB-261018-AB12"
    assert request.headers["X-Idempotency-Key"] == body["idempotencyKey"]
    uuid.UUID(body["idempotencyKey"])

    assert initiation.checkout_request_id == "ws_CO_1"
    assert initiation.idempotency_key == body["idempotencyKey"]
    assert initiation.merchant_request_id == "m-1"
    poller.register.assert_called_once_with(initiation)
    assert not gateway.guard.held


@pytest.mark.asyncio
async def test_each_attempt_gets_a_fresh_key(settings):
    keys = []

    def handler(request):
        keys.append(request.headers["X-Idempotency-Key"])
        return httpx.Response(200, json=ACCEPTED)

    gateway = make_gateway(settings, handler)
    await gateway.initiate("0712345678", 100, "ORD-1")
    await gateway.initiate("0712345678", 100, "ORD-1")
    assert len(set(keys)) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "phone, amount, reference",
    [
        ("12345", 100, "ORD-1"),
        ("0712345678", 0.4, "ORD-1"),
        ("0712345678", -5, "ORD-1"),
        ("0712345678", "lots", "ORD-1"),
        ("0712345678", 100, "  "),
    ],
)
async def test_invalid_input_rejected_before_network(settings, phone, amount, reference):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=ACCEPTED)

    gateway = make_gateway(settings, handler)
    with pytest.raises(ValidationError):
        await gateway.initiate(phone, amount, reference)
    assert calls == []


@pytest.mark.asyncio
async def test_falls_back_to_legacy_route(settings):
    paths = []

    def handler(request):
        paths.append(request.url.path)
        if request.url.path.endswith("/stk-push"):
            return httpx.Response(404, json={"detail": "Not Found"})
        return httpx.Response(200, json=ACCEPTED)

    gateway = make_gateway(settings, handler)
    initiation = await gateway.initiate("0712345678", 100, "ORD-1")
    assert initiation.checkout_request_id == "ws_CO_1"
    assert paths == ["/api/mpesa/stk-push", "/api/mpesa/stkpush"]


@pytest.mark.asyncio
async def test_provider_rejection_keeps_message_and_releases_guard(settings):
    def handler(request):
        return httpx.Response(400, json={"success": False, "message": "This order has already been paid for."})

    gateway = make_gateway(settings, handler)
    with pytest.raises(ProviderError) as exc:
        await gateway.initiate("0712345678", 100, "ORD-1")
    assert exc.value.message == "This order has already been paid for."
    assert not gateway.guard.held


@pytest.mark.asyncio
async def test_missing_checkout_id_is_a_provider_error(settings):
    gateway = make_gateway(settings, lambda request: httpx.Response(200, json={"success": True}))
    with pytest.raises(ProviderError):
        await gateway.initiate("0712345678", 100, "ORD-1")


@pytest.mark.asyncio
async def test_concurrent_initiation_rejected(settings):
    gate = asyncio.Event()

    async def handler(request):
        await gate.wait()
        return httpx.Response(200, json=ACCEPTED)

    gateway = make_gateway(settings, handler)
    first = asyncio.create_task(gateway.initiate("0712345678", 100, "ORD-1"))
    await asyncio.sleep(0)

    with pytest.raises(ConcurrencyError, match="already in progress"):
        await gateway.initiate("0712345678", 100, "ORD-1")

    gate.set()
    assert (await first).checkout_request_id == "ws_CO_1"
    assert not gateway.guard.held


def test_gateways_share_the_process_guard(settings):
    transport = MagicMock()
    assert PaymentGateway(transport, settings=settings).guard is INITIATION_GUARD
    assert PaymentGateway(transport, settings=settings).guard is INITIATION_GUARD
