import json
import random
import re
from datetime import datetime

import httpx
import pytest

from storefront.core.errors import ProviderError, ValidationError
from storefront.models.cart import CartTotals
from storefront.orders import OrderClient, generate_order_number
from storefront.transport import HttpTransport, RetryPolicy


def test_order_number_format():
    number = generate_order_number(now=datetime(2026, 10, 18, 9, 30), rng=random.Random(7))
    assert re.match(r"^LNB-\d{6}-[A-Z0-9]{4}$", number)
    assert number.startswith("LNB-261018-")


def test_order_numbers_differ():
    rng = random.Random(1)
    assert len({generate_order_number(rng=rng) for _ in range(20)}) > 1


def make_client(handler) -> OrderClient:
    return OrderClient(HttpTransport(
        "http://test/api",
        retry_policy=RetryPolicy(max_retries=0, base_delay=0),
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    ))


@pytest.mark.asyncio
async def test_create_order_from_cart_lines(storage, settings):
    from storefront.cart import CartStore

    cart = CartStore(storage=storage, settings=settings)
    await cart.add_item({"id": "peanut-creamy", "name": "Peanut Butter", "price": 500}, 4)
    totals = cart.get_cart_totals()
    sent = []

    def handler(request):
        body = json.loads(request.content)
        sent.append(body)
        return httpx.Response(201, json={"order": {"id": "o1", **body}})

    order = await make_client(handler).create_order(cart.items, totals, customer={"name": "Wanjiru"})

    body = sent[0]
    assert re.match(r"^LNB-\d{6}-[A-Z0-9]{4}$", body["orderNumber"])
    assert body["items"] == [{
        "productId": "peanut-creamy", "name": "Peanut Butter", "quantity": 4,
        "price": 500, "size": "370g", "variantId": None,
    }]
    assert (body["subtotal"], body["shipping"], body["total"]) == (2000, 300, 2300)
    assert body["paymentMethod"] == "mpesa"
    assert order.id == "o1"
    assert order.total == 2300


@pytest.mark.asyncio
async def test_create_order_rejects_empty_cart():
    client = make_client(lambda request: pytest.fail("no request expected"))
    with pytest.raises(ValidationError):
        await client.create_order([], CartTotals(subtotal=0, shipping=0, total=0, item_count=0))


@pytest.mark.asyncio
async def test_get_order_rejects_malformed_payload():
    client = make_client(lambda request: httpx.Response(200, json={"nope": 1}))
    with pytest.raises(ProviderError):
        await client.get_order("o1")
