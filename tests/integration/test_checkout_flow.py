import asyncio

import pytest

from mock_store.database import order_db, product_db, transaction_db
from storefront import Storefront
from storefront.models.order import PaymentConfirmation
from storefront.models.payment import PaymentState, PaymentStatus
from storefront.notifications import NotificationLevel

SECRET = "flow-secret"


@pytest.fixture(autouse=True)
def callback_secret(monkeypatch):
    monkeypatch.setenv("MPESA_CALLBACK_SECRET", SECRET)


async def send_callback(http, checkout_request_id, result_code=0, receipt="QK12ABC34D"):
    stk = {
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": "Processed" if result_code == 0 else "Request cancelled by user",
    }
    if result_code == 0:
        stk["CallbackMetadata"] = {"Item": [{"Name": "MpesaReceiptNumber", "Value": receipt}]}
    response = await http.post(f"/api/mpesa/callback/{SECRET}", json={"Body": {"stkCallback": stk}})
    assert response.status_code == 200


async def fill_cart(shop, product_id="peanut-creamy", quantity=4):
    product = await shop.catalog.fetch_product(product_id)
    assert await shop.cart.add_item(product, quantity)


@pytest.mark.asyncio
async def test_checkout_to_paid_order(asgi_client, settings, storage, notifier):
    async with asgi_client as http:
        shop = Storefront.from_settings(settings, http_client=http, storage=storage, notifier=notifier)
        await fill_cart(shop)

        totals = shop.cart.get_cart_totals()
        assert (totals.subtotal, totals.shipping, totals.total) == (2000, 300, 2300)

        order, handle = await shop.checkout("0700000000", customer={"name": "Achieng"})
        cid = handle.checkout_request_id
        assert order.total == 2300
        assert transaction_db.get(cid).amount == 2300
        assert transaction_db.get(cid).phone_number == "254700000000"
        assert await shop.poller.check_status(cid) == PaymentStatus.PENDING

        await send_callback(http, cid)
        assert await shop.poller.check_status(cid) == PaymentStatus.COMPLETED

        paid = await asyncio.wait_for(shop.complete_checkout(handle, order, poll_interval=0.01), timeout=5)
        assert paid.is_paid
        assert paid.payment.mpesa_receipt_number == "QK12ABC34D"
        assert shop.cart.is_empty
        assert NotificationLevel.SUCCESS in notifier.levels()

        # Retried reconciliation never updates the order twice
        details = PaymentConfirmation(checkout_request_id=cid, mpesa_receipt_number="QK12ABC34D")
        await shop.poller.reconcile(order.id, details, idempotency_key=f"reconcile-{cid}")
        await shop.poller.reconcile(order.id, details, idempotency_key="another-key")
        assert order_db.payment_update_counts[order.id] == 1

        await shop.aclose()


@pytest.mark.asyncio
async def test_cancelled_on_phone_keeps_cart(asgi_client, settings, storage, notifier):
    async with asgi_client as http:
        shop = Storefront.from_settings(settings, http_client=http, storage=storage, notifier=notifier)
        await fill_cart(shop, "almond-creamy", 1)

        order, handle = await shop.checkout("+254 712 345 678")
        await send_callback(http, handle.checkout_request_id, result_code=1032)

        result_order = await asyncio.wait_for(shop.complete_checkout(handle, order, poll_interval=0.01), timeout=5)
        assert not result_order.is_paid
        assert handle.state == PaymentState.FAILED
        assert "cancelled" in handle.result.message
        assert shop.cart.item_count == 1
        assert notifier.levels()[-1] == NotificationLevel.ERROR
        assert order.id not in order_db.payment_update_counts

        await shop.aclose()


@pytest.mark.asyncio
async def test_checkout_rejects_bad_phone_before_creating_order(asgi_client, settings, storage, notifier):
    from storefront.core.errors import ValidationError

    async with asgi_client as http:
        shop = Storefront.from_settings(settings, http_client=http, storage=storage, notifier=notifier)
        await fill_cart(shop)

        with pytest.raises(ValidationError):
            await shop.checkout("12345")
        assert order_db.orders == {}
        assert transaction_db.transactions == {}


@pytest.mark.asyncio
async def test_gateway_against_mock_store(asgi_client, settings, storage, notifier):
    async with asgi_client as http:
        shop = Storefront.from_settings(settings, http_client=http, storage=storage, notifier=notifier)
        await fill_cart(shop)
        await shop.orders.create_order(shop.cart.items, shop.cart.get_cart_totals(), order_number="ORD-1")

        initiation = await shop.gateway.initiate("0700000000", 2300, "ORD-1")

        assert initiation.checkout_request_id.startswith("ws_CO_")
        assert initiation.amount == 2300
        assert shop.poller.registration(initiation.checkout_request_id) is initiation
        assert not shop.gateway.guard.held
        assert order_db.get_order("ORD-1").payment_status.value == "processing"


@pytest.mark.asyncio
async def test_local_cancel_then_late_completion(asgi_client, settings, storage, notifier):
    async with asgi_client as http:
        shop = Storefront.from_settings(settings, http_client=http, storage=storage, notifier=notifier)
        await fill_cart(shop)
        order, handle = await shop.checkout("0712345678")
        cid = handle.checkout_request_id

        assert await shop.poller.cancel(cid)
        result_order = await shop.complete_checkout(handle, order)
        assert result_order is order
        assert handle.state == PaymentState.CANCELLED
        assert transaction_db.get(cid).cancel_requested

        # The customer still completed the payment on the phone
        await send_callback(http, cid)
        assert await shop.poller.check_status(cid) == PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_catalog_sync_against_mock_store(asgi_client, settings, storage, notifier):
    async with asgi_client as http:
        shop = Storefront.from_settings(settings, http_client=http, storage=storage, notifier=notifier)
        await fill_cart(shop, "cashew-pure", 2)

        product_db.update_product("cashew-pure", price=950, in_stock=False, stock_quantity=0)
        updated = await shop.sync.sync(force=True)

        line = updated[0]
        assert line.unit_price == 950
        assert not line.in_stock
        assert line.last_synced_at is not None
        assert shop.cart.get_cart_totals().subtotal == 1900
        assert NotificationLevel.WARNING in notifier.levels()
