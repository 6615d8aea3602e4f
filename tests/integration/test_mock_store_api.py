import pytest

from mock_store.database import order_db, transaction_db

SECRET = "test-callback-secret"


@pytest.fixture(autouse=True)
def callback_secret(monkeypatch):
    monkeypatch.setenv("MPESA_CALLBACK_SECRET", SECRET)


def create_order(client, **overrides):
    body = {
        "orderNumber": "LNB-261018-TST1",
        "items": [{"productId": "peanut-creamy", "name": "Creamy Peanut Butter", "quantity": 4, "price": 500}],
        "subtotal": 2000,
        "shipping": 300,
        "total": 2300,
        **overrides,
    }
    response = client.post("/api/orders", json=body)
    assert response.status_code == 201
    return response.json()


def stk_push(client, order_number="LNB-261018-TST1", key="key-1", path="/api/mpesa/stk-push", **overrides):
    body = {"phoneNumber": "0712345678", "amount": 2300, "orderId": order_number, **overrides}
    return client.post(path, json=body, headers={"X-Idempotency-Key": key})


def callback(client, checkout_request_id, result_code=0, secret=SECRET, receipt="QK12ABC34D"):
    stk = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": "The service request is processed successfully." if result_code == 0 else "Request cancelled by user",
    }
    if result_code == 0:
        stk["CallbackMetadata"] = {"Item": [
            {"Name": "Amount", "Value": 2300},
            {"Name": "MpesaReceiptNumber", "Value": receipt},
            {"Name": "PhoneNumber", "Value": 254712345678},
        ]}
    return client.post(f"/api/mpesa/callback/{secret}", json={"Body": {"stkCallback": stk}})


# ==================== Service ====================


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "mock-store"}


# ==================== Products ====================


def test_list_products(client):
    data = client.get("/api/products").json()
    assert data["total"] == len(data["products"]) == 10
    first = data["products"][0]
    assert {"id", "numericId", "inStock", "stockQuantity", "variants"} <= set(first)


def test_list_products_by_category(client):
    data = client.get("/api/products", params={"category": "peanut butter"}).json()
    assert {p["id"] for p in data["products"]} == {"peanut-creamy", "peanut-crunchy"}


@pytest.mark.parametrize("ref", ["peanut-creamy", "8"])
def test_get_product_by_id_or_numeric_id(client, ref):
    data = client.get(f"/api/products/{ref}").json()
    assert data["id"] == "peanut-creamy"
    assert data["price"] == 500
    assert [v["id"] for v in data["variants"]] == ["peanut-creamy-370g", "peanut-creamy-1kg"]


def test_get_unknown_product(client):
    assert client.get("/api/products/nope").status_code == 404


# ==================== Orders ====================


def test_create_and_get_order(client):
    order = create_order(client)
    assert order["orderNumber"] == "LNB-261018-TST1"
    assert order["paymentStatus"] == "pending"
    assert order["status"] == "pending-payment"

    assert client.get(f"/api/orders/{order['id']}").json()["total"] == 2300
    assert client.get("/api/orders/LNB-261018-TST1").json()["id"] == order["id"]
    assert client.get("/api/orders/missing").status_code == 404


def test_create_order_requires_items(client):
    response = client.post("/api/orders", json={"items": [], "subtotal": 0, "total": 0})
    assert response.status_code == 422


def test_payment_update_is_idempotent(client):
    order = create_order(client)
    update = {"status": "paid", "checkoutRequestId": "ws_CO_1", "mpesaReceiptNumber": "QK1"}
    path = f"/api/orders/{order['id']}/payment"

    first = client.patch(path, json=update, headers={"X-Idempotency-Key": "rk-1"})
    again = client.patch(path, json=update, headers={"X-Idempotency-Key": "rk-1"})
    other_key = client.post(path, json=update, headers={"X-Idempotency-Key": "rk-2"})

    assert first.json()["paymentStatus"] == "paid"
    assert first.json()["status"] == "processing"
    assert again.status_code == other_key.status_code == 200
    assert order_db.payment_update_counts[order["id"]] == 1


def test_payment_update_unknown_order(client):
    response = client.patch("/api/orders/missing/payment", json={"status": "paid"})
    assert response.status_code == 404


# ==================== STK push ====================


def test_stk_push_accepted(client):
    order = create_order(client)
    response = stk_push(client)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["ResponseCode"] == "0"
    assert data["CheckoutRequestID"].startswith("ws_CO_")
    assert transaction_db.get(data["CheckoutRequestID"]).phone_number == "254712345678"
    assert client.get(f"/api/orders/{order['id']}").json()["paymentStatus"] == "processing"


def test_stk_push_legacy_path(client):
    create_order(client)
    assert stk_push(client, path="/api/mpesa/stkpush").json()["ResponseCode"] == "0"


def test_stk_push_deduplicates_on_key(client):
    create_order(client)
    first = stk_push(client, key="same").json()
    second = stk_push(client, key="same").json()
    assert first["CheckoutRequestID"] == second["CheckoutRequestID"]
    assert len(transaction_db.transactions) == 1


@pytest.mark.parametrize("amount, charged", [(0.5, 1), (2.5, 3), (100.5, 101), (99.4, 99)])
def test_stk_push_rounds_half_shillings_up(client, amount, charged):
    create_order(client)
    response = stk_push(client, amount=amount)
    assert response.status_code == 200
    assert transaction_db.get(response.json()["CheckoutRequestID"]).amount == charged


@pytest.mark.parametrize(
    "overrides, status_code",
    [
        ({"phoneNumber": "12345"}, 400),
        ({"amount": 0}, 400),
        ({"orderId": "LNB-000000-NONE"}, 404),
    ],
)
def test_stk_push_rejections(client, overrides, status_code):
    create_order(client)
    response = stk_push(client, **overrides)
    assert response.status_code == status_code
    assert transaction_db.transactions == {}


def test_stk_push_for_paid_order(client):
    create_order(client)
    cid = stk_push(client, key="k1").json()["CheckoutRequestID"]
    callback(client, cid)

    response = stk_push(client, key="k2")
    assert response.status_code == 400
    assert "already been paid" in response.json()["detail"]


# ==================== Status and callback ====================


def test_status_follows_callback(client):
    order = create_order(client)
    cid = stk_push(client).json()["CheckoutRequestID"]

    assert client.get(f"/api/mpesa/status/{cid}").json()["status"] == "PENDING"

    assert callback(client, cid).json() == {"ResultCode": 0, "ResultDesc": "Accepted"}

    status = client.get(f"/api/mpesa/status/{cid}").json()
    assert status["status"] == "COMPLETED"
    assert status["ResultCode"] == "0"
    assert status["MpesaReceiptNumber"] == "QK12ABC34D"
    assert client.get(f"/api/orders/{order['id']}").json()["paymentStatus"] == "paid"


def test_failed_callback_marks_order(client):
    order = create_order(client)
    cid = stk_push(client).json()["CheckoutRequestID"]
    callback(client, cid, result_code=1032)

    assert client.get(f"/api/mpesa/status/{cid}").json()["ResultCode"] == "1032"
    data = client.get(f"/api/orders/{order['id']}").json()
    assert data["paymentStatus"] == "failed"
    assert data["status"] == "payment-failed"


def test_repeated_callback_is_ignored(client):
    create_order(client)
    cid = stk_push(client).json()["CheckoutRequestID"]
    callback(client, cid)
    callback(client, cid, result_code=1032)

    assert transaction_db.get(cid).result_code == "0"


def test_callback_with_wrong_secret(client):
    create_order(client)
    cid = stk_push(client).json()["CheckoutRequestID"]
    assert callback(client, cid, secret="wrong").status_code == 403
    assert transaction_db.get(cid).result_code is None


def test_status_of_unknown_transaction(client):
    assert client.get("/api/mpesa/status/ws_CO_missing").status_code == 404


def test_legacy_query(client):
    create_order(client)
    cid = stk_push(client).json()["CheckoutRequestID"]

    pending = client.post("/api/mpesa/query", json={"CheckoutRequestID": cid}).json()
    assert pending["errorCode"] == "500.001.1001"

    callback(client, cid)
    done = client.post("/api/mpesa/query", json={"checkoutRequestId": cid}).json()
    assert done["ResultCode"] == "0"

    assert client.post("/api/mpesa/query", json={}).status_code == 400


def test_cancel_keeps_transaction_pending(client):
    create_order(client)
    cid = stk_push(client).json()["CheckoutRequestID"]

    assert client.post("/api/mpesa/cancel", json={"checkoutRequestId": cid}).json()["success"] is True
    transaction = transaction_db.get(cid)
    assert transaction.cancel_requested
    assert transaction.status.value == "PENDING"
    assert client.post("/api/mpesa/cancel", json={"checkoutRequestId": "nope"}).status_code == 404
