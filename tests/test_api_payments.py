import hashlib
import json

import pytest
import responses

from nubia.models import Order, Product, ProductVariant, StockReservation, User
from nubia.services.payments.airwallex import sign
from nubia.services.payments.paydunya import SANDBOX_API_URL
from nubia.services.stock_service import StockService
from tests.conftest import AIRWALLEX_WEBHOOK_SECRET, PAYDUNYA_MASTER_KEY, make_config

INVOICE_URL = f"{SANDBOX_API_URL}/checkout-invoice/create"


def line(product, quantity=1):
    return {"product_id": product.id, "variant_id": product.variants[0].id, "quantity": quantity}


def paydunya_ipn(order, status="completed", amount=None, master_key=PAYDUNYA_MASTER_KEY):
    return {
        "data": {
            "hash": hashlib.sha512(master_key.encode()).hexdigest(),
            "status": status,
            "invoice": {"token": "tok-1", "total_amount": amount if amount is not None else order.total},
            "custom_data": {"order_id": order.id, "order_number": order.order_number},
        }
    }


@pytest.fixture
def pending_order(make_product, make_order, db_session):
    product = make_product(price=20000, variants=[("M", "rouge", 4)])
    order = make_order(product, quantity=2, payment_gateway="paydunya", transaction_id="tok-1")
    StockService(db_session).reserve(order, ttl_minutes=30)
    db_session.commit()
    return order


def test_payment_methods_by_country(client):
    senegal = client.get("/api/v1/payments/methods?country=senegal").json["data"]
    assert senegal == {"country": "SN", "currency": "XOF", "gateways": ["paydunya", "cod"]}

    france = client.get("/api/v1/payments/methods?country=FR").json["data"]
    assert france["currency"] == "EUR"
    assert france["gateways"] == ["airwallex", "cod"]


@responses.activate
def test_initialize_paydunya_session(client, make_product, address, db_session):
    product = make_product(price=20000)
    responses.add(
        responses.POST,
        INVOICE_URL,
        json={"response_code": "00", "response_text": "https://paydunya.com/checkout/invoice/tok-9", "token": "tok-9"},
    )

    response = client.post(
        "/api/v1/payments/initialize", json=dict(address, items=[line(product)], paymentMethod="wave")
    )

    assert response.status_code == 201
    body = response.json["data"]
    assert body["gateway"] == "paydunya"
    assert body["redirect_url"] == "https://paydunya.com/checkout/invoice/tok-9"
    assert body["order_confirmed"] is False

    sent = json.loads(responses.calls[0].request.body)
    assert sent["channels"] == ["wave-senegal"]
    assert sent["custom_data"]["order_id"] == str(body["order_id"])

    db_session.expire_all()
    order = db_session.get(Order, body["order_id"])
    assert order.transaction_id == "tok-9"
    assert order.payment_status == "pending"


@responses.activate
def test_refused_session_keeps_failed_order(client, make_product, address, db_session):
    product = make_product()
    responses.add(responses.POST, INVOICE_URL, json={"response_code": "1001", "response_text": "Invalid store"})

    response = client.post("/api/v1/payments/initialize", json=dict(address, items=[line(product)]))

    assert response.status_code == 502
    assert response.json["error"]["details"]["gateway_error_code"] == "INVOICE_CREATION_FAILED"

    db_session.expire_all()
    order = db_session.query(Order).one()
    assert (order.status, order.payment_status) == ("payment_failed", "failed")
    assert all(r.released_at is not None for r in db_session.query(StockReservation))


def test_initialize_rejects_gateway_outside_country(client, make_product, address):
    product = make_product()
    body = dict(address, items=[line(product)], gateway="airwallex")

    response = client.post("/api/v1/payments/initialize", json=body)

    assert response.status_code == 400


def test_initialize_cash_on_delivery(client, make_product, address, db_session, notify):
    product = make_product(variants=[("M", None, 2)])

    response = client.post(
        "/api/v1/payments/initialize", json=dict(address, items=[line(product)], paymentMethod="cod")
    )

    assert response.status_code == 201
    assert response.json["data"]["order_confirmed"] is True
    db_session.expire_all()
    assert db_session.get(ProductVariant, product.variants[0].id).stock == 1
    notify["manager_new_order"].assert_called_once()


def test_initialize_replays_idempotency_key(client, make_product, address, db_session, fake_redis, notify):
    product = make_product(variants=[("M", None, 2)])
    body = dict(address, items=[line(product)], paymentMethod="cod")
    headers = {"Idempotency-Key": "init-7"}

    first = client.post("/api/v1/payments/initialize", json=body, headers=headers)
    replay = client.post("/api/v1/payments/initialize", json=body, headers=headers)

    assert first.status_code == 201
    assert replay.status_code == 200
    assert replay.json["data"]["order_number"] == first.json["data"]["order_number"]
    assert db_session.query(Order).count() == 1


class TestUnconfiguredGateway:
    @pytest.fixture
    def config(self):
        return make_config(paydunya_master_key="")

    def test_initialize_returns_503(self, client, make_product, address, db_session):
        product = make_product()

        response = client.post("/api/v1/payments/initialize", json=dict(address, items=[line(product)]))

        assert response.status_code == 503
        assert db_session.query(Order).count() == 0


def test_paydunya_webhook_marks_paid_once(client, pending_order, db_session, notify):
    first = client.post("/api/v1/webhooks/paydunya", json=paydunya_ipn(pending_order))
    second = client.post("/api/v1/webhooks/paydunya", json=paydunya_ipn(pending_order))

    assert first.status_code == second.status_code == 200
    assert first.json == {"received": True, "order_number": pending_order.order_number, "status": "paid"}

    db_session.expire_all()
    order = db_session.get(Order, pending_order.id)
    assert (order.status, order.payment_status) == ("paid", "paid")
    assert db_session.get(ProductVariant, order.items[0].variant_id).stock == 2
    notify["order_confirmation"].assert_called_once()
    notify["manager_new_order"].assert_called_once()


def test_paydunya_webhook_accepts_form_posts(client, pending_order, db_session, notify):
    data = json.dumps(paydunya_ipn(pending_order, status="cancelled")["data"])

    response = client.post("/api/v1/webhooks/paydunya", data={"data": data})

    assert response.json["status"] == "cancelled"
    db_session.expire_all()
    assert db_session.get(Order, pending_order.id).status == "cancelled"
    product = db_session.get(Product, pending_order.items[0].product_id)
    assert StockService(db_session).available_quantity(product) == 4


def test_paydunya_webhook_rejects_wrong_hash(client, pending_order):
    response = client.post("/api/v1/webhooks/paydunya", json=paydunya_ipn(pending_order, master_key="other"))
    assert response.status_code == 401


def test_late_payment_reserves_again(client, pending_order, db_session, notify):
    StockService(db_session).release(pending_order.id)
    db_session.commit()

    client.post("/api/v1/webhooks/paydunya", json=paydunya_ipn(pending_order))

    db_session.expire_all()
    assert db_session.get(ProductVariant, pending_order.items[0].variant_id).stock == 2


def test_payment_after_cancellation_keeps_stock(client, admin_headers, pending_order, db_session, notify):
    cancelled = client.put(
        f"/api/v1/admin/orders/{pending_order.id}/delivery", json={"status": "cancelled"}, headers=admin_headers
    )
    assert cancelled.status_code == 200

    response = client.post("/api/v1/webhooks/paydunya", json=paydunya_ipn(pending_order))

    assert response.json["status"] == "paid"
    db_session.expire_all()
    order = db_session.get(Order, pending_order.id)
    assert (order.status, order.payment_status) == ("cancelled", "paid")
    assert order.paid_at is not None
    assert db_session.get(ProductVariant, order.items[0].variant_id).stock == 4
    notify["order_confirmation"].assert_not_called()
    notify["manager_new_order"].assert_not_called()


def test_airwallex_webhook_signature(client, pending_order, db_session, notify):
    event = {
        "name": "payment_intent.succeeded",
        "data": {"object": {"id": "int_1", "merchant_order_id": str(pending_order.id), "currency": "XOF"}},
    }
    raw = json.dumps(event).encode()

    forged = client.post(
        "/api/v1/webhooks/airwallex",
        data=raw,
        content_type="application/json",
        headers={"x-timestamp": "1700000000", "x-signature": "bad"},
    )
    assert forged.status_code == 401

    signed = client.post(
        "/api/v1/webhooks/airwallex",
        data=raw,
        content_type="application/json",
        headers={"x-timestamp": "1700000000", "x-signature": sign(AIRWALLEX_WEBHOOK_SECRET, "1700000000", raw)},
    )
    assert signed.status_code == 200
    db_session.expire_all()
    assert db_session.get(Order, pending_order.id).transaction_id == "int_1"


@responses.activate
def test_verify_polls_gateway(client, pending_order, db_session, notify):
    responses.add(
        responses.GET,
        f"{SANDBOX_API_URL}/checkout-invoice/confirm/tok-1",
        json={"response_code": "00", "invoice": {"status": "completed"}},
    )

    response = client.get(f"/api/v1/payments/verify?order_id={pending_order.id}")

    assert response.json["data"]["payment_status"] == "paid"
    notify["order_confirmation"].assert_called_once()


def test_verify_checks_ownership(client, auth_headers, make_product, make_order, db_session):
    someone_else = User(email="binta@example.com")
    db_session.add(someone_else)
    db_session.commit()
    order = make_order(make_product(), user_id=someone_else.id)

    assert client.get(f"/api/v1/payments/verify?order_id={order.id}", headers=auth_headers).status_code == 403
    assert client.get("/api/v1/payments/verify").status_code == 400
