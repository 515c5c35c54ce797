import hashlib
import json
from decimal import Decimal

import pytest
import responses

from nubia.services.payments.airwallex import AirwallexProvider, clear_token_cache, sign
from nubia.services.payments.base import OrderPayload, PayloadCustomer, PayloadItem
from nubia.services.payments.cod import CashOnDeliveryProvider
from nubia.services.payments.paydunya import SANDBOX_API_URL, PaydunyaProvider
from tests.conftest import AIRWALLEX_WEBHOOK_SECRET, PAYDUNYA_MASTER_KEY, make_config

AIRWALLEX_API = "https://api-demo.airwallex.com/api/v1"


@pytest.fixture
def payload():
    return OrderPayload(
        order_id="7",
        order_number="ORD-1717000000000123",
        amount=Decimal("52200"),
        currency="XOF",
        customer=PayloadCustomer(email="awa@example.com", phone="+221771234567", first_name="Awa", last_name="Diop"),
        items=[PayloadItem(product_id=1, name="Robe Wax", quantity=2, price=20000)],
    )


@pytest.fixture
def paydunya():
    config = make_config()
    return PaydunyaProvider(config.payments, "https://nubia.test")


@pytest.fixture
def airwallex():
    clear_token_cache()
    config = make_config()
    yield AirwallexProvider(config.payments, "https://nubia.test")
    clear_token_cache()


# ---------------------------------------------------------------------- #
# PayDunya                                                                #
# ---------------------------------------------------------------------- #

@responses.activate
def test_paydunya_session(paydunya, payload):
    responses.add(
        responses.POST,
        f"{SANDBOX_API_URL}/checkout-invoice/create",
        json={"response_code": "00", "response_text": "https://paydunya.com/sandbox-checkout/invoice/test_abc"},
    )

    session = paydunya.create_session(payload, "wave")

    assert session.success
    assert session.redirect_url == "https://paydunya.com/sandbox-checkout/invoice/test_abc"
    assert session.transaction_id == "test_abc"

    request = responses.calls[0].request
    assert request.headers["PAYDUNYA-MASTER-KEY"] == PAYDUNYA_MASTER_KEY
    body = json.loads(request.body)
    assert body["invoice"]["total_amount"] == 52200
    assert body["channels"] == ["wave-senegal"]
    assert body["custom_data"]["order_id"] == "7"
    assert body["actions"]["callback_url"] == "https://nubia.test/api/v1/webhooks/paydunya"


@responses.activate
def test_paydunya_refused_invoice(paydunya, payload):
    responses.add(
        responses.POST,
        f"{SANDBOX_API_URL}/checkout-invoice/create",
        json={"response_code": "1001", "response_text": "Invalid Masterkey"},
    )

    session = paydunya.create_session(payload)

    assert not session.success
    assert session.error == "Invalid Masterkey"
    assert session.error_code == "INVOICE_CREATION_FAILED"


def test_paydunya_unconfigured(payload):
    provider = PaydunyaProvider(make_config(paydunya_master_key="").payments)
    assert not provider.is_configured()
    assert not provider.create_session(payload).success


def test_paydunya_webhook_hash(paydunya):
    good = {"data": {"hash": hashlib.sha512(PAYDUNYA_MASTER_KEY.encode()).hexdigest()}}
    assert paydunya.verify_webhook(good)
    assert not paydunya.verify_webhook({"data": {"hash": "0" * 128}})
    assert not paydunya.verify_webhook({})


def test_paydunya_callback_mapping(paydunya):
    result = paydunya.handle_callback(
        {
            "data": {
                "status": "completed",
                "invoice": {"token": "test_abc", "total_amount": "52200"},
                "custom_data": {"order_id": 7},
            }
        }
    )
    assert result.status == "paid"
    assert result.success
    assert result.order_id == "7"
    assert result.amount == Decimal("52200")

    assert paydunya.handle_callback({"data": {"status": "cancelled"}}).status == "cancelled"
    assert paydunya.handle_callback({"data": {"status": "pending"}}).status == "pending"


@responses.activate
def test_paydunya_status(paydunya):
    responses.add(
        responses.GET,
        f"{SANDBOX_API_URL}/checkout-invoice/confirm/test_abc",
        json={"response_code": "00", "invoice": {"status": "completed"}},
    )
    assert paydunya.get_status("test_abc") == "paid"


# ---------------------------------------------------------------------- #
# Airwallex                                                               #
# ---------------------------------------------------------------------- #

def add_airwallex_login():
    responses.add(responses.POST, f"{AIRWALLEX_API}/authentication/login", json={"token": "bearer-1"})


@responses.activate
def test_airwallex_session_and_token_cache(airwallex, payload):
    add_airwallex_login()
    responses.add(
        responses.POST,
        f"{AIRWALLEX_API}/pa/payment_intents/create",
        json={"id": "int_1", "client_secret": "cs_1", "status": "REQUIRES_PAYMENT_METHOD"},
        status=201,
    )
    eur = payload.model_copy(update={"amount": Decimal("79.57"), "currency": "EUR"})

    first = airwallex.create_session(eur)
    second = airwallex.create_session(eur)

    assert first.success and second.success
    assert first.transaction_id == "int_1"
    assert first.redirect_url.startswith("https://checkout-demo.airwallex.com/?")
    assert "intent_id=int_1" in first.redirect_url
    assert "client_secret=cs_1" in first.redirect_url

    logins = [c for c in responses.calls if c.request.url.endswith("/authentication/login")]
    assert len(logins) == 1
    intent = json.loads(responses.calls[1].request.body)
    assert intent["amount"] == 79.57
    assert intent["merchant_order_id"] == "7"
    assert responses.calls[1].request.headers["Authorization"] == "Bearer bearer-1"


@responses.activate
def test_airwallex_login_failure(airwallex, payload):
    responses.add(responses.POST, f"{AIRWALLEX_API}/authentication/login", status=401, json={})

    session = airwallex.create_session(payload)

    assert not session.success
    assert session.error_code == "AUTH_FAILED"


def test_airwallex_signature(airwallex):
    body = b'{"name":"payment_intent.succeeded"}'
    signature = sign(AIRWALLEX_WEBHOOK_SECRET, "1717000000", body)

    assert airwallex.verify_webhook({}, raw_body=body, signature=signature, timestamp="1717000000")
    assert not airwallex.verify_webhook({}, raw_body=body, signature=signature, timestamp="1717000001")
    assert not airwallex.verify_webhook({}, raw_body=body, signature=None, timestamp="1717000000")


@pytest.mark.parametrize(
    "event,status",
    [
        ("payment_intent.succeeded", "paid"),
        ("payment_intent.cancelled", "cancelled"),
        ("payment_intent.requires_payment_method", "failed"),
        ("payment_intent.created", "processing"),
    ],
)
def test_airwallex_event_mapping(airwallex, event, status):
    result = airwallex.handle_callback(
        {
            "name": event,
            "data": {
                "object": {
                    "id": "int_1",
                    "merchant_order_id": "7",
                    "amount": 79.57,
                    "currency": "EUR",
                    "payment_method": {"type": "card"},
                }
            },
        }
    )
    assert result.status == status
    assert result.order_id == "7"
    assert result.payment_method == "card"


def test_airwallex_callback_keeps_event_time(airwallex):
    result = airwallex.handle_callback(
        {
            "name": "payment_intent.succeeded",
            "created_at": "2026-03-01T09:15:00+0000",
            "data": {"object": {"id": "int_2", "merchant_order_id": "8", "amount": 10, "currency": "EUR"}},
        }
    )
    assert result.success is True
    assert result.processed_at.isoformat() == "2026-03-01T09:15:00+00:00"


@responses.activate
def test_airwallex_status(airwallex):
    add_airwallex_login()
    responses.add(responses.GET, f"{AIRWALLEX_API}/pa/payment_intents/int_1", json={"status": "SUCCEEDED"})
    assert airwallex.get_status("int_1") == "paid"


# ---------------------------------------------------------------------- #
# Cash on delivery                                                        #
# ---------------------------------------------------------------------- #

def test_cod_provider(payload):
    provider = CashOnDeliveryProvider(make_config().payments)
    session = provider.create_session(payload)

    assert provider.is_configured()
    assert session.success and session.order_confirmed
    assert session.transaction_id == "COD-7"
    assert provider.handle_callback({"order_id": 7, "status": "delivered"}).status == "paid"
    assert provider.handle_callback({"order_id": 7, "status": "refused"}).status == "cancelled"
    assert provider.get_status("COD-7") == "awaiting_payment"
