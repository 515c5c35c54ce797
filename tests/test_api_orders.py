import pytest

from nubia.models import Order, ProductVariant, StockReservation
from nubia.services.stock_service import StockService


def line(product, quantity=1):
    return {"product_id": product.id, "variant_id": product.variants[0].id, "quantity": quantity}


def test_quote_prices_from_database(client, make_product):
    product = make_product(price=40000)

    response = client.post(
        "/api/v1/checkout/quote",
        json={"items": [dict(line(product), unit_price=1)], "shippingMethod": "standard"},
    )

    assert response.status_code == 200
    quote = response.json["data"]
    assert (quote["subtotal"], quote["shipping"], quote["tax"], quote["total"]) == (40000, 5000, 7200, 52200)
    assert quote["lines"][0]["line_total"] == 40000


def test_quote_applies_promo_before_tax(client, make_product, make_promo):
    product = make_product(price=50000)
    make_promo(code="AURA10", discount_value=10)

    quote = client.post(
        "/api/v1/checkout/quote", json={"items": [line(product)], "promoCode": "aura10"}
    ).json["data"]

    assert quote["discount"] == 5000
    assert quote["tax"] == 8100
    assert quote["promo_code"] == "AURA10"


def test_quote_rejects_unknown_product_and_short_stock(client, make_product):
    product = make_product(variants=[("M", None, 1)])

    missing = client.post("/api/v1/checkout/quote", json={"items": [{"product_id": 999, "quantity": 1}]})
    assert missing.status_code == 400

    short = client.post("/api/v1/checkout/quote", json={"items": [line(product, 2)]})
    assert short.status_code == 400
    assert short.json["error"]["code"] == "INSUFFICIENT_STOCK"


def test_checkout_creates_order_with_holds_and_empties_cart(
    client, auth_headers, make_product, address, db_session
):
    product = make_product(price=20000, variants=[("M", "rouge", 5)])
    client.post("/api/v1/cart/items", json=line(product, 2), headers=auth_headers)

    response = client.post(
        "/api/v1/checkout/create", json=dict(address, items=[line(product, 2)]), headers=auth_headers
    )

    assert response.status_code == 201
    order = response.json["data"]
    assert order["status"] == "pending"
    assert order["order_number"].startswith("ORD-")
    assert order["shipping_address"]["firstName"] == "Awa"

    db_session.expire_all()
    holds = db_session.query(StockReservation).filter_by(order_id=order["id"]).all()
    assert [h.qty for h in holds] == [2]
    assert holds[0].finalized_at is None
    assert client.get("/api/v1/cart", headers=auth_headers).json["data"]["is_empty"] is True
    assert StockService(db_session).available_quantity(product) == 3


def test_checkout_counts_promo_use(client, auth_headers, make_product, make_promo, address, db_session):
    product = make_product(price=30000)
    promo = make_promo(code="AURA10", max_uses=5)

    client.post(
        "/api/v1/checkout/create",
        json=dict(address, items=[line(product)], promoCode="AURA10"),
        headers=auth_headers,
    )

    db_session.expire_all()
    assert db_session.get(type(promo), promo.id).current_uses == 1


def test_cod_order_takes_stock_and_notifies(client, make_product, address, db_session, notify):
    product = make_product(price=25000, variants=[("M", "rouge", 3)])

    response = client.post("/api/v1/orders/cod", json=dict(address, items=[line(product, 2)]))

    assert response.status_code == 201
    summary = response.json["data"]
    assert summary["payment_status"] == "awaiting_payment"

    db_session.expire_all()
    assert db_session.get(ProductVariant, product.variants[0].id).stock == 1
    order = db_session.get(Order, summary["id"])
    assert order.transaction_id == f"COD-{order.id}"
    assert order.user_id is None

    args, kwargs = notify["manager_new_order"].call_args
    assert args[0].order_number == summary["order_number"]
    assert args[1]
    notify["order_confirmation"].assert_called_once()


def test_cod_order_replays_idempotency_key(client, make_product, address, db_session, fake_redis, notify):
    product = make_product(price=25000, variants=[("M", "rouge", 3)])
    body = dict(address, items=[line(product)])
    headers = {"Idempotency-Key": "checkout-42"}

    first = client.post("/api/v1/orders/cod", json=body, headers=headers)
    replay = client.post("/api/v1/orders/cod", json=body, headers=headers)

    assert first.status_code == 201
    assert replay.status_code == 200
    assert replay.json["data"]["order_number"] == first.json["data"]["order_number"]
    assert db_session.query(Order).count() == 1
    db_session.expire_all()
    assert db_session.get(ProductVariant, product.variants[0].id).stock == 2
    notify["order_confirmation"].assert_called_once()
    fake_redis.set.assert_called_once()


def test_cod_order_counts_holds_on_the_same_size(client, make_product, make_order, address, db_session, notify):
    product = make_product(price=25000, variants=[("S", None, 2), ("M", None, 5)])
    StockService(db_session).reserve(make_order(product, quantity=2), ttl_minutes=30)
    db_session.commit()
    small, medium = product.variants

    taken = client.post(
        "/api/v1/orders/cod",
        json=dict(address, items=[{"product_id": product.id, "variant_id": small.id, "quantity": 2}]),
    )
    assert taken.status_code == 400
    assert taken.json["error"]["code"] == "INSUFFICIENT_STOCK"
    assert taken.json["error"]["details"]["available"] == 0

    other_size = client.post(
        "/api/v1/orders/cod",
        json=dict(address, items=[{"product_id": product.id, "variant_id": medium.id, "quantity": 2}]),
    )
    assert other_size.status_code == 201


def test_cod_order_validates_address(client, make_product, address):
    product = make_product()
    body = dict(address, items=[line(product)], phone="12")
    del body["city"]

    response = client.post("/api/v1/orders/cod", json=body)

    assert response.status_code == 400
    fields = {e["field"] for e in response.json["error"]["details"]["field_errors"]}
    assert fields == {"city", "phone"}


def test_customer_order_history(client, auth_headers, user, make_product, make_order):
    product = make_product()
    mine = make_order(product, user_id=user.id)
    other = make_order(product)

    listing = client.get("/api/v1/orders", headers=auth_headers).json["data"]
    assert [o["id"] for o in listing["items"]] == [mine.id]

    detail = client.get(f"/api/v1/orders/{mine.id}", headers=auth_headers).json["data"]
    assert detail["items"][0]["product_id"] == product.id
    assert detail["return_eligible"] is False

    assert client.get(f"/api/v1/orders/{other.id}", headers=auth_headers).status_code == 404


@pytest.mark.parametrize("action,restocked", [("finalize-stock", 9), ("release-stock", 10)])
def test_admin_stock_endpoints(client, admin_headers, make_product, make_order, db_session, action, restocked):
    product = make_product()
    order = make_order(product)
    StockService(db_session).reserve(order, ttl_minutes=30)
    db_session.commit()

    response = client.post(f"/api/v1/orders/{order.id}/{action}", headers=admin_headers)

    assert response.status_code == 200
    db_session.expire_all()
    assert db_session.get(ProductVariant, product.variants[0].id).stock == restocked
    assert client.post(f"/api/v1/orders/{order.id}/{action}", headers=admin_headers).status_code == 404


def test_admin_stock_endpoints_reject_customers(client, auth_headers):
    assert client.post("/api/v1/orders/1/finalize-stock", headers=auth_headers).status_code == 403
