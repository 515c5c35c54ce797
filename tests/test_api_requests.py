from datetime import timedelta

from nubia.models import CustomOrder, ReturnRequest
from nubia.utils.dates import DateUtils

REASON = "La taille ne convient pas du tout"


def delivered_order(make_order, product, user, days_ago=1, country="SN"):
    return make_order(
        product,
        quantity=2,
        user_id=user.id,
        status="delivered",
        payment_status="paid",
        country=country,
        delivered_at=DateUtils.now_utc() - timedelta(days=days_ago),
    )


def test_return_eligibility_windows(client, auth_headers, user, make_product, make_order):
    product = make_product()
    recent = delivered_order(make_order, product, user, days_ago=1)
    old_senegal = delivered_order(make_order, product, user, days_ago=5)
    old_abroad = delivered_order(make_order, product, user, days_ago=5, country="FR")
    pending = make_order(product, user_id=user.id)

    def check(order):
        return client.get(f"/api/v1/returns/eligibility?order_id={order.id}", headers=auth_headers).json["data"]

    assert check(recent)["eligible"] is True
    assert check(old_senegal)["reason"] == "return_window_expired"
    assert check(old_abroad)["eligible"] is True
    assert check(pending)["reason"] == "order_not_delivered"
    assert client.get("/api/v1/returns/eligibility", headers=auth_headers).status_code == 400


def test_create_list_and_cancel_return(client, auth_headers, user, make_product, make_order, db_session, notify):
    product = make_product()
    order = delivered_order(make_order, product, user)

    created = client.post(
        "/api/v1/returns",
        json={"order_id": order.id, "reason": REASON, "items": [{"product_id": product.id, "quantity": 1}]},
        headers=auth_headers,
    )

    assert created.status_code == 201
    body = created.json["data"]
    assert body["return_number"].startswith("RET-")
    assert body["order_number"] == order.order_number
    notify["return_created"].assert_called_once()

    listing = client.get("/api/v1/returns", headers=auth_headers).json["data"]
    assert [r["id"] for r in listing["items"]] == [body["id"]]

    assert client.delete(f"/api/v1/returns/{body['id']}", headers=auth_headers).status_code == 200
    db_session.expire_all()
    assert db_session.query(ReturnRequest).count() == 0


def test_return_quantity_cannot_exceed_order(client, auth_headers, user, make_product, make_order, notify):
    product = make_product()
    order = delivered_order(make_order, product, user)

    response = client.post(
        "/api/v1/returns",
        json={"order_id": order.id, "reason": REASON, "items": [{"product_id": product.id, "quantity": 3}]},
        headers=auth_headers,
    )

    assert response.status_code == 400
    notify["return_created"].assert_not_called()


def test_return_rejected_after_window(client, auth_headers, user, make_product, make_order, notify):
    product = make_product()
    order = delivered_order(make_order, product, user, days_ago=4)

    response = client.post(
        "/api/v1/returns",
        json={"order_id": order.id, "reason": REASON, "items": [{"product_id": product.id, "quantity": 1}]},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json["error"]["details"]["reason"] == "return_window_expired"


def test_admin_return_status_change_notifies(
    client, auth_headers, admin_headers, user, make_product, make_order, notify
):
    product = make_product()
    order = delivered_order(make_order, product, user)
    return_id = client.post(
        "/api/v1/returns",
        json={"order_id": order.id, "reason": REASON, "items": [{"product_id": product.id, "quantity": 1}]},
        headers=auth_headers,
    ).json["data"]["id"]

    approved = client.put(
        f"/api/v1/admin/returns/{return_id}",
        json={"status": "approved", "admin_notes": "Retour accepté"},
        headers=admin_headers,
    )
    assert approved.json["data"]["status"] == "approved"

    client.put(f"/api/v1/admin/returns/{return_id}", json={"status": "approved"}, headers=admin_headers)
    notify["return_status_changed"].assert_called_once()

    cancel = client.delete(f"/api/v1/returns/{return_id}", headers=auth_headers)
    assert cancel.status_code == 400


CUSTOM_ORDER = {
    "name": "Mariama Sow",
    "email": "mariama@example.com",
    "phone": "+221 77 000 11 22",
    "type": "Robe",
    "measurements": "Tour de poitrine 92, taille 74",
    "preferences": "Wax bleu, manches longues",
    "budget": 60000,
}


def test_custom_order_and_validation_page(client, db_session, notify):
    response = client.post("/api/v1/custom-orders", json=CUSTOM_ORDER)

    assert response.status_code == 201
    reference = response.json["data"]["reference"]
    custom_order, token = notify["custom_order_created"].call_args[0]
    assert custom_order.reference == reference
    assert custom_order.garment_type == "dress"

    url = f"/api/v1/admin/custom-orders/validate?id={reference}&token={token}&action=confirm"
    page = client.get(url)
    assert page.status_code == 200
    assert "confirmée" in page.get_data(as_text=True)

    db_session.expire_all()
    confirmed = db_session.query(CustomOrder).one()
    assert confirmed.status == "processing"
    assert confirmed.confirmed_at is not None
    assert client.get(url).status_code == 401


def test_custom_order_from_admin_session_is_a_guest_order(client, admin_headers, db_session, notify):
    response = client.post("/api/v1/custom-orders", json=CUSTOM_ORDER, headers=admin_headers)

    assert response.status_code == 201
    assert db_session.query(CustomOrder).one().user_id is None


def test_custom_order_rejects_unknown_garment(client, notify):
    response = client.post("/api/v1/custom-orders", json=dict(CUSTOM_ORDER, type="chapeau"))
    assert response.status_code == 400
    notify["custom_order_created"].assert_not_called()


def test_admin_custom_order_listing(client, admin_headers, notify):
    client.post("/api/v1/custom-orders", json=CUSTOM_ORDER)

    listing = client.get("/api/v1/admin/custom-orders?status=pending", headers=admin_headers).json["data"]

    assert listing["pagination"]["total"] == 1
    assert listing["items"][0]["country"] == "Senegal"


def custom_order_row(db_session, reference, status="processing", confirmed_days_ago=None):
    custom_order = CustomOrder(
        reference=reference,
        name="Mariama Sow",
        email="mariama@example.com",
        phone="+221770001122",
        garment_type="dress",
        measurements="92/74",
        preferences="Wax bleu",
        budget=60000,
        status=status,
        delivery_duration_days=21,
    )
    if confirmed_days_ago is not None:
        custom_order.confirmed_at = DateUtils.now_utc() - timedelta(days=confirmed_days_ago)
    db_session.add(custom_order)
    db_session.commit()
    return custom_order


def test_admin_custom_order_status_changes(client, admin_headers, db_session, notify):
    custom_order = custom_order_row(db_session, "CUS-1", status="pending")
    url = f"/api/v1/admin/custom-orders/{custom_order.id}"

    started = client.put(url, json={"status": "processing"}, headers=admin_headers)
    assert started.status_code == 200
    assert started.json["data"]["confirmed_at"] is not None

    done = client.put(url, json={"status": "completed"}, headers=admin_headers)
    assert done.json["data"]["status"] == "completed"
    notify["custom_order_progress"].assert_called_once()
    assert notify["custom_order_progress"].call_args[0][1] == "completed"

    backwards = client.put(url, json={"status": "processing"}, headers=admin_headers)
    assert backwards.status_code == 422
    assert backwards.json["error"]["details"]["violated_rule"] == "custom_order_status_transition"

    assert client.put(url, json={"status": "shipped"}, headers=admin_headers).status_code == 400
    missing = client.put("/api/v1/admin/custom-orders/999", json={"status": "cancelled"}, headers=admin_headers)
    assert missing.status_code == 404


def test_custom_order_lifecycle_job(client, cron_headers, db_session, notify):
    custom_order_row(db_session, "CUS-FRESH", confirmed_days_ago=2)
    custom_order_row(db_session, "CUS-TEN", confirmed_days_ago=11)
    custom_order_row(db_session, "CUS-TWENTY", confirmed_days_ago=21)
    custom_order_row(db_session, "CUS-PENDING", status="pending")

    assert client.post("/api/v1/cron/update-custom-order-status").status_code == 401

    first = client.post("/api/v1/cron/update-custom-order-status", headers=cron_headers).json["data"]
    assert (first["notified"], first["completed"]) == (2, 1)
    assert first["references"] == ["CUS-TEN", "CUS-TWENTY"]
    assert notify["custom_order_progress"].call_count == 3

    db_session.expire_all()
    statuses = {c.reference: c.status for c in db_session.query(CustomOrder)}
    assert statuses == {
        "CUS-FRESH": "processing",
        "CUS-TEN": "processing",
        "CUS-TWENTY": "completed",
        "CUS-PENDING": "pending",
    }
    notified = db_session.query(CustomOrder).filter_by(reference="CUS-TEN").one()
    assert notified.finalization_notified_at is not None

    again = client.post("/api/v1/cron/update-custom-order-status", headers=cron_headers).json["data"]
    assert (again["notified"], again["completed"]) == (0, 0)


def test_contact_form(client, notify):
    response = client.post(
        "/api/v1/contact",
        json={"name": "Ibou", "email": "ibou@example.com", "subject": "Livraison", "message": "Livrez-vous à Thiès ?"},
    )

    assert response.status_code == 201
    assert response.json["data"]["status"] == "new"
    notify["contact_received"].assert_called_once()


def test_newsletter_upsert(client):
    first = client.post("/api/v1/newsletter", json={"email": "Khady@Example.com"})
    again = client.post("/api/v1/newsletter", json={"email": "khady@example.com", "locale": "en"})

    assert first.status_code == 201
    assert again.status_code == 200
    assert again.json["data"] == {"email": "khady@example.com", "subscribed": True, "locale": "en"}
