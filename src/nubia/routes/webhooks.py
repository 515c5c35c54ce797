import json
import logging

from flask import Blueprint, jsonify, request

from nubia.core.config import get_config
from nubia.core.exceptions import ValidationError
from nubia.db import session_scope
from nubia.routes.payments import notify_paid
from nubia.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)


def _paydunya_payload() -> dict:
    """PayDunya posts JSON, or a form with the JSON document in its `data` field."""
    if request.is_json:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            raise ValidationError("Malformed webhook body")
        return payload

    raw = request.form.get("data")
    if not raw:
        raise ValidationError("Missing webhook data")
    try:
        data = json.loads(raw)
    except ValueError:
        raise ValidationError("Malformed webhook data")
    return {"data": data}


def _apply(gateway: str, payload: dict, **verification):
    with session_scope() as session:
        outcome = PaymentService(session, get_config()).handle_webhook(gateway, payload, **verification)
        body = {
            "received": True,
            "order_number": outcome.order.order_number,
            "status": outcome.status,
        }
    notify_paid(outcome)
    return jsonify(body), 200


@webhooks_bp.route("/paydunya", methods=["POST"])
def paydunya_webhook():
    return _apply("paydunya", _paydunya_payload())


@webhooks_bp.route("/airwallex", methods=["POST"])
def airwallex_webhook():
    """Signed with HMAC-SHA256 over x-timestamp + the raw body, so the body is read untouched."""
    raw_body = request.get_data(cache=True)
    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        raise ValidationError("Malformed webhook body")
    return _apply(
        "airwallex",
        payload,
        raw_body=raw_body,
        signature=request.headers.get("x-signature"),
        timestamp=request.headers.get("x-timestamp"),
    )
