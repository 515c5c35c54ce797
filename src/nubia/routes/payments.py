import logging

from flask import Blueprint, abort, request

from nubia.core.config import get_config
from nubia.core.exceptions import PaymentGatewayError
from nubia.core.rate_limit import PAYMENT, rate_limit
from nubia.core.security import get_optional_user_id
from nubia.db import session_scope
from nubia.routes.schemas import PaymentInitSchema
from nubia.routes.utils import idempotency, load_body, notifier, parse_int, success_response
from nubia.services.payment_service import PaymentOutcome, PaymentService
from nubia.services.payments.registry import currency_for, gateways_for, normalize_country
from nubia.utils.dates import DateUtils

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__)

_init_schema = PaymentInitSchema()


def notify_paid(outcome: PaymentOutcome) -> None:
    """Confirmation email and manager WhatsApp for an order that just became paid."""
    if not outcome.newly_paid:
        return
    notify = notifier()
    notify.order_confirmation(outcome.order)
    notify.manager_new_order(outcome.order, outcome.validation_token, headline="PAIEMENT CONFIRMÉ - NUBIA AURA")


@payments_bp.route("/methods", methods=["GET"])
def payment_methods():
    """Gateways and currency offered for a shipping country."""
    country = normalize_country(request.args.get("country"))
    return success_response(
        {"country": country, "currency": currency_for(country), "gateways": list(gateways_for(country))}
    )


@payments_bp.route("/initialize", methods=["POST"])
@rate_limit("payments:init", PAYMENT)
def initialize():
    """
    Create the order with its stock holds, then open a gateway session.

    A refused session still commits the order as payment_failed (holds
    released) before the 502 goes back, so the attempt stays traceable.
    """
    store, key = idempotency("payments:init")
    cached = store.get(key)
    if cached is not None:
        logger.info(f"Replaying payment initialization for order {cached.get('order_number')}")
        return success_response(cached)

    data = load_body(_init_schema)
    user_id = get_optional_user_id()

    with session_scope() as session:
        result = PaymentService(session, get_config()).initialize(user_id, data)
        order = result.order
        body = {
            "order_id": order.id,
            "order_number": order.order_number,
            "gateway": result.session.gateway,
            "currency": order.currency,
            "amount": float(order.charged_amount) if order.charged_amount is not None else order.total,
            "redirect_url": result.session.redirect_url,
            "transaction_id": result.session.transaction_id,
            "order_confirmed": result.session.order_confirmed,
        }

    if not result.session.success:
        raise PaymentGatewayError(
            result.session.gateway,
            result.session.error or "Payment could not be initialized",
            result.session.error_code,
        )

    store.put(key, body)

    if result.session.order_confirmed:
        notify = notifier()
        notify.manager_new_order(
            order, result.validation_token, headline="NOUVELLE COMMANDE - PAIEMENT À LA LIVRAISON"
        )
        notify.order_confirmation(order)

    return success_response(body, "Payment initialized.", 201)


@payments_bp.route("/verify", methods=["GET"])
def verify():
    """Payment status for the return page; polls the gateway while the webhook is outstanding."""
    order_id = parse_int(request.args.get("order_id"), min_val=1, field_name="order_id")
    if order_id is None:
        abort(400, "order_id is required")
    user_id = get_optional_user_id()

    with session_scope() as session:
        outcome = PaymentService(session, get_config()).verify(order_id, user_id)
        order = outcome.order
        body = {
            "order_id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "payment_status": order.payment_status,
            "transaction_id": order.transaction_id,
            "paid_at": DateUtils.to_iso_string(order.paid_at),
        }

    notify_paid(outcome)
    return success_response(body)
