import logging

from flask import Blueprint, request

from nubia.core.config import get_config
from nubia.core.rate_limit import DEFAULT, rate_limit
from nubia.core.security import admin_required, get_current_user_id, get_optional_user_id
from nubia.db import session_scope
from nubia.routes.schemas import CodOrderSchema
from nubia.routes.utils import idempotency, load_body, notifier, parse_int, success_response
from nubia.services.order_service import OrderService
from nubia.services.stock_service import StockService

logger = logging.getLogger(__name__)

orders_bp = Blueprint("orders", __name__)

_cod_schema = CodOrderSchema()


@orders_bp.route("", methods=["GET"])
def list_orders():
    """List the current user's orders, most recent first."""
    user_id = get_current_user_id()
    api = get_config().api
    limit = parse_int(
        request.args.get("limit"), default=api.default_page_size, min_val=1, max_val=api.max_page_size,
        field_name="limit",
    )
    after = parse_int(request.args.get("after"), default=None, min_val=1, field_name="after")

    with session_scope() as session:
        result = OrderService(session, get_config()).list_for_user(user_id, limit, after)
    return success_response(result)


@orders_bp.route("/<int:order_id>", methods=["GET"])
def get_order(order_id: int):
    """Order detail with items, delivery countdown and return eligibility."""
    user_id = get_current_user_id()
    with session_scope() as session:
        order = OrderService(session, get_config()).get_for_user(user_id, order_id)
    return success_response(order)


@orders_bp.route("/cod", methods=["POST"])
@rate_limit("orders:cod", DEFAULT)
def create_cod_order():
    """
    Cash-on-delivery order, guests welcome.

    Stock is taken at once; the manager gets a WhatsApp message with
    confirm/cancel links and the customer a confirmation email, both
    after the transaction has committed.
    """
    store, key = idempotency("orders:cod")
    cached = store.get(key)
    if cached is not None:
        logger.info(f"Replaying COD order {cached.get('order_number')} for idempotency key")
        return success_response(cached)

    data = load_body(_cod_schema)
    user_id = get_optional_user_id()

    with session_scope() as session:
        order, token = OrderService(session, get_config()).create_cod_order(user_id, data)
        summary = {
            "id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "payment_status": order.payment_status,
            "total": order.total,
        }

    store.put(key, summary)

    notify = notifier()
    notify.manager_new_order(order, token, headline="NOUVELLE COMMANDE - PAIEMENT À LA LIVRAISON")
    notify.order_confirmation(order)

    return success_response(summary, "Order placed successfully.", 201)


@orders_bp.route("/<int:order_id>/finalize-stock", methods=["POST"])
@admin_required
def finalize_stock(order_id: int):
    with session_scope() as session:
        count = StockService(session).finalize(order_id)
    return success_response({"order_id": order_id, "finalized": count})


@orders_bp.route("/<int:order_id>/release-stock", methods=["POST"])
@admin_required
def release_stock(order_id: int):
    with session_scope() as session:
        count = StockService(session).release(order_id)
    return success_response({"order_id": order_id, "released": count})
