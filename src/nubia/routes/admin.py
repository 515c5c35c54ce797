"""
Back-office endpoints. Everything here needs an admin token except login
and the two validate pages, which are opened from the manager's WhatsApp
message and authenticate with a one-time token instead.
"""
import logging

from flask import Blueprint, render_template, request

from nubia.core.config import get_config
from nubia.core.exceptions import BaseAPIException
from nubia.core.rate_limit import AUTH, rate_limit
from nubia.core.security import admin_required
from nubia.db import session_scope
from nubia.routes.schemas import (
    AdminLoginSchema,
    CustomOrderStatusSchema,
    DeliveryUpdateSchema,
    ProductCreateSchema,
    ProductUpdateSchema,
    PromoCodeSchema,
    ReturnStatusSchema,
    VariantStockSchema,
)
from nubia.routes.utils import load_body, notifier, page_args, parse_int, success_response
from nubia.services.admin_service import AdminService, admin_login
from nubia.services.catalog_service import CatalogService
from nubia.services.custom_order_service import CustomOrderService, serialize_custom_order
from nubia.services.order_service import OrderService, serialize_order
from nubia.services.promo_service import PromoService, serialize_promo
from nubia.services.return_service import ReturnService, serialize_return
from nubia.services.review_service import ReviewService
from nubia.services.stock_service import StockService

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)

_login_schema = AdminLoginSchema()
_delivery_schema = DeliveryUpdateSchema()
_promo_schema = PromoCodeSchema()
_return_status_schema = ReturnStatusSchema()
_product_create_schema = ProductCreateSchema()
_product_update_schema = ProductUpdateSchema()
_variant_stock_schema = VariantStockSchema()
_custom_order_status_schema = CustomOrderStatusSchema()

VALIDATION_PAGES = {
    "confirm": ("Commande confirmée", "La commande {ref} a été confirmée."),
    "cancel": ("Commande annulée", "La commande {ref} a été annulée."),
}


def _validation_page(title: str, message: str, ok: bool, action=None, reference=None, status: int = 200):
    html = render_template(
        "validation_result.html", title=title, message=message, ok=ok, action=action, reference=reference
    )
    return html, status, {"Content-Type": "text/html; charset=utf-8"}


def _run_validation(validate, reference: str, token: str, action: str):
    """Apply a confirm/cancel link and render the outcome as an HTML page."""
    try:
        with session_scope() as session:
            record = validate(session, reference, token, action)
    except BaseAPIException as e:
        logger.info(f"Validation link for {reference} refused: {e.message}")
        return None, _validation_page("Lien invalide", e.message, False, action, reference, e.status_code)

    title, message = VALIDATION_PAGES[action]
    return record, _validation_page(title, message.format(ref=reference), True, action, reference)


# ---------------------------------------------------------------------- #
# Session and dashboard                                                   #
# ---------------------------------------------------------------------- #

@admin_bp.route("/login", methods=["POST"])
@rate_limit("admin:login", AUTH)
def login():
    data = load_body(_login_schema)
    return success_response(admin_login(get_config(), data["username"], data["password"]))


@admin_bp.route("/stats", methods=["GET"])
@admin_required
def stats():
    with session_scope() as session:
        result = AdminService(session).stats()
    return success_response(result)


# ---------------------------------------------------------------------- #
# Orders                                                                  #
# ---------------------------------------------------------------------- #

@admin_bp.route("/orders", methods=["GET"])
@admin_required
def list_orders():
    limit, offset = page_args()
    with session_scope() as session:
        result = OrderService(session, get_config()).admin_list(
            status=request.args.get("status") or None,
            payment_status=request.args.get("payment_status") or None,
            search=request.args.get("q") or None,
            limit=limit,
            offset=offset,
        )
    return success_response(result)


@admin_bp.route("/orders/<int:order_id>/delivery", methods=["PUT"])
@admin_required
def update_delivery(order_id: int):
    """Status, delivery duration, ETA and tracking; emails the customer on ship/deliver."""
    data = load_body(_delivery_schema)
    with session_scope() as session:
        order, notify = OrderService(session, get_config()).update_delivery(order_id, data)
        body = serialize_order(order, detail=True)

    if notify:
        notifier().order_status_update(order)
    return success_response(body, "Delivery updated.")


@admin_bp.route("/orders/validate", methods=["GET"])
def validate_order():
    reference = request.args.get("id", "")
    action = request.args.get("action", "")

    def apply(session, ref, token, act):
        return OrderService(session, get_config()).validate_link(ref, token, act)

    order, page = _run_validation(apply, reference, request.args.get("token", ""), action)
    if order is not None:
        notifier().order_status_update(order)
    return page


# ---------------------------------------------------------------------- #
# Promo codes                                                             #
# ---------------------------------------------------------------------- #

@admin_bp.route("/promos", methods=["GET"])
@admin_required
def list_promos():
    with session_scope() as session:
        promos = [serialize_promo(p) for p in PromoService(session).list_codes()]
    return success_response({"items": promos, "count": len(promos)})


@admin_bp.route("/promos", methods=["POST"])
@admin_required
def create_promo():
    data = load_body(_promo_schema)
    with session_scope() as session:
        body = serialize_promo(PromoService(session).create(data))
    return success_response(body, "Promo code created.", 201)


@admin_bp.route("/promos/<int:promo_id>", methods=["PUT"])
@admin_required
def update_promo(promo_id: int):
    data = load_body(_promo_schema, partial=True)
    with session_scope() as session:
        body = serialize_promo(PromoService(session).update(promo_id, data))
    return success_response(body, "Promo code updated.")


@admin_bp.route("/promos/<int:promo_id>", methods=["DELETE"])
@admin_required
def delete_promo(promo_id: int):
    with session_scope() as session:
        PromoService(session).delete(promo_id)
    return success_response({"id": promo_id}, "Promo code deleted.")


# ---------------------------------------------------------------------- #
# Stock                                                                   #
# ---------------------------------------------------------------------- #

@admin_bp.route("/reservations", methods=["GET"])
@admin_required
def list_reservations():
    limit = parse_int(request.args.get("limit"), 100, 1, 500, "limit")
    with session_scope() as session:
        result = StockService(session).list_reservations(request.args.get("status") or None, limit)
    return success_response(result)


@admin_bp.route("/products", methods=["POST"])
@admin_required
def create_product():
    data = load_body(_product_create_schema)
    with session_scope() as session:
        body = CatalogService(session).create_product(data)
    return success_response(body, "Product created.", 201)


@admin_bp.route("/products/<int:product_id>", methods=["PUT"])
@admin_required
def update_product(product_id: int):
    data = load_body(_product_update_schema, partial=True)
    with session_scope() as session:
        body = CatalogService(session).update_product(product_id, data)
    return success_response(body, "Product updated.")


@admin_bp.route("/variants/<int:variant_id>/stock", methods=["PUT"])
@admin_required
def update_variant_stock(variant_id: int):
    data = load_body(_variant_stock_schema)
    with session_scope() as session:
        body = CatalogService(session).update_variant_stock(variant_id, data["stock"])
    return success_response(body, "Stock updated.")


# ---------------------------------------------------------------------- #
# Returns and reviews                                                     #
# ---------------------------------------------------------------------- #

@admin_bp.route("/returns", methods=["GET"])
@admin_required
def list_returns():
    limit, offset = page_args()
    with session_scope() as session:
        result = ReturnService(session).admin_list(request.args.get("status") or None, limit, offset)
    return success_response(result)


@admin_bp.route("/returns/<int:return_id>", methods=["PUT"])
@admin_required
def update_return(return_id: int):
    data = load_body(_return_status_schema)
    with session_scope() as session:
        return_request, changed = ReturnService(session).update_status(return_id, data)
        order = return_request.order
        body = serialize_return(return_request)

    if changed:
        notifier().return_status_changed(return_request, order)
    return success_response(body, "Return updated.")


@admin_bp.route("/reviews", methods=["GET"])
@admin_required
def list_reviews():
    limit, offset = page_args()
    with session_scope() as session:
        result = ReviewService(session).admin_list(limit, offset)
    return success_response(result)


@admin_bp.route("/reviews/<int:review_id>", methods=["DELETE"])
@admin_required
def delete_review(review_id: int):
    with session_scope() as session:
        ReviewService(session).delete(review_id)
    return success_response({"id": review_id}, "Review deleted.")


# ---------------------------------------------------------------------- #
# Custom orders                                                           #
# ---------------------------------------------------------------------- #

@admin_bp.route("/custom-orders", methods=["GET"])
@admin_required
def list_custom_orders():
    limit, offset = page_args()
    with session_scope() as session:
        result = CustomOrderService(session).admin_list(request.args.get("status") or None, limit, offset)
    return success_response(result)


@admin_bp.route("/custom-orders/<int:custom_order_id>", methods=["PUT"])
@admin_required
def update_custom_order(custom_order_id: int):
    data = load_body(_custom_order_status_schema)
    with session_scope() as session:
        custom_order, changed = CustomOrderService(session).update_status(custom_order_id, data["status"])
        body = serialize_custom_order(custom_order)

    if changed and custom_order.status == "completed":
        notifier().custom_order_progress(custom_order, "completed")
    return success_response(body, "Custom order updated.")


@admin_bp.route("/custom-orders/validate", methods=["GET"])
def validate_custom_order():
    def apply(session, ref, token, act):
        return CustomOrderService(session).validate_link(ref, token, act)

    _, page = _run_validation(
        apply, request.args.get("id", ""), request.args.get("token", ""), request.args.get("action", "")
    )
    return page
