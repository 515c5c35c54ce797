import logging

from flask import Blueprint

from nubia.core.config import get_config
from nubia.core.security import get_current_user_id
from nubia.db import session_scope
from nubia.routes.schemas import CheckoutSchema, QuoteSchema
from nubia.routes.utils import load_body, success_response
from nubia.services.order_service import OrderService, serialize_order
from nubia.services.quote_service import QuoteService

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__)

_quote_schema = QuoteSchema()
_checkout_schema = CheckoutSchema()


@checkout_bp.route("/quote", methods=["POST"])
def quote():
    """Price a basket from database prices: subtotal, discount, shipping, tax, total."""
    data = load_body(_quote_schema)
    with session_scope() as session:
        result = QuoteService(session).build(data["items"], data["shipping_method"], data["promo_code"])
    return success_response(result.to_dict())


@checkout_bp.route("/create", methods=["POST"])
def create():
    """
    Authenticated checkout, one transaction:
      1. Re-price the basket and check stock (rows locked)
      2. Insert the order and its lines, count the promo use
      3. Hold stock for the payment window
      4. Empty the cart
    """
    user_id = get_current_user_id()
    data = load_body(_checkout_schema)
    with session_scope() as session:
        order = OrderService(session, get_config()).create_checkout(user_id, data)
        summary = serialize_order(order, detail=True)
    return success_response(summary, "Order created.", 201)
