import logging

from flask import Blueprint

from nubia.core.security import get_current_user_id
from nubia.db import session_scope
from nubia.routes.schemas import AddCartItemSchema, UpdateCartItemSchema
from nubia.routes.utils import load_body, success_response
from nubia.services.cart_service import CartService

logger = logging.getLogger(__name__)

cart_bp = Blueprint("cart", __name__)

_add_schema = AddCartItemSchema()
_update_schema = UpdateCartItemSchema()


@cart_bp.route("", methods=["GET"])
def get_cart():
    """Return the current user's cart, creating it if it doesn't exist."""
    user_id = get_current_user_id()
    with session_scope() as session:
        cart = CartService(session).get_cart(user_id)
    return success_response(cart)


@cart_bp.route("/items", methods=["POST"])
def add_item():
    """Add a product (or more of it) to the cart."""
    user_id = get_current_user_id()
    data = load_body(_add_schema)
    with session_scope() as session:
        cart = CartService(session).add_item(user_id, data["product_id"], data["quantity"], data["variant_id"])
    return success_response(cart, "Item added to cart.", 201)


@cart_bp.route("/items/<int:item_id>", methods=["PUT"])
def update_item(item_id: int):
    """Set a line's quantity; 0 removes the line."""
    user_id = get_current_user_id()
    data = load_body(_update_schema)
    with session_scope() as session:
        cart = CartService(session).update_item(user_id, item_id, data["quantity"])
    return success_response(cart)


@cart_bp.route("/items/<int:item_id>", methods=["DELETE"])
def remove_item(item_id: int):
    user_id = get_current_user_id()
    with session_scope() as session:
        cart = CartService(session).remove_item(user_id, item_id)
    return success_response(cart, "Item removed from cart.")


@cart_bp.route("", methods=["DELETE"])
def clear_cart():
    user_id = get_current_user_id()
    with session_scope() as session:
        cart = CartService(session).clear(user_id)
    return success_response(cart, "Cart cleared.")
