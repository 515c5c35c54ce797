from flask import Blueprint

from nubia.core.security import get_current_user_id
from nubia.db import session_scope
from nubia.routes.schemas import WishlistItemSchema
from nubia.routes.utils import load_body, success_response
from nubia.services.wishlist_service import WishlistService

wishlist_bp = Blueprint("wishlist", __name__)

_item_schema = WishlistItemSchema()


@wishlist_bp.route("", methods=["GET"])
def get_wishlist():
    user_id = get_current_user_id()
    with session_scope() as session:
        wishlist = WishlistService(session).get(user_id)
    return success_response(wishlist)


@wishlist_bp.route("", methods=["POST"])
def add_to_wishlist():
    user_id = get_current_user_id()
    data = load_body(_item_schema)
    with session_scope() as session:
        wishlist = WishlistService(session).add(user_id, data["product_id"])
    return success_response(wishlist, "Saved to wishlist.", 201)


@wishlist_bp.route("/<int:product_id>", methods=["DELETE"])
def remove_from_wishlist(product_id: int):
    user_id = get_current_user_id()
    with session_scope() as session:
        wishlist = WishlistService(session).remove(user_id, product_id)
    return success_response(wishlist, "Removed from wishlist.")
