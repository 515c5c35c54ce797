from flask import Blueprint

from nubia.core.security import get_current_user_id
from nubia.db import session_scope
from nubia.routes.utils import success_response
from nubia.services.user_service import UserService

users_bp = Blueprint("users", __name__)


@users_bp.route("/profile", methods=["GET"])
def profile():
    user_id = get_current_user_id()
    with session_scope() as session:
        body = UserService(session).profile(user_id)
    return success_response(body)


@users_bp.route("/stats", methods=["GET"])
def stats():
    """Spending and order counters for the account page."""
    user_id = get_current_user_id()
    with session_scope() as session:
        body = UserService(session).stats(user_id)
    return success_response(body)
