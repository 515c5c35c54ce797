import logging

from flask import Blueprint, abort, request

from nubia.core.security import get_current_user_id
from nubia.db import session_scope
from nubia.routes.schemas import ReturnRequestSchema
from nubia.routes.utils import load_body, notifier, page_args, parse_int, success_response
from nubia.services.return_service import ReturnService, serialize_return

logger = logging.getLogger(__name__)

returns_bp = Blueprint("returns", __name__)

_return_schema = ReturnRequestSchema()


@returns_bp.route("/eligibility", methods=["GET"])
def eligibility():
    user_id = get_current_user_id()
    order_id = parse_int(request.args.get("order_id"), min_val=1, field_name="order_id")
    if order_id is None:
        abort(400, "order_id is required")
    with session_scope() as session:
        result = ReturnService(session).check_eligibility(user_id, order_id)
    return success_response(result)


@returns_bp.route("", methods=["POST"])
def create_return():
    user_id = get_current_user_id()
    data = load_body(_return_schema)
    with session_scope() as session:
        return_request, order = ReturnService(session).create(user_id, data)
        body = serialize_return(return_request)

    notifier().return_created(return_request, order)
    return success_response(body, "Return request submitted.", 201)


@returns_bp.route("", methods=["GET"])
def list_returns():
    user_id = get_current_user_id()
    limit, offset = page_args()
    with session_scope() as session:
        result = ReturnService(session).list_for_user(user_id, request.args.get("status") or None, limit, offset)
    return success_response(result)


@returns_bp.route("/<int:return_id>", methods=["GET"])
def get_return(return_id: int):
    user_id = get_current_user_id()
    with session_scope() as session:
        body = serialize_return(ReturnService(session).get_owned(user_id, return_id))
    return success_response(body)


@returns_bp.route("/<int:return_id>", methods=["DELETE"])
def cancel_return(return_id: int):
    """Only pending requests can be withdrawn."""
    user_id = get_current_user_id()
    with session_scope() as session:
        ReturnService(session).cancel(user_id, return_id)
    return success_response({"id": return_id}, "Return request cancelled.")
