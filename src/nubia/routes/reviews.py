from flask import Blueprint, abort, request

from nubia.core.security import get_current_user_id
from nubia.db import session_scope
from nubia.routes.schemas import ReviewSchema
from nubia.routes.utils import load_body, parse_int, success_response
from nubia.services.review_service import ReviewService

reviews_bp = Blueprint("reviews", __name__)

_review_schema = ReviewSchema()


@reviews_bp.route("", methods=["GET"])
def list_reviews():
    product_id = parse_int(request.args.get("product_id"), min_val=1, field_name="product_id")
    if product_id is None:
        abort(400, "product_id is required")
    page = parse_int(request.args.get("page"), default=1, min_val=1, field_name="page")
    limit = parse_int(request.args.get("limit"), default=10, min_val=1, max_val=50, field_name="limit")

    with session_scope() as session:
        result = ReviewService(session).list_for_product(product_id, page, limit)
    return success_response(result)


@reviews_bp.route("", methods=["POST"])
def create_review():
    user_id = get_current_user_id()
    data = load_body(_review_schema)
    with session_scope() as session:
        review = ReviewService(session).create(user_id, data)
    return success_response(review, "Review published.", 201)
