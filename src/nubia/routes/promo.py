from flask import Blueprint

from nubia.db import session_scope
from nubia.routes.schemas import PromoValidateSchema
from nubia.routes.utils import load_body, success_response
from nubia.services.promo_service import PromoService

promo_bp = Blueprint("promo", __name__)

_validate_schema = PromoValidateSchema()


@promo_bp.route("/validate", methods=["POST"])
def validate_code():
    """Check a code against an order amount; rejected codes answer with valid=false."""
    data = load_body(_validate_schema)
    with session_scope() as session:
        result = PromoService(session).evaluate(data["code"], data["order_amount"])
    return success_response(result.to_dict())
