from flask import Blueprint

from nubia.core.rate_limit import FORM, rate_limit
from nubia.core.security import get_optional_user_id
from nubia.db import session_scope
from nubia.routes.schemas import CustomOrderSchema
from nubia.routes.utils import load_body, notifier, success_response
from nubia.services.custom_order_service import CustomOrderService

custom_orders_bp = Blueprint("custom_orders", __name__)

_custom_order_schema = CustomOrderSchema()


@custom_orders_bp.route("", methods=["POST"])
@rate_limit("custom-orders", FORM)
def create_custom_order():
    data = load_body(_custom_order_schema)
    user_id = get_optional_user_id()
    with session_scope() as session:
        custom_order, token = CustomOrderService(session).create(user_id, data)
        body = {"id": custom_order.id, "reference": custom_order.reference}

    notifier().custom_order_created(custom_order, token)
    return success_response(body, "Custom order received.", 201)
