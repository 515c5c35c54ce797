import logging

from flask import Blueprint, request

from nubia.core.config import get_config
from nubia.core.security import cron_required
from nubia.db import session_scope
from nubia.routes.utils import notifier, success_response
from nubia.services.custom_order_service import CustomOrderService
from nubia.services.order_service import OrderService
from nubia.services.stock_service import StockService

logger = logging.getLogger(__name__)

cron_bp = Blueprint("cron", __name__)


@cron_bp.route("/cleanup-reservations", methods=["GET", "POST"])
@cron_required
def cleanup_reservations():
    """POST releases expired holds and purges abandoned carts; GET only reports."""
    with session_scope() as session:
        stock = StockService(session)
        if request.method == "GET":
            return success_response({"stats": stock.stats()})
        result = stock.cleanup()
    return success_response(result, "Cleanup completed.")


@cron_bp.route("/update-order-status", methods=["POST"])
@cron_required
def update_order_status():
    """Advance processing -> shipped -> delivered and email each customer."""
    with session_scope() as session:
        moved = OrderService(session, get_config()).advance_lifecycle()

    notify = notifier()
    emailed = 0
    for order in moved["shipped"] + moved["delivered"]:
        emailed += int(notify.order_status_update(order))

    return success_response(
        {
            "shipped": len(moved["shipped"]),
            "delivered": len(moved["delivered"]),
            "notified": emailed,
            "orders": [o.order_number for o in moved["shipped"] + moved["delivered"]],
        }
    )


@cron_bp.route("/update-custom-order-status", methods=["POST"])
@cron_required
def update_custom_order_status():
    """Finishing notice ten days after confirmation, completion after twenty."""
    with session_scope() as session:
        moved = CustomOrderService(session).advance_lifecycle()

    notify = notifier()
    emailed = 0
    for custom_order in moved["finishing"]:
        emailed += int(notify.custom_order_progress(custom_order, "finishing"))
    for custom_order in moved["completed"]:
        emailed += int(notify.custom_order_progress(custom_order, "completed"))

    return success_response(
        {
            "notified": len(moved["finishing"]),
            "completed": len(moved["completed"]),
            "emails_sent": emailed,
            "references": sorted({c.reference for c in moved["finishing"] + moved["completed"]}),
        }
    )
