from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from nubia.core.exceptions import NotFoundError, ValidationError
from nubia.models import RETURN_STATUSES, Order, ReturnRequest
from nubia.repositories.order_repository import OrderRepository
from nubia.repositories.return_repository import ReturnRepository
from nubia.services import delivery
from nubia.utils.dates import DateUtils
from nubia.utils.formatting import FormattingUtils
import logging

logger = logging.getLogger(__name__)

INELIGIBLE_MESSAGES = {
    "order_not_delivered": "La commande n'a pas encore été livrée",
    "no_delivery_date": "Date de livraison non enregistrée",
    "return_window_expired": "Délai de retour expiré",
}


def eligibility(order: Order, now: Optional[datetime] = None) -> dict:
    """
    Whether a return can still be requested for this order.

    The window starts at delivered_at and lasts return_deadline_days()
    for the shipping country (3 days in Senegal, 14 abroad).
    """
    if order.status != "delivered":
        return _ineligible("order_not_delivered")
    if order.delivered_at is None:
        return _ineligible("no_delivery_date")

    now = now or DateUtils.now_utc()
    deadline = delivery.get_return_deadline(order.country, order.delivered_at)
    hours_remaining = (deadline - now).total_seconds() / 3600
    if hours_remaining < 0:
        result = _ineligible("return_window_expired")
        result["returnDeadline"] = DateUtils.to_iso_string(deadline)
        return result

    return {
        "eligible": True,
        "hoursRemaining": round(hours_remaining, 1),
        "returnDeadline": DateUtils.to_iso_string(deadline),
        "deliveredAt": DateUtils.to_iso_string(order.delivered_at),
    }


def _ineligible(reason: str) -> dict:
    return {"eligible": False, "reason": reason, "message": INELIGIBLE_MESSAGES[reason]}


def serialize_return(return_request: ReturnRequest) -> dict:
    order = return_request.order
    return {
        "id": return_request.id,
        "return_number": return_request.return_number,
        "order_id": return_request.order_id,
        "order_number": order.order_number if order else None,
        "status": return_request.status,
        "reason": return_request.reason,
        "comments": return_request.comments,
        "items": return_request.items or [],
        "admin_notes": return_request.admin_notes,
        "created_at": DateUtils.to_iso_string(return_request.created_at),
        "updated_at": DateUtils.to_iso_string(return_request.updated_at),
    }


class ReturnService:
    def __init__(self, session: Session):
        self.returns = ReturnRepository(session)
        self.orders = OrderRepository(session)

    def _owned_order(self, user_id: int, order_id: int) -> Order:
        order = self.orders.get_with_items(order_id)
        if order is None or order.user_id != user_id:
            raise NotFoundError("Order", str(order_id))
        return order

    def check_eligibility(self, user_id: int, order_id: int) -> dict:
        return eligibility(self._owned_order(user_id, order_id))

    def create(self, user_id: int, data: dict) -> Tuple[ReturnRequest, Order]:
        order = self._owned_order(user_id, data["order_id"])
        status = eligibility(order)
        if not status["eligible"]:
            raise ValidationError(status["message"], details={"reason": status["reason"]})

        ordered = {}
        for item in order.items:
            ordered[item.product_id] = ordered.get(item.product_id, 0) + item.quantity
        for item in data["items"]:
            if item["quantity"] > ordered.get(item["product_id"], 0):
                raise ValidationError(
                    f"Product {item['product_id']} was not ordered in that quantity",
                    field_errors=[{"field": "items", "message": "Quantity exceeds ordered quantity"}],
                )

        return_request = self.returns.add(
            ReturnRequest(
                return_number=FormattingUtils.return_number(),
                order_id=order.id,
                user_id=user_id,
                reason=data["reason"],
                comments=data.get("comments"),
                items=data["items"],
                status="pending",
            )
        )
        return_request.order = order
        logger.info(f"Return {return_request.return_number} requested for order {order.order_number}")
        return return_request, order

    def list_for_user(self, user_id: int, status: Optional[str], limit: int, offset: int) -> dict:
        rows, total = self.returns.list_page(user_id=user_id, status=status, limit=limit, offset=offset)
        return {
            "items": [serialize_return(r) for r in rows],
            "pagination": {"total": total, "limit": limit, "offset": offset, "count": len(rows)},
        }

    def get_owned(self, user_id: int, return_id: int, for_update: bool = False) -> ReturnRequest:
        return_request = self.returns.get_with_order(return_id, for_update=for_update)
        if return_request is None or return_request.user_id != user_id:
            raise NotFoundError("Return", str(return_id))
        return return_request

    def cancel(self, user_id: int, return_id: int) -> None:
        return_request = self.get_owned(user_id, return_id, for_update=True)
        if return_request.status != "pending":
            raise ValidationError(f"Only pending returns can be cancelled (current status: {return_request.status})")
        self.returns.delete(return_request)
        logger.info(f"Return {return_request.return_number} cancelled by user {user_id}")

    # Back office

    def admin_list(self, status: Optional[str], limit: int, offset: int) -> dict:
        rows, total = self.returns.list_page(status=status, limit=limit, offset=offset)
        return {
            "items": [serialize_return(r) for r in rows],
            "pagination": {"total": total, "limit": limit, "offset": offset, "count": len(rows)},
        }

    def update_status(self, return_id: int, data: dict) -> Tuple[ReturnRequest, bool]:
        """Returns the request and whether its status changed (the customer is then emailed)."""
        return_request = self.returns.get_with_order(return_id, for_update=True)
        if return_request is None:
            raise NotFoundError("Return", str(return_id))

        new_status = data["status"]
        if new_status not in RETURN_STATUSES:
            raise ValidationError(f"Invalid return status: {new_status}")

        changed = new_status != return_request.status
        return_request.status = new_status
        if "admin_notes" in data:
            return_request.admin_notes = data["admin_notes"]
        return_request.updated_at = DateUtils.now_utc()
        self.returns.flush()
        logger.info(f"Return {return_request.return_number} is now {new_status}")
        return return_request, changed
