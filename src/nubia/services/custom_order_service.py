from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from nubia.core.exceptions import BusinessLogicError, NotFoundError, ValidationError
from nubia.models import CUSTOM_ORDER_STATUSES, CustomOrder
from nubia.repositories.custom_order_repository import CustomOrderRepository
from nubia.services import delivery
from nubia.services.notifications.tokens import ValidationTokenService
from nubia.utils.dates import DateUtils
from nubia.utils.formatting import FormattingUtils
import logging

logger = logging.getLogger(__name__)

# French labels from the storefront form map onto the stored English type
GARMENT_TYPES = {
    "dress": "dress",
    "robe": "dress",
    "suit": "suit",
    "costume": "suit",
    "shirt": "shirt",
    "chemise": "shirt",
    "pants": "pants",
    "pantalon": "pants",
    "skirt": "skirt",
    "jupe": "skirt",
    "other": "other",
    "autre": "other",
}

VALIDATION_OUTCOMES = {"confirm": "processing", "cancel": "cancelled"}

ALLOWED_TRANSITIONS = {
    "pending": {"processing", "cancelled"},
    "processing": {"completed", "cancelled"},
}

# Counted from confirmation
FINISHING_NOTICE_AFTER = timedelta(days=10)
COMPLETE_AFTER = timedelta(days=20)


def normalize_garment_type(value: str) -> str:
    garment = GARMENT_TYPES.get((value or "").strip().lower())
    if garment is None:
        raise ValidationError(
            f"Unknown garment type: {value}",
            field_errors=[{"field": "type", "message": "Must be one of dress, suit, shirt, pants, skirt, other"}],
        )
    return garment


def serialize_custom_order(custom_order: CustomOrder) -> dict:
    return {
        "id": custom_order.id,
        "reference": custom_order.reference,
        "name": custom_order.name,
        "email": custom_order.email,
        "phone": custom_order.phone,
        "type": custom_order.garment_type,
        "measurements": custom_order.measurements,
        "preferences": custom_order.preferences,
        "budget": custom_order.budget,
        "country": custom_order.country,
        "status": custom_order.status,
        "delivery_duration_days": custom_order.delivery_duration_days,
        "estimated_delivery_date": DateUtils.to_iso_string(custom_order.estimated_delivery_date),
        "confirmed_at": DateUtils.to_iso_string(custom_order.confirmed_at),
        "finalization_notified_at": DateUtils.to_iso_string(custom_order.finalization_notified_at),
        "completed_at": DateUtils.to_iso_string(custom_order.completed_at),
        "created_at": DateUtils.to_iso_string(custom_order.created_at),
    }


class CustomOrderService:
    """Made-to-measure requests, confirmed or declined by the atelier from WhatsApp."""

    def __init__(self, session: Session):
        self.custom_orders = CustomOrderRepository(session)
        self.tokens = ValidationTokenService(session)

    def create(self, user_id: Optional[int], data: dict) -> Tuple[CustomOrder, str]:
        country = data.get("country") or "Senegal"
        duration = delivery.calculate_delivery_duration(country, is_custom_order=True)
        custom_order = self.custom_orders.add(
            CustomOrder(
                reference=FormattingUtils.custom_order_reference(),
                user_id=user_id,
                name=data["name"],
                email=data["email"],
                phone=data["phone"],
                garment_type=normalize_garment_type(data["type"]),
                measurements=data["measurements"],
                preferences=data["preferences"],
                budget=data["budget"],
                country=country,
                status="pending",
                delivery_duration_days=duration,
                estimated_delivery_date=delivery.estimated_delivery_date(DateUtils.now_utc(), duration),
            )
        )
        token = self.tokens.issue(custom_order_id=custom_order.id)
        logger.info(
            f"Custom order {custom_order.reference} ({custom_order.garment_type}) received, "
            f"delivery in {duration} days"
        )
        return custom_order, token

    def validate_link(self, reference: str, token: str, action: str) -> CustomOrder:
        new_status = VALIDATION_OUTCOMES.get(action)
        if new_status is None:
            raise ValidationError("action must be confirm or cancel")

        custom_order = self.custom_orders.get_by_reference(reference, for_update=True)
        if custom_order is None:
            raise NotFoundError("Custom order", reference)
        self.tokens.consume(token, custom_order_id=custom_order.id)

        if custom_order.status != "pending":
            raise BusinessLogicError(
                f"Custom order {reference} is already {custom_order.status}",
                rule="custom_order_already_validated",
            )

        self._apply_status(custom_order, new_status, DateUtils.now_utc())
        self.custom_orders.flush()
        logger.info(f"Custom order {reference} {new_status} from validation link")
        return custom_order

    def admin_list(self, status: Optional[str], limit: int, offset: int) -> dict:
        rows, total = self.custom_orders.list_page(status, limit, offset)
        return {
            "items": [serialize_custom_order(c) for c in rows],
            "pagination": {"total": total, "limit": limit, "offset": offset, "count": len(rows)},
        }

    def update_status(self, custom_order_id: int, new_status: str) -> Tuple[CustomOrder, bool]:
        """Back-office status change. Returns the order and whether its status moved."""
        if new_status not in CUSTOM_ORDER_STATUSES:
            raise ValidationError(f"Invalid custom order status: {new_status}")
        custom_order = self.custom_orders.get_or_404(custom_order_id, for_update=True)
        if custom_order.status == new_status:
            return custom_order, False
        if new_status not in ALLOWED_TRANSITIONS.get(custom_order.status, set()):
            raise BusinessLogicError(
                f"Cannot move custom order {custom_order.reference} from {custom_order.status} to {new_status}",
                rule="custom_order_status_transition",
            )

        self._apply_status(custom_order, new_status, DateUtils.now_utc())
        self.custom_orders.flush()
        logger.info(f"Custom order {custom_order.reference} is now {new_status}")
        return custom_order, True

    def advance_lifecycle(self, now=None) -> dict:
        """
        processing for ten days -> the customer is told finishing has started (once)
        processing for twenty days -> completed
        """
        now = now or DateUtils.now_utc()
        finishing: List[CustomOrder] = self.custom_orders.processing_confirmed_before(
            now - FINISHING_NOTICE_AFTER, unnotified_only=True
        )
        for custom_order in finishing:
            custom_order.finalization_notified_at = now

        completed: List[CustomOrder] = self.custom_orders.processing_confirmed_before(now - COMPLETE_AFTER)
        for custom_order in completed:
            self._apply_status(custom_order, "completed", now)

        self.custom_orders.flush()
        logger.info(f"Custom order lifecycle run: {len(finishing)} notified, {len(completed)} completed")
        return {"finishing": finishing, "completed": completed}

    @staticmethod
    def _apply_status(custom_order: CustomOrder, new_status: str, now) -> None:
        custom_order.status = new_status
        if new_status == "processing":
            custom_order.confirmed_at = custom_order.confirmed_at or now
            custom_order.estimated_delivery_date = delivery.estimated_delivery_date(
                now, custom_order.delivery_duration_days
            )
        elif new_status == "completed":
            custom_order.completed_at = now
