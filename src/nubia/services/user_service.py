from sqlalchemy.orm import Session

from nubia.models import User
from nubia.repositories.order_repository import OrderRepository
from nubia.repositories.user_repository import UserRepository
from nubia.utils.dates import DateUtils
import logging

logger = logging.getLogger(__name__)

# Statuses broken out in the account page counters
TRACKED_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
CLOSED_STATUSES = ("delivered", "cancelled")
# Orders that never turned into a sale
UNSPENT_STATUSES = ("cancelled", "payment_failed")


def split_name(full_name):
    parts = (full_name or "").strip().split(None, 1)
    first = parts[0] if parts else ""
    last = parts[1] if len(parts) > 1 else ""
    return first, last


def serialize_profile(user: User) -> dict:
    first, last = split_name(user.full_name)
    return {
        "id": user.id,
        "email": user.email,
        "firstName": first,
        "lastName": last,
        "fullName": user.full_name or "",
        "phone": user.phone or "",
        "role": "customer",
        "createdAt": DateUtils.to_iso_string(user.created_at),
    }


class UserService:
    """The signed-in customer's account page: profile and order counters."""

    def __init__(self, session: Session):
        self.users = UserRepository(session)
        self.orders = OrderRepository(session)

    def profile(self, user_id: int) -> dict:
        return serialize_profile(self.users.get_or_404(user_id))

    def stats(self, user_id: int) -> dict:
        self.users.get_or_404(user_id)
        orders = self.orders.history_for_user(user_id)

        by_status = {status: 0 for status in TRACKED_STATUSES}
        for order in orders:
            if order.status in by_status:
                by_status[order.status] += 1

        last = orders[0] if orders else None
        return {
            "totalSpent": sum(o.total for o in orders if o.status not in UNSPENT_STATUSES),
            "totalOrders": len(orders),
            "activeOrders": sum(1 for o in orders if o.status not in CLOSED_STATUSES + UNSPENT_STATUSES),
            "ordersByStatus": by_status,
            "lastOrder": {
                "id": last.id,
                "order_number": last.order_number,
                "total": last.total,
                "status": last.status,
                "created_at": DateUtils.to_iso_string(last.created_at),
                "shipped_at": DateUtils.to_iso_string(last.shipped_at),
                "delivered_at": DateUtils.to_iso_string(last.delivered_at),
            }
            if last
            else None,
        }
