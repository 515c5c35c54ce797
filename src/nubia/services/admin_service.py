from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from nubia.core.config import Config
from nubia.core.exceptions import UnauthorizedError
from nubia.core.security import issue_token, verify_admin_credentials
from nubia.repositories.order_repository import OrderRepository
from nubia.repositories.product_repository import ProductRepository
from nubia.utils.dates import DateUtils
import logging

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 5
ACTIVE_CUSTOMER_DAYS = 30


def admin_login(config: Config, username: str, password: str) -> dict:
    if not verify_admin_credentials(username, password):
        logger.warning(f"Failed admin login for {username!r}")
        raise UnauthorizedError("Invalid credentials")
    hours = config.security.admin_token_hours
    logger.info(f"Admin {username} logged in")
    return {"token": issue_token(username, "admin", hours=hours), "expires_in": hours * 3600}


class AdminService:
    """Dashboard figures for the back office."""

    def __init__(self, session: Session):
        self.products = ProductRepository(session)
        self.orders = OrderRepository(session)

    def stats(self, now: Optional[datetime] = None) -> dict:
        now = now or DateUtils.now_utc()
        stats = {"stock": self._stock_stats()}
        stats.update(self._order_stats())
        stats["activeCustomers"] = len(self.orders.customer_keys_since(now - timedelta(days=ACTIVE_CUSTOMER_DAYS)))
        stats["generatedAt"] = DateUtils.to_iso_string(now)
        return stats

    def _stock_stats(self) -> dict:
        levels = self.products.stock_levels()
        # Products without variants are not stock-tracked and stay out of the unit figures
        tracked = [(price, units) for _, price, units, variants in levels if variants]
        return {
            "totalProducts": len(levels),
            "trackedProducts": len(tracked),
            "totalStock": sum(units for _, units in tracked),
            "stockValue": sum(price * units for price, units in tracked),
            "outOfStock": sum(1 for _, units in tracked if units == 0),
            "lowStock": sum(1 for _, units in tracked if 0 < units <= LOW_STOCK_THRESHOLD),
        }

    def _order_stats(self) -> dict:
        by_status = self.orders.status_counts()
        by_payment = self.orders.totals_by_payment_status()
        total_orders = sum(by_status.values())
        paid = by_payment.get("paid", {"count": 0, "amount": 0})

        return {
            "orders": {"total": total_orders, "byStatus": by_status},
            "revenue": {
                "total": paid["amount"],
                "byPaymentStatus": {status: v["amount"] for status, v in by_payment.items()},
            },
            "averageOrderValue": round(paid["amount"] / paid["count"], 2) if paid["count"] else 0,
            "conversionRate": round(paid["count"] * 100 / total_orders, 2) if total_orders else 0,
        }
