from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, func, select

from nubia.models import StockReservation
from nubia.repositories.base import BaseRepository


def active_hold_filter(now: datetime):
    """Not finalized, not released, not yet expired."""
    return and_(
        StockReservation.finalized_at.is_(None),
        StockReservation.released_at.is_(None),
        StockReservation.expires_at > now,
    )


class ReservationRepository(BaseRepository[StockReservation]):
    model = StockReservation
    resource_name = "Stock reservation"

    def held_quantities(self, product_ids: List[int], now: datetime) -> Dict[int, int]:
        if not product_ids:
            return {}
        stmt = (
            select(StockReservation.product_id, func.coalesce(func.sum(StockReservation.qty), 0))
            .where(StockReservation.product_id.in_(set(product_ids)), active_hold_filter(now))
            .group_by(StockReservation.product_id)
        )
        with self.guard("SELECT"):
            return {int(pid): int(qty) for pid, qty in self.session.execute(stmt).all()}

    def held_by_variant(self, variant_ids: List[int], now: datetime) -> Dict[int, int]:
        """Active holds that named a variant. Holds without one only count at product level."""
        if not variant_ids:
            return {}
        stmt = (
            select(StockReservation.variant_id, func.coalesce(func.sum(StockReservation.qty), 0))
            .where(StockReservation.variant_id.in_(set(variant_ids)), active_hold_filter(now))
            .group_by(StockReservation.variant_id)
        )
        with self.guard("SELECT"):
            return {int(vid): int(qty) for vid, qty in self.session.execute(stmt).all()}

    def unfinalized_for_order(self, order_id: int) -> List[StockReservation]:
        """Reservations that can still be finalized (expired holds included)."""
        stmt = (
            select(StockReservation)
            .where(
                StockReservation.order_id == order_id,
                StockReservation.finalized_at.is_(None),
                StockReservation.released_at.is_(None),
            )
            .order_by(StockReservation.id)
            .with_for_update()
        )
        return self.scalars(stmt)

    def unreleased_for_order(self, order_id: int) -> List[StockReservation]:
        stmt = (
            select(StockReservation)
            .where(StockReservation.order_id == order_id, StockReservation.released_at.is_(None))
            .order_by(StockReservation.id)
            .with_for_update()
        )
        return self.scalars(stmt)

    def expired_holds(self, now: datetime) -> List[StockReservation]:
        stmt = (
            select(StockReservation)
            .where(
                StockReservation.finalized_at.is_(None),
                StockReservation.released_at.is_(None),
                StockReservation.expires_at <= now,
            )
            .order_by(StockReservation.id)
            .with_for_update()
        )
        return self.scalars(stmt)

    def list_by_status(self, status: Optional[str], now: datetime, limit: int = 100) -> List[StockReservation]:
        stmt = select(StockReservation)
        if status == "active":
            stmt = stmt.where(active_hold_filter(now))
        elif status == "finalized":
            stmt = stmt.where(StockReservation.finalized_at.is_not(None), StockReservation.released_at.is_(None))
        elif status == "released":
            stmt = stmt.where(StockReservation.released_at.is_not(None))
        elif status == "expired":
            stmt = stmt.where(
                StockReservation.finalized_at.is_(None),
                StockReservation.released_at.is_(None),
                StockReservation.expires_at <= now,
            )
        stmt = stmt.order_by(StockReservation.created_at.desc(), StockReservation.id.desc()).limit(limit)
        return self.scalars(stmt)

    def stats(self, now: datetime) -> Dict[str, int]:
        return {
            "total": self.count(),
            "active": self.count(active_hold_filter(now)),
            "finalized": self.count(
                StockReservation.finalized_at.is_not(None), StockReservation.released_at.is_(None)
            ),
            "released": self.count(StockReservation.released_at.is_not(None)),
            "expired_pending_release": self.count(
                StockReservation.finalized_at.is_(None),
                StockReservation.released_at.is_(None),
                StockReservation.expires_at <= now,
            ),
        }
