from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select

from nubia.models import CustomOrder
from nubia.repositories.base import BaseRepository


class CustomOrderRepository(BaseRepository[CustomOrder]):
    model = CustomOrder
    resource_name = "Custom order"

    def get_by_reference(self, reference: str, for_update: bool = False) -> Optional[CustomOrder]:
        stmt = select(CustomOrder).where(CustomOrder.reference == reference)
        if for_update:
            stmt = stmt.with_for_update()
        return self.scalar(stmt)

    def list_page(self, status: Optional[str] = None, limit: int = 50, offset: int = 0) -> Tuple[List[CustomOrder], int]:
        criteria = [CustomOrder.status == status] if status else []
        stmt = select(CustomOrder)
        if criteria:
            stmt = stmt.where(*criteria)
        stmt = stmt.order_by(CustomOrder.created_at.desc(), CustomOrder.id.desc()).limit(limit).offset(offset)
        return self.scalars(stmt), self.count(*criteria)

    def processing_confirmed_before(self, cutoff: datetime, unnotified_only: bool = False) -> List[CustomOrder]:
        criteria = [CustomOrder.status == "processing", CustomOrder.confirmed_at <= cutoff]
        if unnotified_only:
            criteria.append(CustomOrder.finalization_notified_at.is_(None))
        stmt = select(CustomOrder).where(*criteria).order_by(CustomOrder.id).with_for_update()
        return self.scalars(stmt)
