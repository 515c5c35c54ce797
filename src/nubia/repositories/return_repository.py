from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from nubia.models import ReturnRequest
from nubia.repositories.base import BaseRepository


class ReturnRepository(BaseRepository[ReturnRequest]):
    model = ReturnRequest
    resource_name = "Return"

    def get_with_order(self, return_id: int, for_update: bool = False) -> Optional[ReturnRequest]:
        stmt = select(ReturnRequest).options(selectinload(ReturnRequest.order)).where(ReturnRequest.id == return_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.scalar(stmt)

    def list_page(
        self,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[ReturnRequest], int]:
        criteria = []
        if user_id is not None:
            criteria.append(ReturnRequest.user_id == user_id)
        if status:
            criteria.append(ReturnRequest.status == status)

        stmt = select(ReturnRequest).options(selectinload(ReturnRequest.order))
        if criteria:
            stmt = stmt.where(*criteria)
        stmt = stmt.order_by(ReturnRequest.created_at.desc(), ReturnRequest.id.desc()).limit(limit).offset(offset)
        return self.scalars(stmt), self.count(*criteria)
