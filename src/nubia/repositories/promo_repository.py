from typing import List, Optional

from sqlalchemy import select

from nubia.models import PromoCode
from nubia.repositories.base import BaseRepository


class PromoRepository(BaseRepository[PromoCode]):
    model = PromoCode
    resource_name = "Promo code"

    def get_active_by_code(self, code: str, for_update: bool = False) -> Optional[PromoCode]:
        stmt = select(PromoCode).where(PromoCode.code == code, PromoCode.is_active.is_(True))
        if for_update:
            stmt = stmt.with_for_update()
        return self.scalar(stmt)

    def get_by_code(self, code: str) -> Optional[PromoCode]:
        return self.scalar(select(PromoCode).where(PromoCode.code == code))

    def list_all(self) -> List[PromoCode]:
        return self.scalars(select(PromoCode).order_by(PromoCode.created_at.desc(), PromoCode.id.desc()))
