from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from nubia.models import Wishlist, WishlistItem
from nubia.repositories.base import BaseRepository


class WishlistRepository(BaseRepository[Wishlist]):
    model = Wishlist
    resource_name = "Wishlist"

    def get_default(self, user_id: int) -> Optional[Wishlist]:
        stmt = (
            select(Wishlist)
            .options(selectinload(Wishlist.items).selectinload(WishlistItem.product))
            .where(Wishlist.user_id == user_id)
            .order_by(Wishlist.id)
        )
        return self.scalar(stmt)

    def get_or_create_default(self, user_id: int) -> Wishlist:
        wishlist = self.get_default(user_id)
        if wishlist is None:
            wishlist = self.add(Wishlist(user_id=user_id))
        return wishlist
