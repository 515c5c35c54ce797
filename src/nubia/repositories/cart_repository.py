from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import selectinload

from nubia.models import Cart, CartItem, Product
from nubia.repositories.base import BaseRepository


class CartRepository(BaseRepository[Cart]):
    model = Cart
    resource_name = "Cart"

    def get_by_user(self, user_id: int) -> Optional[Cart]:
        stmt = (
            select(Cart)
            .options(
                selectinload(Cart.items).selectinload(CartItem.product).selectinload(Product.variants),
                selectinload(Cart.items).selectinload(CartItem.variant),
            )
            .where(Cart.user_id == user_id)
        )
        return self.scalar(stmt)

    def get_or_create(self, user_id: int) -> Cart:
        cart = self.get_by_user(user_id)
        if cart is None:
            cart = self.add(Cart(user_id=user_id))
        return cart

    def stale_cart_ids(self, cutoff: datetime) -> List[int]:
        return [c.id for c in self.scalars(select(Cart).where(Cart.updated_at < cutoff))]

    def delete_carts(self, cart_ids: List[int]) -> int:
        if not cart_ids:
            return 0
        with self.guard("DELETE"):
            self.session.execute(delete(CartItem).where(CartItem.cart_id.in_(cart_ids)))
            result = self.session.execute(delete(Cart).where(Cart.id.in_(cart_ids)))
            return result.rowcount or 0
