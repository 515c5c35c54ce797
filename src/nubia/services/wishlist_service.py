from sqlalchemy.orm import Session

from nubia.core.exceptions import NotFoundError
from nubia.models import Wishlist, WishlistItem
from nubia.repositories.product_repository import ProductRepository
from nubia.repositories.wishlist_repository import WishlistRepository
from nubia.utils.dates import DateUtils
import logging

logger = logging.getLogger(__name__)


class WishlistService:
    def __init__(self, session: Session):
        self.wishlists = WishlistRepository(session)
        self.products = ProductRepository(session)

    def get(self, user_id: int) -> dict:
        return self._serialize(self.wishlists.get_or_create_default(user_id))

    def add(self, user_id: int, product_id: int) -> dict:
        """Adding a product that is already saved is a no-op."""
        product = self.products.get_by_id(product_id)
        if product is None:
            raise NotFoundError("Product", str(product_id))

        wishlist = self.wishlists.get_or_create_default(user_id)
        if any(item.product_id == product_id for item in wishlist.items):
            return self._serialize(wishlist)

        wishlist.items.append(WishlistItem(product_id=product_id, product=product))
        self.wishlists.flush()
        logger.info(f"User {user_id} saved product {product_id}")
        return self._serialize(wishlist)

    def remove(self, user_id: int, product_id: int) -> dict:
        wishlist = self.wishlists.get_or_create_default(user_id)
        item = next((i for i in wishlist.items if i.product_id == product_id), None)
        if item is None:
            raise NotFoundError("Wishlist item", str(product_id))
        wishlist.items.remove(item)
        self.wishlists.flush()
        return self._serialize(wishlist)

    @staticmethod
    def _serialize(wishlist: Wishlist) -> dict:
        return {
            "id": wishlist.id,
            "name": wishlist.name,
            "items": [
                {
                    "product_id": item.product_id,
                    "name": item.product.name,
                    "slug": item.product.slug,
                    "price": item.product.price,
                    "image_url": item.product.image_url,
                    "in_stock": item.product.in_stock,
                    "added_at": DateUtils.to_iso_string(item.added_at),
                }
                for item in wishlist.items
            ],
            "count": len(wishlist.items),
        }
