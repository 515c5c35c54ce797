from typing import Optional

from sqlalchemy.orm import Session

from nubia.core.exceptions import BusinessLogicError, InsufficientStockError, NotFoundError, ValidationError
from nubia.models import Cart, CartItem, Product
from nubia.repositories.cart_repository import CartRepository
from nubia.repositories.product_repository import ProductRepository
from nubia.services.stock_service import StockService
from nubia.utils.dates import DateUtils
import logging

logger = logging.getLogger(__name__)


class CartService:
    """
    Shopping cart business logic service

    Responsibilities:
    - One cart per user, created on first read
    - Merge repeated adds of the same product/variant
    - Keep quantities within available stock
    - Refresh updated_at on every change (abandoned-cart cleanup keys on it)
    """

    def __init__(self, session: Session):
        self.cart_repo = CartRepository(session)
        self.products = ProductRepository(session)
        self.stock = StockService(session)
        self.max_items_per_cart = 50
        self.max_quantity_per_item = 99

    def get_cart(self, user_id: int) -> dict:
        cart = self.cart_repo.get_or_create(user_id)
        return self._serialize(cart)

    def add_item(self, user_id: int, product_id: int, quantity: int, variant_id: Optional[int] = None) -> dict:
        """
        Add a product to the cart with business validation

        Business Rules:
        - Product (and variant, when given) must exist and be in stock
        - Merged quantity cannot exceed stock or the per-line limit
        - No more than max_items_per_cart distinct lines
        """
        logger.info(f"Adding item to cart - user: {user_id}, product: {product_id}, variant: {variant_id}, quantity: {quantity}")

        product = self.products.get_by_id(product_id)
        if product is None:
            raise NotFoundError("Product", str(product_id))
        if not product.in_stock:
            raise ValidationError(f"{product.name} is out of stock")
        if variant_id is not None and not any(v.id == variant_id for v in product.variants):
            raise ValidationError(f"Variant {variant_id} does not belong to product {product_id}")

        cart = self.cart_repo.get_or_create(user_id)
        existing = self._find_line(cart, product_id, variant_id)

        if existing is None and len(cart.items) >= self.max_items_per_cart:
            raise BusinessLogicError(
                f"Cannot add more than {self.max_items_per_cart} different items to cart",
                rule="max_cart_items_exceeded",
            )

        total_quantity = quantity + (existing.quantity if existing else 0)
        if total_quantity > self.max_quantity_per_item:
            raise BusinessLogicError(
                f"Cannot add more than {self.max_quantity_per_item} of the same item",
                rule="max_item_quantity_exceeded",
            )
        self._check_stock(product, variant_id, total_quantity)

        if existing is not None:
            existing.quantity = total_quantity
        else:
            cart.items.append(CartItem(product_id=product_id, variant_id=variant_id, quantity=quantity))
        self._touch(cart)

        logger.info(f"Cart of user {user_id} now holds {total_quantity} x product {product_id}")
        return self._serialize(cart)

    def update_item(self, user_id: int, cart_item_id: int, quantity: int) -> dict:
        """Quantity 0 removes the line."""
        cart = self.cart_repo.get_or_create(user_id)
        item = self._get_line(cart, cart_item_id)

        if quantity == 0:
            cart.items.remove(item)
        else:
            self._check_stock(item.product, item.variant_id, quantity)
            item.quantity = quantity
        self._touch(cart)
        return self._serialize(cart)

    def remove_item(self, user_id: int, cart_item_id: int) -> dict:
        cart = self.cart_repo.get_or_create(user_id)
        cart.items.remove(self._get_line(cart, cart_item_id))
        self._touch(cart)
        logger.info(f"Removed cart item {cart_item_id} for user {user_id}")
        return self._serialize(cart)

    def clear(self, user_id: int) -> dict:
        cart = self.cart_repo.get_or_create(user_id)
        cart.items.clear()
        self._touch(cart)
        logger.info(f"Cleared cart for user {user_id}")
        return self._serialize(cart)

    # Private helpers

    @staticmethod
    def _find_line(cart: Cart, product_id: int, variant_id: Optional[int]) -> Optional[CartItem]:
        return next(
            (i for i in cart.items if i.product_id == product_id and i.variant_id == variant_id),
            None,
        )

    @staticmethod
    def _get_line(cart: Cart, cart_item_id: int) -> CartItem:
        item = next((i for i in cart.items if i.id == cart_item_id), None)
        if item is None:
            raise NotFoundError("Cart item", str(cart_item_id))
        return item

    def _check_stock(self, product: Product, variant_id: Optional[int], quantity: int) -> None:
        available = self.stock.available_quantity(product)
        if variant_id is not None:
            available = min(available, self.stock.on_hand(product, variant_id))
        if quantity > available:
            raise InsufficientStockError(product.name, available, quantity)

    def _touch(self, cart: Cart) -> None:
        cart.updated_at = DateUtils.now_utc()
        self.cart_repo.flush()

    @staticmethod
    def _serialize(cart: Cart) -> dict:
        items = []
        for item in cart.items:
            product = item.product
            variant = item.variant
            line_total = product.price * item.quantity
            items.append(
                {
                    "id": item.id,
                    "product_id": product.id,
                    "variant_id": item.variant_id,
                    "name": product.name,
                    "slug": product.slug,
                    "image_url": product.image_url,
                    "size": variant.size if variant else None,
                    "color": variant.color if variant else None,
                    "unit_price": product.price,
                    "quantity": item.quantity,
                    "line_total": line_total,
                }
            )
        return {
            "cart_id": cart.id,
            "items": items,
            "total_items": len(items),
            "total_quantity": sum(i["quantity"] for i in items),
            "subtotal": sum(i["line_total"] for i in items),
            "is_empty": not items,
            "updated_at": DateUtils.to_iso_string(cart.updated_at),
        }
