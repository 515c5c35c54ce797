# Re-export all models from a single entry point so the rest of the app
# can import cleanly:
#   from nubia.models import Product, Order
#
# Importing all models here also ensures they are registered with Base.metadata
# before any call to Base.metadata.create_all().

from nubia.models.cart import Cart, CartItem
from nubia.models.contact import ContactSubmission, NewsletterSubscription
from nubia.models.custom_order import CUSTOM_ORDER_STATUSES, CustomOrder
from nubia.models.order import (
    ORDER_STATUSES,
    PAYMENT_STATUSES,
    Order,
    OrderItem,
    OrderValidationToken,
    Shipment,
)
from nubia.models.product import Category, Product, ProductVariant
from nubia.models.promo import PromoCode
from nubia.models.returns import RETURN_STATUSES, ReturnRequest
from nubia.models.review import Review
from nubia.models.stock import StockReservation
from nubia.models.user import User
from nubia.models.wishlist import Wishlist, WishlistItem

__all__ = [
    "User",
    "Category",
    "Product",
    "ProductVariant",
    "Cart",
    "CartItem",
    "Wishlist",
    "WishlistItem",
    "Order",
    "OrderItem",
    "Shipment",
    "OrderValidationToken",
    "ORDER_STATUSES",
    "PAYMENT_STATUSES",
    "StockReservation",
    "PromoCode",
    "ReturnRequest",
    "RETURN_STATUSES",
    "Review",
    "CustomOrder",
    "CUSTOM_ORDER_STATUSES",
    "ContactSubmission",
    "NewsletterSubscription",
]
