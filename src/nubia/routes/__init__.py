from nubia.routes.admin import admin_bp
from nubia.routes.auth import auth_bp
from nubia.routes.cart import cart_bp
from nubia.routes.checkout import checkout_bp
from nubia.routes.contact import contact_bp
from nubia.routes.cron import cron_bp
from nubia.routes.custom_orders import custom_orders_bp
from nubia.routes.orders import orders_bp
from nubia.routes.payments import payments_bp
from nubia.routes.products import products_bp
from nubia.routes.promo import promo_bp
from nubia.routes.returns import returns_bp
from nubia.routes.reviews import reviews_bp
from nubia.routes.users import users_bp
from nubia.routes.webhooks import webhooks_bp
from nubia.routes.wishlist import wishlist_bp

__all__ = [
    "admin_bp",
    "auth_bp",
    "cart_bp",
    "checkout_bp",
    "contact_bp",
    "cron_bp",
    "custom_orders_bp",
    "orders_bp",
    "payments_bp",
    "products_bp",
    "promo_bp",
    "returns_bp",
    "reviews_bp",
    "users_bp",
    "webhooks_bp",
    "wishlist_bp",
]
