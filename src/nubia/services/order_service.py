from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from nubia.core.config import Config
from nubia.core.exceptions import (
    BusinessLogicError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from nubia.models import Order, OrderItem, Shipment
from nubia.repositories.cart_repository import CartRepository
from nubia.repositories.order_repository import OrderRepository
from nubia.services import delivery
from nubia.services.notifications.tokens import ValidationTokenService
from nubia.services.pricing import Quote
from nubia.services.promo_service import PromoService
from nubia.services.quote_service import QuoteService
from nubia.services.stock_service import StockService
from nubia.utils.dates import DateUtils
from nubia.utils.formatting import FormattingUtils
import logging

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    "pending": {"paid", "processing", "cancelled", "payment_failed"},
    "payment_failed": {"pending", "cancelled"},
    "paid": {"processing", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"delivered"},
}

# Customer-facing address keys, in the order they are shown on emails
ADDRESS_FIELDS = (
    ("first_name", "firstName"),
    ("last_name", "lastName"),
    ("email", "email"),
    ("phone", "phone"),
    ("address", "address"),
    ("city", "city"),
    ("zip_code", "zipCode"),
    ("country", "country"),
)

SHIP_AFTER = timedelta(days=1)
DELIVER_AFTER = timedelta(days=3)

COD_METHOD = "cash_on_delivery"


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


def ensure_transition(order: Order, new_status: str) -> None:
    if not can_transition(order.status, new_status):
        raise BusinessLogicError(
            f"Cannot change order {order.order_number} from {order.status} to {new_status}",
            rule="order_status_transition",
        )


def shipping_address_snapshot(data: dict) -> dict:
    return {key: data[field] for field, key in ADDRESS_FIELDS if data.get(field) is not None}


def serialize_order_item(item: OrderItem) -> dict:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "variant_id": item.variant_id,
        "product_name": item.product_name,
        "size": item.size,
        "color": item.color,
        "unit_price": item.unit_price,
        "quantity": item.quantity,
        "subtotal": item.subtotal,
    }


def days_until_delivery(order: Order, now=None) -> Optional[int]:
    if order.estimated_delivery_date is None or order.status in ("delivered", "cancelled"):
        return None
    now = now or DateUtils.now_utc()
    return max(0, DateUtils.days_between(now, DateUtils.as_utc(order.estimated_delivery_date)))


def serialize_order(order: Order, detail: bool = False, now=None) -> dict:
    data = {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "payment_gateway": order.payment_gateway,
        "subtotal": order.subtotal,
        "discount": order.discount,
        "shipping": order.shipping,
        "tax": order.tax,
        "total": order.total,
        "currency": order.currency,
        "charged_amount": float(order.charged_amount) if order.charged_amount is not None else None,
        "promo_code": order.promo_code,
        "shipping_method": order.shipping_method,
        "delivery_duration_days": order.delivery_duration_days,
        "estimated_delivery_date": DateUtils.to_iso_string(order.estimated_delivery_date),
        "item_count": sum(i.quantity for i in order.items),
        "created_at": DateUtils.to_iso_string(order.created_at),
    }
    if detail:
        now = now or DateUtils.now_utc()
        shipment = order.shipments[-1] if order.shipments else None
        data.update(
            {
                "items": [serialize_order_item(i) for i in order.items],
                "shipping_address": order.shipping_address,
                "transaction_id": order.transaction_id,
                "paid_at": DateUtils.to_iso_string(order.paid_at),
                "shipped_at": DateUtils.to_iso_string(order.shipped_at),
                "delivered_at": DateUtils.to_iso_string(order.delivered_at),
                "days_until_delivery": days_until_delivery(order, now),
                "delivery_range": delivery.get_delivery_range_text(order.country),
                "tracking": {
                    "tracking_number": shipment.tracking_number,
                    "carrier": shipment.carrier,
                    "status": shipment.status,
                } if shipment else None,
                "return_eligible": (
                    order.status == "delivered"
                    and delivery.is_return_eligible(order.country, order.delivered_at, now)
                ),
                "return_deadline": (
                    DateUtils.to_iso_string(delivery.get_return_deadline(order.country, order.delivered_at))
                    if order.delivered_at else None
                ),
            }
        )
    return data


class OrderService:
    """
    Order creation and the fulfilment lifecycle.

    Every write path here runs inside the caller's session_scope(): the
    order row, its lines, the promo redemption and the stock holds commit
    together or not at all. Notifications are the caller's job, after commit.
    """

    def __init__(self, session: Session, config: Config):
        self.config = config
        self.orders = OrderRepository(session)
        self.carts = CartRepository(session)
        self.quotes = QuoteService(session)
        self.stock = StockService(session)
        self.promos = PromoService(session)
        self.tokens = ValidationTokenService(session)

    # ------------------------------------------------------------------ #
    # Creation                                                            #
    # ------------------------------------------------------------------ #

    def place_order(
        self,
        quote: Quote,
        address: dict,
        user_id: Optional[int] = None,
        payment_method: Optional[str] = None,
        payment_gateway: Optional[str] = None,
        payment_status: str = "pending",
        currency: str = "XOF",
        charged_amount=None,
        delivery_duration_days: Optional[int] = None,
    ) -> Order:
        """Insert the order with its lines and count the promo use. No stock is held yet."""
        order = Order(
            order_number=FormattingUtils.order_number(),
            user_id=user_id,
            status="pending",
            payment_status=payment_status,
            payment_method=payment_method,
            payment_gateway=payment_gateway,
            subtotal=quote.subtotal,
            discount=quote.discount,
            shipping=quote.shipping,
            tax=quote.tax,
            total=quote.total,
            currency=currency,
            charged_amount=charged_amount,
            promo_code=quote.promo_code,
            shipping_address=address,
            shipping_method=quote.shipping_method,
            delivery_duration_days=delivery_duration_days,
        )
        for line in quote.lines:
            order.items.append(
                OrderItem(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    product_name=line.name,
                    size=line.size,
                    color=line.color,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    subtotal=line.line_total,
                )
            )
        self.orders.add(order)

        if quote.promo_code:
            self.promos.redeem(quote.promo_code)

        logger.info(
            f"Created order {order.order_number} ({len(order.items)} line(s), total={order.total} XOF, "
            f"method={payment_method})"
        )
        return order

    def create_checkout(self, user_id: int, data: dict) -> Order:
        """Authenticated checkout: order + holds with the payment TTL, then empty the cart."""
        quote = self.quotes.build(
            data["items"], data["shipping_method"], data.get("promo_code"), lock=True
        )
        address = shipping_address_snapshot(data)
        order = self.place_order(
            quote,
            address,
            user_id=user_id,
            payment_method=data.get("payment_method"),
            delivery_duration_days=delivery.calculate_delivery_duration(address.get("country")),
        )
        self.stock.reserve(order, self.config.payments.reservation_ttl_minutes)

        cart = self.carts.get_by_user(user_id)
        if cart is not None and cart.items:
            cart.items.clear()
            cart.updated_at = DateUtils.now_utc()
            self.carts.flush()
        return order

    def create_cod_order(self, user_id: Optional[int], data: dict) -> Tuple[Order, str]:
        """
        Cash on delivery. Nothing is paid online, so the holds are finalized
        right away and the manager confirms the order from WhatsApp.
        """
        quote = self.quotes.build(
            data["items"], data["shipping_method"], data.get("promo_code"), lock=True
        )
        address = shipping_address_snapshot(data)
        order = self.place_order(
            quote,
            address,
            user_id=user_id,
            payment_method=COD_METHOD,
            payment_gateway="cod",
            payment_status="awaiting_payment",
            delivery_duration_days=delivery.calculate_delivery_duration(address.get("country")),
        )
        order.transaction_id = f"COD-{order.id}"

        try:
            self.stock.reserve(order, self.config.payments.reservation_ttl_minutes, finalize=True)
        except NotFoundError:
            raise ConflictError(f"Could not reserve stock for order {order.order_number}")

        return order, self.tokens.issue(order_id=order.id)

    # ------------------------------------------------------------------ #
    # Customer reads                                                      #
    # ------------------------------------------------------------------ #

    def list_for_user(self, user_id: int, limit: int, after: Optional[int] = None) -> dict:
        orders, has_more = self.orders.list_for_user(user_id, limit, after)
        items = [serialize_order(o) for o in orders]
        return {
            "items": items,
            "pagination": {
                "cursor": items[-1]["id"] if items and has_more else None,
                "has_more": has_more,
                "count": len(items),
            },
        }

    def get_owned(self, user_id: int, order_id: int, for_update: bool = False) -> Order:
        order = self.orders.get_with_items(order_id, for_update=for_update)
        if order is None or order.user_id != user_id:
            raise NotFoundError("Order", str(order_id))
        return order

    def get_for_user(self, user_id: int, order_id: int) -> dict:
        return serialize_order(self.get_owned(user_id, order_id), detail=True)

    # ------------------------------------------------------------------ #
    # Back office                                                         #
    # ------------------------------------------------------------------ #

    def admin_list(self, status=None, payment_status=None, search=None, limit=50, offset=0) -> dict:
        orders, total = self.orders.admin_list(status, payment_status, search, limit, offset)
        return {
            "items": [serialize_order(o, detail=True) for o in orders],
            "pagination": {"total": total, "limit": limit, "offset": offset, "count": len(orders)},
        }

    def change_status(self, order: Order, new_status: str, now=None) -> None:
        """Apply a transition and its side effects (timestamps, shipment, stock)."""
        ensure_transition(order, new_status)
        now = now or DateUtils.now_utc()
        order.status = new_status

        if new_status == "processing":
            order.estimated_delivery_date = delivery.estimated_delivery_date(now, order.delivery_duration_days)
        elif new_status == "shipped":
            order.shipped_at = now
            order.estimated_delivery_date = delivery.estimated_delivery_date(now, order.delivery_duration_days)
        elif new_status == "delivered":
            order.delivered_at = now
            if order.payment_method == COD_METHOD and order.payment_status == "awaiting_payment":
                order.payment_status = "paid"
                order.paid_at = now
        elif new_status == "cancelled":
            if order.payment_status in ("pending", "processing", "awaiting_payment"):
                order.payment_status = "cancelled"
            released = self.stock.release_if_any(order.id)
            logger.info(f"Cancelled order {order.order_number}, released {released} reservation(s)")

    def update_delivery(self, order_id: int, data: dict) -> Tuple[Order, bool]:
        """Returns the order and whether the customer should be emailed."""
        order = self.orders.get_with_items(order_id, for_update=True)
        if order is None:
            raise NotFoundError("Order", str(order_id))
        now = DateUtils.now_utc()

        if data.get("delivery_duration_days") is not None:
            order.delivery_duration_days = data["delivery_duration_days"]

        new_status = data.get("status")
        status_changed = bool(new_status) and new_status != order.status
        if status_changed:
            self.change_status(order, new_status, now)
            if new_status == "shipped":
                self.orders.add_shipment(
                    Shipment(
                        order_id=order.id,
                        tracking_number=data.get("tracking_number") or FormattingUtils.tracking_number(order.id),
                        carrier=data.get("carrier"),
                        shipped_at=now,
                        estimated_delivery=order.estimated_delivery_date,
                    )
                )
            elif new_status == "delivered":
                shipment = self.orders.latest_shipment(order.id)
                if shipment is not None:
                    shipment.status = "delivered"

        if data.get("estimated_delivery_date") is not None:
            order.estimated_delivery_date = data["estimated_delivery_date"]

        if not (status_changed and new_status == "shipped") and (
            data.get("tracking_number") or data.get("carrier")
        ):
            self._update_tracking(order, data, now)

        self.orders.flush()
        logger.info(f"Admin updated delivery of order {order.order_number} (status={order.status})")
        return order, status_changed and new_status in ("shipped", "delivered")

    def _update_tracking(self, order: Order, data: dict, now) -> None:
        shipment = self.orders.latest_shipment(order.id)
        if shipment is None:
            if order.status not in ("shipped", "delivered"):
                raise ValidationError("Tracking can only be set on shipped orders")
            shipment = self.orders.add_shipment(
                Shipment(
                    order_id=order.id,
                    tracking_number=data.get("tracking_number") or FormattingUtils.tracking_number(order.id),
                    shipped_at=order.shipped_at or now,
                    estimated_delivery=order.estimated_delivery_date,
                )
            )
        if data.get("tracking_number"):
            shipment.tracking_number = data["tracking_number"]
        if data.get("carrier"):
            shipment.carrier = data["carrier"]

    def validate_link(self, order_number: str, token: str, action: str) -> Order:
        """Manager clicked confirm or cancel in the WhatsApp message."""
        if action not in ("confirm", "cancel"):
            raise ValidationError("action must be confirm or cancel")
        order = self.orders.get_by_number(order_number, for_update=True)
        if order is None:
            raise NotFoundError("Order", order_number)

        self.tokens.consume(token, order_id=order.id)
        self.change_status(order, "processing" if action == "confirm" else "cancelled")
        self.orders.flush()
        logger.info(f"Order {order.order_number} {action}ed from validation link")
        return order

    # ------------------------------------------------------------------ #
    # Lifecycle cron                                                      #
    # ------------------------------------------------------------------ #

    def advance_lifecycle(self, now=None) -> dict:
        """
        processing for a day -> shipped (with a generated tracking number)
        shipped for three days -> delivered
        """
        now = now or DateUtils.now_utc()
        shipped: List[Order] = []
        delivered: List[Order] = []

        for order in self.orders.shipped_since(now - DELIVER_AFTER):
            self.change_status(order, "delivered", now)
            delivered.append(order)

        for order in self.orders.processing_since(now - SHIP_AFTER):
            self.change_status(order, "shipped", now)
            self.orders.add_shipment(
                Shipment(
                    order_id=order.id,
                    tracking_number=FormattingUtils.tracking_number(order.id),
                    shipped_at=now,
                    estimated_delivery=order.estimated_delivery_date,
                )
            )
            shipped.append(order)

        self.orders.flush()
        logger.info(f"Lifecycle run: {len(shipped)} shipped, {len(delivered)} delivered")
        return {"shipped": shipped, "delivered": delivered}

    def ensure_owner_or_guest(self, order: Order, user_id: Optional[int]) -> None:
        if order.user_id is not None and order.user_id != user_id:
            raise ForbiddenError("This order belongs to another customer")
