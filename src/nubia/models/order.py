from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Integer, Numeric, Text
from sqlalchemy import ForeignKey
from sqlalchemy.orm import relationship

from nubia.db import Base, BigIntPK, JSONType

ORDER_STATUSES = (
    "pending",
    "paid",
    "processing",
    "shipped",
    "delivered",
    "cancelled",
    "payment_failed",
)

PAYMENT_STATUSES = (
    "pending",
    "processing",
    "awaiting_payment",
    "paid",
    "failed",
    "cancelled",
    "refunded",
)


def _in_list(column: str, values) -> str:
    quoted = ",".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class Order(Base):
    """
    A purchase, from checkout through delivery.

    Amounts are whole XOF and snapshotted at checkout: total is what the
    customer owes regardless of later price changes. charged_amount is the
    same total expressed in the payment currency (EUR/USD/MAD for Airwallex).

    shipping_address is a JSON snapshot (firstName, lastName, email, phone,
    address, city, zipCode, country) so guest orders need no address table.
    """

    __tablename__ = "orders"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_number = Column(Text, nullable=False, unique=True)
    user_id = Column(BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(Text, nullable=False, default="pending")
    payment_status = Column(Text, nullable=False, default="pending")
    payment_method = Column(Text, nullable=True)
    payment_gateway = Column(Text, nullable=True)
    transaction_id = Column(Text, nullable=True)
    subtotal = Column(BigInteger, nullable=False)
    discount = Column(BigInteger, nullable=False, default=0)
    shipping = Column(BigInteger, nullable=False, default=0)
    tax = Column(BigInteger, nullable=False, default=0)
    total = Column(BigInteger, nullable=False)
    currency = Column(Text, nullable=False, default="XOF")
    charged_amount = Column(Numeric(14, 2), nullable=True)
    promo_code = Column(Text, nullable=True)
    shipping_address = Column(JSONType, nullable=False, default=dict)
    shipping_method = Column(Text, nullable=False, default="standard")
    delivery_duration_days = Column(Integer, nullable=True)
    estimated_delivery_date = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint(_in_list("status", ORDER_STATUSES), name="ck_order_status"),
        CheckConstraint(_in_list("payment_status", PAYMENT_STATUSES), name="ck_order_payment_status"),
        CheckConstraint("total >= 0", name="ck_order_total"),
    )

    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    reservations = relationship(
        "StockReservation", back_populates="order", cascade="all, delete-orphan"
    )
    shipments = relationship(
        "Shipment", back_populates="order", cascade="all, delete-orphan", order_by="Shipment.id"
    )

    @property
    def customer_email(self):
        return (self.shipping_address or {}).get("email")

    @property
    def customer_name(self) -> str:
        address = self.shipping_address or {}
        return f"{address.get('firstName', '')} {address.get('lastName', '')}".strip()

    @property
    def country(self):
        return (self.shipping_address or {}).get("country")

    def __repr__(self) -> str:
        return (
            f"<Order id={self.id} number={self.order_number!r} "
            f"status={self.status!r} total={self.total}>"
        )


class OrderItem(Base):
    """
    A single line of an order.

    product_name, unit_price, size and color are snapshotted at purchase so
    later catalog edits do not rewrite order history.
    """

    __tablename__ = "order_items"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(BigInteger, ForeignKey("products.id"), nullable=False)
    variant_id = Column(BigInteger, ForeignKey("product_variants.id"), nullable=True)
    product_name = Column(Text, nullable=False)
    size = Column(Text, nullable=True)
    color = Column(Text, nullable=True)
    unit_price = Column(BigInteger, nullable=False)
    quantity = Column(Integer, nullable=False)
    subtotal = Column(BigInteger, nullable=False)

    __table_args__ = (
        CheckConstraint("unit_price >= 0", name="ck_item_unit_price"),
        CheckConstraint("quantity > 0", name="ck_item_quantity"),
    )

    order = relationship("Order", back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem id={self.id} product_id={self.product_id} qty={self.quantity}>"


class Shipment(Base):
    """Carrier hand-off for an order; created when the order moves to shipped."""

    __tablename__ = "shipments"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    tracking_number = Column(Text, nullable=False)
    carrier = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="in_transit")
    shipped_at = Column(DateTime(timezone=True), nullable=False)
    estimated_delivery = Column(DateTime(timezone=True), nullable=True)

    order = relationship("Order", back_populates="shipments")


class OrderValidationToken(Base):
    """
    One-time token embedded in the manager's WhatsApp confirm/cancel links.
    Valid 24h; used_at is set on first use.
    """

    __tablename__ = "order_validation_tokens"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=True
    )
    custom_order_id = Column(
        BigInteger, ForeignKey("custom_orders.id", ondelete="CASCADE"), nullable=True
    )
    token = Column(Text, nullable=False, unique=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
