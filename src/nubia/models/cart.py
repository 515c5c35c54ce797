from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Integer
from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from nubia.db import Base, BigIntPK


class Cart(Base):
    """
    A shopping cart belonging to a user.

    A user has one cart at a time. updated_at is refreshed on every change;
    carts untouched for 30 days are purged by the cleanup job.
    """

    __tablename__ = "carts"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
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

    items = relationship(
        "CartItem", back_populates="cart", cascade="all, delete-orphan", order_by="CartItem.id"
    )

    def __repr__(self) -> str:
        return f"<Cart id={self.id} user_id={self.user_id}>"


class CartItem(Base):
    """
    A product (optionally a specific variant) + quantity inside a cart.

    quantity must be > 0 -- removing an item means deleting the row.
    """

    __tablename__ = "cart_items"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    cart_id = Column(
        BigInteger, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(
        BigInteger, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    variant_id = Column(
        BigInteger, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True
    )
    quantity = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_cart_item_quantity"),
        UniqueConstraint("cart_id", "product_id", "variant_id", name="uq_cart_item_line"),
    )

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")
    variant = relationship("ProductVariant")

    def __repr__(self) -> str:
        return f"<CartItem id={self.id} product_id={self.product_id} qty={self.quantity}>"
