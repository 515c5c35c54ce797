from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Text
from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from nubia.db import Base, BigIntPK


class Wishlist(Base):
    """A named list of saved products. Every user gets a default one on first use."""

    __tablename__ = "wishlists"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(Text, nullable=False, default="Ma liste")
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    items = relationship(
        "WishlistItem", back_populates="wishlist", cascade="all, delete-orphan"
    )


class WishlistItem(Base):
    __tablename__ = "wishlist_items"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    wishlist_id = Column(
        BigInteger, ForeignKey("wishlists.id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(
        BigInteger, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    added_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (UniqueConstraint("wishlist_id", "product_id", name="uq_wishlist_product"),)

    wishlist = relationship("Wishlist", back_populates="items")
    product = relationship("Product")
