from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Integer, Text
from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from nubia.db import Base, BigIntPK


class Review(Base):
    """A product review. One per user per product."""

    __tablename__ = "reviews"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_id = Column(
        BigInteger, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    rating = Column(Integer, nullable=False)
    title = Column(Text, nullable=True)
    comment = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating"),
        UniqueConstraint("product_id", "user_id", name="uq_review_user_product"),
    )

    user = relationship("User")
