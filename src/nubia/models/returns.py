from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Text
from sqlalchemy import ForeignKey
from sqlalchemy.orm import relationship

from nubia.db import Base, BigIntPK, JSONType

RETURN_STATUSES = ("pending", "approved", "rejected", "shipped", "received", "refunded")


class ReturnRequest(Base):
    """
    A customer's request to send back some or all lines of a delivered order.

    items is a JSON list of {product_id, quantity, reason?} copied from the
    request; the order lines themselves are never modified.
    """

    __tablename__ = "returns"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    return_number = Column(Text, nullable=False, unique=True)
    order_id = Column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    reason = Column(Text, nullable=False)
    comments = Column(Text, nullable=True)
    items = Column(JSONType, nullable=False, default=list)
    status = Column(Text, nullable=False, default="pending")
    admin_notes = Column(Text, nullable=True)
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
        CheckConstraint(
            "status IN ('pending','approved','rejected','shipped','received','refunded')",
            name="ck_return_status",
        ),
    )

    order = relationship("Order")

    def __repr__(self) -> str:
        return f"<ReturnRequest number={self.return_number!r} status={self.status!r}>"
