from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Integer, Text
from sqlalchemy import ForeignKey

from nubia.db import Base, BigIntPK

CUSTOM_ORDER_STATUSES = ("pending", "processing", "completed", "cancelled")


class CustomOrder(Base):
    """
    A made-to-measure request (sur-mesure). It is quoted and confirmed by the
    atelier manually, so it carries a budget rather than a priced cart.

    Once confirmed it sits in processing while the atelier works on it; the
    customer hears that finishing has started ten days after confirmation and
    the order completes after twenty.
    """

    __tablename__ = "custom_orders"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    reference = Column(Text, nullable=False, unique=True)
    user_id = Column(BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    phone = Column(Text, nullable=False)
    garment_type = Column(Text, nullable=False)
    measurements = Column(Text, nullable=False)
    preferences = Column(Text, nullable=False)
    budget = Column(BigInteger, nullable=False)
    country = Column(Text, nullable=False, default="Senegal")
    status = Column(Text, nullable=False, default="pending")
    delivery_duration_days = Column(Integer, nullable=True)
    estimated_delivery_date = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    finalization_notified_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','processing','completed','cancelled')", name="ck_custom_order_status"
        ),
    )

    def __repr__(self) -> str:
        return f"<CustomOrder {self.reference} status={self.status}>"
