from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Integer
from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import relationship

from nubia.db import Base, BigIntPK


class StockReservation(Base):
    """
    A tentative hold on inventory for one order line.

    Lifecycle is carried entirely by nullable timestamps:
      - active:    finalized_at IS NULL, released_at IS NULL, expires_at > now
      - finalized: stock was decremented for a confirmed order
      - released:  hold dropped (payment failed, order cancelled, or expired);
                   a finalized row that gets released puts its qty back
    """

    __tablename__ = "stock_reservations"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(BigInteger, ForeignKey("products.id"), nullable=False)
    variant_id = Column(BigInteger, ForeignKey("product_variants.id"), nullable=True)
    qty = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    finalized_at = Column(DateTime(timezone=True), nullable=True)
    released_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_reservation_qty"),
        Index("ix_reservations_product_open", "product_id", "finalized_at", "released_at"),
    )

    order = relationship("Order", back_populates="reservations")

    def __repr__(self) -> str:
        return (
            f"<StockReservation id={self.id} order_id={self.order_id} "
            f"product_id={self.product_id} qty={self.qty}>"
        )
