from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, DateTime, Integer, Text

from nubia.db import Base, BigIntPK


class PromoCode(Base):
    """
    A discount code. code is stored upper-case.

    percentage codes take discount_value percent of the order, capped by
    max_discount; fixed codes take discount_value XOF, capped at the order
    amount.
    """

    __tablename__ = "promo_codes"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    code = Column(Text, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    discount_type = Column(Text, nullable=False)
    discount_value = Column(BigInteger, nullable=False)
    min_order_amount = Column(BigInteger, nullable=True)
    max_discount = Column(BigInteger, nullable=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("discount_type IN ('percentage','fixed')", name="ck_promo_type"),
        CheckConstraint("discount_value > 0", name="ck_promo_value"),
    )

    def __repr__(self) -> str:
        return f"<PromoCode code={self.code!r} type={self.discount_type!r}>"
