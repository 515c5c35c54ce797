from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Text

from nubia.db import Base, BigIntPK


class User(Base):
    """
    Represents a registered customer.

    Guests can still place cash-on-delivery orders; those orders carry the
    contact details in shipping_address and have no user_id.
    """

    __tablename__ = "users"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    email = Column(Text, nullable=False, unique=True)
    hashed_password = Column(Text, nullable=True)
    full_name = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"
