from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Text

from nubia.db import Base, BigIntPK


class ContactSubmission(Base):
    __tablename__ = "contact_submissions"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    phone = Column(Text, nullable=True)
    subject = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="new")
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


class NewsletterSubscription(Base):
    """Upserted by email; unsubscribing flips subscribed rather than deleting."""

    __tablename__ = "newsletter_subscriptions"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    email = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=True)
    locale = Column(Text, nullable=False, default="fr")
    subscribed = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
