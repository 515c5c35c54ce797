from typing import Optional

from sqlalchemy import select

from nubia.models import ContactSubmission, NewsletterSubscription
from nubia.repositories.base import BaseRepository


class ContactRepository(BaseRepository[ContactSubmission]):
    model = ContactSubmission
    resource_name = "Contact submission"


class NewsletterRepository(BaseRepository[NewsletterSubscription]):
    model = NewsletterSubscription
    resource_name = "Newsletter subscription"

    def get_by_email(self, email: str) -> Optional[NewsletterSubscription]:
        return self.scalar(select(NewsletterSubscription).where(NewsletterSubscription.email == email))
