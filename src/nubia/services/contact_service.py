from typing import Tuple

from sqlalchemy.orm import Session

from nubia.models import ContactSubmission, NewsletterSubscription
from nubia.repositories.contact_repository import ContactRepository, NewsletterRepository
from nubia.utils.validators import ValidationUtils
import logging

logger = logging.getLogger(__name__)


class ContactService:
    def __init__(self, session: Session):
        self.contacts = ContactRepository(session)
        self.newsletter = NewsletterRepository(session)

    def submit(self, data: dict) -> ContactSubmission:
        submission = self.contacts.add(
            ContactSubmission(
                name=data["name"],
                email=data["email"],
                phone=data.get("phone"),
                subject=ValidationUtils.sanitize_text(data["subject"], 200),
                message=ValidationUtils.sanitize_text(data["message"], 5000),
                status="new",
            )
        )
        logger.info(f"Contact message {submission.id} from {submission.email}: {submission.subject}")
        return submission

    def subscribe(self, data: dict) -> Tuple[NewsletterSubscription, bool]:
        """Upsert by lower-cased email. Returns the row and whether it is new."""
        email = data["email"].strip().lower()
        subscription = self.newsletter.get_by_email(email)
        created = subscription is None
        if created:
            subscription = NewsletterSubscription(email=email)
            self.newsletter.session.add(subscription)

        subscription.subscribed = True
        if data.get("name"):
            subscription.name = data["name"]
        subscription.locale = data.get("locale") or subscription.locale or "fr"
        self.newsletter.flush()
        logger.info(f"Newsletter subscription {'created' if created else 'renewed'} for {email}")
        return subscription, created
