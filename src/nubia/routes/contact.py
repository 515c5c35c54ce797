from flask import Blueprint

from nubia.core.rate_limit import FORM, rate_limit
from nubia.db import session_scope
from nubia.routes.schemas import ContactSchema, NewsletterSchema
from nubia.routes.utils import load_body, notifier, success_response
from nubia.services.contact_service import ContactService

contact_bp = Blueprint("contact", __name__)

_contact_schema = ContactSchema()
_newsletter_schema = NewsletterSchema()


@contact_bp.route("/contact", methods=["POST"])
@rate_limit("contact", FORM)
def contact():
    data = load_body(_contact_schema)
    with session_scope() as session:
        submission = ContactService(session).submit(data)
        body = {"id": submission.id, "status": submission.status}

    notifier().contact_received(submission)
    return success_response(body, "Message received.", 201)


@contact_bp.route("/newsletter", methods=["POST"])
@rate_limit("newsletter", FORM)
def newsletter():
    data = load_body(_newsletter_schema)
    with session_scope() as session:
        subscription, created = ContactService(session).subscribe(data)
        body = {"email": subscription.email, "subscribed": subscription.subscribed, "locale": subscription.locale}
    return success_response(body, "Subscribed.", 201 if created else 200)
