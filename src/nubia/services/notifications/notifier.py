"""
Customer and manager notifications for orders, returns, custom orders and
contact messages.

Everything here runs after the request's transaction has committed, and
a failed send must never undo or fail the business operation that
triggered it: delivery errors are logged and reported as False.
"""
import logging
from typing import Optional
from urllib.parse import urlencode

from flask import render_template

from nubia.core.config import Config
from nubia.core.exceptions import ExternalServiceError
from nubia.models import ContactSubmission, CustomOrder, Order, ReturnRequest
from nubia.services.notifications.mailer import EmailSender
from nubia.services.notifications.whatsapp import WhatsAppSender

logger = logging.getLogger(__name__)

STATUS_SUBJECTS = {
    "processing": "Votre commande {number} est confirmée",
    "shipped": "Votre commande {number} a été expédiée",
    "delivered": "Votre commande {number} a été livrée",
    "cancelled": "Votre commande {number} a été annulée",
}

CUSTOM_ORDER_SUBJECTS = {
    "finishing": "Votre commande sur-mesure {reference} est en cours de finition",
    "completed": "Votre commande sur-mesure {reference} est prête",
}

RETURN_STATUS_LABELS = {
    "pending": "en attente",
    "approved": "approuvé",
    "rejected": "refusé",
    "shipped": "expédié",
    "received": "reçu",
    "refunded": "remboursé",
}


class OrderNotifier:
    def __init__(self, config: Config):
        self.settings = config.notifications
        self.email = EmailSender(self.settings)
        self.whatsapp = WhatsAppSender(self.settings)

    def _attempt(self, label: str, send, *args) -> bool:
        try:
            return bool(send(*args))
        except ExternalServiceError as e:
            logger.error(f"{label} failed: {e.internal_message}")
            return False

    def _email(self, label: str, to: Optional[str], subject: str, template: str, **context) -> bool:
        html = render_template(f"emails/{template}", subject=subject, **context)
        return self._attempt(label, self.email.send, to, subject, html)

    def _manager_whatsapp(self, label: str, template: str, **context) -> bool:
        text = render_template(f"whatsapp/{template}", **context)
        return self._attempt(label, self.whatsapp.send_to_manager, text)

    def validation_links(self, path: str, ident: str, token: str) -> dict:
        base = f"{self.settings.site_url}/api/v1/admin/{path}/validate"
        return {
            action: f"{base}?{urlencode({'id': ident, 'token': token, 'action': action})}"
            for action in ("confirm", "cancel")
        }

    # ------------------------------------------------------------------ #
    # Orders                                                              #
    # ------------------------------------------------------------------ #

    def order_confirmation(self, order: Order) -> bool:
        return self._email(
            f"Order confirmation for {order.order_number}",
            order.customer_email,
            f"Confirmation de votre commande {order.order_number}",
            "order_confirmation.html",
            order=order,
        )

    def manager_new_order(self, order: Order, token: Optional[str], headline: str = "NOUVELLE COMMANDE NUBIA AURA") -> bool:
        links = self.validation_links("orders", order.order_number, token) if token else None
        return self._manager_whatsapp(
            f"Manager WhatsApp for {order.order_number}",
            "new_order.txt",
            order=order,
            links=links,
            headline=headline,
        )

    def order_status_update(self, order: Order) -> bool:
        subject = STATUS_SUBJECTS.get(order.status)
        if subject is None:
            return False
        return self._email(
            f"Status email ({order.status}) for {order.order_number}",
            order.customer_email,
            subject.format(number=order.order_number),
            "order_status.html",
            order=order,
        )

    # ------------------------------------------------------------------ #
    # Returns                                                             #
    # ------------------------------------------------------------------ #

    def return_created(self, return_request: ReturnRequest, order: Order) -> bool:
        subject = f"Nouvelle demande de retour {return_request.return_number}"
        emailed = self._email(
            f"Manager email for return {return_request.return_number}",
            self.settings.manager_email,
            subject,
            "manager_notification.html",
            heading=subject,
            rows=[
                ("Commande", order.order_number),
                ("Client", order.customer_name),
                ("Email", order.customer_email),
                ("Motif", return_request.reason),
                ("Articles", len(return_request.items or [])),
            ],
        )
        texted = self._manager_whatsapp(
            f"Manager WhatsApp for return {return_request.return_number}",
            "return_request.txt",
            return_request=return_request,
            order=order,
        )
        return emailed or texted

    def return_status_changed(self, return_request: ReturnRequest, order: Order) -> bool:
        label = RETURN_STATUS_LABELS.get(return_request.status, return_request.status)
        return self._email(
            f"Return status email for {return_request.return_number}",
            order.customer_email,
            f"Votre retour {return_request.return_number} est {label}",
            "return_status.html",
            return_request=return_request,
            order=order,
            status_label=label,
        )

    # ------------------------------------------------------------------ #
    # Custom orders and contact                                           #
    # ------------------------------------------------------------------ #

    def custom_order_created(self, custom_order: CustomOrder, token: str) -> bool:
        subject = f"Nouvelle commande sur-mesure {custom_order.reference}"
        confirmed = self._email(
            f"Custom order confirmation {custom_order.reference}",
            custom_order.email,
            f"Votre demande sur-mesure {custom_order.reference}",
            "custom_order_confirmation.html",
            custom_order=custom_order,
        )
        self._email(
            f"Manager email for custom order {custom_order.reference}",
            self.settings.manager_email,
            subject,
            "manager_notification.html",
            heading=subject,
            rows=[
                ("Client", custom_order.name),
                ("Email", custom_order.email),
                ("Téléphone", custom_order.phone),
                ("Type", custom_order.garment_type),
                ("Mensurations", custom_order.measurements),
                ("Préférences", custom_order.preferences),
                ("Budget", custom_order.budget),
            ],
        )
        self._manager_whatsapp(
            f"Manager WhatsApp for custom order {custom_order.reference}",
            "custom_order.txt",
            custom_order=custom_order,
            links=self.validation_links("custom-orders", custom_order.reference, token),
        )
        return confirmed

    def custom_order_progress(self, custom_order: CustomOrder, stage: str) -> bool:
        """stage is "finishing" (ten days in) or "completed"."""
        subject = CUSTOM_ORDER_SUBJECTS[stage].format(reference=custom_order.reference)
        return self._email(
            f"Custom order {stage} email for {custom_order.reference}",
            custom_order.email,
            subject,
            "custom_order_progress.html",
            custom_order=custom_order,
            stage=stage,
        )

    def contact_received(self, submission: ContactSubmission) -> bool:
        confirmed = self._email(
            f"Contact confirmation to {submission.email}",
            submission.email,
            "Nous avons bien reçu votre message",
            "contact_confirmation.html",
            submission=submission,
        )
        self._email(
            f"Manager email for contact {submission.id}",
            self.settings.manager_email,
            f"Nouveau message : {submission.subject}",
            "manager_notification.html",
            heading="Nouveau message de contact",
            rows=[
                ("Nom", submission.name),
                ("Email", submission.email),
                ("Téléphone", submission.phone or "-"),
                ("Sujet", submission.subject),
                ("Message", submission.message),
            ],
        )
        self._manager_whatsapp(
            f"Manager WhatsApp for contact {submission.id}",
            "contact.txt",
            submission=submission,
        )
        return confirmed
