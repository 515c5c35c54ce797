import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

from nubia.core.config import NotificationConfig
from nubia.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 20


class EmailSender:
    """
    Transactional email over SMTP.

    Port 465 uses implicit TLS, anything else STARTTLS. With no SMTP password
    configured (local development) messages are logged and skipped.
    """

    def __init__(self, config: NotificationConfig):
        self.config = config

    @property
    def is_configured(self) -> bool:
        return bool(self.config.smtp_host and self.config.smtp_user and self.config.smtp_password)

    def build_message(self, to: str, subject: str, html: str, text: Optional[str] = None) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((self.config.smtp_from_name, self.config.smtp_from_email or self.config.smtp_user))
        message["To"] = to
        message.set_content(text or "Veuillez afficher cet email au format HTML.")
        message.add_alternative(html, subtype="html")
        return message

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        if not to:
            logger.warning(f"Email '{subject}' has no recipient, skipping")
            return False
        if not self.is_configured:
            logger.warning(f"SMTP not configured, skipping email '{subject}' to {to}")
            return False

        message = self.build_message(to, subject, html, text)
        try:
            if self.config.smtp_port == 465:
                with smtplib.SMTP_SSL(self.config.smtp_host, self.config.smtp_port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
                    smtp.login(self.config.smtp_user, self.config.smtp_password)
                    smtp.send_message(message)
            else:
                with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
                    smtp.starttls()
                    smtp.login(self.config.smtp_user, self.config.smtp_password)
                    smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise ExternalServiceError("smtp", f"Failed to send email to {to}: {e}")

        logger.info(f"Email '{subject}' sent to {to}")
        return True
