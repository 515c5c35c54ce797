import logging

import requests

from nubia.core.config import NotificationConfig
from nubia.core.exceptions import ExternalServiceError
from nubia.utils.validators import ValidationUtils

logger = logging.getLogger(__name__)

CALLMEBOT_URL = "https://api.callmebot.com/whatsapp.php"
REQUEST_TIMEOUT_SECONDS = 10


class WhatsAppSender:
    """
    Manager alerts through CallMeBot. CallMeBot only messages the number that
    registered the API key, so this is a manager channel, not a customer one.
    """

    def __init__(self, config: NotificationConfig):
        self.config = config

    @property
    def is_configured(self) -> bool:
        return bool(self.config.callmebot_api_key and self.config.manager_whatsapp)

    def send(self, phone: str, text: str) -> bool:
        digits = ValidationUtils.digits_only(phone)
        if not digits:
            logger.warning("WhatsApp message has no destination number, skipping")
            return False

        try:
            response = requests.get(
                CALLMEBOT_URL,
                params={"phone": digits, "text": text, "apikey": self.config.callmebot_api_key},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise ExternalServiceError("callmebot", f"WhatsApp request failed: {e}")

        if response.status_code != 200:
            raise ExternalServiceError(
                "callmebot", f"WhatsApp API returned {response.status_code}: {response.text[:200]}"
            )
        logger.info(f"WhatsApp message sent to ...{digits[-4:]}")
        return True

    def send_to_manager(self, text: str) -> bool:
        if not self.is_configured:
            logger.warning("CallMeBot not configured, skipping manager WhatsApp message")
            return False
        return self.send(self.config.manager_whatsapp, text)
