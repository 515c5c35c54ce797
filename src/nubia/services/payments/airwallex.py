"""
Airwallex: cards for Morocco, Europe and everywhere else (MAD, EUR, USD).

A session is a PaymentIntent plus a link to Airwallex's hosted payment
page. Webhooks are signed with HMAC-SHA256 over x-timestamp + raw body.
"""
import hashlib
import hmac
import threading
import time
from decimal import Decimal
from typing import Dict, Optional, Tuple
from urllib.parse import urlencode

import requests

from nubia.core.exceptions import ExternalServiceError
from nubia.services.payments.base import CallbackResult, OrderPayload, PaymentProvider, PaymentSession
from nubia.utils.dates import DateUtils
import logging

logger = logging.getLogger(__name__)

API_URLS = {
    "prod": "https://api.airwallex.com/api/v1",
    "demo": "https://api-demo.airwallex.com/api/v1",
}
CHECKOUT_URLS = {
    "prod": "https://checkout.airwallex.com",
    "demo": "https://checkout-demo.airwallex.com",
}

# Airwallex tokens live 30 minutes; refresh a little early
TOKEN_TTL_SECONDS = 25 * 60

EVENT_STATUSES = {
    "payment_intent.succeeded": "paid",
    "payment_intent.cancelled": "cancelled",
    "payment_intent.requires_payment_method": "failed",
}

INTENT_STATUSES = {
    "SUCCEEDED": "paid",
    "CANCELLED": "cancelled",
    "REQUIRES_PAYMENT_METHOD": "pending",
    "REQUIRES_CUSTOMER_ACTION": "pending",
}

_token_cache: Dict[str, Tuple[str, float]] = {}
_token_lock = threading.Lock()


def sign(secret: str, timestamp: str, body: bytes) -> str:
    message = timestamp.encode("utf-8") + body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def clear_token_cache() -> None:
    with _token_lock:
        _token_cache.clear()


class AirwallexProvider(PaymentProvider):
    gateway = "airwallex"
    supported_currencies = ("USD", "EUR", "MAD")

    @property
    def env(self) -> str:
        return "prod" if self.config.airwallex_env == "prod" else "demo"

    @property
    def api_url(self) -> str:
        return API_URLS[self.env]

    def is_configured(self) -> bool:
        return bool(self.config.airwallex_client_id and self.config.airwallex_api_key)

    def _auth_token(self) -> str:
        """Bearer token, cached per client id."""
        client_id = self.config.airwallex_client_id
        with _token_lock:
            cached = _token_cache.get(client_id)
            if cached and cached[1] > time.time():
                return cached[0]

        try:
            response = requests.post(
                f"{self.api_url}/authentication/login",
                headers={
                    "Content-Type": "application/json",
                    "x-client-id": client_id,
                    "x-api-key": self.config.airwallex_api_key,
                },
                timeout=self.config.request_timeout,
            )
        except requests.RequestException as e:
            raise ExternalServiceError("airwallex", f"Authentication request failed: {e}")

        if not response.ok:
            raise ExternalServiceError("airwallex", f"Authentication failed: {response.status_code}")

        token = response.json()["token"]
        with _token_lock:
            _token_cache[client_id] = (token, time.time() + TOKEN_TTL_SECONDS)
        logger.info("Airwallex authentication successful")
        return token

    def build_intent(self, order: OrderPayload) -> dict:
        return {
            "request_id": f"req_{order.order_id}_{int(time.time() * 1000)}",
            "amount": float(order.amount),
            "currency": order.currency,
            "merchant_order_id": order.order_id,
            "order": {"type": "physical_goods"},
            "metadata": {
                "order_number": order.order_number,
                "customer_email": order.customer.email,
                "customer_phone": order.customer.phone,
                "customer_name": order.customer.full_name,
            },
            "return_url": self.callback_url(order, "success"),
            "descriptor": "NUBIA AURA",
        }

    def hosted_page_url(self, intent: dict, order: OrderPayload) -> str:
        params = {
            "intent_id": intent["id"],
            "client_secret": intent.get("client_secret", ""),
            "currency": order.currency,
            "env": self.env,
        }
        if order.customer.email:
            params["shopper_email"] = order.customer.email
        return f"{CHECKOUT_URLS[self.env]}/?{urlencode(params)}"

    def create_session(self, order: OrderPayload, method: Optional[str] = None) -> PaymentSession:
        if not self.is_configured():
            logger.warning("Airwallex keys not configured")
            return self.not_configured()

        logger.info(f"Creating Airwallex PaymentIntent for {order.order_number} ({order.amount} {order.currency})")
        try:
            token = self._auth_token()
            response = requests.post(
                f"{self.api_url}/pa/payment_intents/create",
                json=self.build_intent(order),
                headers={"Content-Type": "application/json", "Authorization": f"Bearer {token}"},
                timeout=self.config.request_timeout,
            )
            data = response.json()
        except ExternalServiceError as e:
            logger.error(f"Airwallex session for {order.order_number} failed: {e.internal_message}")
            return PaymentSession(success=False, gateway=self.gateway, error=e.message, error_code="AUTH_FAILED")
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Airwallex session for {order.order_number} failed: {e}")
            return PaymentSession(
                success=False, gateway=self.gateway, error=f"Erreur Airwallex: {e}", error_code="CONNECTION_ERROR"
            )

        if not response.ok:
            logger.error(f"Airwallex PaymentIntent creation failed for {order.order_number}: {data}")
            return PaymentSession(
                success=False,
                gateway=self.gateway,
                error=data.get("message") or "Erreur lors de la création du paiement",
                error_code=data.get("code") or "API_ERROR",
            )

        logger.info(f"Airwallex PaymentIntent {data.get('id')} created ({data.get('status')})")
        return PaymentSession(
            success=True,
            gateway=self.gateway,
            transaction_id=data["id"],
            redirect_url=self.hosted_page_url(data, order),
        )

    def verify_webhook(self, payload: dict, raw_body: bytes = b"", signature=None, timestamp=None) -> bool:
        secret = self.config.airwallex_webhook_secret
        if not secret:
            logger.warning("Airwallex webhook secret not configured")
            return False
        if not signature or not timestamp:
            return False
        return hmac.compare_digest(signature, sign(secret, timestamp, raw_body))

    def handle_callback(self, payload: dict) -> CallbackResult:
        intent = (payload.get("data") or {}).get("object")
        if not intent:
            return CallbackResult(success=False, order_id="", status="failed", error="Invalid webhook payload")

        status = EVENT_STATUSES.get(payload.get("name"), "processing")
        amount = intent.get("amount")
        extra = {}
        if payload.get("created_at"):
            extra["processed_at"] = DateUtils.parse_iso_string(payload["created_at"])
        return CallbackResult(
            success=status == "paid",
            order_id=str(intent.get("merchant_order_id") or ""),
            transaction_id=intent.get("id"),
            status=status,
            payment_method=(intent.get("payment_method") or {}).get("type"),
            amount=Decimal(str(amount)) if amount is not None else None,
            currency=intent.get("currency"),
            **extra,
        )

    def get_status(self, transaction_id: str) -> str:
        try:
            token = self._auth_token()
            response = requests.get(
                f"{self.api_url}/pa/payment_intents/{transaction_id}",
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.config.request_timeout,
            )
        except ExternalServiceError as e:
            logger.error(f"Airwallex status check failed for {transaction_id}: {e.internal_message}")
            return "pending"
        except requests.RequestException as e:
            logger.error(f"Airwallex status check failed for {transaction_id}: {e}")
            return "pending"

        if not response.ok:
            logger.error(f"Airwallex status check for {transaction_id} returned {response.status_code}")
            return "pending"
        return INTENT_STATUSES.get(response.json().get("status"), "processing")
