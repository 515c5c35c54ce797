"""
PayDunya: mobile money and cards across the UEMOA zone, always in XOF.

Sessions are "checkout invoices". The IPN carries no signature header;
instead data.hash must equal sha512(master key).
"""
import hashlib
import hmac
from decimal import Decimal
from typing import Optional

import requests

from nubia.services.payments.base import CallbackResult, OrderPayload, PaymentProvider, PaymentSession
import logging

logger = logging.getLogger(__name__)

LIVE_API_URL = "https://app.paydunya.com/api/v1"
SANDBOX_API_URL = "https://app.paydunya.com/sandbox-api/v1"

CHANNEL_MAP = {
    # Senegal
    "wave": "wave-senegal",
    "orange_money": "orange-money-senegal",
    "free_money": "free-money-senegal",
    "wizall": "wizall-senegal",
    "expresso": "emoney-senegal",
    # Cote d'Ivoire
    "mtn_money": "mtn-ci",
    "moov_money": "moov-ci",
    "orange_money_ci": "orange-money-ci",
    "wave_ci": "wave-ci",
    # Mali
    "orange_money_ml": "orange-money-mali",
    "moov_money_ml": "moov-mali",
    # Benin
    "mtn_money_bj": "mtn-benin",
    "moov_money_bj": "moov-benin",
    # Togo
    "flooz": "flooz-togo",
    "tmoney": "t-money-togo",
    "moov_money_tg": "moov-togo",
    # Burkina Faso
    "orange_money_bf": "orange-money-burkina",
    "moov_money_bf": "moov-burkina",
    "card": "card",
}

INVOICE_STATUSES = {"completed": "paid", "cancelled": "cancelled"}


def expected_hash(master_key: str) -> str:
    return hashlib.sha512(master_key.encode("utf-8")).hexdigest()


class PaydunyaProvider(PaymentProvider):
    gateway = "paydunya"
    supported_currencies = ("XOF",)

    @property
    def api_url(self) -> str:
        return LIVE_API_URL if self.config.paydunya_mode == "live" else SANDBOX_API_URL

    def is_configured(self) -> bool:
        return bool(
            self.config.paydunya_master_key
            and self.config.paydunya_private_key
            and self.config.paydunya_token
        )

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "PAYDUNYA-MASTER-KEY": self.config.paydunya_master_key,
            "PAYDUNYA-PRIVATE-KEY": self.config.paydunya_private_key,
            "PAYDUNYA-TOKEN": self.config.paydunya_token,
        }

    def build_invoice(self, order: OrderPayload, method: Optional[str] = None) -> dict:
        payload = {
            "invoice": {
                "items": {
                    f"item_{index}": {
                        "name": item.name or "Article",
                        "quantity": item.quantity,
                        "unit_price": item.price,
                        "total_price": item.price * item.quantity,
                        "description": "",
                    }
                    for index, item in enumerate(order.items)
                },
                "total_amount": int(order.amount),
                "description": f"Commande {order.order_number} - NUBIA AURA",
            },
            "store": {
                "name": "NUBIA AURA",
                "tagline": "Mode africaine authentique",
                "postal_address": "Dakar, Sénégal",
                "website_url": self.site_url,
            },
            "actions": {
                "return_url": self.callback_url(order, "success"),
                "cancel_url": self.callback_url(order, "cancelled"),
                "callback_url": f"{self.site_url}/api/v1/webhooks/paydunya",
            },
            "custom_data": {
                "order_id": order.order_id,
                "order_number": order.order_number,
                "customer_email": order.customer.email,
                "customer_phone": order.customer.phone,
                "customer_name": order.customer.full_name,
            },
        }
        if method in CHANNEL_MAP:
            payload["channels"] = [CHANNEL_MAP[method]]
        return payload

    def create_session(self, order: OrderPayload, method: Optional[str] = None) -> PaymentSession:
        if not self.is_configured():
            logger.warning("PayDunya keys not configured")
            return self.not_configured()

        logger.info(
            f"Creating PayDunya invoice for {order.order_number} "
            f"({order.amount} XOF, method={method or 'all'}, mode={self.config.paydunya_mode})"
        )
        try:
            response = requests.post(
                f"{self.api_url}/checkout-invoice/create",
                json=self.build_invoice(order, method),
                headers=self._headers(),
                timeout=self.config.request_timeout,
            )
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"PayDunya invoice request failed for {order.order_number}: {e}")
            return PaymentSession(
                success=False, gateway=self.gateway, error=f"Erreur PayDunya: {e}", error_code="CONNECTION_ERROR"
            )

        response_text = result.get("response_text") or ""
        invoice_url = result.get("invoice_url")
        if not invoice_url and result.get("response_code") == "00" and response_text.startswith("http"):
            invoice_url = response_text

        if result.get("response_code") == "00" and invoice_url:
            token = result.get("token") or invoice_url.rstrip("/").split("/")[-1]
            logger.info(f"PayDunya invoice {token} created for {order.order_number}")
            return PaymentSession(success=True, gateway=self.gateway, transaction_id=token, redirect_url=invoice_url)

        logger.error(
            f"PayDunya invoice creation failed for {order.order_number}: "
            f"{result.get('response_code')} {response_text}"
        )
        return PaymentSession(
            success=False,
            gateway=self.gateway,
            error=response_text or "Erreur lors de la création de la facture PayDunya",
            error_code="INVOICE_CREATION_FAILED",
        )

    def verify_webhook(self, payload: dict, raw_body: bytes = b"", signature=None, timestamp=None) -> bool:
        received = ((payload or {}).get("data") or {}).get("hash")
        if not received or not self.config.paydunya_master_key:
            return False
        return hmac.compare_digest(str(received), expected_hash(self.config.paydunya_master_key))

    def handle_callback(self, payload: dict) -> CallbackResult:
        data = payload.get("data") or {}
        invoice = data.get("invoice") or {}
        status = INVOICE_STATUSES.get(data.get("status"), "pending")
        amount = invoice.get("total_amount")

        return CallbackResult(
            success=status == "paid",
            order_id=str((data.get("custom_data") or {}).get("order_id") or ""),
            transaction_id=invoice.get("token"),
            status=status,
            payment_method=self.gateway,
            amount=Decimal(str(amount)) if amount not in (None, "") else None,
            currency="XOF",
            error=data.get("fail_reason"),
        )

    def get_status(self, transaction_id: str) -> str:
        if not self.is_configured():
            return "pending"
        try:
            response = requests.get(
                f"{self.api_url}/checkout-invoice/confirm/{transaction_id}",
                headers=self._headers(),
                timeout=self.config.request_timeout,
            )
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"PayDunya status check failed for {transaction_id}: {e}")
            return "pending"

        if result.get("response_code") == "00" and result.get("invoice"):
            return INVOICE_STATUSES.get(result["invoice"].get("status"), "pending")
        return "pending"
