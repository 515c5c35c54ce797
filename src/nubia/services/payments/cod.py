from typing import Optional

from nubia.services.payments.base import CallbackResult, OrderPayload, PaymentProvider, PaymentSession
import logging

logger = logging.getLogger(__name__)


class CashOnDeliveryProvider(PaymentProvider):
    """No gateway call: the courier collects the money and the order is confirmed at once."""

    gateway = "cod"
    supported_currencies = ("XOF", "MAD", "EUR", "USD")

    def is_configured(self) -> bool:
        return True

    def create_session(self, order: OrderPayload, method: Optional[str] = None) -> PaymentSession:
        logger.info(f"Cash on delivery for {order.order_number} ({order.amount} {order.currency})")
        return PaymentSession(
            success=True,
            gateway=self.gateway,
            transaction_id=f"COD-{order.order_id}",
            order_confirmed=True,
        )

    def verify_webhook(self, payload: dict, raw_body: bytes = b"", signature=None, timestamp=None) -> bool:
        return True

    def handle_callback(self, payload: dict) -> CallbackResult:
        """Manual confirmation after the courier run: delivered means paid."""
        delivered = payload.get("status") == "delivered"
        order_id = str(payload.get("order_id") or "")
        return CallbackResult(
            success=delivered,
            order_id=order_id,
            transaction_id=f"COD-{order_id}",
            status="paid" if delivered else "cancelled",
            payment_method=self.gateway,
        )

    def get_status(self, transaction_id: str) -> str:
        return "awaiting_payment"
