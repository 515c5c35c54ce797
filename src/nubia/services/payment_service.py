from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from nubia.core.config import Config
from nubia.core.exceptions import ExternalServiceError, NotFoundError, UnauthorizedError, ValidationError
from nubia.models import Order
from nubia.repositories.order_repository import OrderRepository
from nubia.services import delivery
from nubia.services.notifications.tokens import ValidationTokenService
from nubia.services.order_service import OrderService, shipping_address_snapshot
from nubia.services.payments.base import (
    TERMINAL_STATUSES,
    CallbackResult,
    OrderPayload,
    PayloadCustomer,
    PayloadItem,
    PaymentSession,
)
from nubia.services.payments.registry import (
    currency_for,
    gateways_for,
    get_provider,
    normalize_country,
    primary_gateway,
)
from nubia.services.pricing import convert_from_xof
from nubia.services.quote_service import QuoteService
from nubia.services.stock_service import StockService
import logging

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("1")
COD_ALIASES = ("cod", "cash_on_delivery")


@dataclass
class InitializationResult:
    order: Order
    session: PaymentSession
    validation_token: Optional[str] = None


@dataclass
class PaymentOutcome:
    """What a webhook or a status check did to the order."""

    order: Order
    status: str
    newly_paid: bool = False
    validation_token: Optional[str] = None


class PaymentService:
    """
    Online payment orchestration.

    initialize() writes the order and its holds, then asks the gateway for
    a session. The gateway's answer comes back later through a webhook (or
    a status poll from verify()), and apply_result() moves the order and
    its stock accordingly.
    """

    def __init__(self, session: Session, config: Config):
        self.config = config
        self.orders = OrderRepository(session)
        self.order_service = OrderService(session, config)
        self.quotes = QuoteService(session)
        self.stock = StockService(session)
        self.tokens = ValidationTokenService(session)

    def resolve_gateway(self, country: str, requested: Optional[str] = None) -> str:
        allowed = gateways_for(country)
        gateway = requested or primary_gateway(country)
        if gateway not in allowed:
            raise ValidationError(
                f"Gateway {gateway} is not available for {country}. Allowed: {', '.join(allowed)}"
            )
        return gateway

    def initialize(self, user_id: Optional[int], data: dict) -> InitializationResult:
        country = normalize_country(data.get("country"))
        requested = data.get("gateway")
        if requested is None and data.get("payment_method") in COD_ALIASES:
            requested = "cod"
        gateway = self.resolve_gateway(country, requested)

        provider = get_provider(gateway, self.config)
        if not provider.is_configured():
            raise ExternalServiceError(
                gateway, f"Le paiement {gateway} n'est pas configuré. Veuillez utiliser le paiement à la livraison."
            )
        currency = currency_for(country)
        if currency not in provider.supported_currencies:
            raise ValidationError(f"{gateway} does not accept {currency}")

        quote = self.quotes.build(data["items"], data["shipping_method"], data.get("promo_code"), lock=True)
        amount = convert_from_xof(quote.total, currency)
        address = shipping_address_snapshot(data)
        address.setdefault("country", country)
        is_cod = gateway == "cod"

        order = self.order_service.place_order(
            quote,
            address,
            user_id=user_id,
            payment_method="cash_on_delivery" if is_cod else (data.get("payment_method") or gateway),
            payment_gateway=gateway,
            payment_status="awaiting_payment" if is_cod else "pending",
            currency=currency,
            charged_amount=amount,
            delivery_duration_days=delivery.calculate_delivery_duration(address.get("country")),
        )
        self.stock.reserve(order, self.config.payments.reservation_ttl_minutes)

        session = provider.create_session(self._payload(order, amount, data), data.get("payment_method"))
        if not session.success:
            order.status = "payment_failed"
            order.payment_status = "failed"
            self.stock.release(order.id)
            self.orders.flush()
            logger.warning(
                f"{gateway} refused a session for {order.order_number}: {session.error_code} {session.error}"
            )
            return InitializationResult(order=order, session=session)

        order.transaction_id = session.transaction_id
        token = None
        if session.order_confirmed:
            self.stock.finalize(order.id)
            token = self.tokens.issue(order_id=order.id)
        self.orders.flush()

        logger.info(f"Payment initialized for {order.order_number} via {gateway} ({amount} {currency})")
        return InitializationResult(order=order, session=session, validation_token=token)

    @staticmethod
    def _payload(order: Order, amount: Decimal, data: dict) -> OrderPayload:
        return OrderPayload(
            order_id=str(order.id),
            order_number=order.order_number,
            amount=amount,
            currency=order.currency,
            customer=PayloadCustomer(
                email=data.get("email"),
                phone=data.get("phone"),
                first_name=data.get("first_name") or "",
                last_name=data.get("last_name") or "",
            ),
            items=[
                PayloadItem(product_id=i.product_id, name=i.product_name, quantity=i.quantity, price=i.unit_price)
                for i in order.items
            ],
            locale=data.get("locale") or "fr",
        )

    # ------------------------------------------------------------------ #
    # Webhooks and status                                                 #
    # ------------------------------------------------------------------ #

    def handle_webhook(
        self,
        gateway: str,
        payload: dict,
        raw_body: bytes = b"",
        signature: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> PaymentOutcome:
        provider = get_provider(gateway, self.config)
        if not provider.verify_webhook(payload, raw_body=raw_body, signature=signature, timestamp=timestamp):
            logger.warning(f"Rejected {gateway} webhook with an invalid signature")
            raise UnauthorizedError("Invalid webhook signature")

        result = provider.handle_callback(payload)
        logger.info(
            f"{gateway} webhook: order={result.order_id} status={result.status} tx={result.transaction_id}"
        )
        return self.apply_result(result)

    def apply_result(self, result: CallbackResult) -> PaymentOutcome:
        order = self.orders.get_by_reference(result.order_id, for_update=True) if result.order_id else None
        if order is None:
            raise NotFoundError("Order", result.order_id or "(missing)")

        expected = order.charged_amount if order.charged_amount is not None else Decimal(order.total)
        if result.amount is not None and abs(Decimal(result.amount) - Decimal(expected)) > AMOUNT_TOLERANCE:
            logger.warning(
                f"Amount mismatch on {order.order_number}: gateway reported {result.amount} "
                f"{result.currency}, expected {expected} {order.currency}"
            )

        if result.status == "paid":
            return self._mark_paid(order, result)

        if result.status in ("failed", "cancelled"):
            if order.payment_status == "paid":
                logger.warning(f"Ignoring {result.status} report for already paid order {order.order_number}")
                return PaymentOutcome(order=order, status=order.payment_status)
            order.status = "cancelled" if result.status == "cancelled" else "payment_failed"
            order.payment_status = result.status
            if result.transaction_id:
                order.transaction_id = result.transaction_id
            released = self.stock.release_if_any(order.id)
            self.orders.flush()
            logger.info(f"Payment {result.status} for {order.order_number}; released {released} hold(s)")
            return PaymentOutcome(order=order, status=result.status)

        if order.payment_status != "paid":
            order.payment_status = "processing"
            self.orders.flush()
        return PaymentOutcome(order=order, status=order.payment_status)

    def _mark_paid(self, order: Order, result: CallbackResult) -> PaymentOutcome:
        if order.payment_status == "paid":
            logger.info(f"Duplicate paid notification for {order.order_number}, nothing to do")
            return PaymentOutcome(order=order, status="paid")

        if order.status == "cancelled":
            # Money arrived after the order was cancelled: record it for a refund, keep the stock
            order.payment_status = "paid"
            order.paid_at = result.processed_at
            order.transaction_id = result.transaction_id or order.transaction_id
            self.orders.flush()
            logger.warning(
                f"Payment {result.transaction_id} received for cancelled order {order.order_number}, refund required"
            )
            return PaymentOutcome(order=order, status="paid")

        if order.status in ("pending", "payment_failed"):
            order.status = "paid"
        order.payment_status = "paid"
        order.paid_at = result.processed_at
        order.transaction_id = result.transaction_id or order.transaction_id

        try:
            self.stock.finalize(order.id)
        except NotFoundError:
            # Holds already expired or released; take the stock now
            logger.warning(f"No open holds for paid order {order.order_number}, reserving and finalizing")
            self.stock.reserve(order, self.config.payments.reservation_ttl_minutes, finalize=True)

        token = self.tokens.issue(order_id=order.id)
        self.orders.flush()
        logger.info(f"Order {order.order_number} paid ({result.transaction_id})")
        return PaymentOutcome(order=order, status="paid", newly_paid=True, validation_token=token)

    def verify(self, order_id: int, user_id: Optional[int] = None) -> PaymentOutcome:
        """Poll the gateway for orders the webhook hasn't settled yet."""
        order = self.orders.get_with_items(order_id, for_update=True)
        if order is None:
            raise NotFoundError("Order", str(order_id))
        self.order_service.ensure_owner_or_guest(order, user_id)

        if (
            order.payment_status in ("pending", "processing")
            and order.transaction_id
            and order.payment_gateway not in (None, "cod")
        ):
            status = get_provider(order.payment_gateway, self.config).get_status(order.transaction_id)
            logger.info(f"Polled {order.payment_gateway} for {order.order_number}: {status}")
            if status in TERMINAL_STATUSES:
                return self.apply_result(
                    CallbackResult(
                        success=status == "paid",
                        order_id=str(order.id),
                        transaction_id=order.transaction_id,
                        status=status,
                        payment_method=order.payment_gateway,
                    )
                )
        return PaymentOutcome(order=order, status=order.payment_status)
