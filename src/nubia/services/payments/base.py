from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from nubia.core.config import PaymentConfig
from nubia.utils.dates import DateUtils

PaymentStatus = Literal[
    "pending",
    "processing",
    "awaiting_payment",
    "paid",
    "failed",
    "cancelled",
    "refunded",
]

TERMINAL_STATUSES = ("paid", "failed", "cancelled")


class PayloadCustomer(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: str = ""
    last_name: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PayloadItem(BaseModel):
    product_id: int
    name: str
    quantity: int = Field(gt=0)
    price: int = Field(ge=0, description="Unit price in XOF")


class OrderPayload(BaseModel):
    """What a gateway needs to open a session for one order."""

    order_id: str
    order_number: str
    amount: Decimal = Field(description="Amount in the payment currency")
    currency: str
    customer: PayloadCustomer
    items: List[PayloadItem] = Field(default_factory=list)
    locale: Literal["fr", "en"] = "fr"


class PaymentSession(BaseModel):
    success: bool
    gateway: str
    transaction_id: Optional[str] = None
    redirect_url: Optional[str] = None
    order_confirmed: bool = False
    error: Optional[str] = None
    error_code: Optional[str] = None


class CallbackResult(BaseModel):
    """A gateway's report on one transaction, normalized to our statuses."""

    success: bool
    order_id: str
    transaction_id: Optional[str] = None
    status: PaymentStatus
    payment_method: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    processed_at: datetime = Field(default_factory=DateUtils.now_utc)
    error: Optional[str] = None


class PaymentProvider(ABC):
    """
    One payment gateway.

    create_session never raises for gateway-side failures: it reports them
    in PaymentSession.error so the caller can mark the order and release
    its stock inside the same transaction.
    """

    gateway: str
    supported_currencies: Tuple[str, ...] = ()

    def __init__(self, config: PaymentConfig, site_url: str = ""):
        self.config = config
        self.site_url = site_url.rstrip("/")

    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    def create_session(self, order: OrderPayload, method: Optional[str] = None) -> PaymentSession:
        ...

    @abstractmethod
    def verify_webhook(
        self,
        payload: dict,
        raw_body: bytes = b"",
        signature: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> bool:
        ...

    @abstractmethod
    def handle_callback(self, payload: dict) -> CallbackResult:
        ...

    @abstractmethod
    def get_status(self, transaction_id: str) -> str:
        ...

    def callback_url(self, order: OrderPayload, status: str) -> str:
        return (
            f"{self.site_url}/{order.locale}/payments/callback"
            f"?orderId={order.order_id}&status={status}&gateway={self.gateway}"
        )

    def not_configured(self) -> PaymentSession:
        return PaymentSession(
            success=False,
            gateway=self.gateway,
            error=f"{self.gateway} n'est pas configuré. Veuillez utiliser le paiement à la livraison.",
            error_code="NOT_CONFIGURED",
        )
