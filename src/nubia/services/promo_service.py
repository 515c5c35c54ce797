from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from nubia.core.exceptions import BaseAPIException, ConflictError, ValidationError
from nubia.models import PromoCode
from nubia.repositories.promo_repository import PromoRepository
from nubia.services.pricing import round_half_up
from nubia.utils.dates import DateUtils
from nubia.utils.validators import ValidationUtils
import logging

logger = logging.getLogger(__name__)


class PromoRejected(BaseAPIException):
    """A known-invalid code; the body still carries valid=false for the storefront."""

    def __init__(self, message: str, status_code: int = 400, reason: Optional[str] = None):
        super().__init__(message, status_code, "PROMO_INVALID", {"valid": False, "reason": reason})

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["valid"] = False
        return body


@dataclass
class PromoResult:
    code: str
    discount_type: str
    discount_value: int
    discount_amount: int
    description: Optional[str]
    order_amount: int

    @property
    def new_total(self) -> int:
        return max(0, self.order_amount - self.discount_amount)

    def to_dict(self) -> dict:
        return {
            "valid": True,
            "code": self.code,
            "discountType": self.discount_type,
            "discountValue": self.discount_value,
            "discountAmount": self.discount_amount,
            "description": self.description,
            "newTotal": self.new_total,
        }


def calculate_discount(
    discount_type: str,
    discount_value: int,
    order_amount: int,
    max_discount: Optional[int] = None,
) -> int:
    """
    percentage: round(amount * value / 100), capped by max_discount
    fixed:      value, capped at the order amount
    """
    if discount_type == "percentage":
        discount = round_half_up(Decimal(order_amount) * Decimal(discount_value) / Decimal(100))
        if max_discount is not None:
            discount = min(discount, max_discount)
    elif discount_type == "fixed":
        discount = discount_value
    else:
        raise ValidationError(f"Unknown discount type: {discount_type}")
    return max(0, min(discount, order_amount))


class PromoService:
    """Validates promo codes against an order amount and manages them for the back office."""

    EDITABLE_FIELDS = (
        "description",
        "discount_type",
        "discount_value",
        "min_order_amount",
        "max_discount",
        "max_uses",
        "valid_from",
        "valid_until",
        "is_active",
    )

    def __init__(self, session: Session):
        self.repo = PromoRepository(session)

    def evaluate(self, code: str, order_amount: int, now: Optional[datetime] = None, for_update: bool = False) -> PromoResult:
        """Apply every rule in order; the first failing rule decides the error."""
        normalized = ValidationUtils.normalize_promo_code(code)
        now = now or DateUtils.now_utc()

        promo = self.repo.get_active_by_code(normalized, for_update=for_update)
        if promo is None:
            raise PromoRejected("Invalid promo code", 404, "not_found")

        if promo.valid_from and DateUtils.as_utc(promo.valid_from) > now:
            raise PromoRejected("This promo code is not yet valid", reason="not_yet_valid")

        if promo.valid_until and DateUtils.as_utc(promo.valid_until) < now:
            raise PromoRejected("This promo code has expired", reason="expired")

        if promo.max_uses is not None and promo.current_uses >= promo.max_uses:
            raise PromoRejected("This promo code has reached its usage limit", reason="usage_limit")

        if promo.min_order_amount is not None and order_amount < promo.min_order_amount:
            raise PromoRejected(
                f"A minimum order of {promo.min_order_amount} FCFA is required for this code",
                reason="minimum_not_met",
            )

        discount = calculate_discount(
            promo.discount_type, promo.discount_value, order_amount, promo.max_discount
        )
        return PromoResult(
            code=promo.code,
            discount_type=promo.discount_type,
            discount_value=promo.discount_value,
            discount_amount=discount,
            description=promo.description,
            order_amount=order_amount,
        )

    def redeem(self, code: str) -> None:
        """Count one use. Called inside the order transaction."""
        promo = self.repo.get_active_by_code(ValidationUtils.normalize_promo_code(code), for_update=True)
        if promo is not None:
            promo.current_uses += 1
            self.repo.flush()

    # ------------------------------------------------------------------ #
    # Admin CRUD                                                          #
    # ------------------------------------------------------------------ #

    def list_codes(self) -> List[PromoCode]:
        return self.repo.list_all()

    def create(self, data: dict) -> PromoCode:
        code = ValidationUtils.normalize_promo_code(data["code"])
        if not ValidationUtils.is_valid_promo_code(code):
            raise ValidationError("Codes may only contain letters, digits, - and _", details={"code": code})
        if self.repo.get_by_code(code) is not None:
            raise ConflictError("Code already exists", "code")
        promo = PromoCode(code=code, current_uses=0)
        self._apply(promo, data)
        logger.info(f"Created promo code {code}")
        return self.repo.add(promo)

    def update(self, promo_id: int, data: dict) -> PromoCode:
        promo = self.repo.get_or_404(promo_id)
        self._apply(promo, data)
        self.repo.flush()
        return promo

    def delete(self, promo_id: int) -> None:
        self.repo.delete(self.repo.get_or_404(promo_id))

    def _apply(self, promo: PromoCode, data: dict) -> None:
        for field in self.EDITABLE_FIELDS:
            if field in data:
                setattr(promo, field, data[field])
        if promo.discount_type == "percentage" and promo.discount_value > 100:
            raise ValidationError("A percentage discount cannot exceed 100")


def serialize_promo(promo: PromoCode) -> dict:
    return {
        "id": promo.id,
        "code": promo.code,
        "description": promo.description,
        "discount_type": promo.discount_type,
        "discount_value": promo.discount_value,
        "min_order_amount": promo.min_order_amount,
        "max_discount": promo.max_discount,
        "max_uses": promo.max_uses,
        "current_uses": promo.current_uses,
        "valid_from": DateUtils.to_iso_string(promo.valid_from),
        "valid_until": DateUtils.to_iso_string(promo.valid_until),
        "is_active": promo.is_active,
    }
