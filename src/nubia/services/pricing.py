"""
Order pricing.

All catalog prices are whole XOF. Tax and percentage maths round half-up
to the nearest franc, matching what customers see on the storefront.
"""
from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from nubia.core.exceptions import ValidationError

TAX_RATE = Decimal("0.18")
FREE_SHIPPING_THRESHOLD = 100_000
SHIPPING_COSTS: Dict[str, int] = {
    "standard": 5_000,
    "express": 15_000,
}

BASE_CURRENCY = "XOF"
# How many XOF one unit of the currency is worth
EXCHANGE_RATES: Dict[str, int] = {
    "XOF": 1,
    "EUR": 656,
    "USD": 615,
    "MAD": 60,
}


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class QuoteLine:
    product_id: int
    name: str
    unit_price: int
    quantity: int
    variant_id: Optional[int] = None
    size: Optional[str] = None
    color: Optional[str] = None

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass
class Quote:
    lines: List[QuoteLine]
    subtotal: int
    discount: int
    shipping: int
    tax: int
    total: int
    shipping_method: str
    promo_code: Optional[str] = None
    currency: str = BASE_CURRENCY
    free_shipping: bool = field(default=False)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["lines"] = [dict(asdict(line), line_total=line.line_total) for line in self.lines]
        return data


def shipping_cost(subtotal: int, shipping_method: str) -> int:
    if shipping_method not in SHIPPING_COSTS:
        raise ValidationError(f"Unknown shipping method: {shipping_method}")
    if subtotal >= FREE_SHIPPING_THRESHOLD:
        return 0
    return SHIPPING_COSTS[shipping_method]


def compute_tax(taxable: int) -> int:
    return round_half_up(Decimal(taxable) * TAX_RATE)


def compute_quote(
    lines: List[QuoteLine],
    shipping_method: str = "standard",
    discount: int = 0,
    promo_code: Optional[str] = None,
) -> Quote:
    """
    subtotal = sum(price * qty)
    shipping = 0 at or above the free-shipping threshold, else the method cost
    tax      = 18% of (subtotal - discount)
    total    = subtotal - discount + shipping + tax
    """
    if not lines:
        raise ValidationError("At least one item is required")

    subtotal = sum(line.line_total for line in lines)
    discount = max(0, min(discount, subtotal))
    shipping = shipping_cost(subtotal, shipping_method)
    tax = compute_tax(subtotal - discount)

    return Quote(
        lines=lines,
        subtotal=subtotal,
        discount=discount,
        shipping=shipping,
        tax=tax,
        total=subtotal - discount + shipping + tax,
        shipping_method=shipping_method,
        promo_code=promo_code,
        free_shipping=shipping == 0,
    )


def convert_from_xof(amount: int, currency: str) -> Decimal:
    """XOF stays whole; other currencies get two decimals."""
    rate = EXCHANGE_RATES.get(currency.upper())
    if rate is None:
        raise ValidationError(f"Unsupported currency: {currency}")
    if currency.upper() == BASE_CURRENCY:
        return Decimal(amount)
    return (Decimal(amount) / Decimal(rate)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
