from decimal import Decimal

import pytest

from nubia.core.exceptions import ValidationError
from nubia.services.pricing import QuoteLine, compute_quote, convert_from_xof, shipping_cost


def line(price, quantity=1, product_id=1):
    return QuoteLine(product_id=product_id, name="Robe Wax", unit_price=price, quantity=quantity)


def test_quote_adds_shipping_and_tax_below_threshold():
    quote = compute_quote([line(20000, 2)], "standard")

    assert quote.subtotal == 40000
    assert quote.shipping == 5000
    assert quote.tax == 7200
    assert quote.total == 52200
    assert quote.free_shipping is False


def test_quote_ships_free_from_threshold():
    quote = compute_quote([line(50000, 2)], "express")

    assert quote.shipping == 0
    assert quote.free_shipping is True
    assert quote.total == 100000 + 18000


def test_tax_is_charged_after_discount():
    quote = compute_quote([line(50000)], "standard", discount=5000, promo_code="AURA5000")

    assert quote.tax == 8100
    assert quote.total == 50000 - 5000 + 5000 + 8100
    assert quote.promo_code == "AURA5000"


def test_discount_never_exceeds_subtotal():
    quote = compute_quote([line(3000)], "standard", discount=10000)

    assert quote.discount == 3000
    assert quote.tax == 0


def test_tax_rounds_half_up():
    # 25 * 0.18 = 4.5
    assert compute_quote([line(25)], "standard").tax == 5


def test_quote_requires_lines():
    with pytest.raises(ValidationError):
        compute_quote([], "standard")


def test_unknown_shipping_method_is_rejected():
    with pytest.raises(ValidationError):
        shipping_cost(1000, "drone")


def test_quote_to_dict_includes_line_totals():
    data = compute_quote([line(20000, 3)], "standard").to_dict()

    assert data["lines"][0]["line_total"] == 60000
    assert data["currency"] == "XOF"


@pytest.mark.parametrize(
    "amount,currency,expected",
    [
        (65600, "EUR", Decimal("100.00")),
        (61500, "usd", Decimal("100.00")),
        (1000, "MAD", Decimal("16.67")),
        (25000, "XOF", Decimal("25000")),
    ],
)
def test_convert_from_xof(amount, currency, expected):
    assert convert_from_xof(amount, currency) == expected


def test_convert_rejects_unknown_currency():
    with pytest.raises(ValidationError):
        convert_from_xof(1000, "GBP")
