from datetime import timedelta

import pytest

from nubia.core.exceptions import ValidationError
from nubia.services.promo_service import PromoRejected, PromoService, calculate_discount
from nubia.utils.dates import DateUtils


def test_percentage_discount_with_cap():
    assert calculate_discount("percentage", 10, 45000) == 4500
    assert calculate_discount("percentage", 50, 100000, max_discount=20000) == 20000


def test_fixed_discount_is_capped_at_amount():
    assert calculate_discount("fixed", 5000, 60000) == 5000
    assert calculate_discount("fixed", 5000, 3000) == 3000


def test_evaluate_normalizes_code(db_session, make_promo):
    make_promo(code="AURA10", discount_value=10, description="10%")

    result = PromoService(db_session).evaluate("  aura10 ", 50000)

    assert result.to_dict() == {
        "valid": True,
        "code": "AURA10",
        "discountType": "percentage",
        "discountValue": 10,
        "discountAmount": 5000,
        "description": "10%",
        "newTotal": 45000,
    }


@pytest.mark.parametrize(
    "fields,status,reason",
    [
        ({"is_active": False}, 404, "not_found"),
        ({"valid_from_days": 1}, 400, "not_yet_valid"),
        ({"valid_until_days": -1}, 400, "expired"),
        ({"max_uses": 2, "current_uses": 2}, 400, "usage_limit"),
        ({"min_order_amount": 60000}, 400, "minimum_not_met"),
    ],
)
def test_rejections(db_session, make_promo, fields, status, reason):
    now = DateUtils.now_utc()
    fields = dict(fields)
    if "valid_from_days" in fields:
        fields["valid_from"] = now + timedelta(days=fields.pop("valid_from_days"))
    if "valid_until_days" in fields:
        fields["valid_until"] = now + timedelta(days=fields.pop("valid_until_days"))
    make_promo(code="AURA10", **fields)

    with pytest.raises(PromoRejected) as exc:
        PromoService(db_session).evaluate("AURA10", 50000)

    assert exc.value.status_code == status
    assert exc.value.details["reason"] == reason
    assert exc.value.to_dict()["valid"] is False


def test_minimum_message_mentions_minimum(db_session, make_promo):
    make_promo(code="AURA5000", discount_type="fixed", discount_value=5000, min_order_amount=50000)
    with pytest.raises(PromoRejected) as exc:
        PromoService(db_session).evaluate("AURA5000", 10000)
    assert "minimum" in exc.value.message


def test_redeem_counts_a_use(db_session, make_promo):
    promo = make_promo(code="AURA10")
    PromoService(db_session).redeem("aura10")
    db_session.commit()
    assert promo.current_uses == 1


def test_create_rejects_codes_with_spaces(db_session):
    with pytest.raises(ValidationError):
        PromoService(db_session).create({"code": "bad code!", "discount_type": "fixed", "discount_value": 1000})
