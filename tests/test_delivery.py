import random
from datetime import datetime, timedelta, timezone

import pytest

from nubia.services import delivery

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("country", ["Senegal", "SÉNÉGAL", "sn", " SEN "])
def test_senegal_aliases(country):
    assert delivery.is_senegal(country)


@pytest.mark.parametrize("country", ["FR", "Mali", "", None])
def test_other_countries_are_international(country):
    assert not delivery.is_senegal(country)


def test_delivery_duration_ranges():
    rng = random.Random(7)
    for _ in range(50):
        assert 3 <= delivery.calculate_delivery_duration("SN", rng=rng) <= 5
        assert 7 <= delivery.calculate_delivery_duration("FR", rng=rng) <= 14
        assert 14 <= delivery.calculate_delivery_duration("SN", is_custom_order=True, rng=rng) <= 21


def test_delivery_range_text():
    assert delivery.get_delivery_range_text("SN") == "3-5 jours"
    assert delivery.get_delivery_range_text("US") == "7-14 jours"
    assert delivery.get_delivery_range_text("SN", is_custom_order=True) == "14-21 jours"


def test_estimated_delivery_defaults_to_three_days():
    assert delivery.estimated_delivery_date(NOW, None) == NOW + timedelta(days=3)
    assert delivery.estimated_delivery_date(NOW, 10) == NOW + timedelta(days=10)


def test_return_windows():
    assert delivery.return_deadline_days("Sénégal") == 3
    assert delivery.return_deadline_days("FR") == 14
    assert delivery.get_return_deadline("SN", NOW) == NOW + timedelta(days=3)


def test_return_eligibility():
    assert delivery.is_return_eligible("SN", NOW - timedelta(days=2), NOW)
    assert not delivery.is_return_eligible("SN", NOW - timedelta(days=4), NOW)
    assert delivery.is_return_eligible("FR", NOW - timedelta(days=10), NOW)
    assert not delivery.is_return_eligible("FR", None, NOW)


def test_naive_delivery_timestamps_are_read_as_utc():
    delivered = (NOW - timedelta(days=1)).replace(tzinfo=None)
    assert delivery.is_return_eligible("SN", delivered, NOW)
