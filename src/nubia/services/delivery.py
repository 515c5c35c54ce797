"""
Delivery and return windows.

Senegal orders ship from the Dakar atelier and arrive in 3-5 days;
everything else goes international (7-14 days). Made-to-measure pieces
take 14-21 days wherever they ship. The return window follows the same
split: 3 days at home, 14 days abroad.
"""
import random
from datetime import datetime, timedelta
from typing import Optional

from nubia.utils.dates import DateUtils

SENEGAL_ALIASES = {"senegal", "sénégal", "sn", "sen"}

SENEGAL_DELIVERY_DAYS = (3, 5)
INTERNATIONAL_DELIVERY_DAYS = (7, 14)
CUSTOM_ORDER_DELIVERY_DAYS = (14, 21)

SENEGAL_RETURN_DAYS = 3
INTERNATIONAL_RETURN_DAYS = 14

DEFAULT_DELIVERY_DAYS = 3


def is_senegal(country: Optional[str]) -> bool:
    if not country:
        return False
    return country.strip().lower() in SENEGAL_ALIASES


def delivery_range(country: Optional[str], is_custom_order: bool = False) -> tuple:
    if is_custom_order:
        return CUSTOM_ORDER_DELIVERY_DAYS
    if is_senegal(country):
        return SENEGAL_DELIVERY_DAYS
    return INTERNATIONAL_DELIVERY_DAYS


def calculate_delivery_duration(
    country: Optional[str],
    is_custom_order: bool = False,
    rng: Optional[random.Random] = None,
) -> int:
    low, high = delivery_range(country, is_custom_order)
    return (rng or random).randint(low, high)


def get_delivery_range_text(country: Optional[str], is_custom_order: bool = False) -> str:
    low, high = delivery_range(country, is_custom_order)
    return f"{low}-{high} jours"


def estimated_delivery_date(start: datetime, duration_days: Optional[int]) -> datetime:
    return DateUtils.as_utc(start) + timedelta(days=duration_days or DEFAULT_DELIVERY_DAYS)


def return_deadline_days(country: Optional[str]) -> int:
    return SENEGAL_RETURN_DAYS if is_senegal(country) else INTERNATIONAL_RETURN_DAYS


def get_return_deadline(country: Optional[str], delivered_at: datetime) -> datetime:
    return DateUtils.as_utc(delivered_at) + timedelta(days=return_deadline_days(country))


def is_return_eligible(
    country: Optional[str],
    delivered_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> bool:
    if delivered_at is None:
        return False
    now = now or DateUtils.now_utc()
    return now <= get_return_deadline(country, delivered_at)
