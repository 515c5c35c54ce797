from datetime import datetime, timedelta, timezone
from typing import Optional

import pytz
from dateutil import parser as date_parser


class DateUtils:
    """
    Centralized date/time helpers.

    Everything is stored in UTC. SQLite hands datetimes back naive, so any
    value read from the database goes through as_utc() before comparison.
    """

    UTC = timezone.utc
    DAKAR = pytz.timezone("Africa/Dakar")

    @classmethod
    def now_utc(cls) -> datetime:
        return datetime.now(cls.UTC)

    @classmethod
    def as_utc(cls, dt: Optional[datetime]) -> Optional[datetime]:
        if dt is None:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=cls.UTC)
        return dt.astimezone(cls.UTC)

    @classmethod
    def parse_iso_string(cls, date_string: str) -> datetime:
        """
        Parse ISO 8601 date string to an aware UTC datetime.

        Accepts 2026-01-03T10:30:00Z, 2026-01-03T10:30:00+00:00 and naive
        strings (treated as UTC).
        """
        try:
            parsed = date_parser.isoparse(date_string)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid date format: {date_string}") from e
        return cls.as_utc(parsed)

    @classmethod
    def to_iso_string(cls, dt: Optional[datetime]) -> Optional[str]:
        if dt is None:
            return None
        return cls.as_utc(dt).isoformat()

    @classmethod
    def format_for_display(cls, dt: datetime, format_string: str = "%d/%m/%Y") -> str:
        """Format a UTC datetime in the shop's local time (Dakar)."""
        return cls.as_utc(dt).astimezone(cls.DAKAR).strftime(format_string)

    @classmethod
    def is_expired(cls, expiry_date: datetime, now: Optional[datetime] = None) -> bool:
        now = now or cls.now_utc()
        return now > cls.as_utc(expiry_date)

    @classmethod
    def create_expiry_time(cls, duration_minutes: int, now: Optional[datetime] = None) -> datetime:
        return (now or cls.now_utc()) + timedelta(minutes=duration_minutes)

    @classmethod
    def days_between(cls, start_date: datetime, end_date: datetime) -> int:
        start = start_date.date() if isinstance(start_date, datetime) else start_date
        end = end_date.date() if isinstance(end_date, datetime) else end_date
        return (end - start).days
