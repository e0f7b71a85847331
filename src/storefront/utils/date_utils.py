from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta


class DateUtils:
    """
    Centralized date/time utilities. Everything is timezone-aware UTC.
    """

    UTC = timezone.utc

    @classmethod
    def now_utc(cls) -> datetime:
        """Get current UTC datetime - always use this for database storage"""
        return datetime.now(cls.UTC)

    @classmethod
    def ensure_utc(cls, dt: datetime) -> datetime:
        # SQLite hands back naive datetimes; treat them as UTC.
        if dt.tzinfo is None:
            return dt.replace(tzinfo=cls.UTC)
        return dt.astimezone(cls.UTC)

    @classmethod
    def parse_iso_string(cls, date_string: str) -> datetime:
        """
        Parse ISO 8601 date string to datetime

        Handles various formats:
        - 2026-01-03
        - 2026-01-03T10:30:00Z
        - 2026-01-03T10:30:00+00:00
        """
        try:
            parsed_dt = date_parser.isoparse(date_string)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid date format: {date_string}") from e
        return cls.ensure_utc(parsed_dt)

    @classmethod
    def parse_optional(cls, date_string: Optional[str]) -> Optional[datetime]:
        if not date_string:
            return None
        return cls.parse_iso_string(date_string)

    @classmethod
    def end_of_day(cls, dt: datetime) -> datetime:
        """Inclusive upper bound for a date-only range filter"""
        return dt + relativedelta(hour=23, minute=59, second=59, microsecond=999999)

    @classmethod
    def start_of_month(cls, dt: Optional[datetime] = None) -> datetime:
        dt = cls.ensure_utc(dt or cls.now_utc())
        return dt + relativedelta(day=1, hour=0, minute=0, second=0, microsecond=0)

    @classmethod
    def to_iso_string(cls, dt: Optional[datetime]) -> Optional[str]:
        if dt is None:
            return None
        return cls.ensure_utc(dt).isoformat()
