"""UTC-everywhere time handling. Eliminates timezone bugs at the source."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def local_date(dt: datetime, tz_name: str) -> date:
    """
    Calendar date of a UTC instant in the practice's timezone.

    Invoice due dates are calendar dates, so "is it past due yet" must be
    answered in local time, not UTC.

    Raises:
        ValueError: If datetime is naive or timezone name is invalid
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime. Datetime must be timezone-aware."
        )

    try:
        local_tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {tz_name}")

    return dt.astimezone(local_tz).date()


def today_in(tz_name: str) -> date:
    """Today's date in the given timezone."""
    return local_date(now_utc(), tz_name)
