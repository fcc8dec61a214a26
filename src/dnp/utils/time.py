"""Time helpers pinned to the reference timezone."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo


SOFIA_TZ = ZoneInfo("Europe/Sofia")


def now_local(tz: ZoneInfo = SOFIA_TZ) -> datetime:
    """Return the current time in the reference timezone."""
    return datetime.now(tz)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def today_local(tz: ZoneInfo = SOFIA_TZ) -> date:
    """Return today's calendar date in the reference timezone."""
    return now_local(tz).date()


def to_local_date(
    value: Optional[Union[date, datetime]],
    tz: ZoneInfo = SOFIA_TZ,
) -> date:
    """Normalize a date or datetime to a calendar day.

    Aware datetimes are converted into ``tz`` first; naive ones are taken as local.
    ``None`` means today.
    """
    if value is None:
        return today_local(tz)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(tz)
        return value.date()
    return value


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse a YYYY-MM-DD string, returning None on failure."""
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None
