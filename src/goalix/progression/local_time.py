"""User-local calendar helpers.

Every period boundary in the engine (day, ISO week, month) is computed in the
user's stored IANA timezone, never in server time.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def get_zone(tz_name: str | None) -> ZoneInfo:
    """Resolve an IANA zone name, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", tz_name)
        return ZoneInfo("UTC")


def local_now(tz_name: str | None, now: datetime | None = None) -> datetime:
    """Current wall-clock time in the user's timezone."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(get_zone(tz_name))


def local_today(tz_name: str | None, now: datetime | None = None) -> date:
    return local_now(tz_name, now).date()


def get_monday(d: date | datetime) -> date:
    """Get the Monday of the ISO week containing d."""
    d = d.date() if isinstance(d, datetime) else d
    return d - timedelta(days=d.weekday())


def get_week_bounds(d: date) -> tuple[date, date]:
    """(Monday, Sunday) of the ISO week containing d."""
    monday = get_monday(d)
    return monday, monday + timedelta(days=6)


def get_month_start(d: date) -> date:
    return d.replace(day=1)


def previous_month_start(d: date) -> date:
    return (get_month_start(d) - timedelta(days=1)).replace(day=1)
