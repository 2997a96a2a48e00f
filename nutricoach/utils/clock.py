"""Clock and fixed-offset timezone helpers.

The product targets a single civil timezone expressed as a fixed minute
offset from UTC (no IANA rules, no DST). All instants are handled as
timezone-aware UTC datetimes; "local" values are naive wall-clock values
in the target zone.

Day boundaries are always computed by shifting "now" into the zone,
truncating to the local calendar date, and shifting back. Truncating the
UTC value directly moves the boundary by the size of the offset.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Literal

MINUTES_PER_DAY = 24 * 60
DEFAULT_WINDOW_MINUTES = 30

DayBoundary = Literal["start-of-today", "start-of-tomorrow"]

_HHMM_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC, treating naive values as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def now_in_zone(offset_minutes: int, now: datetime | None = None) -> datetime:
    """Get the wall-clock time in the target zone.

    Args:
        offset_minutes: Zone offset from UTC in minutes (420 for UTC+7)
        now: Reference instant, defaults to the current time

    Returns:
        Naive datetime holding the local wall-clock value
    """
    reference = ensure_utc(now) if now is not None else utcnow()
    return (reference + timedelta(minutes=offset_minutes)).replace(tzinfo=None)


def local_date(offset_minutes: int, instant: datetime) -> date:
    """Calendar date of an instant as seen in the target zone."""
    return now_in_zone(offset_minutes, instant).date()


def day_threshold(
    offset_minutes: int,
    which: DayBoundary = "start-of-today",
    now: datetime | None = None,
) -> datetime:
    """Get the UTC instant of a local midnight boundary.

    Args:
        offset_minutes: Zone offset from UTC in minutes
        which: "start-of-today" or "start-of-tomorrow"
        now: Reference instant, defaults to the current time

    Returns:
        Timezone-aware UTC datetime of the boundary
    """
    if which not in ("start-of-today", "start-of-tomorrow"):
        raise ValueError(f"Unknown day boundary: {which}")

    local_midnight = datetime.combine(now_in_zone(offset_minutes, now).date(), time.min)
    if which == "start-of-tomorrow":
        local_midnight += timedelta(days=1)
    return (local_midnight - timedelta(minutes=offset_minutes)).replace(tzinfo=timezone.utc)


def local_range(
    offset_minutes: int,
    start_hour: int,
    end_hour: int,
    now: datetime | None = None,
) -> tuple[datetime, datetime]:
    """UTC instants bounding a range of local hours on the current local day."""
    start_of_day = day_threshold(offset_minutes, "start-of-today", now)
    return start_of_day + timedelta(hours=start_hour), start_of_day + timedelta(hours=end_hour)


def calendar_days_between(offset_minutes: int, earlier: datetime, later: datetime) -> int:
    """Number of local calendar days from ``earlier`` to ``later``."""
    return (local_date(offset_minutes, later) - local_date(offset_minutes, earlier)).days


def parse_hhmm(value: str | None) -> int | None:
    """Parse an "HH:MM" string into minutes after midnight.

    Returns None for empty or malformed values instead of raising.
    """
    if not value:
        return None
    match = _HHMM_RE.match(value)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def format_hhmm(moment: datetime) -> str:
    return f"{moment.hour:02d}:{moment.minute:02d}"


def matches_window(
    scheduled_hhmm: str | None,
    current_hhmm: str | None,
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
) -> bool:
    """Check whether two times of day are within ``window_minutes`` of each other.

    The distance wraps around midnight, so "23:50" and "00:10" are 20
    minutes apart. An empty or malformed value never matches.
    """
    scheduled = parse_hhmm(scheduled_hhmm)
    current = parse_hhmm(current_hhmm)
    if scheduled is None or current is None:
        return False

    diff = abs(scheduled - current)
    return min(diff, MINUTES_PER_DAY - diff) <= window_minutes
