"""Utility functions for account-local date/time operations.

Every account stores an IANA timezone. These helpers convert between UTC and
account-local wall-clock time so quiet hours, lookback windows and display
strings follow the gym's clock. Invalid or missing zones fall back to
GymConstants.DEFAULT_TIMEZONE instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from gymagent.constants import GymConstants

logger = logging.getLogger(__name__)

_MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


@dataclass(frozen=True)
class LocalTime:
    """Wall-clock parts of a UTC instant in an account's timezone."""

    hour: int
    day_of_week: int  # 0=Sunday ... 6=Saturday
    iso_date: str  # YYYY-MM-DD
    formatted: str  # e.g. "3:45 PM"
    local: datetime


def is_valid_timezone(tz: str | None) -> bool:
    """Return True if the runtime's tz database recognizes ``tz``."""
    if not tz:
        return False
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        return False
    return True


def resolve_timezone(tz: str | None) -> ZoneInfo:
    """Return the ZoneInfo for ``tz``, or the default zone if it is invalid."""
    if is_valid_timezone(tz):
        return ZoneInfo(tz)  # type: ignore[arg-type]
    if tz:
        logger.debug("Invalid timezone %r, falling back to %s", tz, GymConstants.DEFAULT_TIMEZONE)
    return ZoneInfo(GymConstants.DEFAULT_TIMEZONE)


def _as_utc(utc_instant: datetime | None) -> datetime:
    """Normalize an instant to an aware UTC datetime (naive values are taken as UTC)."""
    if utc_instant is None:
        return datetime.now(UTC)
    if utc_instant.tzinfo is None:
        return utc_instant.replace(tzinfo=UTC)
    return utc_instant.astimezone(UTC)


def _format_clock(local: datetime) -> str:
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {meridiem}"


def local_now(tz: str | None, utc_instant: datetime | None = None) -> LocalTime:
    """
    Convert a UTC instant to local wall-clock parts.

    Args:
        tz: IANA timezone name (falls back to the default zone when invalid)
        utc_instant: Instant to convert (defaults to now)

    Returns:
        LocalTime with hour, day of week (0=Sunday), ISO date and a formatted clock string
    """
    local = _as_utc(utc_instant).astimezone(resolve_timezone(tz))
    return LocalTime(
        hour=local.hour,
        day_of_week=local.isoweekday() % 7,
        iso_date=local.date().isoformat(),
        formatted=_format_clock(local),
        local=local,
    )


def local_midnight_utc(tz: str | None, utc_instant: datetime | None = None) -> datetime:
    """
    Get today's local midnight in ``tz`` as a UTC instant.

    "Today" is the local calendar date of ``utc_instant``. Midnight is resolved with
    the offset the zone has at that midnight, so on daylight-saving transition days
    the result still lands on the same local date.
    """
    zone = resolve_timezone(tz)
    local = _as_utc(utc_instant).astimezone(zone)
    midnight = datetime.combine(local.date(), time(0), tzinfo=zone)
    return midnight.astimezone(UTC)


def days_ago(tz: str | None, days: int, utc_instant: datetime | None = None) -> datetime:
    """Local midnight minus ``days`` * 24h, in UTC. ``days=0`` is today's local midnight."""
    return local_midnight_utc(tz, utc_instant) - timedelta(days=days)


def is_quiet_hours(
    tz: str | None,
    utc_instant: datetime | None = None,
    start_hour: int = GymConstants.QUIET_HOUR_START,
    end_hour: int = GymConstants.QUIET_HOUR_END,
) -> bool:
    """
    Check whether outbound messaging is prohibited at ``utc_instant``.

    The window runs from ``start_hour`` (inclusive) to ``end_hour`` (exclusive) local
    time and wraps midnight when start > end. With the defaults, 21:00 and 07:59 are
    quiet while 08:00 and 20:59 are not.
    """
    hour = local_now(tz, utc_instant).hour
    if start_hour > end_hour:
        return hour >= start_hour or hour < end_hour
    return start_hour <= hour < end_hour


def next_send_window(
    tz: str | None,
    utc_instant: datetime | None = None,
    start_hour: int = GymConstants.QUIET_HOUR_START,
    end_hour: int = GymConstants.QUIET_HOUR_END,
) -> datetime:
    """
    Return the earliest UTC instant at or after ``utc_instant`` outside quiet hours.

    Used to schedule deferred messages for the next eligible window.
    """
    now = _as_utc(utc_instant)
    if not is_quiet_hours(tz, now, start_hour, end_hour):
        return now

    zone = resolve_timezone(tz)
    local = now.astimezone(zone)
    resume_date = local.date()
    if start_hour > end_hour and local.hour >= start_hour:
        resume_date += timedelta(days=1)
    resume = datetime.combine(resume_date, time(end_hour), tzinfo=zone)
    return resume.astimezone(UTC)


def today_in_timezone(tz: str | None, utc_instant: datetime | None = None) -> str:
    """Get today's date as YYYY-MM-DD in the account's timezone."""
    return local_now(tz, utc_instant).iso_date


def format_for_display(utc_instant: datetime | str, tz: str | None) -> str:
    """Format a UTC instant for display, e.g. ``"Feb 26, 2026 at 3:45 PM"``."""
    if isinstance(utc_instant, str):
        utc_instant = datetime.fromisoformat(utc_instant)
    local = _as_utc(utc_instant).astimezone(resolve_timezone(tz))
    month = _MONTH_ABBREVIATIONS[local.month - 1]
    return f"{month} {local.day}, {local.year} at {_format_clock(local)}"
