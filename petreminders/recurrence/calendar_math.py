"""Timezone-aware date arithmetic used by the schedule expander."""

from __future__ import annotations

from calendar import monthrange
from datetime import date, datetime, timedelta, timezone
from typing import Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.relativedelta import relativedelta

from petreminders.errors import InvalidDefinition, InvalidTimeOfDay

TzLike = Union[str, ZoneInfo]


def resolve_timezone(tz: TzLike) -> ZoneInfo:
    if isinstance(tz, ZoneInfo):
        return tz
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidDefinition(f"unknown timezone: {tz!r}") from e


def compose_instant(day: date, hour: int, minute: int, tz: TzLike) -> datetime:
    """Combine a local calendar date and wall-clock time into a UTC instant.

    Args:
        day: Calendar date in the reminder's timezone
        hour: 0..23
        minute: 0..59
        tz: IANA zone name or ZoneInfo

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        InvalidTimeOfDay: If hour or minute is out of range
    """
    if not (0 <= hour <= 23) or not (0 <= minute <= 59):
        raise InvalidTimeOfDay(f"invalid time of day {hour:02d}:{minute:02d}")
    local = datetime(day.year, day.month, day.day, hour, minute, tzinfo=resolve_timezone(tz))
    return local.astimezone(timezone.utc)


def step_day(day: date, n: int) -> date:
    return day + timedelta(days=n)


def step_month(day: date, n: int) -> date:
    """Move n calendar months; a day past the target month's end is clamped."""
    return day + relativedelta(months=n)


def weekday_index(day: date) -> int:
    # Monday=0 ... Sunday=6
    return day.weekday()


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def clamp_day_of_month(day: date, target_day: int) -> date:
    """Move to `target_day` within the same month, clamped to the month's last day."""
    last = days_in_month(day.year, day.month)
    return day.replace(day=max(1, min(target_day, last)))


def start_of_local_day(day: date, tz: TzLike) -> datetime:
    """UTC instant of local midnight on `day`."""
    return compose_instant(day, 0, 0, tz)


def local_date(instant: datetime, tz: TzLike) -> date:
    """Calendar date of a UTC instant as seen in `tz`."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(resolve_timezone(tz)).date()


def start_of_local_month(instant: datetime, tz: TzLike) -> date:
    return local_date(instant, tz).replace(day=1)


def as_utc(instant: datetime) -> datetime:
    """Normalize to an aware UTC datetime (naive input is assumed UTC)."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)
