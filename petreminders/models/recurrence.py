"""Recurrence schedule variants for petreminders.

A reminder's schedule is one of five closed variants, discriminated by
`schedule_type`. Each variant carries exactly the parameters it needs.
"""

from __future__ import annotations

from datetime import date, time
from enum import Enum
from typing import Annotated, List, Literal, Tuple, Union

from pydantic import BaseModel, Field


class ScheduleType(str, Enum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    INTERVAL = "interval"
    MONTHLY = "monthly"


# Bit 0 = Monday ... bit 6 = Sunday
WEEKDAY_BITS: dict[str, int] = {
    "mo": 1 << 0,
    "tu": 1 << 1,
    "we": 1 << 2,
    "th": 1 << 3,
    "fr": 1 << 4,
    "sa": 1 << 5,
    "su": 1 << 6,
}
ALL_WEEKDAYS_MASK = 0b1111111


def weekday_mask(*days: str) -> int:
    """Build a weekday mask from short day names ("mo", "tu", ...)."""
    mask = 0
    for day in days:
        mask |= WEEKDAY_BITS[day.lower()]
    return mask


class OnceSchedule(BaseModel):
    """Fires on a single calendar date."""

    schedule_type: Literal["once"] = "once"
    date_once: date


class DailySchedule(BaseModel):
    schedule_type: Literal["daily"] = "daily"


class WeeklySchedule(BaseModel):
    """Fires on the weekdays selected by the mask."""

    schedule_type: Literal["weekly"] = "weekly"
    weekday_mask: int = Field(..., ge=1, le=ALL_WEEKDAYS_MASK, description="Bit 0 = Monday ... bit 6 = Sunday")


class IntervalSchedule(BaseModel):
    """Fires every N days counting from the start date."""

    schedule_type: Literal["interval"] = "interval"
    interval_days: int = Field(..., ge=1)


class MonthlySchedule(BaseModel):
    """Fires on the start date's day of month (clamped in shorter months)."""

    schedule_type: Literal["monthly"] = "monthly"


Schedule = Annotated[
    Union[OnceSchedule, DailySchedule, WeeklySchedule, IntervalSchedule, MonthlySchedule],
    Field(discriminator="schedule_type"),
]


def format_time_of_day(t: time) -> str:
    return f"{t.hour:02d}:{t.minute:02d}"


def split_time_of_day(value: Union[str, time]) -> Tuple[int, int]:
    """Split "HH:MM" (or a time) into (hour, minute) without range checks."""
    if isinstance(value, time):
        return (value.hour, value.minute)
    parts = str(value).strip().split(":")
    if len(parts) != 2 or not all(p.strip().isdigit() for p in parts):
        raise ValueError(f"time of day must be HH:MM, got {value!r}")
    return (int(parts[0]), int(parts[1]))


def parse_time_of_day(value: Union[str, time]) -> time:
    """Parse "HH:MM" (or pass through a time) into a time with seconds dropped."""
    hour, minute = split_time_of_day(value)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"time of day out of range: {value!r}")
    return time(hour, minute)


def normalize_times(values: List[Union[str, time]]) -> List[time]:
    """Parse times of day, dropping repeats but preserving first-seen order."""
    seen = set()
    out: List[time] = []
    for value in values:
        t = parse_time_of_day(value)
        key = (t.hour, t.minute)
        if key not in seen:
            seen.add(key)
            out.append(t)
    return out
