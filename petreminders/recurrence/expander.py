"""Expand a reminder's recurrence definition into concrete UTC fire times.

Pure and side-effect free: no store or notification calls happen here, so the
same definition and horizon always produce the same ordered list.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Iterator, List, Optional, Tuple

from petreminders.errors import InvalidDefinition
from petreminders.models.recurrence import ALL_WEEKDAYS_MASK, ScheduleType, split_time_of_day
from petreminders.recurrence.calendar_math import (
    clamp_day_of_month,
    compose_instant,
    resolve_timezone,
    step_day,
    step_month,
    weekday_index,
)


def effective_end(end_date: Optional[date], horizon_end: date) -> date:
    """Last calendar day that may produce occurrences."""
    return min(end_date or horizon_end, horizon_end)


def _daily(start: date, end: date) -> Iterator[date]:
    cur = start
    while cur <= end:
        yield cur
        cur = step_day(cur, 1)


def _weekly(start: date, end: date, mask: int) -> Iterator[date]:
    for day in _daily(start, end):
        if mask & (1 << weekday_index(day)):
            yield day


def _interval(start: date, end: date, step: int) -> Iterator[date]:
    cur = start
    while cur <= end:
        yield cur
        cur = step_day(cur, step)


def _monthly(start: date, end: date) -> Iterator[date]:
    # Every hit is derived from the first of the start month so a clamp in a short
    # month (31 -> 30) does not carry into later months.
    first = start.replace(day=1)
    n = 0
    while True:
        hit = clamp_day_of_month(step_month(first, n), start.day)
        if hit > end:
            return
        yield hit
        n += 1


def _schedule_type(schedule) -> ScheduleType:
    raw = getattr(schedule, "schedule_type", None)
    try:
        return ScheduleType(raw)
    except ValueError as e:
        raise InvalidDefinition(f"unknown schedule type: {raw!r}") from e


def _recurrence_days(schedule, start: date, end: date) -> Iterator[date]:
    kind = _schedule_type(schedule)

    if kind == ScheduleType.ONCE:
        anchor = getattr(schedule, "date_once", None)
        if anchor is None:
            raise InvalidDefinition("once schedule requires date_once")
        if start <= anchor <= end:
            yield anchor
        return

    if kind == ScheduleType.DAILY:
        yield from _daily(start, end)
        return

    if kind == ScheduleType.WEEKLY:
        mask = getattr(schedule, "weekday_mask", None) or 0
        if mask <= 0 or mask & ~ALL_WEEKDAYS_MASK:
            raise InvalidDefinition(f"weekday_mask must select Monday..Sunday bits, got {mask!r}")
        yield from _weekly(start, end, mask)
        return

    if kind == ScheduleType.INTERVAL:
        step = getattr(schedule, "interval_days", None)
        if not isinstance(step, int) or step < 1:
            raise InvalidDefinition(f"interval_days must be a positive integer, got {step!r}")
        yield from _interval(start, end, step)
        return

    if kind == ScheduleType.MONTHLY:
        yield from _monthly(start, end)
        return


def _times_of_day(values: Iterable) -> List[Tuple[int, int]]:
    try:
        times = [split_time_of_day(v) for v in (values or [])]
    except ValueError as e:
        raise InvalidDefinition(str(e)) from e
    if not times:
        raise InvalidDefinition("times must contain at least one time of day")
    return times


def expand_occurrences(reminder, horizon_end: date) -> List[datetime]:
    """Compute the fire times of a reminder up to a horizon.

    Args:
        reminder: Object exposing schedule, times, start_date, end_date and timezone
            (normally a Reminder)
        horizon_end: Last calendar day (in the reminder's timezone) to materialize,
            regardless of an open-ended end_date

    Returns:
        UTC instants in ascending order, pairwise distinct. When two times of day
        resolve to the same instant the one listed first in `times` is kept.

    Raises:
        InvalidDefinition: Empty times, unknown schedule type or bad parameters
        InvalidTimeOfDay: A time of day out of range
    """
    times = _times_of_day(reminder.times)
    tz = resolve_timezone(reminder.timezone)
    end = effective_end(reminder.end_date, horizon_end)

    out: List[datetime] = []
    seen = set()
    days = list(_recurrence_days(reminder.schedule, reminder.start_date, end))
    for day in days:
        for hour, minute in times:
            at = compose_instant(day, hour, minute, tz)
            # Two wall-clock times can land on one instant across a DST transition.
            if at in seen:
                continue
            seen.add(at)
            out.append(at)

    out.sort()
    return out
