"""Tests for expanding recurrence definitions into fire times."""

import pytest
from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace

from petreminders.errors import InvalidDefinition, InvalidTimeOfDay
from petreminders.models.recurrence import (
    DailySchedule,
    IntervalSchedule,
    MonthlySchedule,
    OnceSchedule,
    WeeklySchedule,
    weekday_mask,
)
from petreminders.models.reminder import Reminder
from petreminders.recurrence.calendar_math import local_date
from petreminders.recurrence.expander import effective_end, expand_occurrences


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def make_reminder(sample_reminder_base):
    def _make(**overrides):
        return Reminder(**{**sample_reminder_base, **overrides})
    return _make


class TestScheduleTypes:
    """Each schedule variant yields the expected days."""

    def test_weekly_mask_only_wednesday(self, make_reminder):
        """Monday start, +14 days, Wednesday only -> the two Wednesdays at 09:00."""
        r = make_reminder(
            schedule=WeeklySchedule(weekday_mask=weekday_mask("we")),
            times=["09:00"],
            start_date=date(2024, 1, 1),
        )
        out = expand_occurrences(r, date(2024, 1, 1) + timedelta(days=14))
        assert out == [_utc(2024, 1, 3, 9, 0), _utc(2024, 1, 10, 9, 0)]

    def test_weekly_multiple_days(self, make_reminder):
        r = make_reminder(
            schedule=WeeklySchedule(weekday_mask=weekday_mask("mo", "fr")),
            start_date=date(2024, 1, 1),
        )
        out = expand_occurrences(r, date(2024, 1, 12))
        assert [at.date() for at in out] == [date(2024, 1, 1), date(2024, 1, 5), date(2024, 1, 8), date(2024, 1, 12)]

    def test_interval_every_three_days(self, make_reminder):
        r = make_reminder(
            schedule=IntervalSchedule(interval_days=3),
            times=["08:00"],
            start_date=date(2024, 1, 1),
        )
        out = expand_occurrences(r, date(2024, 1, 11))
        assert [(at.date() - date(2024, 1, 1)).days for at in out] == [0, 3, 6, 9]
        assert all(at.hour == 8 for at in out)

    def test_monthly_clamps_to_last_day(self, make_reminder):
        """Jan 31 start clamps to Feb 29 / Apr 30 and returns to the 31st when possible."""
        r = make_reminder(schedule=MonthlySchedule(), start_date=date(2024, 1, 31))
        out = expand_occurrences(r, date(2024, 5, 30))
        assert [at.date() for at in out] == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
        ]

    def test_monthly_non_leap_february(self, make_reminder):
        r = make_reminder(schedule=MonthlySchedule(), start_date=date(2023, 1, 30))
        out = expand_occurrences(r, date(2023, 3, 31))
        assert [at.date() for at in out] == [date(2023, 1, 30), date(2023, 2, 28), date(2023, 3, 30)]

    def test_daily_multiple_times_sorted(self, make_reminder):
        r = make_reminder(times=["18:00", "08:00"], start_date=date(2024, 1, 1))
        out = expand_occurrences(r, date(2024, 1, 2))
        assert out == [
            _utc(2024, 1, 1, 8, 0),
            _utc(2024, 1, 1, 18, 0),
            _utc(2024, 1, 2, 8, 0),
            _utc(2024, 1, 2, 18, 0),
        ]

    def test_once_inside_range(self, make_reminder):
        r = make_reminder(
            schedule=OnceSchedule(date_once=date(2024, 2, 14)),
            times=["10:00", "20:00"],
            start_date=date(2024, 1, 1),
        )
        out = expand_occurrences(r, date(2024, 3, 31))
        assert out == [_utc(2024, 2, 14, 10, 0), _utc(2024, 2, 14, 20, 0)]

    def test_once_outside_range_yields_nothing(self, make_reminder):
        before = make_reminder(schedule=OnceSchedule(date_once=date(2023, 12, 31)), start_date=date(2024, 1, 1))
        beyond = make_reminder(schedule=OnceSchedule(date_once=date(2024, 6, 1)), start_date=date(2024, 1, 1))
        assert expand_occurrences(before, date(2024, 3, 31)) == []
        assert expand_occurrences(beyond, date(2024, 3, 31)) == []

    def test_local_times_resolve_against_timezone(self, make_reminder):
        r = make_reminder(timezone="Asia/Tokyo", start_date=date(2024, 1, 1))
        out = expand_occurrences(r, date(2024, 1, 1))
        # 09:00 JST == 00:00 UTC
        assert out == [_utc(2024, 1, 1, 0, 0)]


class TestExpansionProperties:
    """Determinism, uniqueness and bounds."""

    def test_deterministic(self, make_reminder):
        r = make_reminder(
            schedule=WeeklySchedule(weekday_mask=weekday_mask("tu", "th", "sa")),
            times=["07:15", "19:45"],
            timezone="Europe/London",
        )
        first = expand_occurrences(r, date(2024, 6, 30))
        second = expand_occurrences(r, date(2024, 6, 30))
        assert first == second
        assert first == sorted(first)

    def test_no_duplicates(self, make_reminder):
        r = make_reminder(times=["09:00", "09:00", "21:00"], timezone="America/New_York")
        out = expand_occurrences(r, date(2024, 12, 31))
        assert len(out) == len(set(out))

    def test_bounds_respected(self, make_reminder):
        horizon = date(2024, 2, 15)
        r = make_reminder(start_date=date(2024, 1, 10), end_date=date(2024, 3, 1), timezone="Australia/Sydney")
        out = expand_occurrences(r, horizon)
        end = effective_end(r.end_date, horizon)
        assert end == horizon
        assert out
        for at in out:
            assert r.start_date <= local_date(at, r.timezone) <= end

    def test_end_date_before_horizon(self, make_reminder):
        r = make_reminder(start_date=date(2024, 1, 1), end_date=date(2024, 1, 3))
        out = expand_occurrences(r, date(2024, 3, 31))
        assert [at.date() for at in out] == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]

    def test_horizon_before_start(self, make_reminder):
        r = make_reminder(start_date=date(2024, 5, 1))
        assert expand_occurrences(r, date(2024, 4, 30)) == []

    def test_dst_gap_collapsed_instants_are_deduplicated(self, make_reminder):
        """02:30 does not exist on 2024-03-10 in New York and lands on the same instant as 03:30."""
        r = make_reminder(
            times=["02:30", "03:30"],
            timezone="America/New_York",
            start_date=date(2024, 3, 9),
            end_date=date(2024, 3, 11),
        )
        out = expand_occurrences(r, date(2024, 3, 31))
        assert len(out) == len(set(out))
        on_transition_day = [at for at in out if local_date(at, r.timezone) == date(2024, 3, 10)]
        assert len(on_transition_day) == 1
        assert len(out) == 5


class TestInvalidDefinitions:
    """Malformed definitions raise InvalidDefinition and never yield a silent empty list."""

    def _raw(self, **overrides):
        base = {
            "schedule": SimpleNamespace(schedule_type="daily"),
            "times": ["09:00"],
            "start_date": date(2024, 1, 1),
            "end_date": None,
            "timezone": "UTC",
        }
        base.update(overrides)
        return SimpleNamespace(**base)

    def test_empty_times(self):
        with pytest.raises(InvalidDefinition):
            expand_occurrences(self._raw(times=[]), date(2024, 1, 31))

    def test_unknown_schedule_type(self):
        with pytest.raises(InvalidDefinition):
            expand_occurrences(self._raw(schedule=SimpleNamespace(schedule_type="yearly")), date(2024, 1, 31))

    @pytest.mark.parametrize("mask", [0, None, 128, 255])
    def test_bad_weekday_mask(self, mask):
        schedule = SimpleNamespace(schedule_type="weekly", weekday_mask=mask)
        with pytest.raises(InvalidDefinition):
            expand_occurrences(self._raw(schedule=schedule), date(2024, 1, 31))

    @pytest.mark.parametrize("step", [0, -3, None])
    def test_bad_interval(self, step):
        schedule = SimpleNamespace(schedule_type="interval", interval_days=step)
        with pytest.raises(InvalidDefinition):
            expand_occurrences(self._raw(schedule=schedule), date(2024, 1, 31))

    def test_once_without_date(self):
        schedule = SimpleNamespace(schedule_type="once", date_once=None)
        with pytest.raises(InvalidDefinition):
            expand_occurrences(self._raw(schedule=schedule), date(2024, 1, 31))

    def test_out_of_range_time_of_day(self):
        with pytest.raises(InvalidTimeOfDay):
            expand_occurrences(self._raw(times=["25:00"]), date(2024, 1, 31))

    def test_malformed_time_of_day(self):
        with pytest.raises(InvalidDefinition):
            expand_occurrences(self._raw(times=["nine"]), date(2024, 1, 31))

    def test_unknown_timezone(self):
        with pytest.raises(InvalidDefinition):
            expand_occurrences(self._raw(timezone="Nowhere/Special"), date(2024, 1, 31))

    def test_time_objects_accepted(self):
        out = expand_occurrences(self._raw(times=[time(6, 5)]), date(2024, 1, 1))
        assert out == [_utc(2024, 1, 1, 6, 5)]
