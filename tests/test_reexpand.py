"""Tests for the create/edit expansion protocols."""

import threading
import pytest
from datetime import date, datetime, time, timedelta, timezone
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from petreminders.errors import InvalidDefinition, OperationCancelled, StoreUnavailable
from petreminders.models.occurrence import OccurrenceStatus
from petreminders.models.recurrence import WeeklySchedule, weekday_mask
from petreminders.recurrence.reexpand import ReexpansionCoordinator, default_rebuild_from


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def coordinator(db_session, locks):
    return ReexpansionCoordinator(db_session, locks=locks, horizon_days=30)


@pytest.fixture
def expanded(coordinator, stored_reminder):
    coordinator.expand_new(stored_reminder)
    return stored_reminder


def _persisted(occurrence_repository, reminder_id):
    return [(o.occurs_at, o.status) for o in occurrence_repository.query_occurrences(reminder_id=reminder_id)]


class TestCreateProtocol:
    def test_expand_new_materializes_horizon(self, coordinator, stored_reminder, occurrence_repository):
        result = coordinator.expand_new(stored_reminder)
        # 2024-01-01 .. 2024-01-31 inclusive
        assert result.inserted == 31
        assert result.horizon_end == date(2024, 1, 31)
        rows = occurrence_repository.query_occurrences(reminder_id=stored_reminder.id)
        assert rows[0].occurs_at == _utc(2024, 1, 1, 9)
        assert rows[-1].occurs_at == _utc(2024, 1, 31, 9)

    def test_invalid_definition_writes_nothing(self, coordinator, stored_reminder, occurrence_repository):
        broken = stored_reminder.model_copy(update={"times": []})
        with pytest.raises(InvalidDefinition):
            coordinator.expand_new(broken)
        assert occurrence_repository.query_occurrences(reminder_id=stored_reminder.id) == []


class TestDefaultRebuildFrom:
    def test_first_of_month_minus_backfill(self):
        now = _utc(2024, 3, 20, 12)
        assert default_rebuild_from("UTC", now, backfill_days=7) == _utc(2024, 2, 23)

    def test_uses_local_month(self):
        # 2024-03-01 02:00 UTC is still February 29 in New York
        now = _utc(2024, 3, 1, 2)
        boundary = default_rebuild_from("America/New_York", now, backfill_days=0)
        assert boundary == _utc(2024, 2, 1, 5)


class TestEditProtocol:
    def test_idempotent(self, coordinator, expanded, occurrence_repository):
        """Running the edit protocol twice without a change yields the same set."""
        rebuild_from = _utc(2024, 1, 10)
        coordinator.reexpand(expanded, rebuild_from=rebuild_from)
        once = [at for at, _ in _persisted(occurrence_repository, expanded.id)]
        coordinator.reexpand(expanded, rebuild_from=rebuild_from)
        twice = [at for at, _ in _persisted(occurrence_repository, expanded.id)]
        assert once == twice
        assert len(twice) == len(set(twice))

    def test_history_before_anchor_untouched(self, coordinator, expanded, occurrence_repository):
        rows = occurrence_repository.query_occurrences(reminder_id=expanded.id)
        occurrence_repository.update_status(rows[0].id, OccurrenceStatus.DONE)
        occurrence_repository.update_status(rows[2].id, OccurrenceStatus.DISMISSED)
        before = [(o.id, o.occurs_at, o.status) for o in rows[:5]]

        edited = expanded.model_copy(update={"times": [time(18, 0)]})
        coordinator.reexpand(edited, rebuild_from=_utc(2024, 1, 6))

        after = occurrence_repository.query_occurrences(reminder_id=expanded.id, end=_utc(2024, 1, 6))
        assert [(o.id, o.occurs_at, o.status) for o in after] == [
            (before[0][0], before[0][1], OccurrenceStatus.DONE),
            (before[1][0], before[1][1], OccurrenceStatus.PENDING),
            (before[2][0], before[2][1], OccurrenceStatus.DISMISSED),
            (before[3][0], before[3][1], OccurrenceStatus.PENDING),
            (before[4][0], before[4][1], OccurrenceStatus.PENDING),
        ]
        future = occurrence_repository.query_occurrences(reminder_id=expanded.id, start=_utc(2024, 1, 6))
        assert future
        assert all(o.occurs_at.hour == 18 for o in future)

    def test_anchor_is_at_least_start_date(self, coordinator, expanded):
        result = coordinator.reexpand(expanded, rebuild_from=_utc(2023, 6, 1))
        assert result.anchor == _utc(2024, 1, 1)

    def test_schedule_change_rebuilds_future(self, coordinator, expanded, occurrence_repository):
        weekly = expanded.model_copy(update={"schedule": WeeklySchedule(weekday_mask=weekday_mask("we"))})
        result = coordinator.reexpand(weekly, rebuild_from=_utc(2024, 1, 8))

        # Edit horizon counts from the anchor's local date: 2024-01-08 + 30 days
        assert result.horizon_end == date(2024, 2, 7)
        future = occurrence_repository.query_occurrences(reminder_id=expanded.id, start=_utc(2024, 1, 8))
        assert [o.occurs_at.date() for o in future] == [
            date(2024, 1, 10),
            date(2024, 1, 17),
            date(2024, 1, 24),
            date(2024, 1, 31),
            date(2024, 2, 7),
        ]

    def test_actioned_future_occurrence_is_kept(self, coordinator, expanded, occurrence_repository):
        target = occurrence_repository.query_occurrences(reminder_id=expanded.id, start=_utc(2024, 1, 15))[0]
        occurrence_repository.update_status(target.id, OccurrenceStatus.DONE)

        coordinator.reexpand(expanded, rebuild_from=_utc(2024, 1, 10))

        kept = occurrence_repository.get(target.id)
        assert kept is not None
        assert kept.status == OccurrenceStatus.DONE
        same_instant = [
            o for o in occurrence_repository.query_occurrences(reminder_id=expanded.id)
            if o.occurs_at == target.occurs_at
        ]
        assert len(same_instant) == 1

    def test_cancelled_before_apply_leaves_store_intact(self, coordinator, expanded, occurrence_repository):
        before = _persisted(occurrence_repository, expanded.id)
        cancel = threading.Event()
        cancel.set()
        edited = expanded.model_copy(update={"times": [time(6, 0)]})

        with pytest.raises(OperationCancelled):
            coordinator.reexpand(edited, rebuild_from=_utc(2024, 1, 10), cancel_event=cancel)
        assert _persisted(occurrence_repository, expanded.id) == before

    def test_store_failure_is_retryable_and_leaves_no_gap(self, coordinator, expanded, occurrence_repository, db_session):
        """A failed commit rolls back the delete too; a retry then succeeds."""
        before = _persisted(occurrence_repository, expanded.id)
        edited = expanded.model_copy(update={"times": [time(6, 0)]})

        with patch.object(db_session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("db down"))):
            with pytest.raises(StoreUnavailable) as exc_info:
                coordinator.reexpand(edited, rebuild_from=_utc(2024, 1, 10))
        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert _persisted(occurrence_repository, expanded.id) == before

        coordinator.reexpand(edited, rebuild_from=_utc(2024, 1, 10))
        future = occurrence_repository.query_occurrences(reminder_id=expanded.id, start=_utc(2024, 1, 10))
        assert future and all(o.occurs_at.hour == 6 for o in future)

    def test_lock_released_after_run(self, coordinator, expanded, locks):
        coordinator.reexpand(expanded, rebuild_from=_utc(2024, 1, 10))
        assert locks.active_keys() == 0
