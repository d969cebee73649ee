"""Keep persisted occurrences consistent with a reminder's current definition."""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from petreminders.database.occurrence_repository import OccurrenceRepository
from petreminders.errors import OperationCancelled, store_errors
from petreminders.models.constants import DEFAULT_HORIZON_DAYS, REBUILD_BACKFILL_DAYS
from petreminders.models.reminder import Reminder
from petreminders.recurrence.calendar_math import (
    TzLike,
    as_utc,
    local_date,
    start_of_local_day,
    start_of_local_month,
    step_day,
)
from petreminders.recurrence.expander import expand_occurrences
from petreminders.recurrence.locks import KeyedLocks, reminder_locks

logger = logging.getLogger(__name__)


class ExpansionResult:
    """Result of an expansion or re-expansion."""

    def __init__(self, reminder_id: str, anchor: datetime, horizon_end: date):
        self.reminder_id = reminder_id
        self.anchor = anchor
        self.horizon_end = horizon_end
        self.deleted: int = 0
        self.inserted: int = 0

    def to_dict(self) -> dict:
        return {
            "reminder_id": self.reminder_id,
            "anchor": self.anchor.isoformat(),
            "horizon_end": self.horizon_end.isoformat(),
            "deleted": self.deleted,
            "inserted": self.inserted,
        }


class ExpansionPlan:
    """Fresh occurrences computed for a rebuild, not yet written."""

    def __init__(self, anchor: datetime, horizon_end: date, instants: List[datetime]):
        self.anchor = anchor
        self.horizon_end = horizon_end
        self.instants = instants


def default_rebuild_from(tz: TzLike, now: Optional[datetime] = None, backfill_days: int = REBUILD_BACKFILL_DAYS) -> datetime:
    """First day of the current local month minus a backfill, as a UTC instant.

    Keeps occurrences shown for the visible calendar month (and the few days
    before it) consistent with the edited definition.
    """
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    boundary = step_day(start_of_local_month(now, tz), -backfill_days)
    return start_of_local_day(boundary, tz)


class ReexpansionCoordinator:
    """Runs the create and edit protocols against the occurrence store.

    Edits regenerate the whole future window instead of diffing: pending
    occurrences at or after the anchor are replaced by a fresh expansion in a
    single transaction. Everything before the anchor, and anything already
    actioned (done, dismissed, canceled), is left alone.
    """

    def __init__(
        self,
        db: Session,
        *,
        locks: KeyedLocks = reminder_locks,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ):
        self.db = db
        self.locks = locks
        self.horizon_days = horizon_days
        self.occurrences = OccurrenceRepository(db)

    def initial_horizon(self, reminder: Reminder) -> date:
        return step_day(reminder.start_date, self.horizon_days)

    def initial_occurrences(self, reminder: Reminder) -> List[datetime]:
        """Fire times for a new reminder (validates the definition)."""
        return expand_occurrences(reminder, self.initial_horizon(reminder))

    def expand_new(self, reminder: Reminder, instants: Optional[List[datetime]] = None) -> ExpansionResult:
        """Persist the occurrences of a freshly created reminder.

        Args:
            reminder: The stored reminder
            instants: Precomputed fire times from initial_occurrences (computed when None)

        Raises:
            InvalidDefinition: The definition cannot be expanded
            StoreUnavailable: The insert failed (nothing was written)
        """
        horizon_end = self.initial_horizon(reminder)
        if instants is None:
            instants = expand_occurrences(reminder, horizon_end)
        result = ExpansionResult(reminder.id, start_of_local_day(reminder.start_date, reminder.timezone), horizon_end)
        with self.locks.hold(reminder.id):
            with store_errors(f"expanding reminder {reminder.id}"):
                result.inserted = self.occurrences.insert_occurrences(reminder.id, reminder.pet_id, instants)
        logger.info(f"Expanded reminder {reminder.id}: {result.inserted} occurrences through {horizon_end.isoformat()}")
        return result

    def anchor_for(self, reminder: Reminder, rebuild_from: Optional[datetime] = None, now: Optional[datetime] = None) -> datetime:
        """Rebuild anchor: the later of local midnight on start_date and rebuild_from."""
        if rebuild_from is None:
            rebuild_from = default_rebuild_from(reminder.timezone, now)
        return max(start_of_local_day(reminder.start_date, reminder.timezone), as_utc(rebuild_from))

    def edit_horizon(self, reminder: Reminder, anchor: datetime) -> date:
        base = max(reminder.start_date, local_date(anchor, reminder.timezone))
        return step_day(base, self.horizon_days)

    def reexpand(
        self,
        reminder: Reminder,
        *,
        rebuild_from: Optional[datetime] = None,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExpansionResult:
        """Regenerate a reminder's future occurrences after an edit.

        Safe to call again after a failure; running it twice without a
        definition change leaves the same persisted set.

        Args:
            reminder: Current definition
            rebuild_from: Lower bound of the rebuilt window (defaults to the start
                of the current local month minus the backfill)
            now: Clock used for the default boundary
            cancel_event: Set it to abandon the run; checked before any write

        Returns:
            ExpansionResult with the anchor and the deleted/inserted counts

        Raises:
            InvalidDefinition: The definition cannot be expanded (nothing is written)
            OperationCancelled: cancel_event was set before the write
            StoreUnavailable: The store failed; the transaction was rolled back
        """
        plan = self.plan(reminder, rebuild_from=rebuild_from, now=now)
        return self.apply(reminder, plan, cancel_event=cancel_event)

    def plan(
        self,
        reminder: Reminder,
        *,
        rebuild_from: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> ExpansionPlan:
        """Compute the fresh occurrence set without touching the store."""
        anchor = self.anchor_for(reminder, rebuild_from, now)
        horizon_end = self.edit_horizon(reminder, anchor)
        fresh = [at for at in expand_occurrences(reminder, horizon_end) if at >= anchor]
        return ExpansionPlan(anchor, horizon_end, fresh)

    def apply(
        self,
        reminder: Reminder,
        plan: ExpansionPlan,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExpansionResult:
        """Swap the pending occurrences at/after the plan's anchor for its instants."""
        anchor, horizon_end, fresh = plan.anchor, plan.horizon_end, plan.instants
        result = ExpansionResult(reminder.id, anchor, horizon_end)
        with self.locks.hold(reminder.id):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Re-expansion of reminder {reminder.id} cancelled before applying")
                raise OperationCancelled(f"re-expansion of reminder {reminder.id} cancelled")
            with store_errors(f"re-expanding reminder {reminder.id}"):
                result.deleted, result.inserted = self.occurrences.replace_pending_from(
                    reminder.id, reminder.pet_id, anchor, fresh
                )

        logger.info(
            f"Re-expanded reminder {reminder.id} from {anchor.isoformat()}: "
            f"deleted {result.deleted}, inserted {result.inserted} through {horizon_end.isoformat()}"
        )
        return result
