"""Caller-facing reminder operations.

Ties the definition store, the re-expansion coordinator and the notification
reconciler together. Every write for one reminder runs under that reminder's
lock, so concurrent edits of the same reminder are applied one after another
while different reminders proceed in parallel.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from petreminders.database.occurrence_repository import OccurrenceRepository
from petreminders.database.reminder_repository import ReminderRepository
from petreminders.errors import AuthorizationDenied, InvalidDefinition, NotFound, OperationCancelled, store_errors
from petreminders.models.constants import DEFAULT_HORIZON_DAYS, NOTIFICATION_CAP, UPCOMING_LIMIT
from petreminders.models.occurrence import Occurrence, OccurrenceStatus, OccurrenceWithTitle
from petreminders.models.reminder import Reminder, ReminderCreate, ReminderUpdate
from petreminders.notifications.center import NotificationCenter
from petreminders.notifications.reconciler import NotificationReconciler, ReconcileResult
from petreminders.recurrence.calendar_math import as_utc
from petreminders.recurrence.locks import KeyedLocks, reminder_locks
from petreminders.recurrence.reexpand import ExpansionResult, ReexpansionCoordinator

logger = logging.getLogger(__name__)


class ReminderChangeResult:
    """Outcome of creating, editing or re-expanding a reminder."""

    def __init__(self, reminder: Reminder):
        self.reminder = reminder
        self.expansion: Optional[ExpansionResult] = None
        self.notifications: Optional[ReconcileResult] = None
        self.authorization_denied = False


def _invalid(e: ValidationError) -> InvalidDefinition:
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in e.errors()
    )
    return InvalidDefinition(details or str(e))


class ReminderService:
    """Reminder use-cases on top of one database session."""

    def __init__(
        self,
        db: Session,
        notification_center: NotificationCenter,
        *,
        locks: KeyedLocks = reminder_locks,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        notification_cap: int = NOTIFICATION_CAP,
    ):
        self.db = db
        self.locks = locks
        self.reminders = ReminderRepository(db)
        self.occurrences = OccurrenceRepository(db)
        self.coordinator = ReexpansionCoordinator(db, locks=locks, horizon_days=horizon_days)
        self.reconciler = NotificationReconciler(db, notification_center, cap=notification_cap)

    # ---- definitions ----

    def get_reminder(self, reminder_id: str) -> Reminder:
        with store_errors(f"reading reminder {reminder_id}"):
            reminder = self.reminders.get(reminder_id)
        if reminder is None:
            raise NotFound(f"reminder {reminder_id} not found")
        return reminder

    def list_reminders(self, pet_id: str) -> List[Reminder]:
        with store_errors(f"listing reminders of pet {pet_id}"):
            return self.reminders.list_for_pet(pet_id)

    def create_reminder(
        self,
        pet_id: str,
        payload: ReminderCreate,
        now: Optional[datetime] = None,
    ) -> ReminderChangeResult:
        """Store a new reminder, expand it and mirror its alerts.

        The definition is expanded before anything is written, so an invalid
        definition leaves no trace in the store.

        Raises:
            InvalidDefinition: The definition cannot be expanded
            StoreUnavailable: The store failed
        """
        stamp = datetime.utcnow()
        try:
            reminder = Reminder(
                id=str(uuid.uuid4()),
                pet_id=pet_id,
                created_at=stamp,
                updated_at=stamp,
                **payload.model_dump(),
            )
        except ValidationError as e:
            raise _invalid(e) from e
        instants = self.coordinator.initial_occurrences(reminder)

        with self.locks.hold(reminder.id):
            with store_errors(f"creating reminder {reminder.id}"):
                created = self.reminders.create(reminder)
            result = ReminderChangeResult(created)
            result.expansion = self.coordinator.expand_new(created, instants)
            self._refresh_alerts(result, now)

        logger.info(f"Created reminder {created.id} for pet {pet_id} ({created.schedule.schedule_type})")
        return result

    def update_reminder(
        self,
        reminder_id: str,
        changes: ReminderUpdate,
        *,
        rebuild_from: Optional[datetime] = None,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReminderChangeResult:
        """Apply a partial edit.

        Occurrences are regenerated only when a schedule-affecting field
        changed; title/notes-only edits just refresh the alert text. A schedule
        change commits the definition and its occurrences in one transaction.
        cancel_event is honored up to that write and ignored after it.

        Raises:
            NotFound: The reminder does not exist
            InvalidDefinition: The merged definition is invalid (nothing is written)
            OperationCancelled: cancel_event was set before the write
            StoreUnavailable: The store failed (nothing is written)
        """
        with self.locks.hold(reminder_id):
            current = self.get_reminder(reminder_id)
            merged_fields = current.model_dump()
            merged_fields.update({name: getattr(changes, name) for name in changes.model_fields_set})
            if "schedule" in changes.model_fields_set and changes.schedule is not None:
                # Full dump keeps the schedule_type tag even when it was left at its default
                merged_fields["schedule"] = changes.schedule.model_dump()
            merged_fields.update(id=current.id, pet_id=current.pet_id, created_at=current.created_at)
            try:
                merged = Reminder.model_validate(merged_fields)
            except ValidationError as e:
                raise _invalid(e) from e

            schedule_changed = merged.schedule_snapshot() != current.schedule_snapshot()
            plan = self.coordinator.plan(merged, rebuild_from=rebuild_from, now=now) if schedule_changed else None

            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelled(f"update of reminder {reminder_id} cancelled")

            expansion = None
            if plan is None:
                with store_errors(f"updating reminder {reminder_id}"):
                    updated = self.reminders.update(merged)
            else:
                try:
                    with store_errors(f"updating reminder {reminder_id}"):
                        updated = self.reminders.update(merged, commit=False)
                    if updated is not None:
                        expansion = self.coordinator.apply(updated, plan)
                except Exception:
                    self.db.rollback()
                    raise
            if updated is None:
                raise NotFound(f"reminder {reminder_id} not found")

            result = ReminderChangeResult(updated)
            result.expansion = expansion
            self._refresh_alerts(result, now)

        logger.info(
            f"Updated reminder {reminder_id} "
            f"({'schedule changed' if schedule_changed else 'no schedule change'})"
        )
        return result

    def delete_reminder(self, reminder_id: str) -> bool:
        """Delete a reminder, its occurrences and its alerts; missing ids are a no-op."""
        with self.locks.hold(reminder_id):
            with store_errors(f"deleting reminder {reminder_id}"):
                deleted = self.reminders.delete(reminder_id)
            self.reconciler.cancel(reminder_id)
        if deleted:
            logger.info(f"Deleted reminder {reminder_id}")
        else:
            logger.debug(f"Delete of unknown reminder {reminder_id} ignored")
        return deleted

    def reexpand(
        self,
        reminder_id: str,
        *,
        rebuild_from: Optional[datetime] = None,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReminderChangeResult:
        """Rebuild occurrences from the stored definition (retry after a failed edit)."""
        with self.locks.hold(reminder_id):
            reminder = self.get_reminder(reminder_id)
            result = ReminderChangeResult(reminder)
            result.expansion = self.coordinator.reexpand(
                reminder, rebuild_from=rebuild_from, now=now, cancel_event=cancel_event
            )
            self._refresh_alerts(result, now)
        return result

    # ---- occurrences ----

    def upcoming(
        self,
        reminder_id: str,
        from_instant: Optional[datetime] = None,
        cap: int = UPCOMING_LIMIT,
    ) -> List[datetime]:
        """Next pending fire times of a reminder, soonest first."""
        self.get_reminder(reminder_id)
        start = as_utc(from_instant) if from_instant is not None else datetime.now(timezone.utc)
        with store_errors(f"reading upcoming occurrences of reminder {reminder_id}"):
            return self.occurrences.upcoming(reminder_id, start, cap)

    def occurrences_for_pet(self, pet_id: str, start: datetime, end: datetime) -> List[OccurrenceWithTitle]:
        """Calendar view: occurrences of a pet in [start, end) with reminder titles."""
        if as_utc(end) <= as_utc(start):
            return []
        with store_errors(f"reading occurrences of pet {pet_id}"):
            return self.occurrences.list_with_titles(pet_id, as_utc(start), as_utc(end))

    def update_occurrence_status(
        self,
        occurrence_id: str,
        status: OccurrenceStatus,
        now: Optional[datetime] = None,
    ) -> Occurrence:
        """Mark an occurrence done/dismissed/canceled (or pending again).

        Raises:
            NotFound: The occurrence does not exist
        """
        with store_errors(f"reading occurrence {occurrence_id}"):
            existing = self.occurrences.get(occurrence_id)
        if existing is None:
            raise NotFound(f"occurrence {occurrence_id} not found")

        with self.locks.hold(existing.reminder_id):
            with store_errors(f"updating occurrence {occurrence_id}"):
                updated = self.occurrences.update_status(occurrence_id, status)
            if updated is None:
                raise NotFound(f"occurrence {occurrence_id} not found")
            # Only pending occurrences carry alerts.
            with store_errors(f"reading reminder {updated.reminder_id}"):
                reminder = self.reminders.get(updated.reminder_id)
            if reminder is not None:
                self._refresh_alerts(ReminderChangeResult(reminder), now)
        return updated

    def delete_occurrence(self, occurrence_id: str, now: Optional[datetime] = None) -> bool:
        """Delete one occurrence; missing ids are a no-op."""
        with store_errors(f"reading occurrence {occurrence_id}"):
            existing = self.occurrences.get(occurrence_id)
        if existing is None:
            return False
        with self.locks.hold(existing.reminder_id):
            with store_errors(f"deleting occurrence {occurrence_id}"):
                deleted = self.occurrences.delete(occurrence_id)
            with store_errors(f"reading reminder {existing.reminder_id}"):
                reminder = self.reminders.get(existing.reminder_id)
            if deleted and reminder is not None:
                self._refresh_alerts(ReminderChangeResult(reminder), now)
        return deleted

    # ---- notifications ----

    def set_notifications(self, reminder_id: str, enabled: bool, now: Optional[datetime] = None) -> ReconcileResult:
        """Persist the notifications flag, then mirror or clear the alerts.

        Raises:
            NotFound: The reminder does not exist
            AuthorizationDenied: Alerts were enabled but permission is denied
        """
        with self.locks.hold(reminder_id):
            with store_errors(f"updating notifications of reminder {reminder_id}"):
                reminder = self.reminders.set_notifications_enabled(reminder_id, enabled)
            if reminder is None:
                raise NotFound(f"reminder {reminder_id} not found")
            return self.reconciler.reconcile(reminder, now)

    def reconcile(self, reminder_id: str, now: Optional[datetime] = None) -> ReconcileResult:
        """Re-mirror a reminder's alerts (e.g. when the app returns to the foreground)."""
        with self.locks.hold(reminder_id):
            reminder = self.get_reminder(reminder_id)
            return self.reconciler.reconcile(reminder, now)

    def _refresh_alerts(self, result: ReminderChangeResult, now: Optional[datetime]) -> None:
        try:
            result.notifications = self.reconciler.reconcile(result.reminder, now)
        except AuthorizationDenied as e:
            logger.warning(f"Alerts for reminder {result.reminder.id} not scheduled: {e}")
            result.authorization_denied = True
