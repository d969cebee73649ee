"""Mirror a reminder's soonest pending occurrences into local alerts.

Every reconciliation starts from a clean slate for the reminder (cancel all of
its alerts), then schedules up to `cap` alerts for the soonest pending
occurrences. Alert text is a snapshot of the reminder's title/notes at this
moment; later edits need another reconciliation.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from petreminders.database.occurrence_repository import OccurrenceRepository
from petreminders.errors import AuthorizationDenied, NotificationScheduleError, store_errors
from petreminders.models.constants import DEFAULT_ALERT_TITLE, NOTIFICATION_CAP
from petreminders.models.reminder import Reminder
from petreminders.notifications.center import AuthorizationState, NotificationCenter
from petreminders.recurrence.calendar_math import as_utc

logger = logging.getLogger(__name__)


class ReconcileResult:
    """Outcome of one reconciliation."""

    def __init__(self, reminder_id: str, enabled: bool):
        self.reminder_id = reminder_id
        self.enabled = enabled
        self.cancelled: int = 0
        # (fire_at, identifier)
        self.scheduled: List[Tuple[datetime, str]] = []
        # (fire_at, reason)
        self.failed: List[Tuple[datetime, str]] = []

    @property
    def partial_failure(self) -> bool:
        return bool(self.failed)

    def to_dict(self) -> dict:
        return {
            "reminder_id": self.reminder_id,
            "enabled": self.enabled,
            "cancelled": self.cancelled,
            "scheduled": [{"fire_at": at.isoformat(), "identifier": ident} for at, ident in self.scheduled],
            "failed": [{"fire_at": at.isoformat(), "reason": reason} for at, reason in self.failed],
        }


def alert_text(reminder: Reminder) -> Tuple[str, Optional[str]]:
    """(title, body) snapshot used for alerts."""
    title = (reminder.title or "").strip() or DEFAULT_ALERT_TITLE
    body = reminder.notes if reminder.notes and reminder.notes.strip() else None
    return title, body


class NotificationReconciler:
    """Drives a NotificationCenter from the occurrence store."""

    def __init__(self, db: Session, center: NotificationCenter, *, cap: int = NOTIFICATION_CAP):
        self.db = db
        self.center = center
        self.cap = cap
        self.occurrences = OccurrenceRepository(db)

    def _ensure_authorized(self) -> None:
        state = self.center.authorization_state()
        if state == AuthorizationState.AUTHORIZED:
            return
        if state == AuthorizationState.NOT_DETERMINED and self.center.request_authorization():
            return
        raise AuthorizationDenied("local notification permission denied")

    def cancel(self, reminder_id: str) -> ReconcileResult:
        """Remove every alert of a reminder."""
        result = ReconcileResult(reminder_id, enabled=False)
        result.cancelled = self.center.cancel_all(reminder_id)
        logger.info(f"Cleared {result.cancelled} alerts for reminder {reminder_id}")
        return result

    def reconcile(self, reminder: Reminder, now: Optional[datetime] = None) -> ReconcileResult:
        """Reset the reminder's alerts to its soonest pending occurrences.

        Args:
            reminder: Current definition (title/notes are snapshotted into the alerts)
            now: Lower bound for occurrences (defaults to the current time)

        Returns:
            ReconcileResult listing scheduled alerts and per-alert failures

        Raises:
            AuthorizationDenied: Permission is denied (stale alerts are still cancelled)
            StoreUnavailable: Occurrences could not be read
        """
        if not reminder.notifications_enabled:
            return self.cancel(reminder.id)

        result = ReconcileResult(reminder.id, enabled=True)
        result.cancelled = self.center.cancel_all(reminder.id)
        self._ensure_authorized()

        start = as_utc(now) if now is not None else datetime.now(timezone.utc)
        with store_errors(f"reading upcoming occurrences of reminder {reminder.id}"):
            fire_times = self.occurrences.upcoming(reminder.id, start, self.cap)

        title, body = alert_text(reminder)
        for at in fire_times:
            try:
                ident = self.center.schedule_at(reminder.id, at, title, body)
            except NotificationScheduleError as e:
                logger.warning(f"Alert for reminder {reminder.id} at {at.isoformat()} not scheduled: {e}")
                result.failed.append((at, str(e)))
                continue
            result.scheduled.append((at, ident))

        logger.info(
            f"Reconciled reminder {reminder.id}: {len(result.scheduled)} scheduled, "
            f"{len(result.failed)} failed, {result.cancelled} cancelled"
        )
        return result
