"""Repository for Reminder (recurrence definition) database operations."""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from petreminders.database.models import ReminderDB, ReminderOccurrenceDB
from petreminders.models.reminder import Reminder

logger = logging.getLogger(__name__)


class ReminderRepository:
    """Definition store: CRUD for reminders."""

    def __init__(self, db: Session):
        self.db = db

    def _row(self, reminder_id: str) -> Optional[ReminderDB]:
        return self.db.query(ReminderDB).filter(ReminderDB.id == reminder_id).first()

    def create(self, reminder: Reminder) -> Reminder:
        """Create a new reminder."""
        try:
            row = ReminderDB.from_pydantic(reminder)
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Created reminder {reminder.id}: {reminder.title[:50]}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create reminder {reminder.id}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, reminder_id: str) -> Optional[Reminder]:
        row = self._row(reminder_id)
        return row.to_pydantic() if row else None

    def list_for_pet(self, pet_id: str) -> List[Reminder]:
        """Reminders of a pet, oldest first."""
        rows = (
            self.db.query(ReminderDB)
            .filter(ReminderDB.pet_id == pet_id)
            .order_by(ReminderDB.created_at, ReminderDB.id)
            .all()
        )
        return [row.to_pydantic() for row in rows]

    def update(self, reminder: Reminder, commit: bool = True) -> Optional[Reminder]:
        """Overwrite the editable fields of an existing reminder.

        With commit=False the change is only flushed, so the caller can commit it
        together with other writes (or roll it back).
        """
        row = self._row(reminder.id)
        if row is None:
            return None
        row.apply_fields(reminder)
        row.updated_at = datetime.utcnow()
        try:
            if commit:
                self.db.commit()
            else:
                self.db.flush()
            self.db.refresh(row)
            logger.debug(f"Updated reminder {reminder.id}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update reminder {reminder.id}: {type(e).__name__}: {str(e)}")
            raise

    def set_notifications_enabled(self, reminder_id: str, enabled: bool) -> Optional[Reminder]:
        """Write back only the notifications flag."""
        row = self._row(reminder_id)
        if row is None:
            return None
        row.notifications_enabled = bool(enabled)
        row.updated_at = datetime.utcnow()
        try:
            self.db.commit()
            self.db.refresh(row)
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Failed to set notifications_enabled={enabled} for reminder {reminder_id}: "
                f"{type(e).__name__}: {str(e)}"
            )
            raise

    def delete(self, reminder_id: str) -> bool:
        """Delete a reminder and all of its occurrences.

        Returns:
            False if the reminder did not exist
        """
        row = self._row(reminder_id)
        if row is None:
            return False
        try:
            # Explicit delete as well as ON DELETE CASCADE: SQLite only cascades with foreign_keys=ON.
            deleted = (
                self.db.query(ReminderOccurrenceDB)
                .filter(ReminderOccurrenceDB.reminder_id == reminder_id)
                .delete(synchronize_session=False)
            )
            self.db.delete(row)
            self.db.commit()
            logger.debug(f"Deleted reminder {reminder_id} and {deleted} occurrences")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete reminder {reminder_id}: {type(e).__name__}: {str(e)}")
            raise
