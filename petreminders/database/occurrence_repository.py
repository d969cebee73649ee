"""Repository for reminder occurrence database operations."""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from petreminders.database.models import (
    ReminderDB,
    ReminderOccurrenceDB,
    enum_to_value,
    from_db_utc,
    to_db_utc,
)
from petreminders.models.occurrence import Occurrence, OccurrenceStatus, OccurrenceWithTitle

logger = logging.getLogger(__name__)

_PENDING = OccurrenceStatus.PENDING.value


class OccurrenceRepository:
    """Occurrence store adapter."""

    def __init__(self, db: Session):
        self.db = db

    def insert_occurrences(self, reminder_id: str, pet_id: str, instants: Iterable[datetime]) -> int:
        """Insert one pending occurrence per instant in a single commit."""
        rows = [ReminderOccurrenceDB.for_instant(reminder_id, pet_id, at) for at in instants]
        if not rows:
            return 0
        try:
            self.db.add_all(rows)
            self.db.commit()
            logger.debug(f"Inserted {len(rows)} occurrences for reminder {reminder_id}")
            return len(rows)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to insert occurrences for reminder {reminder_id}: {type(e).__name__}: {str(e)}")
            raise

    def delete_occurrences(
        self,
        reminder_id: str,
        from_instant: datetime,
        statuses: Optional[Sequence[OccurrenceStatus]] = None,
    ) -> int:
        """Delete occurrences of a reminder with occurs_at >= from_instant.

        Args:
            reminder_id: Reminder whose occurrences are removed
            from_instant: Inclusive lower bound
            statuses: Restrict deletion to these statuses (all statuses when None)

        Returns:
            Number of rows deleted
        """
        try:
            query = self.db.query(ReminderOccurrenceDB).filter(
                ReminderOccurrenceDB.reminder_id == reminder_id,
                ReminderOccurrenceDB.occurs_at >= to_db_utc(from_instant),
            )
            if statuses is not None:
                query = query.filter(ReminderOccurrenceDB.status.in_([enum_to_value(s) for s in statuses]))
            deleted = query.delete(synchronize_session=False)
            self.db.commit()
            logger.debug(f"Deleted {deleted} occurrences for reminder {reminder_id} from {from_instant.isoformat()}")
            return int(deleted)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete occurrences for reminder {reminder_id}: {type(e).__name__}: {str(e)}")
            raise

    def replace_pending_from(
        self,
        reminder_id: str,
        pet_id: str,
        from_instant: datetime,
        instants: Iterable[datetime],
    ) -> Tuple[int, int]:
        """Swap pending occurrences at/after from_instant for a fresh set, atomically.

        Occurrences that were already actioned (done, dismissed, canceled) are kept,
        and fresh instants equal to a kept occurrence are not inserted again. The
        delete and the insert share one transaction.

        Returns:
            (deleted, inserted)
        """
        lower = to_db_utc(from_instant)
        try:
            kept = {
                row[0]
                for row in self.db.query(ReminderOccurrenceDB.occurs_at).filter(
                    ReminderOccurrenceDB.reminder_id == reminder_id,
                    ReminderOccurrenceDB.occurs_at >= lower,
                    ReminderOccurrenceDB.status != _PENDING,
                ).all()
            }
            deleted = (
                self.db.query(ReminderOccurrenceDB)
                .filter(
                    ReminderOccurrenceDB.reminder_id == reminder_id,
                    ReminderOccurrenceDB.occurs_at >= lower,
                    ReminderOccurrenceDB.status == _PENDING,
                )
                .delete(synchronize_session=False)
            )
            rows = [
                ReminderOccurrenceDB.for_instant(reminder_id, pet_id, at)
                for at in instants
                if to_db_utc(at) not in kept
            ]
            self.db.add_all(rows)
            self.db.commit()
            logger.debug(
                f"Replaced {deleted} pending occurrences with {len(rows)} for reminder {reminder_id} "
                f"from {from_instant.isoformat()} (kept {len(kept)} actioned)"
            )
            return int(deleted), len(rows)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to replace occurrences for reminder {reminder_id}: {type(e).__name__}: {str(e)}")
            raise

    def query_occurrences(
        self,
        *,
        reminder_id: Optional[str] = None,
        pet_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Occurrence]:
        """Occurrences of a reminder or a pet within [start, end), ordered by occurs_at."""
        if reminder_id is None and pet_id is None:
            raise ValueError("reminder_id or pet_id is required")
        query = self.db.query(ReminderOccurrenceDB)
        if reminder_id is not None:
            query = query.filter(ReminderOccurrenceDB.reminder_id == reminder_id)
        if pet_id is not None:
            query = query.filter(ReminderOccurrenceDB.pet_id == pet_id)
        if start is not None:
            query = query.filter(ReminderOccurrenceDB.occurs_at >= to_db_utc(start))
        if end is not None:
            query = query.filter(ReminderOccurrenceDB.occurs_at < to_db_utc(end))
        rows = query.order_by(ReminderOccurrenceDB.occurs_at, ReminderOccurrenceDB.id).all()
        return [row.to_pydantic() for row in rows]

    def upcoming(self, reminder_id: str, from_instant: datetime, cap: int) -> List[datetime]:
        """Soonest pending fire times at/after from_instant, at most `cap`."""
        if cap <= 0:
            return []
        rows = (
            self.db.query(ReminderOccurrenceDB.occurs_at)
            .filter(
                ReminderOccurrenceDB.reminder_id == reminder_id,
                ReminderOccurrenceDB.occurs_at >= to_db_utc(from_instant),
                ReminderOccurrenceDB.status == _PENDING,
            )
            .order_by(ReminderOccurrenceDB.occurs_at)
            .limit(cap)
            .all()
        )
        return [from_db_utc(row[0]) for row in rows]

    def list_with_titles(self, pet_id: str, start: datetime, end: datetime) -> List[OccurrenceWithTitle]:
        """Occurrences of a pet in [start, end) joined with their reminder titles."""
        rows = (
            self.db.query(ReminderOccurrenceDB, ReminderDB.title)
            .join(ReminderDB, ReminderDB.id == ReminderOccurrenceDB.reminder_id)
            .filter(
                ReminderOccurrenceDB.pet_id == pet_id,
                ReminderOccurrenceDB.occurs_at >= to_db_utc(start),
                ReminderOccurrenceDB.occurs_at < to_db_utc(end),
            )
            .order_by(ReminderOccurrenceDB.occurs_at, ReminderOccurrenceDB.id)
            .all()
        )
        return [
            OccurrenceWithTitle(**occ.to_pydantic().model_dump(), title=title)
            for occ, title in rows
        ]

    def get(self, occurrence_id: str) -> Optional[Occurrence]:
        row = self.db.query(ReminderOccurrenceDB).filter(ReminderOccurrenceDB.id == occurrence_id).first()
        return row.to_pydantic() if row else None

    def update_status(self, occurrence_id: str, status: OccurrenceStatus) -> Optional[Occurrence]:
        """Set an occurrence's status; None if it does not exist."""
        row = self.db.query(ReminderOccurrenceDB).filter(ReminderOccurrenceDB.id == occurrence_id).first()
        if row is None:
            return None
        row.status = enum_to_value(status)
        row.updated_at = datetime.utcnow()
        try:
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Occurrence {occurrence_id} -> {row.status}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update status of occurrence {occurrence_id}: {type(e).__name__}: {str(e)}")
            raise

    def delete(self, occurrence_id: str) -> bool:
        """Delete a single occurrence."""
        row = self.db.query(ReminderOccurrenceDB).filter(ReminderOccurrenceDB.id == occurrence_id).first()
        if row is None:
            return False
        try:
            self.db.delete(row)
            self.db.commit()
            logger.debug(f"Deleted occurrence {occurrence_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete occurrence {occurrence_id}: {type(e).__name__}: {str(e)}")
            raise
