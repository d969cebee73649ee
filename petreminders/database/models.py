"""SQLAlchemy database models for petreminders."""

from datetime import datetime, timezone
from typing import Optional, Type, TypeVar, Union
import uuid
from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, JSON, ForeignKey, UniqueConstraint

from petreminders.database.database import Base
from petreminders.models.occurrence import OccurrenceStatus
from petreminders.models.recurrence import format_time_of_day, parse_time_of_day

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string)."""
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


def to_db_utc(instant: Optional[datetime]) -> Optional[datetime]:
    """Aware (or naive UTC) datetime -> naive UTC for storage."""
    if instant is None:
        return None
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc).replace(tzinfo=None)
    return instant


def from_db_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored naive UTC -> aware UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ReminderDB(Base):
    """Database model for a reminder (recurrence definition)."""

    __tablename__ = "reminders"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    pet_id = Column(String, nullable=False, index=True)

    title = Column(String, nullable=False)
    notes = Column(String, nullable=True)

    # Schedule variant and its parameters (only the ones the variant needs are set)
    schedule_type = Column(String, nullable=False)
    weekday_mask = Column(Integer, nullable=True)
    interval_days = Column(Integer, nullable=True)
    date_once = Column(Date, nullable=True)

    # Times of day as ["HH:MM", ...]
    times = Column(JSON, nullable=False, default=list)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    timezone = Column(String, nullable=False, default="UTC")

    notifications_enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def schedule_dict(self) -> dict:
        out: dict = {"schedule_type": self.schedule_type}
        if self.schedule_type == "once":
            out["date_once"] = self.date_once
        elif self.schedule_type == "weekly":
            out["weekday_mask"] = self.weekday_mask
        elif self.schedule_type == "interval":
            out["interval_days"] = self.interval_days
        return out

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from petreminders.models.reminder import Reminder

        return Reminder(
            id=self.id,
            pet_id=self.pet_id,
            title=self.title,
            notes=self.notes,
            schedule=self.schedule_dict(),
            times=[parse_time_of_day(t) for t in (self.times or [])],
            start_date=self.start_date,
            end_date=self.end_date,
            timezone=self.timezone,
            notifications_enabled=bool(self.notifications_enabled),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def apply_fields(self, reminder) -> None:
        """Copy user-editable fields from a Reminder onto this row."""
        schedule = reminder.schedule
        self.title = reminder.title
        self.notes = reminder.notes
        self.schedule_type = schedule.schedule_type
        self.weekday_mask = getattr(schedule, "weekday_mask", None)
        self.interval_days = getattr(schedule, "interval_days", None)
        self.date_once = getattr(schedule, "date_once", None)
        self.times = [format_time_of_day(t) for t in reminder.times]
        self.start_date = reminder.start_date
        self.end_date = reminder.end_date
        self.timezone = reminder.timezone
        self.notifications_enabled = bool(reminder.notifications_enabled)

    @classmethod
    def from_pydantic(cls, reminder):
        """Create database model from Pydantic model."""
        row = cls(
            id=reminder.id,
            pet_id=reminder.pet_id,
            created_at=reminder.created_at or datetime.utcnow(),
            updated_at=reminder.updated_at or datetime.utcnow(),
        )
        row.apply_fields(reminder)
        return row


class ReminderOccurrenceDB(Base):
    """Database model for one concrete fire time of a reminder."""

    __tablename__ = "reminder_occurrences"
    __table_args__ = (
        # A reminder never fires twice at the same instant.
        UniqueConstraint("reminder_id", "occurs_at", name="uq_reminder_occurrence_instant"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    reminder_id = Column(String, ForeignKey("reminders.id", ondelete="CASCADE"), nullable=False, index=True)
    pet_id = Column(String, nullable=False, index=True)

    # Naive UTC
    occurs_at = Column(DateTime, nullable=False, index=True)
    status = Column(String, nullable=False, default=OccurrenceStatus.PENDING.value)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from petreminders.models.occurrence import Occurrence

        return Occurrence(
            id=self.id,
            reminder_id=self.reminder_id,
            pet_id=self.pet_id,
            occurs_at=from_db_utc(self.occurs_at),
            status=value_to_enum(self.status, OccurrenceStatus, OccurrenceStatus.PENDING),
        )

    @classmethod
    def for_instant(cls, reminder_id: str, pet_id: str, occurs_at: datetime):
        """New pending occurrence row for a fire time."""
        return cls(
            id=str(uuid.uuid4()),
            reminder_id=reminder_id,
            pet_id=pet_id,
            occurs_at=to_db_utc(occurs_at),
            status=OccurrenceStatus.PENDING.value,
        )
