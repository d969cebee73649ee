"""Request/response models for reminder endpoints."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from petreminders.models.occurrence import Occurrence, OccurrenceStatus, OccurrenceWithTitle
from petreminders.models.reminder import Reminder


class ExpansionSummary(BaseModel):
    """Occurrences written by an expansion."""
    anchor: datetime
    horizon_end: date
    deleted: int = 0
    inserted: int = 0


class ScheduledAlert(BaseModel):
    fire_at: datetime
    identifier: str


class FailedAlert(BaseModel):
    fire_at: datetime
    reason: str


class ReconcileResponse(BaseModel):
    """Alerts mirrored for one reminder."""
    reminder_id: str
    enabled: bool
    cancelled: int = 0
    scheduled: List[ScheduledAlert] = Field(default_factory=list)
    failed: List[FailedAlert] = Field(default_factory=list)


class ReminderResponse(BaseModel):
    """Response for reminder create/update/re-expand."""
    reminder: Reminder
    expansion: Optional[ExpansionSummary] = None
    notifications: Optional[ReconcileResponse] = None
    notifications_denied: bool = Field(False, description="Alerts were requested but permission is denied")


class ReminderListResponse(BaseModel):
    reminders: List[Reminder]


class OccurrenceListResponse(BaseModel):
    """Calendar view of a pet's occurrences."""
    occurrences: List[OccurrenceWithTitle]


class UpcomingResponse(BaseModel):
    reminder_id: str
    fire_times: List[datetime]


class NotificationsRequest(BaseModel):
    enabled: bool


class OccurrenceStatusRequest(BaseModel):
    status: OccurrenceStatus


class OccurrenceResponse(BaseModel):
    occurrence: Occurrence
