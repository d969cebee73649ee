"""Occurrence data model for petreminders."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class OccurrenceStatus(str, Enum):
    """Occurrence status enumeration."""
    PENDING = "pending"
    DONE = "done"
    DISMISSED = "dismissed"
    CANCELED = "canceled"


class Occurrence(BaseModel):
    """One concrete fire time of a reminder."""

    id: str = Field(..., description="Unique occurrence identifier")
    reminder_id: str = Field(..., description="Reminder this occurrence was expanded from")
    pet_id: str = Field(..., description="Denormalized owner for per-pet queries")
    occurs_at: datetime = Field(..., description="Absolute fire time (UTC)")
    status: OccurrenceStatus = Field(OccurrenceStatus.PENDING, description="Occurrence status")


class OccurrenceWithTitle(Occurrence):
    """Occurrence joined with its reminder's title (calendar views)."""

    title: Optional[str] = None
