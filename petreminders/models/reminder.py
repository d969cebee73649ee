"""Reminder (recurrence definition) data model for petreminders."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from petreminders.models.constants import DEFAULT_TIMEZONE
from petreminders.models.recurrence import Schedule, normalize_times

# Fields whose change invalidates already-expanded occurrences.
SCHEDULE_FIELDS = ("schedule", "times", "start_date", "end_date", "timezone")


def _validate_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown timezone: {value!r}") from e
    return value


class ReminderFields(BaseModel):
    """User-editable fields of a reminder."""

    title: str = Field(..., min_length=1, description="Reminder title (alert text)")
    notes: Optional[str] = Field(None, description="Free text; used as alert body")
    schedule: Schedule
    times: List[time] = Field(..., description="Wall-clock times of day in the reminder's timezone")
    start_date: date = Field(..., description="No occurrences before this date")
    end_date: Optional[date] = Field(None, description="No occurrences after this date (inclusive)")
    timezone: str = Field(DEFAULT_TIMEZONE, description="IANA zone all times resolve against")
    notifications_enabled: bool = Field(True, description="Mirror occurrences into local alerts")

    @field_validator("times", mode="before")
    @classmethod
    def _validate_times(cls, v):
        if v is None:
            return v
        times = normalize_times(list(v))
        if not times:
            raise ValueError("times must contain at least one time of day")
        return times

    @field_validator("timezone")
    @classmethod
    def _validate_tz(cls, v):
        return _validate_timezone(v)

    @model_validator(mode="after")
    def _validate_range(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


class ReminderCreate(ReminderFields):
    """Payload for creating a reminder."""


class ReminderUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""

    title: Optional[str] = Field(None, min_length=1)
    notes: Optional[str] = None
    schedule: Optional[Schedule] = None
    times: Optional[List[Union[str, time]]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    timezone: Optional[str] = None
    notifications_enabled: Optional[bool] = None


class Reminder(ReminderFields):
    """Canonical reminder (recurrence definition) model."""

    id: str = Field(..., description="Unique reminder identifier (UUID v4)")
    pet_id: str = Field(..., description="Tracked pet this reminder belongs to")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def schedule_snapshot(self) -> dict:
        """Schedule-affecting fields, for change detection."""
        return self.model_dump(include=set(SCHEDULE_FIELDS), mode="json")
