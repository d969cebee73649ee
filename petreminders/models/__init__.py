"""Data models for petreminders."""

from petreminders.models.recurrence import (
    ScheduleType,
    OnceSchedule,
    DailySchedule,
    WeeklySchedule,
    IntervalSchedule,
    MonthlySchedule,
    Schedule,
)
from petreminders.models.reminder import Reminder, ReminderCreate, ReminderUpdate
from petreminders.models.occurrence import Occurrence, OccurrenceStatus, OccurrenceWithTitle

__all__ = [
    "ScheduleType",
    "OnceSchedule",
    "DailySchedule",
    "WeeklySchedule",
    "IntervalSchedule",
    "MonthlySchedule",
    "Schedule",
    "Reminder",
    "ReminderCreate",
    "ReminderUpdate",
    "Occurrence",
    "OccurrenceStatus",
    "OccurrenceWithTitle",
]
