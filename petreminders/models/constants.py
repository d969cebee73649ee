"""Constants for petreminders.

This module centralizes the tunable limits of the reminder engine. Each value can be
overridden through the environment (or a `.env` file).
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Expansion: how far ahead occurrences are materialized
DEFAULT_HORIZON_DAYS = int(os.getenv("REMINDER_HORIZON_DAYS", "90"))

# Re-expansion: default rebuild boundary is the first of the current month minus this backfill
REBUILD_BACKFILL_DAYS = int(os.getenv("REMINDER_REBUILD_BACKFILL_DAYS", "7"))

# Local notifications: alerts mirrored per reminder
NOTIFICATION_CAP = int(os.getenv("REMINDER_NOTIFICATION_CAP", "64"))

# Local notifications: pending alerts the platform keeps across all reminders.
# At the default one reminder at NOTIFICATION_CAP fills it; later reminders report failed alerts.
NOTIFICATION_PENDING_BUDGET = int(os.getenv("NOTIFICATION_PENDING_BUDGET", "64"))

# Default size of "next N fires" lookups
UPCOMING_LIMIT = int(os.getenv("REMINDER_UPCOMING_LIMIT", "64"))

# Alert title used when a reminder title is blank
DEFAULT_ALERT_TITLE = "Reminder"

DEFAULT_TIMEZONE = "UTC"
