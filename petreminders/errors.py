"""Error kinds raised by the reminder engine.

The API layer maps these onto HTTP status codes; callers that use the engine
directly can branch on the type (e.g. prompt for notification permission on
AuthorizationDenied, retry on StoreUnavailable).
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ReminderError(Exception):
    """Base exception for all reminder engine errors."""

    retryable = False


class InvalidDefinition(ReminderError, ValueError):
    """A recurrence definition is malformed.

    Raised when:
    - times of day are empty
    - the weekday mask selects no day (or bits outside Monday..Sunday)
    - the interval is not a positive number of days
    - the schedule type is unknown
    - the timezone cannot be resolved

    Rejected before anything is persisted; never retried automatically.
    """


class InvalidTimeOfDay(InvalidDefinition):
    """Hour or minute is outside [0, 23] / [0, 59]."""


class StoreUnavailable(ReminderError):
    """The occurrence or definition store failed (transient, retryable)."""

    retryable = True


class AuthorizationDenied(ReminderError):
    """The platform refused local notification permission.

    Reported separately from store failures so the caller can redirect the
    user to a settings prompt instead of retrying.
    """


class NotFound(ReminderError):
    """The referenced definition or occurrence no longer exists."""


class NotificationScheduleError(ReminderError):
    """The notification subsystem refused a single alert (e.g. budget exhausted)."""


class OperationCancelled(ReminderError):
    """A re-expansion was cancelled before it applied any write."""


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into StoreUnavailable."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Store failure during {action}: {type(e).__name__}: {str(e)}")
        raise StoreUnavailable(f"{action} failed: {type(e).__name__}") from e
