"""Local notification subsystem interface and the in-process implementation."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel

from petreminders.errors import AuthorizationDenied, NotificationScheduleError
from petreminders.models.constants import NOTIFICATION_PENDING_BUDGET
from petreminders.recurrence.calendar_math import as_utc

logger = logging.getLogger(__name__)


class AuthorizationState(str, Enum):
    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    AUTHORIZED = "authorized"


class PendingAlert(BaseModel):
    identifier: str
    reminder_id: str
    fire_at: datetime
    title: str
    body: Optional[str] = None


def alert_identifier(reminder_id: str, fire_at: datetime) -> str:
    """Stable per-reminder namespace so alerts can be cancelled by reminder id."""
    return f"reminder.{reminder_id}.{int(as_utc(fire_at).timestamp())}"


class NotificationCenter(ABC):
    """Platform local-alert scheduler with a cap on pending alerts."""

    @abstractmethod
    def authorization_state(self) -> AuthorizationState:
        ...

    @abstractmethod
    def request_authorization(self) -> bool:
        """Ask the user for permission; True when granted."""

    @abstractmethod
    def cancel_all(self, reminder_id: str) -> int:
        """Cancel every pending alert tagged with the reminder id; returns how many."""

    @abstractmethod
    def schedule_at(self, reminder_id: str, fire_at: datetime, title: str, body: Optional[str]) -> str:
        """Schedule one alert and return its identifier.

        Raises:
            NotificationScheduleError: The platform refused this alert
            AuthorizationDenied: Alerts are not permitted
        """

    @abstractmethod
    def pending(self, reminder_id: Optional[str] = None) -> List[PendingAlert]:
        ...


class InMemoryNotificationCenter(NotificationCenter):
    """Thread-safe in-process notification center.

    Mirrors the platform's behaviour: alerts are keyed by identifier (scheduling the
    same identifier replaces it), and at most `max_pending` alerts may be pending
    across all reminders.
    """

    def __init__(
        self,
        *,
        max_pending: int = NOTIFICATION_PENDING_BUDGET,
        state: AuthorizationState = AuthorizationState.NOT_DETERMINED,
        grant_on_request: bool = True,
    ):
        self.max_pending = max_pending
        self._state = state
        self._grant_on_request = grant_on_request
        self._alerts: Dict[str, PendingAlert] = {}
        self._lock = threading.Lock()

    def authorization_state(self) -> AuthorizationState:
        return self._state

    def request_authorization(self) -> bool:
        with self._lock:
            if self._state == AuthorizationState.NOT_DETERMINED:
                self._state = (
                    AuthorizationState.AUTHORIZED if self._grant_on_request else AuthorizationState.DENIED
                )
            return self._state == AuthorizationState.AUTHORIZED

    def set_authorization_state(self, state: AuthorizationState) -> None:
        with self._lock:
            self._state = state

    def cancel_all(self, reminder_id: str) -> int:
        prefix = f"reminder.{reminder_id}."
        with self._lock:
            ids = [ident for ident in self._alerts if ident.startswith(prefix)]
            for ident in ids:
                del self._alerts[ident]
        if ids:
            logger.debug(f"Cancelled {len(ids)} alerts for reminder {reminder_id}")
        return len(ids)

    def schedule_at(self, reminder_id: str, fire_at: datetime, title: str, body: Optional[str]) -> str:
        ident = alert_identifier(reminder_id, fire_at)
        with self._lock:
            if self._state != AuthorizationState.AUTHORIZED:
                raise AuthorizationDenied("local notifications are not authorized")
            if ident not in self._alerts and len(self._alerts) >= self.max_pending:
                raise NotificationScheduleError(
                    f"pending alert budget of {self.max_pending} exhausted"
                )
            self._alerts[ident] = PendingAlert(
                identifier=ident,
                reminder_id=reminder_id,
                fire_at=as_utc(fire_at),
                title=title,
                body=body,
            )
        return ident

    def pending(self, reminder_id: Optional[str] = None) -> List[PendingAlert]:
        with self._lock:
            alerts = [a for a in self._alerts.values() if reminder_id is None or a.reminder_id == reminder_id]
        return sorted(alerts, key=lambda a: (a.fire_at, a.identifier))

    def clear(self) -> None:
        with self._lock:
            self._alerts.clear()
