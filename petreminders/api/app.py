"""FastAPI web application for petreminders."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from sqlalchemy.orm import Session

from petreminders.api.reminder_models import (
    ExpansionSummary,
    NotificationsRequest,
    OccurrenceListResponse,
    OccurrenceResponse,
    OccurrenceStatusRequest,
    ReconcileResponse,
    ReminderListResponse,
    ReminderResponse,
    UpcomingResponse,
)
from petreminders.database.database import get_db
from petreminders.errors import (
    AuthorizationDenied,
    InvalidDefinition,
    NotFound,
    OperationCancelled,
    ReminderError,
    StoreUnavailable,
)
from petreminders.models.constants import UPCOMING_LIMIT
from petreminders.models.reminder import Reminder, ReminderCreate, ReminderUpdate
from petreminders.notifications.center import InMemoryNotificationCenter, NotificationCenter
from petreminders.notifications.reconciler import ReconcileResult
from petreminders.recurrence.service import ReminderChangeResult, ReminderService

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="petreminders API",
    description="Recurring pet-care reminders expanded into occurrences and mirrored into local alerts",
    version="0.1.0"
)

# Process-wide local notification subsystem
notification_center = InMemoryNotificationCenter()


def get_notification_center() -> NotificationCenter:
    """Notification center dependency (overridable in tests)."""
    return notification_center


def get_reminder_service(
    db: Session = Depends(get_db),
    center: NotificationCenter = Depends(get_notification_center),
) -> ReminderService:
    return ReminderService(db, center)


def _http_error(e: ReminderError) -> HTTPException:
    """Map engine errors onto HTTP status codes."""
    if isinstance(e, InvalidDefinition):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, AuthorizationDenied):
        return HTTPException(status_code=403, detail={"code": "notifications_denied", "message": str(e)})
    if isinstance(e, OperationCancelled):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, StoreUnavailable):
        return HTTPException(status_code=503, detail=str(e))
    logger.error(f"Unhandled reminder error: {type(e).__name__}: {str(e)}")
    return HTTPException(status_code=500, detail=str(e))


def _reconcile_response(result: Optional[ReconcileResult]) -> Optional[ReconcileResponse]:
    if result is None:
        return None
    return ReconcileResponse.model_validate(result.to_dict())


def _change_response(result: ReminderChangeResult) -> ReminderResponse:
    return ReminderResponse(
        reminder=result.reminder,
        expansion=ExpansionSummary.model_validate(result.expansion.to_dict()) if result.expansion else None,
        notifications=_reconcile_response(result.notifications),
        notifications_denied=result.authorization_denied,
    )


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok"}


@app.post("/pets/{pet_id}/reminders", response_model=ReminderResponse, status_code=201)
def create_reminder(
    pet_id: str,
    payload: ReminderCreate,
    service: ReminderService = Depends(get_reminder_service),
):
    """Create a reminder and materialize its occurrences."""
    try:
        return _change_response(service.create_reminder(pet_id, payload))
    except ReminderError as e:
        raise _http_error(e)


@app.get("/pets/{pet_id}/reminders", response_model=ReminderListResponse)
def list_reminders(pet_id: str, service: ReminderService = Depends(get_reminder_service)):
    try:
        return ReminderListResponse(reminders=service.list_reminders(pet_id))
    except ReminderError as e:
        raise _http_error(e)


@app.get("/pets/{pet_id}/occurrences", response_model=OccurrenceListResponse)
def list_pet_occurrences(
    pet_id: str,
    start: datetime,
    end: datetime,
    service: ReminderService = Depends(get_reminder_service),
):
    """Occurrences of a pet in [start, end) with their reminder titles."""
    try:
        return OccurrenceListResponse(occurrences=service.occurrences_for_pet(pet_id, start, end))
    except ReminderError as e:
        raise _http_error(e)


@app.get("/reminders/{reminder_id}", response_model=Reminder)
def get_reminder(reminder_id: str, service: ReminderService = Depends(get_reminder_service)):
    try:
        return service.get_reminder(reminder_id)
    except ReminderError as e:
        raise _http_error(e)


@app.patch("/reminders/{reminder_id}", response_model=ReminderResponse)
def update_reminder(
    reminder_id: str,
    changes: ReminderUpdate,
    rebuild_from: Optional[datetime] = None,
    service: ReminderService = Depends(get_reminder_service),
):
    """Edit a reminder; schedule changes rebuild occurrences from `rebuild_from`."""
    try:
        return _change_response(service.update_reminder(reminder_id, changes, rebuild_from=rebuild_from))
    except ReminderError as e:
        raise _http_error(e)


@app.delete("/reminders/{reminder_id}", status_code=204)
def delete_reminder(reminder_id: str, service: ReminderService = Depends(get_reminder_service)):
    try:
        service.delete_reminder(reminder_id)
    except ReminderError as e:
        raise _http_error(e)
    return Response(status_code=204)


@app.get("/reminders/{reminder_id}/upcoming", response_model=UpcomingResponse)
def upcoming(
    reminder_id: str,
    start: Optional[datetime] = None,
    cap: int = Query(UPCOMING_LIMIT, ge=0),
    service: ReminderService = Depends(get_reminder_service),
):
    """Next pending fire times of a reminder."""
    try:
        return UpcomingResponse(reminder_id=reminder_id, fire_times=service.upcoming(reminder_id, start, cap))
    except ReminderError as e:
        raise _http_error(e)


@app.post("/reminders/{reminder_id}/reexpand", response_model=ReminderResponse)
def reexpand_reminder(
    reminder_id: str,
    rebuild_from: Optional[datetime] = None,
    service: ReminderService = Depends(get_reminder_service),
):
    """Rebuild occurrences from the stored definition."""
    try:
        return _change_response(service.reexpand(reminder_id, rebuild_from=rebuild_from))
    except ReminderError as e:
        raise _http_error(e)


@app.put("/reminders/{reminder_id}/notifications", response_model=ReconcileResponse)
def set_notifications(
    reminder_id: str,
    request: NotificationsRequest,
    service: ReminderService = Depends(get_reminder_service),
):
    """Turn local alerts on or off for a reminder."""
    try:
        return _reconcile_response(service.set_notifications(reminder_id, request.enabled))
    except ReminderError as e:
        raise _http_error(e)


@app.post("/reminders/{reminder_id}/reconcile", response_model=ReconcileResponse)
def reconcile_reminder(reminder_id: str, service: ReminderService = Depends(get_reminder_service)):
    try:
        return _reconcile_response(service.reconcile(reminder_id))
    except ReminderError as e:
        raise _http_error(e)


@app.patch("/occurrences/{occurrence_id}", response_model=OccurrenceResponse)
def update_occurrence(
    occurrence_id: str,
    request: OccurrenceStatusRequest,
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        return OccurrenceResponse(occurrence=service.update_occurrence_status(occurrence_id, request.status))
    except ReminderError as e:
        raise _http_error(e)


@app.delete("/occurrences/{occurrence_id}", status_code=204)
def delete_occurrence(occurrence_id: str, service: ReminderService = Depends(get_reminder_service)):
    try:
        service.delete_occurrence(occurrence_id)
    except ReminderError as e:
        raise _http_error(e)
    return Response(status_code=204)
