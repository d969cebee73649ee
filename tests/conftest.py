"""Pytest fixtures and configuration for petreminders tests."""

import pytest
import uuid
from datetime import date, datetime, time, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from petreminders.database.database import Base
from petreminders.database.occurrence_repository import OccurrenceRepository
from petreminders.database.reminder_repository import ReminderRepository
from petreminders.models.recurrence import DailySchedule
from petreminders.models.reminder import Reminder
from petreminders.notifications.center import AuthorizationState, InMemoryNotificationCenter
from petreminders.recurrence.locks import KeyedLocks
from petreminders.recurrence.service import ReminderService


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """In-memory SQLite engine shared by every session of one test."""
    from sqlalchemy import event
    from petreminders.database import models  # noqa: F401

    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragmas(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    """
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def reminder_repository(db_session: Session):
    return ReminderRepository(db_session)


@pytest.fixture
def occurrence_repository(db_session: Session):
    return OccurrenceRepository(db_session)


@pytest.fixture
def test_pet_id():
    """Pet that owns the test reminders."""
    return "pet-dobbie-1"


@pytest.fixture
def now():
    """Fixed clock: Monday 2024-01-01 00:00 UTC."""
    return datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def notification_center():
    """Authorized in-process notification center."""
    return InMemoryNotificationCenter(state=AuthorizationState.AUTHORIZED)


@pytest.fixture
def locks():
    return KeyedLocks()


@pytest.fixture
def reminder_service(db_session, notification_center, locks):
    return ReminderService(db_session, notification_center, locks=locks)


@pytest.fixture
def sample_reminder_base(test_pet_id):
    """Base reminder data for creating test reminders.

    Returns a dict with default attributes that can be overridden.
    """
    stamp = datetime.utcnow()
    return {
        "id": str(uuid.uuid4()),
        "pet_id": test_pet_id,
        "title": "Give meds",
        "notes": "Half a tablet with food",
        "schedule": DailySchedule(),
        "times": [time(9, 0)],
        "start_date": date(2024, 1, 1),
        "end_date": None,
        "timezone": "UTC",
        "notifications_enabled": True,
        "created_at": stamp,
        "updated_at": stamp,
    }


@pytest.fixture
def sample_reminder(sample_reminder_base):
    """Daily 09:00 UTC reminder starting 2024-01-01."""
    return Reminder(**sample_reminder_base)


@pytest.fixture
def stored_reminder(reminder_repository, sample_reminder):
    """sample_reminder persisted in the definition store."""
    return reminder_repository.create(sample_reminder)


@pytest.fixture
def test_client(db_session: Session, notification_center):
    """Create a FastAPI test client with overridden database and notification dependencies."""
    from petreminders.api.app import app, get_notification_center
    from petreminders.database.database import get_db

    # Override the get_db dependency to use our test database session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_center] = lambda: notification_center

    with TestClient(app) as client:
        yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
