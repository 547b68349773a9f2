'''
Pytest configuration for the FastAPI application.

This file sets up fixtures for:
1. Forcing the application into TEST_MODE (with a throwaway SQLite database)
   before any application code is imported.
2. Providing a FastAPI TestClient whose collaborators (actor, clock, audit,
   notifications) are replaced by test doubles.
3. Providing a database session on a freshly created schema for each test.
4. Providing instances of all service classes, pre-injected with that session.
5. Seeding a small clinic every booking test can rely on.
'''

import pytest
import os
import tempfile
from datetime import time
from types import SimpleNamespace
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

# --- Test environment (must happen before the application is imported) ---
_TEST_DB_DIR = tempfile.mkdtemp(prefix="clinic-booking-tests-")
os.environ["TEST_MODE"] = "True"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ.setdefault("DATABASE_URL_PROD", f"sqlite+aiosqlite:///{_TEST_DB_DIR}/prod.db")
os.environ["DATABASE_URL_TEST"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/test.db"

# --- FastAPI & Testing Imports ---
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

# --- Constant Imports ----
from tests.constants import (
    TEST_ACTOR_ID,
    TEST_DEVICE_ID,
    TEST_DOCTOR_2_ID,
    TEST_DOCTOR_ID,
    TEST_INACTIVE_STAFF_ID,
    TEST_LOCATION_ID,
    TEST_NOW,
    TEST_NURSE_ID,
    TEST_ROOM_1_ID,
    TEST_ROOM_2_ID,
    TEST_SERVICE_CONSENT_ID,
    TEST_SERVICE_CONSULT_ID,
    TEST_SERVICE_DEVICE_ID,
    TEST_SERVICE_ONE_ROOM_ID,
    TEST_SERVICE_TREATMENT_ID,
    TEST_SERVICE_TWO_ROOMS_ID,
)

# --- Application Imports ---
from clinic_booking_backend.main import app
from clinic_booking_backend.common.clock import Clock, FixedClock, get_clock
from clinic_booking_backend.common.config import settings
from clinic_booking_backend.database import engine as engine_module
from clinic_booking_backend.database.db_enums import StaffRole
from clinic_booking_backend.database.models import Base
from clinic_booking_backend.models.token import Actor
from clinic_booking_backend.services.absence_service import AbsenceService
from clinic_booking_backend.services.audit_service import LogAuditSink, get_audit_sink
from clinic_booking_backend.services.availability_service import AvailabilityService
from clinic_booking_backend.services.booking_service import BookingService
from clinic_booking_backend.services.directory_service import DirectoryService
from clinic_booking_backend.services.location_service import LocationService
from clinic_booking_backend.services.notification_service import LogNotificationDispatcher, get_notification_dispatcher
from clinic_booking_backend.services.reservation_service import ReservationService
from clinic_booking_backend.services.schedule_service import ScheduleService
from clinic_booking_backend.services.security import get_current_actor

from tests.database import factories


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Override the default 'anyio_backend' fixture.
    1. Forces the backend to 'asyncio' (solves 'trio' error).
    2. Promotes the scope to 'session' (solves 'ScopeMismatch').
    """
    return "asyncio"


# --- 1. Collaborator Doubles ---

@pytest.fixture(scope="function")
def fixed_clock() -> FixedClock:
    return FixedClock(TEST_NOW)

@pytest.fixture(scope="function")
def mock_audit_sink() -> LogAuditSink:
    """Provides a mock audit sink so tests can inspect recorded events."""
    return MagicMock(spec=LogAuditSink)

@pytest.fixture(scope="function")
def mock_notifier() -> LogNotificationDispatcher:
    """Provides a mock notification dispatcher."""
    mock_dispatcher = MagicMock(spec=LogNotificationDispatcher)
    mock_dispatcher.dispatch = AsyncMock(return_value=None)
    return mock_dispatcher


# --- 2. App Client ---

@pytest.fixture(scope="function")
def client(fixed_clock, mock_audit_sink, mock_notifier) -> TestClient:
    """
    The core fixture for all tests.

    1. Verifies TEST_MODE is on.
    2. Runs the app's lifespan, which creates the *real* database engine.
    3. Replaces the acting user, clock, audit sink and notification
       dispatcher with test doubles.
    """
    assert settings.TEST_MODE is True, \
        "TEST_MODE was not set to True! Check your .env file or environment."

    app.dependency_overrides[get_current_actor] = lambda: Actor(id=TEST_ACTOR_ID, role=StaffRole.RECEPTIONIST.value)
    app.dependency_overrides[get_clock] = lambda: fixed_clock
    app.dependency_overrides[get_audit_sink] = lambda: mock_audit_sink
    app.dependency_overrides[get_notification_dispatcher] = lambda: mock_notifier

    # This 'with' block runs the app's startup lifespan,
    # which creates the engine and session factory.
    with TestClient(app) as test_client:
        yield test_client

    # The app's shutdown lifespan runs here, and we clear the overrides.
    app.dependency_overrides.clear()


# --- 3. Function-Scoped Session Fixture (For Service Tests) ---

@pytest.fixture(scope="function")
async def db_session(client: TestClient) -> AsyncGenerator[AsyncSession, None]:
    """
    Provides a session on a freshly created schema.

    It depends on the 'client' fixture to ensure the engine is
    already created by the app's lifespan. Tests commit their seed data so
    the requests made through the client can see it.
    """
    if engine_module.engine is None or engine_module.AsyncSessionLocal is None:
        raise RuntimeError("Session factory not initialized by client fixture.")

    async with engine_module.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    session = engine_module.AsyncSessionLocal()
    factories.test_db_session = session
    try:
        yield session
    finally:
        factories.test_db_session = None
        await session.rollback()
        await session.close()


# --- 4. SERVICE FIXTURES ---

def build_services(session: AsyncSession, clock: Clock, audit, notifier) -> SimpleNamespace:
    """Wires the service graph by hand, the way FastAPI's dependency injection does per request."""
    directory = DirectoryService(db=session)
    schedules = ScheduleService(db=session, directory=directory)
    locations = LocationService(db=session, directory=directory)
    absences = AbsenceService(db=session, directory=directory, clock=clock, audit=audit)
    reservations = ReservationService(db=session)
    availability = AvailabilityService(
        directory=directory, schedules=schedules, locations=locations,
        absences=absences, reservations=reservations, clock=clock
    )
    bookings = BookingService(
        db=session, directory=directory, availability=availability, schedules=schedules,
        locations=locations, absences=absences, reservations=reservations,
        clock=clock, audit=audit, notifier=notifier
    )
    return SimpleNamespace(
        directory=directory, schedules=schedules, locations=locations, absences=absences,
        reservations=reservations, availability=availability, bookings=bookings
    )

@pytest.fixture(scope="function")
def services(db_session, fixed_clock, mock_audit_sink, mock_notifier) -> SimpleNamespace:
    return build_services(db_session, fixed_clock, mock_audit_sink, mock_notifier)

@pytest.fixture(scope="function")
def make_services(fixed_clock, mock_audit_sink, mock_notifier):
    """
    Builds a service graph on any session, optionally with another clock.
    Used for concurrency tests (one session per writer) and time travel.
    """
    def _make(session: AsyncSession, clock: Clock = None) -> SimpleNamespace:
        return build_services(session, clock or fixed_clock, mock_audit_sink, mock_notifier)
    return _make

@pytest.fixture(scope="function")
def session_factory(db_session):
    """The app's session factory, for tests that need more than one session."""
    return engine_module.AsyncSessionLocal

@pytest.fixture(scope="function")
def directory_service(services) -> DirectoryService:
    return services.directory

@pytest.fixture(scope="function")
def schedule_service(services) -> ScheduleService:
    return services.schedules

@pytest.fixture(scope="function")
def location_service(services) -> LocationService:
    return services.locations

@pytest.fixture(scope="function")
def absence_service(services) -> AbsenceService:
    return services.absences

@pytest.fixture(scope="function")
def reservation_service(services) -> ReservationService:
    return services.reservations

@pytest.fixture(scope="function")
def availability_service(services) -> AvailabilityService:
    return services.availability

@pytest.fixture(scope="function")
def booking_service(services) -> BookingService:
    return services.bookings


# --- 5. SEED DATA ---

@pytest.fixture(scope="function")
async def clinic(db_session: AsyncSession) -> AsyncSession:
    """
    Seeds one clinic (UTC, open daily 07:00-20:00) with:
    - a doctor working Mon-Fri 09:00-17:00 with a 12:00-13:00 break,
    - a second doctor and a nurse working Mon-Fri 09:00-17:00,
    - an inactive staff member,
    - two rooms, one device and the services listed in tests/constants.py.
    """
    location = factories.LocationFactory(id=TEST_LOCATION_ID, timezone="UTC")
    factories.LocationHoursFactory(location_id=location.id)

    doctor = factories.StaffFactory(id=TEST_DOCTOR_ID, location_id=location.id, role=StaffRole.DOCTOR.value)
    doctor_2 = factories.StaffFactory(id=TEST_DOCTOR_2_ID, location_id=location.id, role=StaffRole.DOCTOR.value)
    nurse = factories.StaffFactory(id=TEST_NURSE_ID, location_id=location.id, role=StaffRole.NURSE.value)
    factories.StaffFactory(id=TEST_INACTIVE_STAFF_ID, location_id=location.id, is_active=False)

    factories.WeeklyScheduleFactory(
        staff_id=doctor.id,
        days=factories.working_week(break_start=time(12, 0), break_end=time(13, 0))
    )
    for staff in (doctor_2, nurse):
        factories.WeeklyScheduleFactory(staff_id=staff.id, days=factories.working_week())

    room_1 = factories.RoomFactory(id=TEST_ROOM_1_ID, location_id=location.id)
    room_2 = factories.RoomFactory(id=TEST_ROOM_2_ID, location_id=location.id)
    device = factories.DeviceFactory(id=TEST_DEVICE_ID, location_id=location.id)

    factories.ServiceDefinitionFactory(id=TEST_SERVICE_CONSULT_ID, name="Consultation", base_duration_min=30, required_role=StaffRole.DOCTOR.value)
    factories.ServiceDefinitionFactory(id=TEST_SERVICE_TREATMENT_ID, name="Treatment", base_duration_min=60)
    factories.ServiceDefinitionFactory(
        id=TEST_SERVICE_TWO_ROOMS_ID, name="Group therapy", base_duration_min=60,
        assigned_rooms=[room_1, room_2], room_quantity_required=2
    )
    factories.ServiceDefinitionFactory(
        id=TEST_SERVICE_ONE_ROOM_ID, name="Physiotherapy", base_duration_min=60,
        assigned_rooms=[room_1, room_2], room_quantity_required=1
    )
    factories.ServiceDefinitionFactory(id=TEST_SERVICE_CONSENT_ID, name="Minor surgery", base_duration_min=30, requires_consent=True)
    factories.ServiceDefinitionFactory(
        id=TEST_SERVICE_DEVICE_ID, name="Ultrasound", base_duration_min=30,
        assigned_devices=[device], device_quantity_required=1
    )

    await db_session.commit()
    return db_session
