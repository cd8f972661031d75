from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient

# Load environment variables from .env file
load_dotenv()

from app.core.locks import SlotLockRegistry
from app.core.security import create_access_token
from app.dependencies import (
    get_appointment_store,
    get_booking_sweeper,
    get_clock,
    get_doctor_directory,
    get_lock_registry,
    get_notification_dispatcher,
    get_organization_booking_store,
)
from app.main import app
from app.schemas.doctors import DoctorProfile
from app.services.appointment_service import AppointmentService
from app.services.assignment_service import AssignmentService
from app.services.availability_service import AvailabilityService
from app.services.booking_sweeper import BookingSweeper
from app.services.organization_booking_service import OrganizationBookingService
from tests.fakes import (
    FixedClock,
    InMemoryAppointmentStore,
    InMemoryDoctorDirectory,
    InMemoryOrganizationBookingStore,
    RecordingDispatcher,
)

WORKING_WEEK = ["monday", "tuesday", "wednesday", "thursday", "friday"]


@pytest.fixture
def clock() -> FixedClock:
    """Clinic clock frozen at Monday 2025-03-10 09:00."""
    return FixedClock(datetime(2025, 3, 10, 9, 0))


@pytest.fixture
def appointment_store() -> InMemoryAppointmentStore:
    return InMemoryAppointmentStore()


@pytest.fixture
def directory() -> InMemoryDoctorDirectory:
    return InMemoryDoctorDirectory()


@pytest.fixture
def booking_store() -> InMemoryOrganizationBookingStore:
    return InMemoryOrganizationBookingStore()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def locks() -> SlotLockRegistry:
    return SlotLockRegistry(acquire_timeout=1.0)


@pytest.fixture
def doctor(directory: InMemoryDoctorDirectory) -> DoctorProfile:
    """Approved Chennai doctor working weekdays 09:00-17:00 with a lunch break."""
    profile = directory.add_doctor(
        full_name="Dr. Meera Raman", city="Chennai", locality="Adyar"
    )
    directory.add_schedule(
        profile.id,
        days=WORKING_WEEK,
        start_time="09:00",
        end_time="17:00",
        break_start_time="13:00",
        break_end_time="14:00",
    )
    return profile


@pytest.fixture
def availability_service(
    appointment_store: InMemoryAppointmentStore,
    directory: InMemoryDoctorDirectory,
) -> AvailabilityService:
    return AvailabilityService(appointment_store, directory, store_timeout=0.5)


@pytest.fixture
def appointment_service(
    appointment_store: InMemoryAppointmentStore,
    directory: InMemoryDoctorDirectory,
    availability_service: AvailabilityService,
    locks: SlotLockRegistry,
    dispatcher: RecordingDispatcher,
    clock: FixedClock,
) -> AppointmentService:
    return AppointmentService(
        appointment_store,
        directory,
        availability_service,
        locks,
        dispatcher,
        clock=clock,
        store_timeout=0.5,
    )


@pytest.fixture
def assignment_service(
    appointment_store: InMemoryAppointmentStore,
    directory: InMemoryDoctorDirectory,
    availability_service: AvailabilityService,
    locks: SlotLockRegistry,
    dispatcher: RecordingDispatcher,
) -> AssignmentService:
    return AssignmentService(
        appointment_store,
        directory,
        availability_service,
        locks,
        dispatcher,
        store_timeout=0.5,
    )


@pytest.fixture
def booking_service(
    booking_store: InMemoryOrganizationBookingStore,
    locks: SlotLockRegistry,
    dispatcher: RecordingDispatcher,
    clock: FixedClock,
) -> OrganizationBookingService:
    return OrganizationBookingService(
        booking_store, locks, dispatcher, clock=clock, store_timeout=0.5
    )


@pytest.fixture
def sweeper(booking_service: OrganizationBookingService) -> BookingSweeper:
    return BookingSweeper(lambda: booking_service, interval_seconds=0.05)


@pytest_asyncio.fixture
async def client(
    appointment_store: InMemoryAppointmentStore,
    directory: InMemoryDoctorDirectory,
    booking_store: InMemoryOrganizationBookingStore,
    dispatcher: RecordingDispatcher,
    locks: SlotLockRegistry,
    clock: FixedClock,
    sweeper: BookingSweeper,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client backed by in-memory stores."""
    app.dependency_overrides[get_appointment_store] = lambda: appointment_store
    app.dependency_overrides[get_doctor_directory] = lambda: directory
    app.dependency_overrides[get_organization_booking_store] = lambda: booking_store
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_lock_registry] = lambda: locks
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_booking_sweeper] = lambda: sweeper

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def _headers(subject: str, role: str) -> dict:
    token = create_access_token(
        data={"sub": subject, "role": role}, expires_delta=timedelta(minutes=30)
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def patient_id() -> UUID:
    return uuid4()


@pytest.fixture
def patient_headers(patient_id: UUID) -> dict:
    """Create authentication headers for a patient."""
    return _headers(str(patient_id), "patient")


@pytest.fixture
def doctor_headers(doctor: DoctorProfile) -> dict:
    """Create authentication headers for the fixture doctor."""
    return _headers(str(doctor.id), "doctor")


@pytest.fixture
def admin_headers() -> dict:
    """Create authentication headers for an admin."""
    return _headers("admin@clinic", "admin")


@pytest.fixture
def sample_appointment_data() -> dict:
    """Booking for Wednesday 2025-03-12 at 10:00, two days after the clock."""
    return {
        "patient_name": "Asha Kumar",
        "patient_email": "asha@example.com",
        "consultation_mode": "virtual",
        "date": "12/03/2025",
        "time": "10:00 AM",
        "symptoms": "Fever",
        "patient_city": "Chennai",
        "patient_locality": "Adyar",
    }
