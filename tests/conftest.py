from collections.abc import AsyncGenerator
from datetime import time
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Load environment variables from .env file
load_dotenv()

from clinic_booking.dependencies import get_booking_coordinator, get_schedule_service
from clinic_booking.main import app
from clinic_booking.models import doctors, metadata, rooms, schedules
from clinic_booking.repositories.booking_repository import BookingRepository
from clinic_booking.services.booking_coordinator import BookingCoordinator
from clinic_booking.services.schedule_service import ScheduleService
from clinic_booking.services.transactions import TransactionRunner

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"

CLINIC_ID = UUID("7a9d3c52-1f0e-4b8a-9d61-2c4f5e6a7b80")


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh database with all booking tables."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a test session factory."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def repository(db_session: AsyncSession) -> BookingRepository:
    """Repository bound to the test session."""
    return BookingRepository(db_session)


@pytest.fixture
def transactions(session_factory: async_sessionmaker[AsyncSession]) -> TransactionRunner:
    """Transaction runner without isolation or lock-timeout statements."""
    return TransactionRunner(
        session_factory,
        isolation_level=None,
        lock_timeout_ms=0,
        max_retries=3,
        retry_backoff_ms=0,
    )


@pytest.fixture
def coordinator(transactions: TransactionRunner) -> BookingCoordinator:
    """Booking coordinator where cancelled appointments free their slot."""
    return BookingCoordinator(transactions, cancelled_blocks_slot=False)


@pytest.fixture
def schedule_service(transactions: TransactionRunner) -> ScheduleService:
    """Schedule service without a cache."""
    return ScheduleService(transactions)


async def _insert_doctor(session_factory: async_sessionmaker[AsyncSession], name: str) -> UUID:
    doctor_id = uuid4()
    async with session_factory() as session:
        await session.execute(
            insert(doctors).values(
                id=doctor_id,
                first_name=name,
                last_name="Test",
                license_number=f"LIC-{doctor_id.hex[:10]}",
                clinic_id=CLINIC_ID,
            )
        )
        await session.commit()
    return doctor_id


@pytest_asyncio.fixture
async def doctor_id(session_factory: async_sessionmaker[AsyncSession]) -> UUID:
    """Doctor working Monday 09:00-12:00 and Wednesday 08:00-17:00."""
    doctor_id = await _insert_doctor(session_factory, "Grace")
    async with session_factory() as session:
        await session.execute(
            insert(schedules),
            [
                {
                    "doctor_id": doctor_id,
                    "day_of_week": "Monday",
                    "start_time": time(9, 0),
                    "end_time": time(12, 0),
                },
                {
                    "doctor_id": doctor_id,
                    "day_of_week": "Wednesday",
                    "start_time": time(8, 0),
                    "end_time": time(17, 0),
                },
            ],
        )
        await session.commit()
    return doctor_id


@pytest_asyncio.fixture
async def other_doctor_id(session_factory: async_sessionmaker[AsyncSession]) -> UUID:
    """Second doctor working Wednesday 08:00-17:00."""
    doctor_id = await _insert_doctor(session_factory, "Tunde")
    async with session_factory() as session:
        await session.execute(
            insert(schedules).values(
                doctor_id=doctor_id,
                day_of_week="Wednesday",
                start_time=time(8, 0),
                end_time=time(17, 0),
            )
        )
        await session.commit()
    return doctor_id


@pytest_asyncio.fixture
async def room_id(session_factory: async_sessionmaker[AsyncSession]) -> UUID:
    """Consultation room in the test clinic."""
    room_id = uuid4()
    async with session_factory() as session:
        await session.execute(
            insert(rooms).values(id=room_id, clinic_id=CLINIC_ID, room_number="R1")
        )
        await session.commit()
    return room_id


@pytest.fixture
def appointment_data(doctor_id: UUID) -> dict:
    """Sample appointment data: Monday 2024-05-06, 10:00-10:30."""
    return {
        "patient_id": str(uuid4()),
        "doctor_id": str(doctor_id),
        "clinic_id": str(CLINIC_ID),
        "appointment_date": "2024-05-06",
        "start_time": "10:00",
        "end_time": "10:30",
        "total_cost": "100.00",
        "reason": "Regular checkup",
    }


@pytest_asyncio.fixture
async def client(
    coordinator: BookingCoordinator,
    schedule_service: ScheduleService,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    app.dependency_overrides[get_booking_coordinator] = lambda: coordinator
    app.dependency_overrides[get_schedule_service] = lambda: schedule_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
