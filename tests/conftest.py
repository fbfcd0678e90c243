"""Shared fixtures: per-test database, HTTP client, users and bookings."""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date, time, timedelta
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

# Load environment variables from .env file
load_dotenv()

# Settings require these; the app engine is never used by tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from app.core.security import create_access_token  # noqa: E402
from app.database import get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models import appointment_requests, doctor_schedules, metadata, users  # noqa: E402

# Set TEST_DATABASE_URL to run against PostgreSQL instead of in-memory SQLite
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

if TEST_DATABASE_URL.startswith("sqlite"):
    ENGINE_OPTIONS: dict = {
        "poolclass": StaticPool,
        "connect_args": {"check_same_thread": False},
    }
else:
    TEST_DATABASE_URL = TEST_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")
    ENGINE_OPTIONS = {"poolclass": NullPool}


def upcoming(weekday: int, weeks_ahead: int = 0) -> date:
    """Next date strictly after today falling on ``weekday`` (Monday is 0)."""
    today = date.today()
    days = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days + 7 * weeks_ahead)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session on a fresh schema."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, **ENGINE_OPTIONS)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def _create_user(db_session: AsyncSession, **values) -> dict:
    user = {
        "id": uuid4(),
        "organization_id": None,
        "phone": "+1234567890",
        "specialization": None,
        "is_active": True,
        **values,
    }
    await db_session.execute(insert(users).values(**user))
    await db_session.commit()
    return user


@pytest.fixture
async def organization_id() -> UUID:
    """Tenant shared by the default users."""
    return uuid4()


@pytest.fixture
async def patient_user(db_session: AsyncSession, organization_id: UUID) -> dict:
    """Create a patient."""
    return await _create_user(
        db_session,
        email="patient@example.com",
        full_name="Pat Patient",
        role="patient",
        organization_id=organization_id,
    )


@pytest.fixture
async def other_patient_user(db_session: AsyncSession, organization_id: UUID) -> dict:
    """Create a second patient with no part in the default bookings."""
    return await _create_user(
        db_session,
        email="other.patient@example.com",
        full_name="Olive Other",
        role="patient",
        organization_id=organization_id,
    )


@pytest.fixture
async def doctor_user(db_session: AsyncSession, organization_id: UUID) -> dict:
    """Create a doctor."""
    return await _create_user(
        db_session,
        email="doctor@example.com",
        full_name="Dr. Dana House",
        role="doctor",
        specialization="General Practice",
        organization_id=organization_id,
    )


@pytest.fixture
async def admin_user(db_session: AsyncSession) -> dict:
    """Create an admin belonging to an unrelated organization."""
    return await _create_user(
        db_session,
        email="admin@example.com",
        full_name="Ada Admin",
        role="admin",
        organization_id=uuid4(),
    )


@pytest.fixture
async def monday_schedule(db_session: AsyncSession, doctor_user: dict) -> dict:
    """Monday 09:00-17:00 for the default doctor; every other day unset."""
    schedule = {
        "doctor_id": doctor_user["id"],
        "day_of_week": "Monday",
        "start_time": time(9, 0),
        "end_time": time(17, 0),
        "is_available": True,
    }
    await db_session.execute(insert(doctor_schedules).values(**schedule))
    await db_session.commit()
    return schedule


@pytest.fixture
def next_monday() -> date:
    """The first Monday after today."""
    return upcoming(0)


@pytest.fixture
def make_booking(
    db_session: AsyncSession,
    patient_user: dict,
    doctor_user: dict,
) -> Callable[..., Awaitable[dict]]:
    """Factory inserting an appointment request directly, bypassing the checks."""

    async def _make(
        requested_date: date,
        requested_time: str,
        status: str = "pending",
        patient_id: UUID | None = None,
    ) -> dict:
        booking = {
            "id": uuid4(),
            "patient_id": patient_id or patient_user["id"],
            "doctor_id": doctor_user["id"],
            "requested_date": requested_date,
            "requested_time": requested_time,
            "reason": "Checkup",
            "priority": "normal",
            "status": status,
        }
        await db_session.execute(insert(appointment_requests).values(**booking))
        await db_session.commit()
        return booking

    return _make


def _headers_for(user: dict) -> dict:
    token = create_access_token(
        data={"sub": str(user["id"]), "email": user["email"]},
        expires_delta=timedelta(minutes=30),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def patient_headers(patient_user: dict) -> dict:
    """Authentication headers for the patient."""
    return _headers_for(patient_user)


@pytest.fixture
def other_patient_headers(other_patient_user: dict) -> dict:
    """Authentication headers for the second patient."""
    return _headers_for(other_patient_user)


@pytest.fixture
def doctor_headers(doctor_user: dict) -> dict:
    """Authentication headers for the doctor."""
    return _headers_for(doctor_user)


@pytest.fixture
def admin_headers(admin_user: dict) -> dict:
    """Authentication headers for the admin."""
    return _headers_for(admin_user)
