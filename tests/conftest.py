"""Pytest fixtures for billing engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from billing_engine.api.app import create_app
from billing_engine.api.dependencies import get_db_session
from billing_engine.config import Settings, get_settings
from billing_engine.database import make_session_factory
from billing_engine.models import (
    Base,
    BillingPeriod,
    Property,
    Room,
    RoomAssignment,
    Staff,
    Trip,
    TripPassenger,
)

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def settings() -> Settings:
    """Settings with no fallback rent."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="DEBUG",
        default_monthly_rent=None,
        export_file_prefix="payroll_export",
    )


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app with the test database."""
    app = create_app()

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ============================================================================
# Directory records
# ============================================================================


@pytest_asyncio.fixture
async def test_staff(session: AsyncSession) -> Staff:
    """Create a staff member."""
    staff = Staff(
        staff_id=uuid4(),
        employee_id="EMP-001",
        first_name="Ana",
        last_name="Reyes",
        status="active",
    )
    session.add(staff)
    await session.flush()
    return staff


@pytest_asyncio.fixture
async def other_staff(session: AsyncSession) -> list[Staff]:
    """Create three more staff members."""
    staff = [
        Staff(
            staff_id=uuid4(),
            employee_id=f"EMP-00{i}",
            first_name=f"First{i}",
            last_name=f"Last{i}",
            status="active",
        )
        for i in (2, 3, 4)
    ]
    session.add_all(staff)
    await session.flush()
    return staff


@pytest_asyncio.fixture
async def test_property(session: AsyncSession) -> Property:
    """Create a property without a default rent."""
    prop = Property(property_id=uuid4(), name="North House")
    session.add(prop)
    await session.flush()
    return prop


@pytest_asyncio.fixture
async def test_room(session: AsyncSession, test_property: Property) -> Room:
    """Create a room renting at 500.00 a month."""
    room = Room(
        room_id=uuid4(),
        property_id=test_property.property_id,
        room_number="101",
        monthly_rate=Decimal("500.00"),
    )
    session.add(room)
    await session.flush()
    return room


@pytest_asyncio.fixture
async def january(session: AsyncSession) -> BillingPeriod:
    """Draft billing period for January 2024 (31 days)."""
    period = BillingPeriod(
        billing_period_id=uuid4(),
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        status="draft",
    )
    session.add(period)
    await session.flush()
    return period


@pytest_asyncio.fixture
async def mid_month_assignment(
    session: AsyncSession, test_staff: Staff, test_room: Room
) -> RoomAssignment:
    """Assignment starting 2024-01-16, open-ended."""
    assignment = RoomAssignment(
        assignment_id=uuid4(),
        staff_id=test_staff.staff_id,
        room_id=test_room.room_id,
        start_date=date(2024, 1, 16),
        end_date=None,
        status="active",
    )
    session.add(assignment)
    await session.flush()
    return assignment


@pytest.fixture
def make_trip(session: AsyncSession) -> Callable[..., Awaitable[Trip]]:
    """Factory for trips with passengers."""

    async def _make_trip(
        trip_date: date,
        cost: Decimal | None,
        passengers: list[Staff],
        status: str = "completed",
        route: str = "Airport",
    ) -> Trip:
        trip = Trip(trip_id=uuid4(), trip_date=trip_date, route=route, cost=cost, status=status)
        trip.passengers = [TripPassenger(staff_id=s.staff_id) for s in passengers]
        session.add(trip)
        await session.flush()
        return trip

    return _make_trip
