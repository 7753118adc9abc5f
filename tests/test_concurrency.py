"""Tests for serialization of concurrent writes to the same billing period.

Each writer uses its own session on a file-backed SQLite database, so one
writer only sees another's rows after they are committed.
"""

import asyncio
import gc
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from billing_engine.config import Settings
from billing_engine.database import make_session_factory
from billing_engine.errors import (
    AlreadyExportedError,
    BillingError,
    LockedPeriodError,
    OverlapError,
)
from billing_engine.models import (
    Base,
    BillingPeriod,
    Charge,
    PayrollExportRecord,
    Property,
    Room,
    RoomAssignment,
    Staff,
)
from billing_engine.services import locking_service
from billing_engine.services.export_service import PayrollExportService
from billing_engine.services.generation import ChargeGenerationService
from billing_engine.services.generation_types import GenerationReport
from billing_engine.services.locking_service import LockingService
from billing_engine.services.period_service import BillingPeriodService
from billing_engine.services.state_machine import InvalidTransitionError

pytestmark = pytest.mark.asyncio

Operation = Callable[[AsyncSession], Awaitable[Any]]


@pytest_asyncio.fixture
async def file_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """A database file shared by independent connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def factory(file_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(file_engine)


@pytest_asyncio.fixture
async def staff_id(factory: async_sessionmaker[AsyncSession]) -> UUID:
    """A housed staff member, committed."""
    staff = Staff(staff_id=uuid4(), employee_id="EMP-001", first_name="Ana", last_name="Reyes")
    prop = Property(property_id=uuid4(), name="North House")
    room = Room(
        room_id=uuid4(),
        property_id=prop.property_id,
        room_number="101",
        monthly_rate=Decimal("500.00"),
    )
    assignment = RoomAssignment(
        staff_id=staff.staff_id,
        room_id=room.room_id,
        start_date=date(2024, 1, 16),
        status="active",
    )

    async with factory() as session:
        session.add_all([staff, prop, room])
        await session.flush()
        session.add(assignment)
        await session.commit()
    return staff.staff_id


async def _seed_period(
    factory: async_sessionmaker[AsyncSession], status: str = "draft"
) -> UUID:
    period = BillingPeriod(
        billing_period_id=uuid4(),
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        status=status,
    )
    async with factory() as session:
        session.add(period)
        await session.commit()
    return period.billing_period_id


async def _attempt(factory: async_sessionmaker[AsyncSession], operation: Operation) -> Any:
    """Run one writer in its own session; domain errors are returned."""
    async with factory() as session:
        try:
            result = await operation(session)
            await session.commit()
            return result
        except (BillingError, InvalidTransitionError) as e:
            await session.rollback()
            return e


async def _race(factory: async_sessionmaker[AsyncSession], operation: Operation) -> list[Any]:
    return list(await asyncio.gather(_attempt(factory, operation), _attempt(factory, operation)))


async def _count(factory: async_sessionmaker[AsyncSession], model: type[Base]) -> int:
    async with factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


class TestConcurrentWriters:
    """Two writers on the same period."""

    async def test_process_runs_once(
        self,
        factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        staff_id: UUID,
    ):
        period_id = await _seed_period(factory)

        results = await _race(
            factory,
            lambda s: ChargeGenerationService(s, settings).process_period(period_id),
        )

        reports = [r for r in results if isinstance(r, GenerationReport)]
        refused = [r for r in results if isinstance(r, LockedPeriodError)]
        assert len(reports) == 1
        assert len(refused) == 1
        assert reports[0].created_count == 1
        assert await _count(factory, Charge) == 1

        async with factory() as session:
            period = await session.get(BillingPeriod, period_id)
            assert period.status == "completed"

    async def test_generate_never_duplicates(
        self,
        factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        staff_id: UUID,
    ):
        period_id = await _seed_period(factory)

        results = await _race(
            factory,
            lambda s: ChargeGenerationService(s, settings).generate_charges(period_id),
        )

        assert sorted(r.created_count for r in results) == [0, 1]
        assert await _count(factory, Charge) == 1

    async def test_export_commits_once(
        self,
        factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        staff_id: UUID,
    ):
        period_id = await _seed_period(factory, status="completed")
        async with factory() as session:
            session.add(
                Charge(
                    staff_id=staff_id,
                    billing_period_id=period_id,
                    charge_type="rent",
                    amount=Decimal("500.00"),
                    source_type="manual",
                )
            )
            await session.commit()

        results = await _race(
            factory,
            lambda s: PayrollExportService(s, settings).commit_export(period_id),
        )

        records = [r for r in results if isinstance(r, PayrollExportRecord)]
        refused = [r for r in results if isinstance(r, AlreadyExportedError)]
        assert len(records) == 1
        assert len(refused) == 1
        assert await _count(factory, PayrollExportRecord) == 1

    async def test_overlapping_creation_rejected(self, factory: async_sessionmaker[AsyncSession]):
        results = await _race(
            factory,
            lambda s: BillingPeriodService(s).create_period(date(2024, 3, 1), date(2024, 3, 31)),
        )

        created = [r for r in results if isinstance(r, BillingPeriod)]
        refused = [r for r in results if isinstance(r, OverlapError)]
        assert len(created) == 1
        assert len(refused) == 1
        assert await _count(factory, BillingPeriod) == 1


class TestLockingService:
    """Transaction-scoped locks."""

    async def test_same_key_waits_for_commit(self, factory: async_sessionmaker[AsyncSession]):
        key = f"test:{uuid4()}"
        async with factory() as first, factory() as second:
            await LockingService(first).lock(key)
            waiter = asyncio.create_task(LockingService(second).lock(key))

            await asyncio.sleep(0.05)
            assert not waiter.done()

            await first.commit()
            await asyncio.wait_for(waiter, timeout=1)
            await second.commit()

    async def test_released_on_rollback(self, factory: async_sessionmaker[AsyncSession]):
        key = f"test:{uuid4()}"
        async with factory() as first, factory() as second:
            await LockingService(first).lock(key)
            waiter = asyncio.create_task(LockingService(second).lock(key))

            await asyncio.sleep(0.05)
            assert not waiter.done()

            await first.rollback()
            await asyncio.wait_for(waiter, timeout=1)
            await second.rollback()

    async def test_different_keys_do_not_block(self, factory: async_sessionmaker[AsyncSession]):
        async with factory() as first, factory() as second:
            await LockingService(first).lock_period(uuid4())
            await asyncio.wait_for(LockingService(second).lock_period(uuid4()), timeout=1)
            await first.rollback()
            await second.rollback()

    async def test_same_session_reacquires(self, factory: async_sessionmaker[AsyncSession]):
        period_id = uuid4()
        async with factory() as session:
            await LockingService(session).lock_period(period_id)
            await asyncio.wait_for(LockingService(session).lock_period(period_id), timeout=1)
            await session.rollback()

    async def test_idle_locks_are_dropped(self, factory: async_sessionmaker[AsyncSession]):
        key = f"test:{uuid4()}"
        async with factory() as session:
            await LockingService(session).lock(key)
            assert key in locking_service._local_locks
            await session.commit()

        gc.collect()
        assert key not in locking_service._local_locks
