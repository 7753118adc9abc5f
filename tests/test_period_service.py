"""Tests for billing period lifecycle and the no-overlap rule."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.errors import (
    LockedPeriodError,
    NotFoundError,
    OverlapError,
    ValidationError,
)
from billing_engine.models import BillingPeriod
from billing_engine.services.charge_service import ChargeService
from billing_engine.services.period_service import BillingPeriodService
from billing_engine.services.state_machine import InvalidTransitionError


class TestCreatePeriod:
    """Test period creation."""

    async def test_creates_draft(self, session: AsyncSession):
        service = BillingPeriodService(session)

        period = await service.create_period(date(2024, 2, 1), date(2024, 2, 29))

        assert period.status == "draft"
        assert period.label == "2024-02-01 - 2024-02-29"
        assert period.day_count == 29

    async def test_start_must_precede_end(self, session: AsyncSession):
        service = BillingPeriodService(session)

        with pytest.raises(ValidationError):
            await service.create_period(date(2024, 2, 1), date(2024, 2, 1))
        with pytest.raises(ValidationError):
            await service.create_period(date(2024, 2, 10), date(2024, 2, 1))

    async def test_overlap_rejected(self, session: AsyncSession):
        """[2024-02-15, 2024-03-15] overlaps [2024-02-01, 2024-02-29]."""
        service = BillingPeriodService(session)
        existing = await service.create_period(date(2024, 2, 1), date(2024, 2, 29))

        with pytest.raises(OverlapError) as exc_info:
            await service.create_period(date(2024, 2, 15), date(2024, 3, 15))

        assert exc_info.value.conflicting_ids == [existing.billing_period_id]
        assert exc_info.value.to_dict()["code"] == "PERIOD_OVERLAP"

    async def test_shared_boundary_day_overlaps(self, session: AsyncSession):
        """Both bounds are inclusive, so a shared day is an overlap."""
        service = BillingPeriodService(session)
        await service.create_period(date(2024, 2, 1), date(2024, 2, 29))

        with pytest.raises(OverlapError):
            await service.create_period(date(2024, 2, 29), date(2024, 3, 31))

    async def test_adjacent_periods_allowed(self, session: AsyncSession):
        service = BillingPeriodService(session)
        await service.create_period(date(2024, 2, 1), date(2024, 2, 29))

        march = await service.create_period(date(2024, 3, 1), date(2024, 3, 31))

        assert march.status == "draft"

    async def test_cancelled_period_does_not_block(self, session: AsyncSession):
        service = BillingPeriodService(session)
        existing = await service.create_period(date(2024, 2, 1), date(2024, 2, 29))
        await service.cancel_period(existing.billing_period_id)

        period = await service.create_period(date(2024, 2, 15), date(2024, 3, 15))

        assert period.status == "draft"


class TestTransitions:
    """Test status transitions."""

    async def test_cancel_draft(self, session: AsyncSession, january: BillingPeriod):
        period = await BillingPeriodService(session).cancel_period(january.billing_period_id)
        assert period.status == "cancelled"

    async def test_cannot_cancel_completed(self, session: AsyncSession, january: BillingPeriod):
        service = BillingPeriodService(session)
        await service.transition_status(january, "processing")
        await service.transition_status(january, "completed")

        with pytest.raises(InvalidTransitionError):
            await service.cancel_period(january.billing_period_id)

    async def test_export_sets_export_date(self, session: AsyncSession, january: BillingPeriod):
        service = BillingPeriodService(session)
        await service.transition_status(january, "processing")
        await service.transition_status(january, "completed")
        await service.transition_status(january, "exported")

        assert january.status == "exported"
        assert january.payroll_export_date is not None

    async def test_concurrent_status_change_detected(
        self, session: AsyncSession, january: BillingPeriod
    ):
        """A transition based on a stale status fails instead of overwriting."""
        await session.execute(
            update(BillingPeriod)
            .where(BillingPeriod.billing_period_id == january.billing_period_id)
            .values(status="cancelled")
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(InvalidTransitionError):
            await BillingPeriodService(session).transition_status(january, "processing")

        assert january.status == "cancelled"

    async def test_unknown_period(self, session: AsyncSession):
        with pytest.raises(NotFoundError):
            await BillingPeriodService(session).cancel_period(uuid4())


class TestUpdateAndDelete:
    """Test rescheduling and deletion."""

    async def test_reschedule_draft(self, session: AsyncSession, january: BillingPeriod):
        period = await BillingPeriodService(session).update_period_dates(
            january.billing_period_id, date(2024, 1, 5), date(2024, 2, 4)
        )

        assert period.start_date == date(2024, 1, 5)
        assert period.end_date == date(2024, 2, 4)

    async def test_reschedule_checks_other_periods(
        self, session: AsyncSession, january: BillingPeriod
    ):
        service = BillingPeriodService(session)
        await service.create_period(date(2024, 2, 1), date(2024, 2, 29))

        with pytest.raises(OverlapError):
            await service.update_period_dates(
                january.billing_period_id, date(2024, 1, 1), date(2024, 2, 10)
            )

    async def test_reschedule_requires_draft(self, session: AsyncSession, january: BillingPeriod):
        service = BillingPeriodService(session)
        await service.transition_status(january, "processing")

        with pytest.raises(ValidationError):
            await service.update_period_dates(
                january.billing_period_id, date(2024, 1, 2), date(2024, 1, 30)
            )

    async def test_delete_empty_period(self, session: AsyncSession, january: BillingPeriod):
        service = BillingPeriodService(session)
        await service.delete_period(january.billing_period_id)

        with pytest.raises(NotFoundError):
            await service.get_period(january.billing_period_id)

    async def test_delete_with_charges_rejected(
        self, session: AsyncSession, january: BillingPeriod, test_staff
    ):
        await ChargeService(session).add_charge(
            january.billing_period_id, test_staff.staff_id, "other", Decimal("10")
        )

        with pytest.raises(ValidationError):
            await BillingPeriodService(session).delete_period(january.billing_period_id)

    async def test_delete_exported_rejected(self, session: AsyncSession, january: BillingPeriod):
        january.status = "exported"
        await session.flush()

        with pytest.raises(LockedPeriodError):
            await BillingPeriodService(session).delete_period(january.billing_period_id)


class TestListPeriods:
    """Test period listing."""

    async def test_filters(self, session: AsyncSession):
        service = BillingPeriodService(session)
        jan = await service.create_period(date(2024, 1, 1), date(2024, 1, 31))
        feb = await service.create_period(date(2024, 2, 1), date(2024, 2, 29))
        await service.cancel_period(jan.billing_period_id)

        all_periods = await service.list_periods()
        assert [p.billing_period_id for p in all_periods] == [
            feb.billing_period_id,
            jan.billing_period_id,
        ]

        drafts = await service.list_periods(status="draft")
        assert [p.billing_period_id for p in drafts] == [feb.billing_period_id]

        in_january = await service.list_periods(
            start_date=date(2024, 1, 1), end_date=date(2024, 1, 31)
        )
        assert [p.billing_period_id for p in in_january] == [jan.billing_period_id]
