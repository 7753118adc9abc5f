"""Tests for charge mutations and the period lock."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.calculators.types import ChargeType
from billing_engine.errors import (
    CapacityOrSourceMissingError,
    LockedPeriodError,
    NotFoundError,
    ValidationError,
)
from billing_engine.models import BillingPeriod, Staff
from billing_engine.services.charge_service import ChargeFilters, ChargeService


class TestAddCharge:
    """Test manual charges."""

    async def test_add_to_draft(
        self, session: AsyncSession, january: BillingPeriod, test_staff: Staff
    ):
        charge = await ChargeService(session).add_charge(
            january.billing_period_id,
            test_staff.staff_id,
            ChargeType.UTILITIES,
            Decimal("45.50"),
            description="Electricity",
        )

        assert charge.charge_type == "utilities"
        assert charge.amount == Decimal("45.50")
        assert charge.proration_factor == Decimal("1")
        assert charge.source_type == "manual"
        assert charge.source_id is None
        assert charge.effective_amount == Decimal("45.50")

    async def test_amount_rounded_half_up(
        self, session: AsyncSession, january: BillingPeriod, test_staff: Staff
    ):
        charge = await ChargeService(session).add_charge(
            january.billing_period_id, test_staff.staff_id, "other", Decimal("10.005")
        )
        assert charge.amount == Decimal("10.01")

    @pytest.mark.parametrize(
        "amount,factor",
        [
            (Decimal("0"), Decimal("1")),
            (Decimal("-5"), Decimal("1")),
            (Decimal("0.004"), Decimal("1")),
            (Decimal("NaN"), Decimal("1")),
            (Decimal("10"), Decimal("1.5")),
            (Decimal("10"), Decimal("-0.1")),
        ],
    )
    async def test_invalid_values_rejected(
        self,
        session: AsyncSession,
        january: BillingPeriod,
        test_staff: Staff,
        amount: Decimal,
        factor: Decimal,
    ):
        with pytest.raises(ValidationError):
            await ChargeService(session).add_charge(
                january.billing_period_id, test_staff.staff_id, "other", amount, factor
            )

    async def test_unknown_type_rejected(
        self, session: AsyncSession, january: BillingPeriod, test_staff: Staff
    ):
        with pytest.raises(ValidationError) as exc_info:
            await ChargeService(session).add_charge(
                january.billing_period_id, test_staff.staff_id, "parking", Decimal("5")
            )
        assert exc_info.value.field == "charge_type"

    async def test_unknown_staff(self, session: AsyncSession, january: BillingPeriod):
        with pytest.raises(CapacityOrSourceMissingError):
            await ChargeService(session).add_charge(
                january.billing_period_id, uuid4(), "other", Decimal("5")
            )

    async def test_unknown_period(self, session: AsyncSession, test_staff: Staff):
        with pytest.raises(NotFoundError):
            await ChargeService(session).add_charge(
                uuid4(), test_staff.staff_id, "other", Decimal("5")
            )


class TestPeriodLock:
    """Exported and cancelled periods refuse charge mutations."""

    @pytest.mark.parametrize("status", ["exported", "cancelled"])
    async def test_add_rejected(
        self, session: AsyncSession, january: BillingPeriod, test_staff: Staff, status: str
    ):
        january.status = status
        await session.flush()

        with pytest.raises(LockedPeriodError) as exc_info:
            await ChargeService(session).add_charge(
                january.billing_period_id, test_staff.staff_id, "rent", Decimal("100")
            )

        assert exc_info.value.status == status
        assert exc_info.value.to_dict()["code"] == "PERIOD_LOCKED"

    async def test_update_and_delete_rejected_after_export(
        self, session: AsyncSession, january: BillingPeriod, test_staff: Staff
    ):
        service = ChargeService(session)
        charge = await service.add_charge(
            january.billing_period_id, test_staff.staff_id, "rent", Decimal("100")
        )
        january.status = "exported"
        await session.flush()

        with pytest.raises(LockedPeriodError):
            await service.update_charge(
                january.billing_period_id, charge.charge_id, {"amount": Decimal("90")}
            )
        with pytest.raises(LockedPeriodError):
            await service.delete_charge(january.billing_period_id, charge.charge_id)

        assert charge.amount == Decimal("100.00")

    async def test_completed_period_still_accepts_corrections(
        self, session: AsyncSession, january: BillingPeriod, test_staff: Staff
    ):
        january.status = "completed"
        await session.flush()

        charge = await ChargeService(session).add_charge(
            january.billing_period_id, test_staff.staff_id, "other", Decimal("12")
        )
        assert charge.billing_period_id == january.billing_period_id


class TestUpdateDelete:
    """Test charge corrections."""

    async def test_update_fields(
        self, session: AsyncSession, january: BillingPeriod, test_staff: Staff
    ):
        service = ChargeService(session)
        charge = await service.add_charge(
            january.billing_period_id, test_staff.staff_id, "rent", Decimal("100")
        )

        updated = await service.update_charge(
            january.billing_period_id,
            charge.charge_id,
            {"amount": Decimal("80"), "proration_factor": Decimal("0.5"), "description": "Fixed"},
        )

        assert updated.amount == Decimal("80.00")
        assert updated.effective_amount == Decimal("40.00")
        assert updated.description == "Fixed"

    async def test_update_rejects_other_fields(
        self, session: AsyncSession, january: BillingPeriod, test_staff: Staff
    ):
        service = ChargeService(session)
        charge = await service.add_charge(
            january.billing_period_id, test_staff.staff_id, "rent", Decimal("100")
        )

        with pytest.raises(ValidationError):
            await service.update_charge(
                january.billing_period_id, charge.charge_id, {"staff_id": uuid4()}
            )

    async def test_charge_must_belong_to_period(
        self, session: AsyncSession, january: BillingPeriod, test_staff: Staff
    ):
        service = ChargeService(session)
        charge = await service.add_charge(
            january.billing_period_id, test_staff.staff_id, "rent", Decimal("100")
        )
        february = BillingPeriod(
            start_date=january.end_date.replace(month=2, day=1),
            end_date=january.end_date.replace(month=2, day=29),
        )
        session.add(february)
        await session.flush()

        with pytest.raises(ValidationError):
            await service.delete_charge(february.billing_period_id, charge.charge_id)

    async def test_delete(self, session: AsyncSession, january: BillingPeriod, test_staff: Staff):
        service = ChargeService(session)
        charge = await service.add_charge(
            january.billing_period_id, test_staff.staff_id, "rent", Decimal("100")
        )

        await service.delete_charge(january.billing_period_id, charge.charge_id)

        with pytest.raises(NotFoundError):
            await service.get_charge(charge.charge_id)


class TestListCharges:
    """Test charge filters."""

    async def test_filters(
        self,
        session: AsyncSession,
        january: BillingPeriod,
        test_staff: Staff,
        other_staff: list[Staff],
    ):
        service = ChargeService(session)
        await service.add_charge(
            january.billing_period_id, test_staff.staff_id, "rent", Decimal("300"), description="Room"
        )
        await service.add_charge(
            january.billing_period_id, test_staff.staff_id, "utilities", Decimal("20"), description="Water"
        )
        await service.add_charge(
            january.billing_period_id, other_staff[0].staff_id, "rent", Decimal("150"), description="Room"
        )

        _, total = await service.list_charges(ChargeFilters(billing_period_id=january.billing_period_id))
        assert total == 3

        charges, total = await service.list_charges(ChargeFilters(staff_id=test_staff.staff_id))
        assert total == 2
        assert {c.charge_type for c in charges} == {"rent", "utilities"}

        charges, total = await service.list_charges(ChargeFilters(charge_type=ChargeType.RENT))
        assert total == 2

        charges, total = await service.list_charges(
            ChargeFilters(min_amount=Decimal("100"), max_amount=Decimal("200"))
        )
        assert total == 1
        assert charges[0].staff_id == other_staff[0].staff_id

        charges, total = await service.list_charges(ChargeFilters(search="wat"))
        assert total == 1
        assert charges[0].description == "Water"

        charges, total = await service.list_charges(ChargeFilters(offset=1, limit=1))
        assert total == 3
        assert len(charges) == 1
