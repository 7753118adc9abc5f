"""Read-only billing analytics.

Reads are not locked: totals of draft and processing periods are
provisional and may change while generation runs.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from billing_engine.calculators.types import (
    BillingMetrics,
    ChargeType,
    StaffBillingSummary,
    TypeBreakdown,
)
from billing_engine.models import BillingPeriod, Charge
from billing_engine.services.state_machine import BillingPeriodStateMachine

CENTS = Decimal("0.01")


class BillingAnalyticsService:
    """Aggregates charges for dashboards and staff self-service."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def billing_metrics(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> BillingMetrics:
        """Totals across periods inside an optional date range."""
        periods = await self._periods(start_date, end_date)
        period_ids = [p.billing_period_id for p in periods]

        charges: list[Charge] = []
        if period_ids:
            result = await self.session.execute(
                select(Charge).where(Charge.billing_period_id.in_(period_ids))
            )
            charges = list(result.scalars().all())

        by_type = {charge_type: TypeBreakdown() for charge_type in ChargeType}
        total = Decimal("0")
        for charge in charges:
            amount = charge.effective_amount
            bucket = by_type[ChargeType(charge.charge_type)]
            bucket.count += 1
            bucket.amount += amount
            total += amount

        for bucket in by_type.values():
            if total > 0:
                bucket.percentage = (bucket.amount / total * 100).quantize(
                    CENTS, rounding=ROUND_HALF_UP
                )

        average = Decimal("0")
        if charges:
            average = (total / len(charges)).quantize(CENTS, rounding=ROUND_HALF_UP)

        return BillingMetrics(
            total_billing_periods=len(periods),
            active_billing_periods=sum(
                1 for p in periods if BillingPeriodStateMachine.is_provisional(p.status)
            ),
            total_charges=len(charges),
            total_amount=total,
            average_charge_amount=average,
            charges_by_type=by_type,
        )

    async def staff_summaries(
        self,
        staff_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[StaffBillingSummary]:
        """Per staff member totals, highest total first."""
        query = (
            select(Charge)
            .join(BillingPeriod, Charge.billing_period_id == BillingPeriod.billing_period_id)
            .options(selectinload(Charge.staff))
        )
        if staff_id is not None:
            query = query.where(Charge.staff_id == staff_id)
        if start_date is not None:
            query = query.where(BillingPeriod.start_date >= start_date)
        if end_date is not None:
            query = query.where(BillingPeriod.end_date <= end_date)

        result = await self.session.execute(query)

        summaries: dict[UUID, StaffBillingSummary] = {}
        for charge in result.scalars().all():
            summary = summaries.get(charge.staff_id)
            if summary is None:
                staff = charge.staff
                summary = summaries[charge.staff_id] = StaffBillingSummary(
                    staff_id=charge.staff_id,
                    employee_id=staff.employee_id,
                    first_name=staff.first_name,
                    last_name=staff.last_name,
                )

            amount = charge.effective_amount
            summary.total_charges += 1
            summary.total_amount += amount
            summary.charges_by_type[ChargeType(charge.charge_type)] += amount
            if summary.last_charge_at is None or charge.created_at > summary.last_charge_at:
                summary.last_charge_at = charge.created_at

        return sorted(
            summaries.values(),
            key=lambda s: (-s.total_amount, s.employee_id),
        )

    async def _periods(
        self,
        start_date: date | None,
        end_date: date | None,
    ) -> list[BillingPeriod]:
        query = select(BillingPeriod)
        if start_date is not None:
            query = query.where(BillingPeriod.start_date >= start_date)
        if end_date is not None:
            query = query.where(BillingPeriod.end_date <= end_date)
        result = await self.session.execute(query)
        return list(result.scalars().all())
