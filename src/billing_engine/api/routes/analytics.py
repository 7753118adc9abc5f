"""Billing analytics endpoints.

Figures include draft and processing periods, whose totals are provisional.
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter

from billing_engine.api.dependencies import DbSession
from billing_engine.api.schemas import (
    BillingMetricsResponse,
    StaffSummaryListResponse,
    StaffSummaryResponse,
    TypeBreakdownResponse,
)
from billing_engine.services.analytics_service import BillingAnalyticsService

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/billing", response_model=BillingMetricsResponse)
async def billing_metrics(
    db: DbSession,
    start_date: date | None = None,
    end_date: date | None = None,
) -> BillingMetricsResponse:
    """Totals and per-type breakdown across billing periods."""
    metrics = await BillingAnalyticsService(db).billing_metrics(start_date, end_date)
    return BillingMetricsResponse(
        total_billing_periods=metrics.total_billing_periods,
        active_billing_periods=metrics.active_billing_periods,
        total_charges=metrics.total_charges,
        total_amount=metrics.total_amount,
        average_charge_amount=metrics.average_charge_amount,
        charges_by_type={
            charge_type.value: TypeBreakdownResponse.model_validate(bucket)
            for charge_type, bucket in metrics.charges_by_type.items()
        },
    )


@router.get("/staff-summary", response_model=StaffSummaryListResponse)
async def staff_summary(
    db: DbSession,
    staff_id: UUID | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> StaffSummaryListResponse:
    """Per staff member charge totals, highest first."""
    summaries = await BillingAnalyticsService(db).staff_summaries(
        staff_id=staff_id, start_date=start_date, end_date=end_date
    )
    items = [
        StaffSummaryResponse(
            staff_id=s.staff_id,
            employee_id=s.employee_id,
            first_name=s.first_name,
            last_name=s.last_name,
            total_charges=s.total_charges,
            total_amount=s.total_amount,
            charges_by_type={t.value: amount for t, amount in s.charges_by_type.items()},
            last_charge_at=s.last_charge_at,
        )
        for s in summaries
    ]
    return StaffSummaryListResponse(items=items, total=len(items))
