"""Billing period API endpoints."""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status

from billing_engine.api.dependencies import AppSettings, DbSession
from billing_engine.api.schemas import (
    BillingPeriodCreate,
    BillingPeriodListResponse,
    BillingPeriodResponse,
    BillingPeriodUpdate,
    ErrorResponse,
    ExportHistoryResponse,
    ExportPreviewResponse,
    ExportRecordResponse,
    ExportRowResponse,
    GenerationReportResponse,
)
from billing_engine.services.export_service import PayrollExportService
from billing_engine.services.generation import ChargeGenerationService
from billing_engine.services.period_service import BillingPeriodService
from billing_engine.services.state_machine import BillingPeriodStatus

router = APIRouter(prefix="/billing-periods", tags=["billing-periods"])

PeriodId = Annotated[UUID, Path(description="Billing period ID")]


# ============================================================================
# Billing period CRUD
# ============================================================================


@router.post(
    "",
    response_model=BillingPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_billing_period(
    db: DbSession,
    payload: BillingPeriodCreate,
) -> BillingPeriodResponse:
    """Create a new billing period in draft status."""
    period = await BillingPeriodService(db).create_period(payload.start_date, payload.end_date)
    await db.commit()
    await db.refresh(period)
    return BillingPeriodResponse.model_validate(period)


@router.get("", response_model=BillingPeriodListResponse)
async def list_billing_periods(
    db: DbSession,
    status_filter: Annotated[BillingPeriodStatus | None, Query(alias="status")] = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> BillingPeriodListResponse:
    """List billing periods, most recent first."""
    periods = await BillingPeriodService(db).list_periods(
        status=status_filter, start_date=start_date, end_date=end_date
    )
    return BillingPeriodListResponse(
        items=[BillingPeriodResponse.model_validate(p) for p in periods],
        total=len(periods),
    )


@router.get(
    "/{billing_period_id}",
    response_model=BillingPeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_billing_period(
    db: DbSession,
    billing_period_id: PeriodId,
) -> BillingPeriodResponse:
    """Get a billing period by ID."""
    period = await BillingPeriodService(db).get_period(billing_period_id)
    return BillingPeriodResponse.model_validate(period)


@router.patch(
    "/{billing_period_id}",
    response_model=BillingPeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_billing_period(
    db: DbSession,
    billing_period_id: PeriodId,
    payload: BillingPeriodUpdate,
) -> BillingPeriodResponse:
    """Reschedule a draft billing period that has no charges."""
    period = await BillingPeriodService(db).update_period_dates(
        billing_period_id, payload.start_date, payload.end_date
    )
    await db.commit()
    await db.refresh(period)
    return BillingPeriodResponse.model_validate(period)


@router.delete(
    "/{billing_period_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 423: {"model": ErrorResponse}},
)
async def delete_billing_period(
    db: DbSession,
    billing_period_id: PeriodId,
) -> Response:
    """Delete a billing period that never held charges."""
    await BillingPeriodService(db).delete_period(billing_period_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Lifecycle
# ============================================================================


@router.post(
    "/{billing_period_id}/generate",
    response_model=GenerationReportResponse,
    responses={
        207: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        423: {"model": ErrorResponse},
    },
)
async def generate_charges(
    db: DbSession,
    settings: AppSettings,
    billing_period_id: PeriodId,
) -> GenerationReportResponse:
    """Generate housing and transport charges without changing status.

    Charges created for healthy sources are committed even when other
    sources fail; failures are then reported with status 207.
    """
    report = await ChargeGenerationService(db, settings).generate_charges(billing_period_id)
    await db.commit()
    report.raise_for_failures()
    return GenerationReportResponse.model_validate(report.to_dict())


@router.post(
    "/{billing_period_id}/process",
    response_model=GenerationReportResponse,
    responses={
        207: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        423: {"model": ErrorResponse},
    },
)
async def process_billing_period(
    db: DbSession,
    settings: AppSettings,
    billing_period_id: PeriodId,
) -> GenerationReportResponse:
    """Generate charges and move the period towards completed."""
    report = await ChargeGenerationService(db, settings).process_period(billing_period_id)
    await db.commit()
    report.raise_for_failures()
    return GenerationReportResponse.model_validate(report.to_dict())


@router.post(
    "/{billing_period_id}/cancel",
    response_model=BillingPeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_billing_period(
    db: DbSession,
    billing_period_id: PeriodId,
) -> BillingPeriodResponse:
    """Cancel a draft or processing billing period."""
    period = await BillingPeriodService(db).cancel_period(billing_period_id)
    await db.commit()
    await db.refresh(period)
    return BillingPeriodResponse.model_validate(period)


# ============================================================================
# Payroll export
# ============================================================================


@router.get(
    "/{billing_period_id}/export/preview",
    response_model=ExportPreviewResponse,
    responses={404: {"model": ErrorResponse}},
)
async def preview_export(
    db: DbSession,
    settings: AppSettings,
    billing_period_id: PeriodId,
) -> ExportPreviewResponse:
    """Rows the payroll export would contain right now."""
    service = PayrollExportService(db, settings)
    period = await BillingPeriodService(db).get_period(billing_period_id)
    rows = await service.build_export(billing_period_id)
    return ExportPreviewResponse(
        billing_period_id=billing_period_id,
        status=period.status,
        rows=[ExportRowResponse.model_validate(row) for row in rows],
        record_count=len(rows),
        total_amount=sum((row.total_deductions for row in rows), Decimal("0")),
    )


@router.get(
    "/{billing_period_id}/export.csv",
    response_class=Response,
    responses={
        200: {"content": {"text/csv": {}}},
        404: {"model": ErrorResponse},
    },
)
async def download_export_csv(
    db: DbSession,
    settings: AppSettings,
    billing_period_id: PeriodId,
) -> Response:
    """Download the payroll export file of a period."""
    service = PayrollExportService(db, settings)
    period = await BillingPeriodService(db).get_period(billing_period_id)
    content = await service.export_csv(billing_period_id)

    file_name = service.file_name(period.payroll_export_date or datetime.now(timezone.utc))
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.post(
    "/{billing_period_id}/export",
    response_model=ExportRecordResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def commit_export(
    db: DbSession,
    settings: AppSettings,
    billing_period_id: PeriodId,
) -> ExportRecordResponse:
    """Record the payroll export and lock the billing period."""
    record = await PayrollExportService(db, settings).commit_export(billing_period_id)
    await db.commit()
    await db.refresh(record)
    return ExportRecordResponse.model_validate(record)


@router.get(
    "/{billing_period_id}/exports",
    response_model=ExportHistoryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_period_exports(
    db: DbSession,
    settings: AppSettings,
    billing_period_id: PeriodId,
) -> ExportHistoryResponse:
    """Export history of a billing period."""
    await BillingPeriodService(db).get_period(billing_period_id)
    records = await PayrollExportService(db, settings).list_exports(billing_period_id)
    return ExportHistoryResponse(
        items=[ExportRecordResponse.model_validate(r) for r in records],
        total=len(records),
    )
