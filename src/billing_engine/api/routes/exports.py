"""Payroll export record endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from billing_engine.api.dependencies import AppSettings, DbSession
from billing_engine.api.schemas import ErrorResponse, ExportRecordResponse
from billing_engine.services.export_service import PayrollExportService

router = APIRouter(prefix="/exports", tags=["exports"])

ExportId = Annotated[UUID, Path(description="Payroll export record ID")]


@router.get(
    "/{export_id}",
    response_model=ExportRecordResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_export(
    db: DbSession,
    settings: AppSettings,
    export_id: ExportId,
) -> ExportRecordResponse:
    """Get a committed payroll export record."""
    record = await PayrollExportService(db, settings).get_export(export_id)
    return ExportRecordResponse.model_validate(record)
