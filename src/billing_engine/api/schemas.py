"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from billing_engine.calculators.types import ChargeType


# ============================================================================
# Billing period schemas
# ============================================================================


class BillingPeriodCreate(BaseModel):
    """Schema for creating a billing period."""

    start_date: date
    end_date: date


class BillingPeriodUpdate(BaseModel):
    """Schema for rescheduling a draft billing period."""

    start_date: date
    end_date: date


class BillingPeriodResponse(BaseModel):
    """Schema for billing period response."""

    model_config = ConfigDict(from_attributes=True)

    billing_period_id: UUID
    start_date: date
    end_date: date
    status: str
    label: str
    payroll_export_date: datetime | None = None
    created_at: datetime
    updated_at: datetime


class BillingPeriodListResponse(BaseModel):
    """Schema for listing billing periods."""

    items: list[BillingPeriodResponse]
    total: int


# ============================================================================
# Charge schemas
# ============================================================================


class ChargeCreate(BaseModel):
    """Schema for adding a manual charge."""

    billing_period_id: UUID
    staff_id: UUID
    charge_type: ChargeType
    amount: Decimal
    proration_factor: Decimal = Decimal("1")
    description: str = ""


class ChargeUpdate(BaseModel):
    """Schema for correcting a charge; only provided fields change."""

    charge_type: ChargeType | None = None
    amount: Decimal | None = None
    proration_factor: Decimal | None = None
    description: str | None = None


class ChargeResponse(BaseModel):
    """Schema for charge response."""

    model_config = ConfigDict(from_attributes=True)

    charge_id: UUID
    staff_id: UUID
    billing_period_id: UUID
    charge_type: str
    amount: Decimal
    proration_factor: Decimal
    effective_amount: Decimal
    description: str
    source_type: str
    source_id: UUID | None = None
    created_at: datetime
    updated_at: datetime
    provisional: bool = False


class ChargeListResponse(BaseModel):
    """Schema for listing charges."""

    items: list[ChargeResponse]
    total: int
    page: int
    page_size: int


# ============================================================================
# Generation schemas
# ============================================================================


class SourceOutcomeResponse(BaseModel):
    """A source that produced no charge."""

    source_type: str
    source_id: UUID
    reason: str


class StaleChargeResponse(BaseModel):
    """A charge whose source now computes differently."""

    charge_id: UUID
    source_type: str
    source_id: UUID
    staff_id: UUID
    stored_amount: Decimal
    stored_factor: Decimal
    computed_amount: Decimal | None = None
    computed_factor: Decimal | None = None


class GenerationReportResponse(BaseModel):
    """Schema for a charge generation run."""

    billing_period_id: UUID
    period_status: str
    created_count: int
    created_charge_ids: list[UUID]
    existing_count: int
    skipped: list[SourceOutcomeResponse] = Field(default_factory=list)
    failures: list[SourceOutcomeResponse] = Field(default_factory=list)
    stale: list[StaleChargeResponse] = Field(default_factory=list)


# ============================================================================
# Export schemas
# ============================================================================


class ExportRowResponse(BaseModel):
    """One employee line of a payroll export."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    first_name: str
    last_name: str
    total_deductions: Decimal
    rent_charges: Decimal
    utility_charges: Decimal
    transport_charges: Decimal
    other_charges: Decimal
    billing_period_label: str


class ExportPreviewResponse(BaseModel):
    """Rows an export would contain right now."""

    billing_period_id: UUID
    status: str
    rows: list[ExportRowResponse]
    record_count: int
    total_amount: Decimal


class ExportRecordResponse(BaseModel):
    """Schema for a committed export record."""

    model_config = ConfigDict(from_attributes=True)

    export_id: UUID
    billing_period_id: UUID
    export_date: datetime
    file_name: str
    record_count: int
    total_amount: Decimal
    status: str


class ExportHistoryResponse(BaseModel):
    """Schema for export history."""

    items: list[ExportRecordResponse]
    total: int


# ============================================================================
# Analytics schemas
# ============================================================================


class TypeBreakdownResponse(BaseModel):
    """Charges of one type."""

    model_config = ConfigDict(from_attributes=True)

    count: int
    amount: Decimal
    percentage: Decimal


class BillingMetricsResponse(BaseModel):
    """Schema for billing metrics."""

    total_billing_periods: int
    active_billing_periods: int
    total_charges: int
    total_amount: Decimal
    average_charge_amount: Decimal
    charges_by_type: dict[str, TypeBreakdownResponse]


class StaffSummaryResponse(BaseModel):
    """Schema for a staff billing summary."""

    staff_id: UUID
    employee_id: str
    first_name: str
    last_name: str
    total_charges: int
    total_amount: Decimal
    charges_by_type: dict[str, Decimal]
    last_charge_at: datetime | None = None


class StaffSummaryListResponse(BaseModel):
    """Schema for listing staff billing summaries."""

    items: list[StaffSummaryResponse]
    total: int


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str
    field: str | None = None
    extra: dict[str, Any] | None = None
