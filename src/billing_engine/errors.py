"""Billing error types.

Validation and lock errors are raised synchronously to the caller.
Per-source generation failures are collected into a ``GenerationReport``
and surfaced once as ``PartialGenerationError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from datetime import date

    from billing_engine.services.generation_types import GenerationReport


class BillingError(Exception):
    """Base class for billing errors."""

    code = "BILLING_ERROR"

    def to_dict(self) -> dict[str, Any]:
        return {"detail": str(self), "code": self.code}


class ValidationError(BillingError):
    """Invalid input (bad amount, bad dates, missing reference)."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class NotFoundError(BillingError):
    """A billing period, charge or export record does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: UUID):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class OverlapError(BillingError):
    """A billing period overlaps an existing non-cancelled period."""

    code = "PERIOD_OVERLAP"

    def __init__(self, start_date: date, end_date: date, conflicting_ids: list[UUID]):
        self.start_date = start_date
        self.end_date = end_date
        self.conflicting_ids = conflicting_ids
        super().__init__(
            f"Billing period {start_date}..{end_date} overlaps existing "
            f"period(s): {', '.join(str(i) for i in conflicting_ids)}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["conflicting_period_ids"] = [str(i) for i in self.conflicting_ids]
        return data


class LockedPeriodError(BillingError):
    """Charge mutation attempted on an exported or cancelled period."""

    code = "PERIOD_LOCKED"

    def __init__(self, billing_period_id: UUID, status: str, action: str = "modify charges"):
        self.billing_period_id = billing_period_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} in billing period {billing_period_id} (status: {status})"
        )


class CapacityOrSourceMissingError(BillingError):
    """A referenced assignment, trip, staff member or rate was not found."""

    code = "SOURCE_MISSING"

    def __init__(self, source_type: str, source_id: UUID | None, reason: str | None = None):
        self.source_type = source_type
        self.source_id = source_id
        self.reason = reason
        msg = f"{source_type} {source_id} not found"
        if reason:
            msg = f"{source_type} {source_id}: {reason}"
        super().__init__(msg)


class AlreadyExportedError(BillingError):
    """The billing period already has a committed payroll export."""

    code = "ALREADY_EXPORTED"

    def __init__(self, billing_period_id: UUID):
        self.billing_period_id = billing_period_id
        super().__init__(f"Billing period {billing_period_id} has already been exported")


class PeriodBusyError(BillingError):
    """Another writer holds the period lock."""

    code = "PERIOD_BUSY"

    def __init__(self, billing_period_id: UUID | None):
        self.billing_period_id = billing_period_id
        if billing_period_id is None:
            msg = "Billing periods are being modified by another request"
        else:
            msg = f"Billing period {billing_period_id} is being modified by another request"
        super().__init__(msg)


class PartialGenerationError(BillingError):
    """Some source records could not be converted into charges.

    Charges created for the other sources are kept.
    """

    code = "PARTIAL_GENERATION"

    def __init__(self, report: GenerationReport):
        self.report = report
        failed = ", ".join(str(f.source_id) for f in report.failures)
        super().__init__(
            f"{len(report.failures)} source(s) failed to generate charges "
            f"for billing period {report.billing_period_id}: {failed}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["report"] = self.report.to_dict()
        return data
