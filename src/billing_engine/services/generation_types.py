"""Result types for charge generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from billing_engine.calculators.types import ChargeCandidate, SourceType
from billing_engine.errors import PartialGenerationError


@dataclass(frozen=True)
class SourceOutcome:
    """A source record that produced no charge, and why."""

    source_type: SourceType
    source_id: UUID
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_type": self.source_type.value,
            "source_id": str(self.source_id),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class StaleCharge:
    """An existing charge that its source would now compute differently.

    ``computed_*`` are None when the source no longer yields a charge for
    this staff member (assignment ended, passenger removed, trip cancelled).
    """

    charge_id: UUID
    source_type: SourceType
    source_id: UUID
    staff_id: UUID
    stored_amount: Decimal
    stored_factor: Decimal
    computed_amount: Decimal | None = None
    computed_factor: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "charge_id": str(self.charge_id),
            "source_type": self.source_type.value,
            "source_id": str(self.source_id),
            "staff_id": str(self.staff_id),
            "stored_amount": str(self.stored_amount),
            "stored_factor": str(self.stored_factor),
            "computed_amount": (
                str(self.computed_amount) if self.computed_amount is not None else None
            ),
            "computed_factor": (
                str(self.computed_factor) if self.computed_factor is not None else None
            ),
        }


@dataclass
class GeneratorResult:
    """Output of one generator before persistence."""

    candidates: list[ChargeCandidate] = field(default_factory=list)
    skipped: list[SourceOutcome] = field(default_factory=list)
    failures: list[SourceOutcome] = field(default_factory=list)

    def extend(self, other: GeneratorResult) -> None:
        self.candidates.extend(other.candidates)
        self.skipped.extend(other.skipped)
        self.failures.extend(other.failures)


@dataclass
class GenerationReport:
    """Summary of one generation run over a billing period."""

    billing_period_id: UUID
    period_status: str = ""
    created_charge_ids: list[UUID] = field(default_factory=list)
    existing_count: int = 0
    skipped: list[SourceOutcome] = field(default_factory=list)
    failures: list[SourceOutcome] = field(default_factory=list)
    stale: list[StaleCharge] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created_charge_ids)

    @property
    def has_failures(self) -> bool:
        return len(self.failures) > 0

    def raise_for_failures(self) -> None:
        """Raise PartialGenerationError if any source failed."""
        if self.has_failures:
            raise PartialGenerationError(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "billing_period_id": str(self.billing_period_id),
            "period_status": self.period_status,
            "created_count": self.created_count,
            "created_charge_ids": [str(i) for i in self.created_charge_ids],
            "existing_count": self.existing_count,
            "skipped": [s.to_dict() for s in self.skipped],
            "failures": [f.to_dict() for f in self.failures],
            "stale": [s.to_dict() for s in self.stale],
        }
