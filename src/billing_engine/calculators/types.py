"""Type definitions for the charge calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

CENTS = Decimal("0.01")


class ChargeType(str, Enum):
    """Charge buckets reported in the payroll export."""

    RENT = "rent"
    UTILITIES = "utilities"
    TRANSPORT = "transport"
    OTHER = "other"


class SourceType(str, Enum):
    """Kind of record a charge was generated from."""

    ROOM_ASSIGNMENT = "room_assignment"
    TRIP = "trip"
    MANUAL = "manual"


@dataclass
class ChargeCandidate:
    """A charge computed from a source record, before persistence."""

    staff_id: UUID
    charge_type: ChargeType
    amount: Decimal  # Full (unprorated) amount, rounded to cents
    proration_factor: Decimal = Decimal("1")
    description: str = ""

    # Traceability
    source_type: SourceType = SourceType.MANUAL
    source_id: UUID | None = None

    @property
    def effective_amount(self) -> Decimal:
        value = self.amount * self.proration_factor
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)

    def to_row(self, billing_period_id: UUID) -> dict[str, Any]:
        """Column values for inserting this candidate into a period."""
        return {
            "billing_period_id": billing_period_id,
            "staff_id": self.staff_id,
            "charge_type": self.charge_type.value,
            "amount": self.amount,
            "proration_factor": self.proration_factor,
            "description": self.description,
            "source_type": self.source_type.value,
            "source_id": self.source_id,
        }


@dataclass
class PayrollExportRow:
    """Per-employee aggregate of one period's charges (derived, not stored)."""

    employee_id: str
    first_name: str
    last_name: str
    billing_period_label: str
    total_deductions: Decimal = Decimal("0")
    rent_charges: Decimal = Decimal("0")
    utility_charges: Decimal = Decimal("0")
    transport_charges: Decimal = Decimal("0")
    other_charges: Decimal = Decimal("0")

    BUCKETS = {
        ChargeType.RENT: "rent_charges",
        ChargeType.UTILITIES: "utility_charges",
        ChargeType.TRANSPORT: "transport_charges",
        ChargeType.OTHER: "other_charges",
    }

    def add(self, charge_type: ChargeType, amount: Decimal) -> None:
        """Add an effective amount to its type bucket and the total."""
        attr = self.BUCKETS[charge_type]
        setattr(self, attr, getattr(self, attr) + amount)
        self.total_deductions += amount


@dataclass
class TypeBreakdown:
    """Count and amount of charges of one type."""

    count: int = 0
    amount: Decimal = Decimal("0")
    percentage: Decimal = Decimal("0")


@dataclass
class BillingMetrics:
    """Aggregate billing figures across periods."""

    total_billing_periods: int
    active_billing_periods: int
    total_charges: int
    total_amount: Decimal
    average_charge_amount: Decimal
    charges_by_type: dict[ChargeType, TypeBreakdown] = field(default_factory=dict)


@dataclass
class StaffBillingSummary:
    """Charge totals for one staff member."""

    staff_id: UUID
    employee_id: str
    first_name: str
    last_name: str
    total_charges: int = 0
    total_amount: Decimal = Decimal("0")
    charges_by_type: dict[ChargeType, Decimal] = field(
        default_factory=lambda: {t: Decimal("0") for t in ChargeType}
    )
    last_charge_at: Any = None  # datetime
