"""Billing period state machine with transition validation."""

from __future__ import annotations

from enum import Enum


class BillingPeriodStatus(str, Enum):
    """Billing period status values."""

    DRAFT = "draft"
    PROCESSING = "processing"
    COMPLETED = "completed"
    EXPORTED = "exported"
    CANCELLED = "cancelled"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    def to_dict(self) -> dict[str, str]:
        return {"detail": str(self), "code": self.code}


class BillingPeriodStateMachine:
    """State machine for billing period status transitions.

    Allowed transitions:
    - draft → processing
    - draft → cancelled
    - processing → completed
    - processing → cancelled
    - completed → exported

    No state is re-enterable; exported and cancelled are terminal.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        BillingPeriodStatus.DRAFT: [
            BillingPeriodStatus.PROCESSING,
            BillingPeriodStatus.CANCELLED,
        ],
        BillingPeriodStatus.PROCESSING: [
            BillingPeriodStatus.COMPLETED,
            BillingPeriodStatus.CANCELLED,
        ],
        BillingPeriodStatus.COMPLETED: [BillingPeriodStatus.EXPORTED],
        BillingPeriodStatus.EXPORTED: [],  # Terminal state
        BillingPeriodStatus.CANCELLED: [],  # Terminal state
    }

    # Statuses where charge generation may run
    GENERATION_ALLOWED = {
        BillingPeriodStatus.DRAFT,
        BillingPeriodStatus.PROCESSING,
    }

    # Statuses where charges can be added, edited or removed
    CHARGES_MUTABLE = {
        BillingPeriodStatus.DRAFT,
        BillingPeriodStatus.PROCESSING,
        BillingPeriodStatus.COMPLETED,
    }

    # Statuses whose charge totals are not final yet
    PROVISIONAL = {
        BillingPeriodStatus.DRAFT,
        BillingPeriodStatus.PROCESSING,
    }

    # Statuses ignored by the no-overlap check
    NON_BLOCKING = {BillingPeriodStatus.CANCELLED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_generate(cls, status: str) -> bool:
        """Check if charge generation is allowed in this status."""
        return status in cls.GENERATION_ALLOWED

    @classmethod
    def can_modify_charges(cls, status: str) -> bool:
        """Check if charges can be created, updated or deleted."""
        return status in cls.CHARGES_MUTABLE

    @classmethod
    def can_export(cls, status: str) -> bool:
        """Check if a payroll export may be committed."""
        return status == BillingPeriodStatus.COMPLETED

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """Check if no further transitions are possible."""
        return not cls.VALID_TRANSITIONS.get(status, [])

    @classmethod
    def is_provisional(cls, status: str) -> bool:
        """Check if the period's charge totals may still change by generation."""
        return status in cls.PROVISIONAL

    @classmethod
    def blocks_overlap(cls, status: str) -> bool:
        """Check if a period in this status takes part in the no-overlap rule."""
        return status not in cls.NON_BLOCKING

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
