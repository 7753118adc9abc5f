"""Billing engine services."""

from billing_engine.services.state_machine import (
    BillingPeriodStateMachine,
    BillingPeriodStatus,
    InvalidTransitionError,
)
from billing_engine.services.locking_service import LockingService
from billing_engine.services.charge_service import ChargeFilters, ChargeService
from billing_engine.services.period_service import BillingPeriodService
from billing_engine.services.generation import ChargeGenerationService
from billing_engine.services.generation_types import GenerationReport
from billing_engine.services.export_service import PayrollExportService
from billing_engine.services.analytics_service import BillingAnalyticsService

__all__ = [
    "BillingAnalyticsService",
    "BillingPeriodService",
    "BillingPeriodStateMachine",
    "BillingPeriodStatus",
    "ChargeFilters",
    "ChargeGenerationService",
    "ChargeService",
    "GenerationReport",
    "InvalidTransitionError",
    "LockingService",
    "PayrollExportService",
]
