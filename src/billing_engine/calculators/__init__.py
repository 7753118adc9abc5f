"""Charge calculation: proration, rate resolution and candidate building."""

from billing_engine.calculators.charge_builder import ChargeBuilder
from billing_engine.calculators.proration import day_count, overlap, prorate
from billing_engine.calculators.rate_resolver import RateNotFoundError, RateResolver
from billing_engine.calculators.types import (
    ChargeCandidate,
    ChargeType,
    PayrollExportRow,
    SourceType,
)

__all__ = [
    "ChargeBuilder",
    "ChargeCandidate",
    "ChargeType",
    "PayrollExportRow",
    "RateNotFoundError",
    "RateResolver",
    "SourceType",
    "day_count",
    "overlap",
    "prorate",
]
