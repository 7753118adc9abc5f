"""Rent charges from room assignments."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from billing_engine.calculators.charge_builder import ChargeBuilder
from billing_engine.calculators.proration import overlap, prorate
from billing_engine.calculators.rate_resolver import RateResolver
from billing_engine.calculators.types import SourceType
from billing_engine.errors import CapacityOrSourceMissingError
from billing_engine.services.generation_types import GeneratorResult, SourceOutcome
from billing_engine.services.sources import SourceRepository

if TYPE_CHECKING:
    from billing_engine.models import BillingPeriod

logger = logging.getLogger(__name__)


class HousingChargeGenerator:
    """Turns active room assignments into prorated rent charges.

    Per assignment:
    1. Clamp [start_date, end_date or period end] to the period
    2. Prorate the clamped interval against the period; no overlap means
       no charge
    3. Resolve the monthly rate (room, then property, then fallback)
    4. Emit one rent charge referencing the assignment
    """

    def __init__(self, sources: SourceRepository, rate_resolver: RateResolver):
        self.sources = sources
        self.rate_resolver = rate_resolver

    async def build(self, period: BillingPeriod) -> GeneratorResult:
        """Compute rent charge candidates for a period."""
        result = GeneratorResult()

        for assignment in await self.sources.active_assignments(period):
            assignment_end = assignment.end_date or period.end_date
            clamped = overlap(
                assignment.start_date, assignment_end, period.start_date, period.end_date
            )
            if clamped is None:
                result.skipped.append(
                    SourceOutcome(
                        SourceType.ROOM_ASSIGNMENT,
                        assignment.assignment_id,
                        "no billable overlap with period",
                    )
                )
                continue

            factor = prorate(clamped[0], clamped[1], period.start_date, period.end_date)
            if factor == 0:
                result.skipped.append(
                    SourceOutcome(
                        SourceType.ROOM_ASSIGNMENT,
                        assignment.assignment_id,
                        "no billable overlap with period",
                    )
                )
                continue

            try:
                if assignment.room is None:
                    raise CapacityOrSourceMissingError("room", assignment.room_id)
                rate = self.rate_resolver.resolve(assignment)
            except CapacityOrSourceMissingError as exc:
                logger.warning(
                    "Cannot generate rent for assignment %s: %s",
                    assignment.assignment_id,
                    exc,
                )
                result.failures.append(
                    SourceOutcome(SourceType.ROOM_ASSIGNMENT, assignment.assignment_id, str(exc))
                )
                continue

            result.candidates.append(
                ChargeBuilder.create_rent_charge(
                    assignment_id=assignment.assignment_id,
                    staff_id=assignment.staff_id,
                    room_number=assignment.room.room_number,
                    monthly_rate=rate,
                    proration_factor=factor,
                )
            )

        logger.debug(
            "Housing generation for period %s: %d candidate(s), %d skipped, %d failed",
            period.billing_period_id,
            len(result.candidates),
            len(result.skipped),
            len(result.failures),
        )
        return result
