"""Transport charges from completed trips."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from billing_engine.calculators.charge_builder import ChargeBuilder
from billing_engine.calculators.types import SourceType
from billing_engine.services.generation_types import GeneratorResult, SourceOutcome
from billing_engine.services.sources import SourceRepository

if TYPE_CHECKING:
    from billing_engine.models import BillingPeriod

logger = logging.getLogger(__name__)


class TransportChargeGenerator:
    """Splits each completed trip's cost evenly between its passengers.

    A trip is a single-day event, so no proration applies. Trips without a
    recorded cost or without passengers produce no charges.
    """

    def __init__(self, sources: SourceRepository):
        self.sources = sources

    async def build(self, period: BillingPeriod) -> GeneratorResult:
        """Compute transport charge candidates for a period."""
        result = GeneratorResult()

        for trip in await self.sources.completed_trips(period):
            if trip.cost is None or Decimal(trip.cost) <= 0:
                logger.info("Skipping trip %s: no recorded cost", trip.trip_id)
                result.skipped.append(
                    SourceOutcome(SourceType.TRIP, trip.trip_id, "no recorded cost")
                )
                continue

            staff_ids = [p.staff_id for p in trip.passengers]
            if not staff_ids:
                logger.info("Skipping trip %s: no passengers", trip.trip_id)
                result.skipped.append(
                    SourceOutcome(SourceType.TRIP, trip.trip_id, "no passengers")
                )
                continue

            cost = Decimal(trip.cost)
            if cost < ChargeBuilder.OUTPUT_PRECISION * len(staff_ids):
                logger.warning(
                    "Cannot split trip %s cost %s between %d passengers",
                    trip.trip_id,
                    cost,
                    len(staff_ids),
                )
                result.failures.append(
                    SourceOutcome(
                        SourceType.TRIP,
                        trip.trip_id,
                        f"cost {cost} is less than one cent per passenger",
                    )
                )
                continue

            result.candidates.extend(
                ChargeBuilder.create_transport_charges(
                    trip_id=trip.trip_id,
                    trip_date=trip.trip_date,
                    route=trip.route,
                    cost=cost,
                    passenger_staff_ids=staff_ids,
                )
            )

        logger.debug(
            "Transport generation for period %s: %d candidate(s), %d skipped, %d failed",
            period.billing_period_id,
            len(result.candidates),
            len(result.skipped),
            len(result.failures),
        )
        return result
