"""Charge generation orchestrator for billing periods."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.calculators.rate_resolver import RateResolver
from billing_engine.calculators.types import ChargeCandidate, SourceType
from billing_engine.config import Settings, get_settings
from billing_engine.errors import LockedPeriodError
from billing_engine.services.charge_service import ChargeService
from billing_engine.services.generation_types import (
    GenerationReport,
    GeneratorResult,
    StaleCharge,
)
from billing_engine.services.housing_generator import HousingChargeGenerator
from billing_engine.services.locking_service import LockingService
from billing_engine.services.period_service import BillingPeriodService
from billing_engine.services.sources import SourceRepository
from billing_engine.services.state_machine import (
    BillingPeriodStateMachine,
    BillingPeriodStatus,
)
from billing_engine.services.transport_generator import TransportChargeGenerator

if TYPE_CHECKING:
    from billing_engine.models import BillingPeriod, Charge

logger = logging.getLogger(__name__)

GENERATED_SOURCES = (SourceType.ROOM_ASSIGNMENT, SourceType.TRIP)


class ChargeGenerationService:
    """Generates housing and transport charges for a billing period.

    Operations:
    - generate_charges: Idempotent generation; the status is left unchanged
    - process_period: draft → processing, generate, then → completed when
      every source converted cleanly; stays processing on partial failure

    Regeneration never replaces charges. A charge whose source would now
    compute a different amount, or no charge at all, is reported as stale
    for manual reconciliation.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        settings = settings or get_settings()
        self.session = session
        self.charge_service = ChargeService(session)
        self.period_service = BillingPeriodService(session)
        self.locking_service = LockingService(session)

        sources = SourceRepository(session)
        self.housing = HousingChargeGenerator(
            sources, RateResolver(settings.default_monthly_rent)
        )
        self.transport = TransportChargeGenerator(sources)

    async def generate_charges(self, billing_period_id: UUID) -> GenerationReport:
        """Run both generators for a draft or processing period.

        Safe to repeat: sources already charged in the period are skipped.

        Raises:
            NotFoundError: If the period does not exist
            LockedPeriodError: If the period does not accept generation
        """
        await self.locking_service.lock_period(billing_period_id)
        period = await self._guard_generation(billing_period_id)
        return await self._generate(period)

    async def process_period(self, billing_period_id: UUID) -> GenerationReport:
        """Batch-generate charges and advance the lifecycle.

        A draft period enters processing first; a processing period (retry
        after partial failure) is generated again. The period reaches
        completed only when no source failed. The report's ``failures``
        tell the caller whether to surface PartialGenerationError.
        """
        await self.locking_service.lock_period(billing_period_id)
        period = await self._guard_generation(billing_period_id)

        if period.status == BillingPeriodStatus.DRAFT:
            await self.period_service.transition_status(
                period, BillingPeriodStatus.PROCESSING
            )

        report = await self._generate(period)

        if report.has_failures:
            logger.warning(
                "Billing period %s stays in processing: %d source(s) failed",
                billing_period_id,
                len(report.failures),
            )
        else:
            await self.period_service.transition_status(
                period, BillingPeriodStatus.COMPLETED
            )

        report.period_status = period.status
        return report

    async def _guard_generation(self, billing_period_id: UUID) -> BillingPeriod:
        period = await self.charge_service.guard_period(billing_period_id, "generate charges")
        if not BillingPeriodStateMachine.can_generate(period.status):
            raise LockedPeriodError(billing_period_id, period.status, "generate charges")
        return period

    async def _generate(self, period: BillingPeriod) -> GenerationReport:
        outcome = GeneratorResult()
        outcome.extend(await self.housing.build(period))
        outcome.extend(await self.transport.build(period))

        inserted, existing = await self.charge_service.insert_candidates(
            period.billing_period_id, outcome.candidates
        )

        report = GenerationReport(
            billing_period_id=period.billing_period_id,
            period_status=period.status,
            created_charge_ids=inserted,
            existing_count=len(existing),
            skipped=outcome.skipped,
            failures=outcome.failures,
        )
        report.stale = await self._find_stale(period, outcome)

        logger.info(
            "Generated charges for billing period %s: %d created, %d existing, "
            "%d skipped, %d failed, %d stale",
            period.billing_period_id,
            report.created_count,
            report.existing_count,
            len(report.skipped),
            len(report.failures),
            len(report.stale),
        )
        return report

    async def _find_stale(
        self,
        period: BillingPeriod,
        outcome: GeneratorResult,
    ) -> list[StaleCharge]:
        """Compare stored generated charges with what the sources yield now."""
        computed: dict[tuple[str, UUID, UUID | None], ChargeCandidate] = {
            _source_key(c.source_type.value, c.source_id, c.staff_id): c
            for c in outcome.candidates
            if c.source_id is not None
        }
        failed_sources = {f.source_id for f in outcome.failures}

        stale: list[StaleCharge] = []
        for charge in await self.charge_service.charges_for_period(period.billing_period_id):
            if charge.source_id is None or charge.source_type not in {
                s.value for s in GENERATED_SOURCES
            }:
                continue
            if charge.source_id in failed_sources:
                continue

            candidate = computed.get(
                _source_key(charge.source_type, charge.source_id, charge.staff_id)
            )
            if candidate is None:
                stale.append(self._stale(charge))
            elif not _matches(charge, candidate):
                stale.append(self._stale(charge, candidate))

        for item in stale:
            logger.warning(
                "Charge %s is stale: source %s %s changed after generation",
                item.charge_id,
                item.source_type.value,
                item.source_id,
            )
        return stale

    @staticmethod
    def _stale(charge: Charge, candidate: ChargeCandidate | None = None) -> StaleCharge:
        return StaleCharge(
            charge_id=charge.charge_id,
            source_type=SourceType(charge.source_type),
            source_id=charge.source_id,
            staff_id=charge.staff_id,
            stored_amount=Decimal(charge.amount),
            stored_factor=Decimal(charge.proration_factor),
            computed_amount=candidate.amount if candidate else None,
            computed_factor=candidate.proration_factor if candidate else None,
        )


def _source_key(
    source_type: str, source_id: UUID, staff_id: UUID
) -> tuple[str, UUID, UUID | None]:
    # An assignment is identified by itself; trip shares by passenger
    if source_type == SourceType.TRIP.value:
        return source_type, source_id, staff_id
    return source_type, source_id, None


def _matches(charge: Charge, candidate: ChargeCandidate) -> bool:
    return (
        charge.staff_id == candidate.staff_id
        and Decimal(charge.amount) == candidate.amount
        and Decimal(charge.proration_factor) == candidate.proration_factor
    )
