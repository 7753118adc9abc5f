"""Charge store with the period mutation guard."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from billing_engine.calculators.types import ChargeCandidate, ChargeType, SourceType
from billing_engine.errors import (
    CapacityOrSourceMissingError,
    LockedPeriodError,
    NotFoundError,
    ValidationError,
)
from billing_engine.models import BillingPeriod, Charge, Staff
from billing_engine.services.state_machine import BillingPeriodStateMachine

logger = logging.getLogger(__name__)

# Conflict targets of the partial unique indexes on charge
SOURCE_KEYS: dict[SourceType, tuple[list[str], str]] = {
    SourceType.ROOM_ASSIGNMENT: (
        ["billing_period_id", "source_id"],
        "source_type = 'room_assignment'",
    ),
    SourceType.TRIP: (
        ["billing_period_id", "source_id", "staff_id"],
        "source_type = 'trip'",
    ),
}

UPDATABLE_FIELDS = {"charge_type", "amount", "proration_factor", "description"}


@dataclass
class ChargeFilters:
    """Filters for charge listings."""

    billing_period_id: UUID | None = None
    staff_id: UUID | None = None
    charge_type: ChargeType | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    search: str | None = None
    offset: int = 0
    limit: int | None = None


class ChargeService:
    """Persists charges and refuses mutations on locked periods.

    Key invariants:
    1. Every mutation reads the owning period's status first (row-locked on
       PostgreSQL) and fails with LockedPeriodError unless the status
       accepts charge changes
    2. The export lock is period wide: no charge of an exported period can
       be added, edited or removed
    3. A room assignment yields at most one charge per period, whoever it
       is assigned to now; a trip yields one share per passenger. Inserts
       use ON CONFLICT DO NOTHING so retries never duplicate rows
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Guard
    # ------------------------------------------------------------------

    async def get_period(self, billing_period_id: UUID, for_update: bool = False) -> BillingPeriod:
        """Load a billing period or raise NotFoundError."""
        query = select(BillingPeriod).where(
            BillingPeriod.billing_period_id == billing_period_id
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        period = result.scalar_one_or_none()
        if period is None:
            raise NotFoundError("BillingPeriod", billing_period_id)
        return period

    async def guard_period(self, billing_period_id: UUID, action: str) -> BillingPeriod:
        """Load the period for a charge mutation, enforcing the lock."""
        period = await self.get_period(billing_period_id, for_update=True)
        if not BillingPeriodStateMachine.can_modify_charges(period.status):
            raise LockedPeriodError(billing_period_id, period.status, action)
        return period

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_charge(
        self,
        billing_period_id: UUID,
        staff_id: UUID,
        charge_type: ChargeType | str,
        amount: Decimal,
        proration_factor: Decimal = Decimal("1"),
        description: str = "",
    ) -> Charge:
        """Add a manual charge to a period.

        Raises:
            NotFoundError: If the billing period does not exist
            LockedPeriodError: If the period is exported or cancelled
            ValidationError: If amount, factor or type is invalid
            CapacityOrSourceMissingError: If the staff member does not exist
        """
        await self.guard_period(billing_period_id, "add charges")

        values = self._validate(
            {
                "charge_type": charge_type,
                "amount": amount,
                "proration_factor": proration_factor,
                "description": description,
            }
        )

        if await self.session.get(Staff, staff_id) is None:
            raise CapacityOrSourceMissingError("staff", staff_id)

        charge = Charge(
            billing_period_id=billing_period_id,
            staff_id=staff_id,
            source_type=SourceType.MANUAL.value,
            source_id=None,
            **values,
        )
        self.session.add(charge)
        await self.session.flush()

        logger.info(
            "Added %s charge %s (%s) to billing period %s",
            charge.charge_type,
            charge.charge_id,
            charge.amount,
            billing_period_id,
        )
        return charge

    async def update_charge(
        self,
        billing_period_id: UUID,
        charge_id: UUID,
        changes: dict[str, Any],
    ) -> Charge:
        """Correct a charge's type, amount, factor or description."""
        await self.guard_period(billing_period_id, "update charges")
        charge = await self._get_charge_in_period(billing_period_id, charge_id)

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )

        for key, value in self._validate(changes).items():
            setattr(charge, key, value)
        await self.session.flush()

        logger.info("Updated charge %s in billing period %s", charge_id, billing_period_id)
        return charge

    async def delete_charge(self, billing_period_id: UUID, charge_id: UUID) -> None:
        """Remove a charge from a period."""
        await self.guard_period(billing_period_id, "delete charges")
        charge = await self._get_charge_in_period(billing_period_id, charge_id)

        await self.session.delete(charge)
        await self.session.flush()

        logger.info("Deleted charge %s from billing period %s", charge_id, billing_period_id)

    async def insert_candidates(
        self,
        billing_period_id: UUID,
        candidates: list[ChargeCandidate],
    ) -> tuple[list[UUID], list[ChargeCandidate]]:
        """Insert generated charges, skipping sources already charged.

        The caller must have passed ``guard_period`` for this period.

        Returns (inserted charge ids, candidates that already existed).
        """
        insert = self._dialect_insert()
        inserted: list[UUID] = []
        existing: list[ChargeCandidate] = []

        for candidate in candidates:
            if candidate.source_id is None or candidate.source_type not in SOURCE_KEYS:
                raise ValueError("Generated charges must reference a source record")

            columns, where = SOURCE_KEYS[candidate.source_type]
            stmt = (
                insert(Charge)
                .values(**candidate.to_row(billing_period_id))
                .on_conflict_do_nothing(index_elements=columns, index_where=text(where))
                .returning(Charge.charge_id)
            )
            result = await self.session.execute(stmt)
            charge_id = result.scalar_one_or_none()

            if charge_id is None:
                existing.append(candidate)
            else:
                inserted.append(charge_id)

        return inserted, existing

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_charge(self, charge_id: UUID) -> Charge:
        """Get a charge by ID."""
        charge = await self.session.get(Charge, charge_id)
        if charge is None:
            raise NotFoundError("Charge", charge_id)
        return charge

    async def charges_for_period(self, billing_period_id: UUID) -> list[Charge]:
        """All charges of a period with their staff member loaded."""
        result = await self.session.execute(
            select(Charge)
            .where(Charge.billing_period_id == billing_period_id)
            .options(selectinload(Charge.staff))
            .order_by(Charge.created_at, Charge.charge_id)
        )
        return list(result.scalars().all())

    async def list_charges(self, filters: ChargeFilters) -> tuple[list[Charge], int]:
        """List charges newest first with the total matching count."""
        query = select(Charge)

        if filters.billing_period_id:
            query = query.where(Charge.billing_period_id == filters.billing_period_id)
        if filters.staff_id:
            query = query.where(Charge.staff_id == filters.staff_id)
        if filters.charge_type:
            query = query.where(Charge.charge_type == ChargeType(filters.charge_type).value)
        if filters.min_amount is not None:
            query = query.where(Charge.amount >= filters.min_amount)
        if filters.max_amount is not None:
            query = query.where(Charge.amount <= filters.max_amount)
        if filters.search:
            query = query.where(Charge.description.ilike(f"%{filters.search}%"))

        count_query = select(func.count()).select_from(query.subquery())
        total = await self.session.scalar(count_query) or 0

        query = (
            query.options(selectinload(Charge.billing_period), selectinload(Charge.staff))
            .order_by(Charge.created_at.desc(), Charge.charge_id)
            .offset(filters.offset)
        )
        if filters.limit is not None:
            query = query.limit(filters.limit)

        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_charge_in_period(self, billing_period_id: UUID, charge_id: UUID) -> Charge:
        charge = await self.get_charge(charge_id)
        if charge.billing_period_id != billing_period_id:
            raise ValidationError(
                f"Charge {charge_id} does not belong to billing period {billing_period_id}",
                field="billing_period_id",
            )
        return charge

    def _dialect_insert(self) -> Any:
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise RuntimeError(f"Unsupported database dialect: {dialect}")
        return insert

    @staticmethod
    def _validate(values: dict[str, Any]) -> dict[str, Any]:
        """Validate and normalize charge fields."""
        cleaned: dict[str, Any] = {}

        if "charge_type" in values:
            try:
                cleaned["charge_type"] = ChargeType(values["charge_type"]).value
            except ValueError:
                raise ValidationError(
                    f"Unknown charge type: {values['charge_type']}", field="charge_type"
                ) from None

        if "amount" in values:
            amount = _to_decimal(values["amount"], "amount").quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
            if amount <= 0:
                raise ValidationError("Charge amount must be greater than 0", field="amount")
            cleaned["amount"] = amount

        if "proration_factor" in values:
            factor = _to_decimal(values["proration_factor"], "proration_factor")
            if not Decimal("0") <= factor <= Decimal("1"):
                raise ValidationError(
                    "Proration factor must be between 0 and 1", field="proration_factor"
                )
            cleaned["proration_factor"] = factor

        if "description" in values:
            cleaned["description"] = values["description"] or ""

        return cleaned


def _to_decimal(value: Any, field: str) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        number = None
    if number is None or not number.is_finite():
        raise ValidationError(f"Invalid decimal value for {field}: {value!r}", field=field)
    return number
