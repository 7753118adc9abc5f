"""Billing period service - creation, maintenance and lifecycle transitions."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.errors import (
    LockedPeriodError,
    NotFoundError,
    OverlapError,
    ValidationError,
)
from billing_engine.models import BillingPeriod, Charge, PayrollExportRecord
from billing_engine.services.locking_service import LockingService
from billing_engine.services.state_machine import (
    BillingPeriodStateMachine,
    BillingPeriodStatus,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)


class BillingPeriodService:
    """Service for managing billing periods.

    Operations:
    - create_period: Validate dates and the no-overlap rule, insert as draft
    - update_period_dates: Reschedule a draft period without charges
    - delete_period: Remove a period that never had charges
    - cancel_period: draft/processing → cancelled
    - transition_status: Guarded status change used by generation and export
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.locking_service = LockingService(session)

    async def get_period(self, billing_period_id: UUID) -> BillingPeriod:
        """Load a billing period or raise NotFoundError."""
        period = await self.session.get(BillingPeriod, billing_period_id)
        if period is None:
            raise NotFoundError("BillingPeriod", billing_period_id)
        return period

    async def list_periods(
        self,
        status: BillingPeriodStatus | str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[BillingPeriod]:
        """List periods, most recent first.

        With a date range, only periods lying entirely inside it are returned.
        """
        query = select(BillingPeriod)
        if status:
            query = query.where(BillingPeriod.status == BillingPeriodStatus(status).value)
        if start_date:
            query = query.where(BillingPeriod.start_date >= start_date)
        if end_date:
            query = query.where(BillingPeriod.end_date <= end_date)

        result = await self.session.execute(query.order_by(BillingPeriod.start_date.desc()))
        return list(result.scalars().all())

    async def create_period(self, start_date: date, end_date: date) -> BillingPeriod:
        """Create a draft billing period.

        Raises:
            ValidationError: If start_date is not before end_date
            OverlapError: If the range overlaps a non-cancelled period
        """
        self._validate_dates(start_date, end_date)

        await self.locking_service.lock_period_creation()
        await self._check_overlap(start_date, end_date)

        period = BillingPeriod(
            start_date=start_date,
            end_date=end_date,
            status=BillingPeriodStatus.DRAFT.value,
        )
        self.session.add(period)
        await self.session.flush()

        logger.info(
            "Created billing period %s (%s..%s)",
            period.billing_period_id,
            start_date,
            end_date,
        )
        return period

    async def update_period_dates(
        self,
        billing_period_id: UUID,
        start_date: date,
        end_date: date,
    ) -> BillingPeriod:
        """Reschedule a draft period that has no charges yet."""
        self._validate_dates(start_date, end_date)

        await self.locking_service.lock_period_creation()
        period = await self.get_period(billing_period_id)
        if period.status != BillingPeriodStatus.DRAFT:
            raise ValidationError(
                f"Only draft periods can be rescheduled (status: {period.status})",
                field="status",
            )
        if await self.charge_count(billing_period_id):
            raise ValidationError(
                "Cannot reschedule a billing period that already has charges",
                field="start_date",
            )

        await self._check_overlap(start_date, end_date, exclude_id=billing_period_id)

        period.start_date = start_date
        period.end_date = end_date
        await self.session.flush()

        logger.info(
            "Rescheduled billing period %s to %s..%s", billing_period_id, start_date, end_date
        )
        return period

    async def delete_period(self, billing_period_id: UUID) -> None:
        """Physically delete a period that has never held charges or exports."""
        period = await self.get_period(billing_period_id)

        if period.status == BillingPeriodStatus.EXPORTED:
            raise LockedPeriodError(billing_period_id, period.status, "delete the period")
        if await self.charge_count(billing_period_id):
            raise ValidationError(
                "Billing periods with charges cannot be deleted; cancel it instead",
                field="billing_period_id",
            )
        exports = await self.session.scalar(
            select(func.count())
            .select_from(PayrollExportRecord)
            .where(PayrollExportRecord.billing_period_id == billing_period_id)
        )
        if exports:
            raise ValidationError(
                "Billing periods with export records cannot be deleted",
                field="billing_period_id",
            )

        await self.session.delete(period)
        await self.session.flush()
        logger.info("Deleted billing period %s", billing_period_id)

    async def cancel_period(self, billing_period_id: UUID) -> BillingPeriod:
        """Cancel a draft or processing period; its charges stay for audit."""
        await self.locking_service.lock_period(billing_period_id)
        period = await self.get_period(billing_period_id)
        return await self.transition_status(period, BillingPeriodStatus.CANCELLED)

    async def transition_status(
        self,
        period: BillingPeriod,
        to_status: BillingPeriodStatus,
        export_date: datetime | None = None,
    ) -> BillingPeriod:
        """Move a period to a new status.

        The update is conditional on the status the caller observed, so a
        concurrent transition makes this one fail instead of overwriting it.

        Raises:
            InvalidTransitionError: If the transition is not allowed or the
                status changed underneath
        """
        from_status = period.status
        to_status = BillingPeriodStatus(to_status)
        BillingPeriodStateMachine.validate_transition(from_status, to_status)

        values: dict[str, object] = {"status": to_status.value}
        if to_status == BillingPeriodStatus.EXPORTED:
            values["payroll_export_date"] = export_date or datetime.now(timezone.utc)

        result = await self.session.execute(
            update(BillingPeriod)
            .where(
                BillingPeriod.billing_period_id == period.billing_period_id,
                BillingPeriod.status == from_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            await self.session.refresh(period)
            raise InvalidTransitionError(
                from_status,
                to_status.value,
                f"status changed during transition (now '{period.status}')",
            )

        period.status = to_status.value
        if "payroll_export_date" in values:
            period.payroll_export_date = values["payroll_export_date"]

        logger.info(
            "Billing period %s: %s -> %s",
            period.billing_period_id,
            from_status,
            to_status.value,
        )
        return period

    async def charge_count(self, billing_period_id: UUID) -> int:
        """Number of charges attached to a period."""
        count = await self.session.scalar(
            select(func.count())
            .select_from(Charge)
            .where(Charge.billing_period_id == billing_period_id)
        )
        return count or 0

    async def _check_overlap(
        self,
        start_date: date,
        end_date: date,
        exclude_id: UUID | None = None,
    ) -> None:
        """Raise OverlapError if [start_date, end_date] meets a blocking period."""
        query = select(BillingPeriod.billing_period_id).where(
            BillingPeriod.status.notin_(
                [s.value for s in BillingPeriodStateMachine.NON_BLOCKING]
            ),
            BillingPeriod.start_date <= end_date,
            BillingPeriod.end_date >= start_date,
        )
        if exclude_id is not None:
            query = query.where(BillingPeriod.billing_period_id != exclude_id)

        conflicting = list((await self.session.execute(query)).scalars().all())
        if conflicting:
            raise OverlapError(start_date, end_date, conflicting)

    @staticmethod
    def _validate_dates(start_date: date, end_date: date) -> None:
        if start_date >= end_date:
            raise ValidationError(
                f"Billing period start ({start_date}) must be before end ({end_date})",
                field="end_date",
            )
