"""Payroll export builder: per-employee aggregation and the export lock."""

from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.calculators.types import ChargeType, PayrollExportRow
from billing_engine.config import Settings, get_settings
from billing_engine.errors import AlreadyExportedError, NotFoundError
from billing_engine.models import BillingPeriod, PayrollExportRecord
from billing_engine.services.charge_service import ChargeService
from billing_engine.services.locking_service import LockingService
from billing_engine.services.period_service import BillingPeriodService
from billing_engine.services.state_machine import (
    BillingPeriodStateMachine,
    BillingPeriodStatus,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)

CSV_HEADER = [
    "Employee ID",
    "First Name",
    "Last Name",
    "Total Deductions",
    "Rent Charges",
    "Utility Charges",
    "Transport Charges",
    "Other Charges",
    "Billing Period",
]


class PayrollExportService:
    """Builds payroll exports and locks periods once exported.

    Key invariants:
    1. Rows are recomputed from charges on every build; nothing derived is
       stored except the export record
    2. commit_export writes the record and moves the period to exported in
       one transaction; the caller commits or rolls back both
    3. A period has at most one completed export record (unique index), so
       a concurrent second commit fails instead of duplicating
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()
        self.charge_service = ChargeService(session)
        self.period_service = BillingPeriodService(session)
        self.locking_service = LockingService(session)

    async def build_export(self, billing_period_id: UUID) -> list[PayrollExportRow]:
        """Aggregate a period's charges into one row per staff member.

        Sums effective amounts (amount * proration factor, in cents) overall
        and per charge type. Rows are sorted by employee ID.
        """
        period = await self.charge_service.get_period(billing_period_id)
        return await self._build_rows(period)

    async def commit_export(
        self,
        billing_period_id: UUID,
        export_date: datetime | None = None,
    ) -> PayrollExportRecord:
        """Persist the export record and lock the period.

        Raises:
            NotFoundError: If the period does not exist
            AlreadyExportedError: If the period is already exported
            InvalidTransitionError: If the period is not completed
        """
        export_date = export_date or datetime.now(timezone.utc)

        await self.locking_service.lock_period(billing_period_id)
        period = await self.charge_service.get_period(billing_period_id, for_update=True)

        if period.status == BillingPeriodStatus.EXPORTED:
            raise AlreadyExportedError(billing_period_id)
        if not BillingPeriodStateMachine.can_export(period.status):
            raise InvalidTransitionError(
                period.status,
                BillingPeriodStatus.EXPORTED.value,
                "only completed billing periods can be exported",
            )

        rows = await self._build_rows(period)
        record = PayrollExportRecord(
            billing_period_id=billing_period_id,
            export_date=export_date,
            file_name=self.file_name(export_date),
            record_count=len(rows),
            total_amount=sum((row.total_deductions for row in rows), Decimal("0")),
            status="completed",
        )

        # The session is unusable after a unique violation; callers roll back.
        self.session.add(record)
        try:
            await self.session.flush()
        except IntegrityError:
            raise AlreadyExportedError(billing_period_id) from None

        await self.period_service.transition_status(
            period, BillingPeriodStatus.EXPORTED, export_date=export_date
        )

        logger.info(
            "Exported billing period %s: %d employee(s), total %s (%s)",
            billing_period_id,
            record.record_count,
            record.total_amount,
            record.file_name,
        )
        return record

    async def export_csv(self, billing_period_id: UUID) -> str:
        """Render the current export rows of a period as CSV."""
        return self.render_csv(await self.build_export(billing_period_id))

    async def list_exports(self, billing_period_id: UUID | None = None) -> list[PayrollExportRecord]:
        """Export history, newest first."""
        query = select(PayrollExportRecord)
        if billing_period_id is not None:
            query = query.where(PayrollExportRecord.billing_period_id == billing_period_id)
        result = await self.session.execute(
            query.order_by(PayrollExportRecord.export_date.desc())
        )
        return list(result.scalars().all())

    async def get_export(self, export_id: UUID) -> PayrollExportRecord:
        """Get one export record."""
        record = await self.session.get(PayrollExportRecord, export_id)
        if record is None:
            raise NotFoundError("PayrollExportRecord", export_id)
        return record

    def file_name(self, export_date: datetime) -> str:
        return f"{self.settings.export_file_prefix}_{export_date.date().isoformat()}.csv"

    @staticmethod
    def render_csv(rows: list[PayrollExportRow]) -> str:
        """CSV with a header row and money formatted to two decimals."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for row in rows:
            writer.writerow(
                [
                    row.employee_id,
                    row.first_name,
                    row.last_name,
                    _money(row.total_deductions),
                    _money(row.rent_charges),
                    _money(row.utility_charges),
                    _money(row.transport_charges),
                    _money(row.other_charges),
                    row.billing_period_label,
                ]
            )
        return buffer.getvalue()

    async def _build_rows(self, period: BillingPeriod) -> list[PayrollExportRow]:
        rows: dict[UUID, PayrollExportRow] = {}

        for charge in await self.charge_service.charges_for_period(period.billing_period_id):
            row = rows.get(charge.staff_id)
            if row is None:
                staff = charge.staff
                row = rows[charge.staff_id] = PayrollExportRow(
                    employee_id=staff.employee_id,
                    first_name=staff.first_name,
                    last_name=staff.last_name,
                    billing_period_label=period.label,
                )
            row.add(ChargeType(charge.charge_type), charge.effective_amount)

        return sorted(rows.values(), key=lambda r: r.employee_id)


def _money(value: Decimal) -> str:
    return f"{value:.2f}"
