"""Billing period, charge and payroll export models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_engine.models.base import Base, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from billing_engine.models.directory import Staff


class BillingPeriod(Base, TimestampMixin, UpdatedAtMixin):
    """Date range against which charges are generated and exported.

    Status only moves through ``BillingPeriodStateMachine``.
    """

    __tablename__ = "billing_period"

    billing_period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    payroll_export_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'processing', 'completed', 'exported', 'cancelled')",
            name="billing_period_status_check",
        ),
        CheckConstraint("end_date > start_date", name="billing_period_dates_check"),
        Index("ix_billing_period_dates", "start_date", "end_date"),
        Index("ix_billing_period_status", "status"),
    )

    charges: Mapped[list[Charge]] = relationship(back_populates="billing_period")
    exports: Mapped[list[PayrollExportRecord]] = relationship(
        back_populates="billing_period"
    )

    @property
    def label(self) -> str:
        """Human readable period label used in exports."""
        return f"{self.start_date.isoformat()} - {self.end_date.isoformat()}"

    @property
    def day_count(self) -> int:
        """Calendar days in the period, both bounds inclusive."""
        return (self.end_date - self.start_date).days + 1


class Charge(Base, TimestampMixin, UpdatedAtMixin):
    """A single monetary obligation of one staff member within one period.

    ``amount * proration_factor`` is the effective value. Generated charges
    keep a reference to their source record (room assignment or trip); the
    unique constraint on that reference makes regeneration idempotent.
    """

    __tablename__ = "charge"

    charge_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    staff_id: Mapped[UUID] = mapped_column(
        ForeignKey("staff.staff_id", ondelete="RESTRICT"),
        nullable=False,
    )
    billing_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("billing_period.billing_period_id", ondelete="RESTRICT"),
        nullable=False,
    )
    charge_type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    proration_factor: Mapped[Decimal] = mapped_column(
        Numeric(9, 6), nullable=False, default=Decimal("1")
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source_type: Mapped[str] = mapped_column(String, nullable=False, default="manual")
    source_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "charge_type IN ('rent', 'utilities', 'transport', 'other')",
            name="charge_type_check",
        ),
        CheckConstraint(
            "source_type IN ('room_assignment', 'trip', 'manual')",
            name="charge_source_type_check",
        ),
        CheckConstraint("amount > 0", name="charge_amount_positive"),
        CheckConstraint(
            "proration_factor >= 0 AND proration_factor <= 1",
            name="charge_proration_factor_range",
        ),
        # One rent charge per assignment, one share per passenger per trip
        Index(
            "ux_charge_assignment_source",
            "billing_period_id",
            "source_id",
            unique=True,
            postgresql_where=text("source_type = 'room_assignment'"),
            sqlite_where=text("source_type = 'room_assignment'"),
        ),
        Index(
            "ux_charge_trip_source",
            "billing_period_id",
            "source_id",
            "staff_id",
            unique=True,
            postgresql_where=text("source_type = 'trip'"),
            sqlite_where=text("source_type = 'trip'"),
        ),
        Index("ix_charge_billing_period", "billing_period_id"),
        Index("ix_charge_staff", "staff_id"),
    )

    billing_period: Mapped[BillingPeriod] = relationship(back_populates="charges")
    staff: Mapped[Staff] = relationship()

    @property
    def effective_amount(self) -> Decimal:
        """Prorated amount rounded to cents."""
        value = Decimal(self.amount) * Decimal(self.proration_factor)
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class PayrollExportRecord(Base, TimestampMixin):
    """Append-only audit record of a committed payroll export."""

    __tablename__ = "payroll_export"

    export_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    billing_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("billing_period.billing_period_id", ondelete="RESTRICT"),
        nullable=False,
    )
    export_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="completed")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'superseded')",
            name="payroll_export_status_check",
        ),
        CheckConstraint("record_count >= 0", name="payroll_export_count_check"),
        Index(
            "ux_payroll_export_one_completed",
            "billing_period_id",
            unique=True,
            postgresql_where=text("status = 'completed'"),
            sqlite_where=text("status = 'completed'"),
        ),
    )

    billing_period: Mapped[BillingPeriod] = relationship(back_populates="exports")
