"""ORM models."""

from billing_engine.models.base import Base, TimestampMixin, UpdatedAtMixin
from billing_engine.models.billing import BillingPeriod, Charge, PayrollExportRecord
from billing_engine.models.directory import (
    Property,
    Room,
    RoomAssignment,
    Staff,
    Trip,
    TripPassenger,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    "BillingPeriod",
    "Charge",
    "PayrollExportRecord",
    "Property",
    "Room",
    "RoomAssignment",
    "Staff",
    "Trip",
    "TripPassenger",
]
