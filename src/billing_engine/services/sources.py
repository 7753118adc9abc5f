"""Read-only access to staff, housing and transport records."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from billing_engine.models import Room, RoomAssignment, Trip

if TYPE_CHECKING:
    from billing_engine.models import BillingPeriod


class SourceRepository:
    """Queries the collaborator tables the charge generators consume.

    Nothing here writes; the billing core never mutates assignments, trips
    or the staff directory.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def active_assignments(self, period: BillingPeriod) -> list[RoomAssignment]:
        """Active room assignments whose interval intersects the period.

        An assignment without end_date is open-ended.
        """
        result = await self.session.execute(
            select(RoomAssignment)
            .where(
                RoomAssignment.status == "active",
                RoomAssignment.start_date <= period.end_date,
                or_(
                    RoomAssignment.end_date.is_(None),
                    RoomAssignment.end_date >= period.start_date,
                ),
            )
            .options(
                selectinload(RoomAssignment.room).selectinload(Room.parent_property)
            )
            .order_by(RoomAssignment.start_date, RoomAssignment.assignment_id)
        )
        return list(result.scalars().all())

    async def completed_trips(self, period: BillingPeriod) -> list[Trip]:
        """Completed trips dated within the period (bounds inclusive)."""
        result = await self.session.execute(
            select(Trip)
            .where(
                Trip.status == "completed",
                Trip.trip_date >= period.start_date,
                Trip.trip_date <= period.end_date,
            )
            .options(selectinload(Trip.passengers))
            .order_by(Trip.trip_date, Trip.trip_id)
        )
        return list(result.scalars().all())
