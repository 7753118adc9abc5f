"""Staff, housing and transport records owned by the surrounding dashboard.

The billing core only reads these tables (see ``SourceRepository``); their
CRUD lives outside this package.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_engine.models.base import Base, TimestampMixin


class Staff(Base, TimestampMixin):
    """Staff directory entry."""

    __tablename__ = "staff"

    staff_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")


class Property(Base, TimestampMixin):
    """Housing property with an optional default monthly rent."""

    __tablename__ = "property"

    property_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    default_monthly_rent: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True
    )

    rooms: Mapped[list[Room]] = relationship(back_populates="parent_property")


class Room(Base, TimestampMixin):
    """Room within a property."""

    __tablename__ = "room"

    room_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    property_id: Mapped[UUID] = mapped_column(
        ForeignKey("property.property_id", ondelete="CASCADE"),
        nullable=False,
    )
    room_number: Mapped[str] = mapped_column(String, nullable=False)
    monthly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint("property_id", "room_number", name="room_property_number_unique"),
    )

    parent_property: Mapped[Property] = relationship(back_populates="rooms")


class RoomAssignment(Base, TimestampMixin):
    """Occupancy of a room by a staff member; open-ended when end_date is NULL."""

    __tablename__ = "room_assignment"

    assignment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    staff_id: Mapped[UUID] = mapped_column(
        ForeignKey("staff.staff_id", ondelete="CASCADE"),
        nullable=False,
    )
    room_id: Mapped[UUID] = mapped_column(
        ForeignKey("room.room_id", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'active', 'completed', 'cancelled')",
            name="room_assignment_status_check",
        ),
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="room_assignment_dates_check",
        ),
    )

    staff: Mapped[Staff] = relationship()
    room: Mapped[Room] = relationship()


class Trip(Base, TimestampMixin):
    """Transport trip; cost is split evenly between passengers."""

    __tablename__ = "trip"

    trip_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    trip_date: Mapped[date] = mapped_column(Date, nullable=False)
    route: Mapped[str] = mapped_column(String, nullable=False, default="")
    cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="scheduled")

    __table_args__ = (
        CheckConstraint(
            "status IN ('scheduled', 'in_progress', 'completed', 'cancelled')",
            name="trip_status_check",
        ),
        CheckConstraint("cost IS NULL OR cost >= 0", name="trip_cost_check"),
    )

    passengers: Mapped[list[TripPassenger]] = relationship(
        back_populates="trip",
        cascade="all, delete-orphan",
    )


class TripPassenger(Base):
    """Staff member riding on a trip."""

    __tablename__ = "trip_passenger"

    trip_id: Mapped[UUID] = mapped_column(
        ForeignKey("trip.trip_id", ondelete="CASCADE"),
        primary_key=True,
    )
    staff_id: Mapped[UUID] = mapped_column(
        ForeignKey("staff.staff_id", ondelete="CASCADE"),
        primary_key=True,
    )

    trip: Mapped[Trip] = relationship(back_populates="passengers")
