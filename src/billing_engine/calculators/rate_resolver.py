"""Monthly rent resolution for room assignments."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from billing_engine.errors import CapacityOrSourceMissingError

if TYPE_CHECKING:
    from billing_engine.models import RoomAssignment


class RateNotFoundError(CapacityOrSourceMissingError):
    """Raised when no monthly rate is configured for an assignment's room."""

    def __init__(self, assignment_id: UUID, room_id: UUID):
        self.room_id = room_id
        super().__init__(
            "room_assignment",
            assignment_id,
            f"no monthly rate configured for room {room_id} or its property",
        )


class RateResolver:
    """Resolves the base monthly rent for a room assignment.

    Rate selection priority:
    1. Room monthly_rate
    2. Property default_monthly_rent
    3. Configured fallback (DEFAULT_MONTHLY_RENT), if any
    """

    def __init__(self, default_monthly_rent: Decimal | None = None):
        self.default_monthly_rent = default_monthly_rent

    def resolve(self, assignment: RoomAssignment) -> Decimal:
        """Resolve the monthly rent for an assignment.

        The assignment must have ``room`` and ``room.parent_property`` loaded.

        Raises:
            RateNotFoundError: If no level configures a positive rate
        """
        room = assignment.room
        candidates = [
            room.monthly_rate if room is not None else None,
            room.parent_property.default_monthly_rent if room is not None else None,
            self.default_monthly_rent,
        ]

        for rate in candidates:
            if rate is not None and Decimal(rate) > 0:
                return Decimal(rate)

        raise RateNotFoundError(assignment.assignment_id, assignment.room_id)
