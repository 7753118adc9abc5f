"""Charge candidate builder with cent rounding."""

from __future__ import annotations

from datetime import date
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from uuid import UUID

from billing_engine.calculators.types import ChargeCandidate, ChargeType, SourceType


class ChargeBuilder:
    """Builds charge candidates from source records.

    Rounding:
    - Amounts are stored in cents (2 decimals)
    - Proration factors keep 6 decimals
    - Effective amount = amount * factor, rounded half-up to cents
    - Trip splits hand leftover pennies to the first passengers so the
      split always sums to the trip cost
    """

    OUTPUT_PRECISION = Decimal("0.01")

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(ChargeBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def effective_amount(amount: Decimal, proration_factor: Decimal) -> Decimal:
        """Prorated value of a charge."""
        return ChargeBuilder.round_to_cents(Decimal(amount) * Decimal(proration_factor))

    @staticmethod
    def create_rent_charge(
        assignment_id: UUID,
        staff_id: UUID,
        room_number: str,
        monthly_rate: Decimal,
        proration_factor: Decimal,
    ) -> ChargeCandidate:
        """Create a rent charge for one room assignment."""
        return ChargeCandidate(
            staff_id=staff_id,
            charge_type=ChargeType.RENT,
            amount=ChargeBuilder.round_to_cents(monthly_rate),
            proration_factor=proration_factor,
            description=f"Room rent for {room_number}",
            source_type=SourceType.ROOM_ASSIGNMENT,
            source_id=assignment_id,
        )

    @staticmethod
    def split_cost(cost: Decimal, parts: int) -> list[Decimal]:
        """Split a cost into ``parts`` cent amounts that sum to the cost.

        >>> ChargeBuilder.split_cost(Decimal("100"), 3)
        [Decimal('33.34'), Decimal('33.33'), Decimal('33.33')]
        """
        if parts <= 0:
            raise ValueError("Cannot split a cost between zero passengers")

        total = ChargeBuilder.round_to_cents(Decimal(cost))
        share = (total / parts).quantize(ChargeBuilder.OUTPUT_PRECISION, rounding=ROUND_DOWN)
        remainder_cents = int((total - share * parts) / ChargeBuilder.OUTPUT_PRECISION)

        return [
            share + ChargeBuilder.OUTPUT_PRECISION if i < remainder_cents else share
            for i in range(parts)
        ]

    @staticmethod
    def create_transport_charges(
        trip_id: UUID,
        trip_date: date,
        route: str,
        cost: Decimal,
        passenger_staff_ids: list[UUID],
    ) -> list[ChargeCandidate]:
        """Create one transport charge per passenger, splitting the cost evenly."""
        staff_ids = sorted(passenger_staff_ids, key=str)
        amounts = ChargeBuilder.split_cost(cost, len(staff_ids))
        description = f"Transport for {route} on {trip_date.isoformat()}"

        return [
            ChargeCandidate(
                staff_id=staff_id,
                charge_type=ChargeType.TRANSPORT,
                amount=amount,
                proration_factor=Decimal("1"),
                description=description,
                source_type=SourceType.TRIP,
                source_id=trip_id,
            )
            for staff_id, amount in zip(staff_ids, amounts)
        ]
