"""Interval proration.

Billing periods and activity intervals are calendar dates with both bounds
inclusive, so January 2024 (``2024-01-01``..``2024-01-31``) has 31 days.
A datetime is billed for the calendar day it falls on.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

FACTOR_PRECISION = Decimal("0.000001")

ZERO = Decimal("0")
ONE = Decimal("1")


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def day_count(start: date | datetime, end: date | datetime) -> int:
    """Calendar days covered by ``[start, end]``; 0 when end precedes start."""
    days = (_as_date(end) - _as_date(start)).days + 1
    return max(days, 0)


def overlap(
    activity_start: date | datetime,
    activity_end: date | datetime,
    period_start: date | datetime,
    period_end: date | datetime,
) -> tuple[date, date] | None:
    """Clamp an activity interval to a period; None when they don't intersect."""
    start = max(_as_date(activity_start), _as_date(period_start))
    end = min(_as_date(activity_end), _as_date(period_end))
    if end < start:
        return None
    return start, end


def prorate(
    activity_start: date | datetime,
    activity_end: date | datetime,
    period_start: date | datetime,
    period_end: date | datetime,
) -> Decimal:
    """Fraction of the period covered by the activity, in ``[0, 1]``.

    Returns 0 when the intervals don't intersect; callers skip charge
    creation in that case. The result is rounded half-up to six places.

    Raises:
        ValueError: If the period is empty
    """
    period_days = day_count(period_start, period_end)
    if period_days <= 0:
        raise ValueError(f"Empty billing period {period_start}..{period_end}")

    clamped = overlap(activity_start, activity_end, period_start, period_end)
    if clamped is None:
        return ZERO

    overlap_days = day_count(*clamped)
    factor = min(Decimal(overlap_days) / Decimal(period_days), ONE)
    return factor.quantize(FACTOR_PRECISION, rounding=ROUND_HALF_UP)
