"""
Module: incentive_engines.proration
Responsibility:
    Time-based scaling of targets: the blended target bonus of an employee
    whose plan assignment changed mid-year, and the pro-ration factor of a
    departure date for F&F settlement.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - An employee with a single assignment segment in the year keeps that
      segment's target.
    - The month covered by the year's first segment keeps that segment's
      target; later months blend every segment by days covered / 365.
    - The F&F factor is clamped to [0, 1].
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from incentive_kernel.domain.plans import PlanAssignment
from incentive_kernel.domain.values import (
    ONE,
    ZERO,
    fiscal_year_end,
    fiscal_year_start,
    month_end,
    month_start,
)


def _overlap_days(start: date, end: date, lo: date, hi: date) -> int:
    first = max(start, lo)
    last = min(end, hi)
    return max(0, (last - first).days + 1)


def assignment_for_month(
    assignments: Sequence[PlanAssignment], month_year: str,
) -> PlanAssignment | None:
    """The assignment whose date range overlaps ``month_year``; latest start wins."""
    lo, hi = month_start(month_year), month_end(month_year)
    covering = [
        a for a in assignments
        if _overlap_days(a.effective_start_date, a.effective_end_date, lo, hi) > 0
    ]
    if not covering:
        return None
    return max(covering, key=lambda a: a.effective_start_date)


def blended_target_bonus(
    assignments: Sequence[PlanAssignment],
    fiscal_year: int,
    month_year: str,
    fallback_target: Decimal = ZERO,
    days_in_year: int = 365,
) -> Decimal:
    """
    Target bonus in force for ``month_year``.

    Segments without their own target use ``fallback_target`` (the
    employee's target variable pay).

    Example:
        20,000 for Jan-May then 24,000 for Jun-Dec: March gives 20,000,
        July gives 20,000 x 151/365 + 24,000 x 214/365 ~= 22,345.21.
    """
    lo, hi = fiscal_year_start(fiscal_year), fiscal_year_end(fiscal_year)
    segments = sorted(
        (
            a for a in assignments
            if _overlap_days(a.effective_start_date, a.effective_end_date, lo, hi) > 0
        ),
        key=lambda a: a.effective_start_date,
    )
    current = assignment_for_month(segments, month_year)
    if current is None:
        return ZERO

    def target_of(a: PlanAssignment) -> Decimal:
        return a.target_bonus_usd if a.target_bonus_usd is not None else fallback_target

    if len(segments) <= 1 or current is segments[0]:
        return target_of(current)

    return sum(
        (
            target_of(a)
            * Decimal(_overlap_days(a.effective_start_date, a.effective_end_date, lo, hi))
            / Decimal(days_in_year)
            for a in segments
        ),
        ZERO,
    )


def fnf_proration_factor(departure_date: date, days_in_year: int = 365) -> Decimal:
    """(days from Jan 1 to departure, inclusive) / days_in_year, clamped to [0, 1]."""
    elapsed = (departure_date - fiscal_year_start(departure_date.year)).days + 1
    factor = Decimal(elapsed) / Decimal(days_in_year)
    return min(ONE, max(ZERO, factor))
