"""
Module: incentive_engines.incremental
Responsibility:
    Convert a year-to-date eligible amount into this month's payable delta,
    preserving the YTD booking / collection / year-end proportions.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``this_month = max(0, ytd_eligible - prior_paid)``.
    - ``this_month <= ytd_eligible`` whenever prior_paid >= 0.
    - Sub-splits are the YTD sub-amounts scaled by ``this_month / ytd``
      (0 when ytd is 0); year-end absorbs rounding so the three sum to
      ``this_month`` exactly.

Audit relevance:
    This is what stops a month from re-paying amounts disbursed by earlier
    runs of the same fiscal year.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from incentive_kernel.domain.values import ZERO, round_money


@dataclass(frozen=True)
class IncrementalAmount:
    this_month: Decimal
    booking: Decimal
    collection: Decimal
    year_end: Decimal

    @property
    def is_zero(self) -> bool:
        return self.this_month == ZERO


NOTHING_DUE = IncrementalAmount(ZERO, ZERO, ZERO, ZERO)


def calculate_incremental(
    ytd_eligible: Decimal,
    prior_paid: Decimal,
    ytd_split: tuple[Decimal, Decimal, Decimal],
) -> IncrementalAmount:
    """
    This month's share of a YTD entitlement.

    Args:
        ytd_eligible: Entitlement for Jan..this month.
        prior_paid: Amount already paid by earlier months' runs.
        ytd_split: (booking, collection, year_end) of ``ytd_eligible``.
    """
    if ytd_eligible <= ZERO:
        return NOTHING_DUE

    this_month = round_money(max(ZERO, ytd_eligible - prior_paid))
    if this_month == ZERO:
        return NOTHING_DUE

    ratio = this_month / ytd_eligible
    ytd_booking, ytd_collection, _ = ytd_split
    booking = round_money(ytd_booking * ratio)
    collection = round_money(ytd_collection * ratio)
    return IncrementalAmount(
        this_month=this_month,
        booking=booking,
        collection=collection,
        year_end=this_month - booking - collection,
    )
