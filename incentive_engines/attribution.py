"""
Module: incentive_engines.attribution
Responsibility:
    Distribute a metric's variable pay across the deals that produced it,
    and measure closing ARR from renewal snapshots.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - The metric payout is computed once, on the aggregate actual of all
      qualifying deals, then shared pro-rata by ``deal value / total``.
    - Deals with a non-positive value never receive an attribution.
    - Each deal's share splits into booking / collection / year-end; the
      year-end slice absorbs rounding so the three always sum to the share.
    - The booking slice is the clawback-eligible amount.
    - Closing ARR uses only the latest snapshot month; a snapshot counts
      only when its contract ends after the fiscal year.

Failure modes:
    - None raised: empty inputs yield an outcome with zero totals.

Audit relevance:
    Attributions are persisted per (run, deal, employee, metric) and are
    the source of clawback amounts and collection holdbacks.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from incentive_engines.multiplier import (
    calculate_achievement_pct,
    calculate_metric_payout,
    resolve_multiplier,
)
from incentive_engines.tracer import traced_engine
from incentive_kernel.domain.plans import PayoutSplit, PlanMetric, RenewalMultiplierTier
from incentive_kernel.domain.records import ClosingArrSnapshot, Deal
from incentive_kernel.domain.values import (
    HUNDRED,
    ONE,
    ZERO,
    fiscal_year_end,
    fiscal_year_of,
    is_month_in_ytd,
    round_money,
)
from incentive_kernel.logging_config import get_logger

logger = get_logger("engines.attribution")

DEFAULT_VP_SPLIT = PayoutSplit(Decimal("70"), Decimal("25"), Decimal("5"))


# ---------------------------------------------------------------------------
# Deal attribution
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DealShare:
    """One deal's share of a metric's variable pay."""

    deal_id: UUID
    project_id: str
    deal_value_usd: Decimal
    proportion_pct: Decimal
    variable_pay_split_usd: Decimal
    payout_on_booking_usd: Decimal
    payout_on_collection_usd: Decimal
    payout_on_year_end_usd: Decimal

    @property
    def clawback_eligible_usd(self) -> Decimal:
        return self.payout_on_booking_usd


@dataclass(frozen=True)
class AttributionOutcome:
    """
    Result of attributing one metric for one employee.

    Guarantees:
        - ``sum(s.variable_pay_split_usd for s in shares)`` differs from
          ``total_variable_pay_usd`` by at most half a cent per share.
    """

    metric_name: str
    fiscal_year: int
    calculation_month: str
    total_actual_usd: Decimal
    target_usd: Decimal
    achievement_pct: Decimal
    multiplier: Decimal
    total_variable_pay_usd: Decimal
    split: PayoutSplit
    shares: tuple[DealShare, ...] = field(default_factory=tuple)


def deal_metric_value(deal: Deal) -> Decimal:
    """Value a deal contributes to a new-booking metric."""
    return deal.new_software_booking_arr_usd


def qualifying_deals(
    deals: Iterable[Deal], employee_code: str, calculation_month: str,
) -> list[Deal]:
    """YTD deals the employee participates in, with a positive value."""
    return [
        d for d in deals
        if is_month_in_ytd(d.month_year, calculation_month)
        and d.has_participant(employee_code)
        and deal_metric_value(d) > ZERO
    ]


def split_amount(amount: Decimal, split: PayoutSplit) -> tuple[Decimal, Decimal, Decimal]:
    """(booking, collection, year_end) of ``amount``; year-end absorbs rounding."""
    booking = round_money(amount * split.booking_pct / HUNDRED)
    collection = round_money(amount * split.collection_pct / HUNDRED)
    return booking, collection, amount - booking - collection


@traced_engine(
    "attribution", "1.0",
    fingerprint_fields=("employee_code", "target", "allocation", "calculation_month"),
)
def attribute_variable_pay(
    deals: Sequence[Deal],
    employee_code: str,
    metric: PlanMetric,
    target: Decimal,
    allocation: Decimal,
    fiscal_year: int,
    calculation_month: str,
    default_split: PayoutSplit = DEFAULT_VP_SPLIT,
) -> AttributionOutcome:
    """
    Compute a metric's YTD variable pay and share it across its deals.

    Preconditions:
        ``calculation_month`` lies in ``fiscal_year``.

    Postconditions:
        ``shares`` has one entry per qualifying deal, in input order.
    """
    if fiscal_year_of(calculation_month) != fiscal_year:
        raise ValueError(
            f"calculation month {calculation_month} is outside fiscal year {fiscal_year}"
        )

    eligible = qualifying_deals(deals, employee_code, calculation_month)
    total_actual = sum((deal_metric_value(d) for d in eligible), ZERO)
    achievement = calculate_achievement_pct(total_actual, target)
    multiplier = resolve_multiplier(achievement, metric)
    total_vp = calculate_metric_payout(achievement, allocation, metric)
    split = metric.split or default_split

    shares: list[DealShare] = []
    if total_actual > ZERO and total_vp > ZERO:
        for deal in eligible:
            value = deal_metric_value(deal)
            proportion = value / total_actual
            share = round_money(total_vp * proportion)
            booking, collection, year_end = split_amount(share, split)
            shares.append(DealShare(
                deal_id=deal.id,
                project_id=deal.project_id,
                deal_value_usd=value,
                proportion_pct=round_money(proportion * HUNDRED, 4),
                variable_pay_split_usd=share,
                payout_on_booking_usd=booking,
                payout_on_collection_usd=collection,
                payout_on_year_end_usd=year_end,
            ))

    logger.debug(
        "variable_pay_attributed",
        extra={
            "employee_code": employee_code,
            "metric_name": metric.metric_name,
            "deal_count": len(shares),
            "total_actual_usd": str(total_actual),
            "achievement_pct": str(round_money(achievement)),
            "total_variable_pay_usd": str(total_vp),
        },
    )

    return AttributionOutcome(
        metric_name=metric.metric_name,
        fiscal_year=fiscal_year,
        calculation_month=calculation_month,
        total_actual_usd=total_actual,
        target_usd=target,
        achievement_pct=achievement,
        multiplier=multiplier,
        total_variable_pay_usd=total_vp,
        split=split,
        shares=tuple(shares),
    )


# ---------------------------------------------------------------------------
# Closing ARR
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClosingArrLine:
    """One snapshot row as evaluated for the closing-ARR metric."""

    project_id: str
    customer_name: str
    month_year: str
    end_date: str | None
    is_multi_year: bool
    renewal_years: int
    closing_arr_usd: Decimal
    multiplier: Decimal
    adjusted_arr_usd: Decimal
    is_eligible: bool
    exclusion_reason: str | None = None


@dataclass(frozen=True)
class ClosingArrOutcome:
    latest_month: str | None
    total_adjusted_arr_usd: Decimal
    lines: tuple[ClosingArrLine, ...] = ()


def renewal_multiplier(
    renewal_years: int, renewal_tiers: Sequence[RenewalMultiplierTier],
) -> Decimal:
    """Multiplier of the first tier matching ``renewal_years``; 1 if none."""
    for tier in sorted(renewal_tiers, key=lambda t: t.min_years):
        if tier.matches(renewal_years):
            return tier.multiplier_value
    return ONE


@traced_engine("closing_arr", "1.0", fingerprint_fields=("fiscal_year",))
def calculate_closing_arr(
    snapshots: Sequence[ClosingArrSnapshot],
    fiscal_year: int,
    renewal_tiers: Sequence[RenewalMultiplierTier] = (),
) -> ClosingArrOutcome:
    """
    Closing ARR from the latest snapshot month of ``fiscal_year``.

    Snapshots whose contract ends on or before Dec 31 of the fiscal year
    (or have no end date) are kept with multiplier 1 and an exclusion
    reason; they do not count toward the total.
    """
    in_year = [s for s in snapshots if fiscal_year_of(s.month_year) == fiscal_year]
    if not in_year:
        return ClosingArrOutcome(latest_month=None, total_adjusted_arr_usd=ZERO)

    latest_month = max(s.month_year for s in in_year)
    year_end = fiscal_year_end(fiscal_year)

    lines: list[ClosingArrLine] = []
    total = ZERO
    for snap in (s for s in in_year if s.month_year == latest_month):
        reason = None
        if snap.end_date is None:
            reason = "No contract end date"
        elif snap.end_date <= year_end:
            reason = f"Contract ends {snap.end_date.isoformat()}, not after {year_end.isoformat()}"

        eligible = reason is None
        multiplier = ONE
        if eligible and snap.is_multi_year:
            multiplier = renewal_multiplier(snap.renewal_years, renewal_tiers)
        adjusted = snap.closing_arr_usd * multiplier
        if eligible:
            total += adjusted

        lines.append(ClosingArrLine(
            project_id=snap.project_id,
            customer_name=snap.customer_name,
            month_year=snap.month_year,
            end_date=snap.end_date.isoformat() if snap.end_date else None,
            is_multi_year=snap.is_multi_year,
            renewal_years=snap.renewal_years,
            closing_arr_usd=snap.closing_arr_usd,
            multiplier=multiplier,
            adjusted_arr_usd=adjusted,
            is_eligible=eligible,
            exclusion_reason=reason,
        ))

    return ClosingArrOutcome(
        latest_month=latest_month,
        total_adjusted_arr_usd=total,
        lines=tuple(lines),
    )
