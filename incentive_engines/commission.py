"""
Module: incentive_engines.commission
Responsibility:
    Per revenue-line commission: eligibility gating by minimum value and
    minimum GP margin, gross commission at the rule's rate, and the
    booking / collection / year-end split with its two overrides.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - A line is evaluated only when the plan has an active rule for its
      commission type and the line's value is positive.
    - Ineligible lines are returned with zero amounts and a reason.
    - Deals linked to implementation are paid 0/100/0 whatever the rule says.
    - A rule without its own split uses the configured default split.
    - Clawback-exempt plans pay the collection share up front.
    - booking + collection + year_end == gross, to the cent.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from incentive_engines.attribution import split_amount
from incentive_engines.tracer import traced_engine
from incentive_kernel.domain.plans import CommissionRule, CommissionType, PayoutSplit
from incentive_kernel.domain.records import Deal
from incentive_kernel.domain.values import HUNDRED, ZERO, fmt_money, fmt_pct, round_money
from incentive_kernel.logging_config import get_logger

logger = get_logger("engines.commission")

LINKED_TO_IMPL_SPLIT = PayoutSplit(ZERO, HUNDRED, ZERO)
DEFAULT_COMMISSION_SPLIT = PayoutSplit(Decimal("75"), Decimal("25"), ZERO)


@dataclass(frozen=True)
class CommissionCalculation:
    """Commission on one revenue line of one deal."""

    commission_type: CommissionType
    deal_value_usd: Decimal
    commission_rate_pct: Decimal
    gp_margin_pct: Decimal | None
    is_eligible: bool
    exclusion_reason: str | None
    gross_commission_usd: Decimal
    booking_usd: Decimal
    collection_usd: Decimal
    year_end_usd: Decimal
    split: PayoutSplit


@dataclass(frozen=True)
class CommissionSummary:
    commission_type: CommissionType
    gross_usd: Decimal
    booking_usd: Decimal
    collection_usd: Decimal
    year_end_usd: Decimal
    line_count: int


def revenue_line_value(deal: Deal, commission_type: CommissionType) -> Decimal:
    """Deal value feeding ``commission_type``; CR/ER is CR plus ER."""
    if commission_type == CommissionType.PERPETUAL_LICENSE:
        return deal.perpetual_license_usd
    if commission_type == CommissionType.MANAGED_SERVICES:
        return deal.managed_services_usd
    if commission_type == CommissionType.IMPLEMENTATION:
        return deal.implementation_usd
    return deal.cr_er_usd


def effective_split(
    rule_split: PayoutSplit | None,
    linked_to_impl: bool,
    clawback_exempt: bool,
    default_split: PayoutSplit = DEFAULT_COMMISSION_SPLIT,
) -> PayoutSplit:
    if linked_to_impl:
        split = LINKED_TO_IMPL_SPLIT
    else:
        split = rule_split or default_split
    if clawback_exempt:
        split = split.merged_upfront()
    return split


def _ineligibility_reason(
    value: Decimal, rule: CommissionRule, gp_margin_pct: Decimal | None,
) -> str | None:
    if rule.min_threshold_usd is not None and value < rule.min_threshold_usd:
        return f"Value {fmt_money(value)} below minimum {fmt_money(rule.min_threshold_usd)}"
    if rule.min_gp_margin_pct is not None and rule.min_gp_margin_pct > ZERO:
        if gp_margin_pct is None:
            return "GP margin not available"
        if gp_margin_pct < rule.min_gp_margin_pct:
            return (
                f"GP margin {fmt_pct(gp_margin_pct)} below minimum "
                f"{fmt_pct(rule.min_gp_margin_pct)}"
            )
    return None


@traced_engine(
    "commission", "1.0",
    fingerprint_fields=("value", "gp_margin_pct", "linked_to_impl", "clawback_exempt"),
)
def calculate_deal_commission(
    value: Decimal,
    rule: CommissionRule,
    gp_margin_pct: Decimal | None = None,
    linked_to_impl: bool = False,
    clawback_exempt: bool = False,
    default_split: PayoutSplit = DEFAULT_COMMISSION_SPLIT,
) -> CommissionCalculation:
    """
    Commission on one revenue line.

    Postconditions:
        An eligible line has ``gross = round(value x rate / 100)``; an
        ineligible line has all amounts zero and a non-empty reason.
    """
    split = effective_split(rule.split, linked_to_impl, clawback_exempt, default_split)
    reason = _ineligibility_reason(value, rule, gp_margin_pct)

    if reason is not None:
        return CommissionCalculation(
            commission_type=rule.commission_type,
            deal_value_usd=value,
            commission_rate_pct=rule.commission_rate_pct,
            gp_margin_pct=gp_margin_pct,
            is_eligible=False,
            exclusion_reason=reason,
            gross_commission_usd=ZERO,
            booking_usd=ZERO,
            collection_usd=ZERO,
            year_end_usd=ZERO,
            split=split,
        )

    gross = round_money(value * rule.commission_rate_pct / HUNDRED)
    booking, collection, year_end = split_amount(gross, split)
    return CommissionCalculation(
        commission_type=rule.commission_type,
        deal_value_usd=value,
        commission_rate_pct=rule.commission_rate_pct,
        gp_margin_pct=gp_margin_pct,
        is_eligible=True,
        exclusion_reason=None,
        gross_commission_usd=gross,
        booking_usd=booking,
        collection_usd=collection,
        year_end_usd=year_end,
        split=split,
    )


def calculate_deal_commissions(
    deal: Deal,
    rules: Sequence[CommissionRule],
    clawback_exempt: bool = False,
    default_split: PayoutSplit = DEFAULT_COMMISSION_SPLIT,
) -> list[CommissionCalculation]:
    """Evaluate every revenue line of ``deal`` that has an active rule."""
    results: list[CommissionCalculation] = []
    for rule in rules:
        if not rule.is_active:
            continue
        value = revenue_line_value(deal, rule.commission_type)
        if value <= ZERO:
            continue
        results.append(calculate_deal_commission(
            value,
            rule,
            gp_margin_pct=deal.gp_margin_percent,
            linked_to_impl=deal.linked_to_impl,
            clawback_exempt=clawback_exempt,
            default_split=default_split,
        ))

    if results:
        logger.debug(
            "deal_commissions_calculated",
            extra={
                "project_id": deal.project_id,
                "line_count": len(results),
                "eligible_count": sum(1 for r in results if r.is_eligible),
            },
        )
    return results


def summarize_commissions(
    calculations: Iterable[CommissionCalculation],
) -> dict[CommissionType, CommissionSummary]:
    """Totals of eligible lines per commission type."""
    totals: dict[CommissionType, list[Decimal]] = {}
    counts: dict[CommissionType, int] = {}
    for calc in calculations:
        if not calc.is_eligible:
            continue
        bucket = totals.setdefault(calc.commission_type, [ZERO, ZERO, ZERO, ZERO])
        bucket[0] += calc.gross_commission_usd
        bucket[1] += calc.booking_usd
        bucket[2] += calc.collection_usd
        bucket[3] += calc.year_end_usd
        counts[calc.commission_type] = counts.get(calc.commission_type, 0) + 1

    return {
        ctype: CommissionSummary(
            commission_type=ctype,
            gross_usd=gross,
            booking_usd=booking,
            collection_usd=collection,
            year_end_usd=year_end,
            line_count=counts[ctype],
        )
        for ctype, (gross, booking, collection, year_end) in totals.items()
    }
