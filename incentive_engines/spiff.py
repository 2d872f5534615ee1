"""
Module: incentive_engines.spiff
Responsibility:
    SPIFF incentive pay linked to a plan metric's weightage.  For each active
    rule: ``allocated OTE = variable OTE x linked metric weightage%``, then
    each qualifying deal pays ``allocated OTE x deal ARR / metric target x
    rate%``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Deals below the rule's minimum ARR are kept with a reason and pay 0.
    - A zero linked-metric target, or a linked metric missing from the
      plan, pays 0.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from incentive_engines.tracer import traced_engine
from incentive_kernel.domain.plans import PlanMetric, SpiffRule
from incentive_kernel.domain.records import Deal
from incentive_kernel.domain.values import HUNDRED, ZERO, fmt_money, round_money
from incentive_kernel.logging_config import get_logger

logger = get_logger("engines.spiff")


@dataclass(frozen=True)
class SpiffDealLine:
    deal_id: UUID
    project_id: str
    deal_arr_usd: Decimal
    is_eligible: bool
    payout_usd: Decimal
    exclusion_reason: str | None = None


@dataclass(frozen=True)
class SpiffResult:
    spiff_name: str
    linked_metric_name: str
    allocated_ote_usd: Decimal
    target_usd: Decimal
    spiff_rate_pct: Decimal
    payout_usd: Decimal
    deal_lines: tuple[SpiffDealLine, ...] = field(default_factory=tuple)
    notes: str | None = None

    @property
    def eligible_actual_usd(self) -> Decimal:
        return sum((d.deal_arr_usd for d in self.deal_lines if d.is_eligible), ZERO)


def _find_metric(metrics: Sequence[PlanMetric], name: str) -> PlanMetric | None:
    for metric in metrics:
        if metric.metric_name == name:
            return metric
    return None


@traced_engine("spiff", "1.0", fingerprint_fields=("variable_ote", "target"))
def calculate_spiff_payout(
    rule: SpiffRule,
    deals: Sequence[Deal],
    metrics: Sequence[PlanMetric],
    variable_ote: Decimal,
    target: Decimal,
) -> SpiffResult:
    """SPIFF payout of one rule over ``deals``."""
    metric = _find_metric(metrics, rule.linked_metric_name)
    if metric is None:
        logger.warning(
            "spiff_linked_metric_missing",
            extra={"spiff_name": rule.spiff_name, "linked_metric": rule.linked_metric_name},
        )
        return SpiffResult(
            spiff_name=rule.spiff_name,
            linked_metric_name=rule.linked_metric_name,
            allocated_ote_usd=ZERO,
            target_usd=target,
            spiff_rate_pct=rule.spiff_rate_pct,
            payout_usd=ZERO,
            notes=f"Linked metric {rule.linked_metric_name} not in plan",
        )

    allocated = variable_ote * metric.weightage_percent / HUNDRED
    lines: list[SpiffDealLine] = []
    for deal in deals:
        arr = deal.new_software_booking_arr_usd
        if arr <= ZERO:
            continue
        if rule.min_deal_value_usd is not None and arr < rule.min_deal_value_usd:
            lines.append(SpiffDealLine(
                deal_id=deal.id,
                project_id=deal.project_id,
                deal_arr_usd=arr,
                is_eligible=False,
                payout_usd=ZERO,
                exclusion_reason=(
                    f"Deal ARR {fmt_money(arr)} below minimum "
                    f"{fmt_money(rule.min_deal_value_usd)}"
                ),
            ))
            continue

        payout = ZERO
        if target > ZERO:
            payout = round_money(allocated * arr / target * rule.spiff_rate_pct / HUNDRED)
        lines.append(SpiffDealLine(
            deal_id=deal.id,
            project_id=deal.project_id,
            deal_arr_usd=arr,
            is_eligible=True,
            payout_usd=payout,
        ))

    total = sum((line.payout_usd for line in lines), ZERO)
    return SpiffResult(
        spiff_name=rule.spiff_name,
        linked_metric_name=rule.linked_metric_name,
        allocated_ote_usd=round_money(allocated),
        target_usd=target,
        spiff_rate_pct=rule.spiff_rate_pct,
        payout_usd=total,
        deal_lines=tuple(lines),
    )


def calculate_all_spiffs(
    rules: Sequence[SpiffRule],
    deals: Sequence[Deal],
    metrics: Sequence[PlanMetric],
    variable_ote: Decimal,
    targets_by_metric: Mapping[str, Decimal],
) -> list[SpiffResult]:
    """Every active rule's result; inactive rules are skipped."""
    results = [
        calculate_spiff_payout(
            rule,
            deals,
            metrics,
            variable_ote,
            targets_by_metric.get(rule.linked_metric_name, ZERO),
        )
        for rule in rules
        if rule.is_active
    ]
    logger.debug(
        "spiffs_calculated",
        extra={
            "rule_count": len(results),
            "total_payout_usd": str(sum((r.payout_usd for r in results), ZERO)),
        },
    )
    return results
