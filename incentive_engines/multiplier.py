"""
Module: incentive_engines.multiplier
Responsibility:
    Turn a metric's achievement into a multiplier and a payout.  Covers
    achievement percentage, bonus allocation by weightage, multiplier grid
    lookup (Linear, Gated_Threshold, Stepped_Accelerator) and the tiered
    metric payout.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import incentive_kernel/domain and incentive_kernel/exceptions.

Invariants enforced:
    - Zero target gives 0% achievement, never a division by zero.
    - Gated_Threshold: achievement at or below the gate pays exactly zero.
    - Grid lookup: a tier matches when ``min_pct <= achievement < max_pct``,
      so an achievement exactly on a tier's ``min_pct`` selects that tier.
    - Achievement at or above the highest tier's ``max_pct`` uses the highest
      tier; below the lowest tier's ``min_pct`` uses the lowest tier.

Failure modes:
    - None.  Grids are validated when a ``PlanMetric`` is built;
      ``validate_tiers`` is re-exported here for callers checking a raw grid.

Audit relevance:
    Every resolved multiplier and metric payout is recorded on the run's
    metric detail rows; the tracer fingerprints each call.

Usage:
    from incentive_engines.multiplier import calculate_metric_payout

    payout = calculate_metric_payout(Decimal("110"), Decimal("20000"), metric)
"""

from __future__ import annotations

from decimal import Decimal

from incentive_engines.tracer import traced_engine
from incentive_kernel.domain.plans import (
    LogicType,
    MultiplierTier,
    PlanMetric,
    validate_tiers,
)
from incentive_kernel.domain.values import HUNDRED, ONE, ZERO, round_money
from incentive_kernel.logging_config import get_logger

logger = get_logger("engines.multiplier")


def calculate_achievement_pct(actual: Decimal, target: Decimal) -> Decimal:
    """actual / target x 100; 0 when the target is zero or negative."""
    if target <= ZERO:
        return ZERO
    return actual / target * HUNDRED


def calculate_bonus_allocation(target_bonus: Decimal, weightage_pct: Decimal) -> Decimal:
    """Share of the target bonus assigned to a metric by its weightage."""
    return target_bonus * weightage_pct / HUNDRED


def is_gated_out(achievement_pct: Decimal, metric: PlanMetric) -> bool:
    """True when a Gated_Threshold metric has not cleared its gate."""
    return (
        metric.logic_type == LogicType.GATED_THRESHOLD
        and metric.gate_threshold_percent is not None
        and achievement_pct <= metric.gate_threshold_percent
    )


@traced_engine("multiplier", "1.0", fingerprint_fields=("achievement_pct",))
def resolve_multiplier(achievement_pct: Decimal, metric: PlanMetric) -> Decimal:
    """
    Multiplier for ``achievement_pct`` under ``metric``'s logic type.

    Rules, in order:
        1. Gated_Threshold at or below the gate -> 0.
        2. Linear, or no grid -> 1.
        3. Tier with ``min_pct <= achievement < max_pct``.
        4. At or above the highest ``max_pct`` -> highest tier.
        5. Below the lowest ``min_pct`` -> lowest tier.
        6. Otherwise (a gap in the grid) -> 1.
    """
    if is_gated_out(achievement_pct, metric):
        return ZERO

    tiers = metric.sorted_tiers
    if metric.logic_type == LogicType.LINEAR or not tiers:
        return ONE

    for tier in tiers:
        if tier.min_pct <= achievement_pct < tier.max_pct:
            return tier.multiplier

    if achievement_pct >= tiers[-1].max_pct:
        return tiers[-1].multiplier
    if achievement_pct < tiers[0].min_pct:
        # Lowest tier, not 1.0, below the grid.
        return tiers[0].multiplier

    logger.debug(
        "multiplier_grid_gap",
        extra={
            "metric_name": metric.metric_name,
            "achievement_pct": str(achievement_pct),
        },
    )
    return ONE


def _graded_segments(
    achievement_pct: Decimal, tiers: tuple[MultiplierTier, ...],
) -> list[tuple[Decimal, Decimal]]:
    """(achievement points, multiplier) pairs covering 0..achievement."""
    segments: list[tuple[Decimal, Decimal]] = []
    cursor = ZERO

    def take(upper: Decimal, multiplier: Decimal) -> None:
        nonlocal cursor
        top = min(upper, achievement_pct)
        if top > cursor:
            segments.append((top - cursor, multiplier))
            cursor = top

    for tier in tiers:
        if cursor >= achievement_pct:
            break
        # Below the grid, or a gap between tiers.
        take(tier.min_pct, tiers[0].multiplier if tier is tiers[0] else ONE)
        take(tier.max_pct, tier.multiplier)

    if cursor < achievement_pct:
        segments.append((achievement_pct - cursor, tiers[-1].multiplier))
    return segments


@traced_engine(
    "multiplier", "1.0", fingerprint_fields=("achievement_pct", "allocation"),
)
def calculate_metric_payout(
    achievement_pct: Decimal,
    allocation: Decimal,
    metric: PlanMetric,
) -> Decimal:
    """
    Payout for one metric, rounded to cents.

    Linear metrics (or metrics without a grid) pay
    ``achievement / 100 x allocation``.  Graded metrics pay each slice of
    achievement at the multiplier of the tier it falls in:
    ``sum(slice / 100 x allocation x tier multiplier)``.  A gated metric at
    or below its gate pays zero.

    Example:
        Tiers [0-100 -> 1.0, 100-120 -> 1.4, 120-999 -> 1.6], allocation
        20,000, achievement 110% -> 20,000 + 2,800 = 22,800.
    """
    if achievement_pct <= ZERO or allocation <= ZERO:
        return ZERO
    if is_gated_out(achievement_pct, metric):
        logger.debug(
            "metric_gated_out",
            extra={
                "metric_name": metric.metric_name,
                "achievement_pct": str(achievement_pct),
                "gate_threshold_pct": str(metric.gate_threshold_percent),
            },
        )
        return ZERO

    tiers = metric.sorted_tiers
    if metric.logic_type == LogicType.LINEAR or not tiers:
        return round_money(achievement_pct / HUNDRED * allocation)

    payout = sum(
        (points / HUNDRED * allocation * multiplier
         for points, multiplier in _graded_segments(achievement_pct, tiers)),
        ZERO,
    )
    return round_money(payout)
