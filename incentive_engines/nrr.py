"""
Module: incentive_engines.nrr
Responsibility:
    Margin-gated additional pay ("NRR"): change/expansion revenue and
    implementation revenue count toward a combined target only when the
    deal's GP margin clears the component's minimum.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Target = CR/ER target + implementation target; zero target gives
      0% achievement and zero payout.
    - Payout = variable OTE x NRR OTE% x achievement% / 100, linear and
      uncapped (no multiplier grid).
    - Each deal's CR/ER and implementation values are gated independently.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from incentive_engines.multiplier import calculate_achievement_pct
from incentive_engines.tracer import traced_engine
from incentive_kernel.domain.records import Deal
from incentive_kernel.domain.values import HUNDRED, ZERO, fmt_pct, round_money
from incentive_kernel.logging_config import get_logger

logger = get_logger("engines.nrr")


@dataclass(frozen=True)
class NrrDealLine:
    deal_id: UUID
    project_id: str
    gp_margin_pct: Decimal | None
    cr_er_usd: Decimal
    implementation_usd: Decimal
    eligible_cr_er_usd: Decimal
    eligible_implementation_usd: Decimal
    exclusion_reason: str | None = None

    @property
    def eligible_total_usd(self) -> Decimal:
        return self.eligible_cr_er_usd + self.eligible_implementation_usd

    @property
    def total_usd(self) -> Decimal:
        return self.cr_er_usd + self.implementation_usd

    @property
    def is_eligible(self) -> bool:
        return self.eligible_total_usd > ZERO


@dataclass(frozen=True)
class NrrResult:
    target_usd: Decimal
    eligible_actual_usd: Decimal
    achievement_pct: Decimal
    nrr_ote_pct: Decimal
    payout_usd: Decimal
    deal_lines: tuple[NrrDealLine, ...] = field(default_factory=tuple)


def _margin_reason(
    gp_margin_pct: Decimal | None, minimum: Decimal, label: str,
) -> str | None:
    if minimum <= ZERO:
        return None
    if gp_margin_pct is None:
        return f"GP margin not available for {label}"
    if gp_margin_pct < minimum:
        return f"GP margin {fmt_pct(gp_margin_pct)} below {label} minimum {fmt_pct(minimum)}"
    return None


def evaluate_nrr_deal(
    deal: Deal, cr_er_min_margin: Decimal, impl_min_margin: Decimal,
) -> NrrDealLine:
    """Gate one deal's CR/ER and implementation values by margin."""
    reasons: list[str] = []
    eligible_cr_er = ZERO
    eligible_impl = ZERO

    if deal.cr_er_usd > ZERO:
        reason = _margin_reason(deal.gp_margin_percent, cr_er_min_margin, "CR/ER")
        if reason:
            reasons.append(reason)
        else:
            eligible_cr_er = deal.cr_er_usd

    if deal.implementation_usd > ZERO:
        reason = _margin_reason(deal.gp_margin_percent, impl_min_margin, "Implementation")
        if reason:
            reasons.append(reason)
        else:
            eligible_impl = deal.implementation_usd

    return NrrDealLine(
        deal_id=deal.id,
        project_id=deal.project_id,
        gp_margin_pct=deal.gp_margin_percent,
        cr_er_usd=deal.cr_er_usd,
        implementation_usd=deal.implementation_usd,
        eligible_cr_er_usd=eligible_cr_er,
        eligible_implementation_usd=eligible_impl,
        exclusion_reason="; ".join(reasons) or None,
    )


@traced_engine(
    "nrr", "1.0",
    fingerprint_fields=("cr_er_target", "impl_target", "nrr_ote_pct", "variable_ote"),
)
def calculate_nrr_payout(
    deals: Sequence[Deal],
    cr_er_target: Decimal,
    impl_target: Decimal,
    nrr_ote_pct: Decimal,
    variable_ote: Decimal,
    cr_er_min_margin: Decimal = ZERO,
    impl_min_margin: Decimal = ZERO,
) -> NrrResult:
    """
    YTD NRR additional pay over ``deals``.

    Deals with neither CR/ER nor implementation value are ignored.
    """
    lines = tuple(
        evaluate_nrr_deal(deal, cr_er_min_margin, impl_min_margin)
        for deal in deals
        if deal.cr_er_usd > ZERO or deal.implementation_usd > ZERO
    )
    target = cr_er_target + impl_target
    eligible_actual = sum((line.eligible_total_usd for line in lines), ZERO)
    achievement = calculate_achievement_pct(eligible_actual, target)

    payout = ZERO
    if nrr_ote_pct > ZERO and variable_ote > ZERO:
        payout = round_money(variable_ote * nrr_ote_pct / HUNDRED * achievement / HUNDRED)

    logger.debug(
        "nrr_payout_calculated",
        extra={
            "deal_count": len(lines),
            "target_usd": str(target),
            "eligible_actual_usd": str(eligible_actual),
            "payout_usd": str(payout),
        },
    )

    return NrrResult(
        target_usd=target,
        eligible_actual_usd=eligible_actual,
        achievement_pct=achievement,
        nrr_ote_pct=nrr_ote_pct,
        payout_usd=payout,
        deal_lines=lines,
    )
