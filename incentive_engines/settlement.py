"""
Module: incentive_engines.settlement
Responsibility:
    Line-level math of the two-tranche Full & Final settlement of a
    departed employee.

    Tranche 1 releases the year-end reserves of every payout line of the
    fiscal year, settles pro-rated VP / NRR / SPIFF entitlement not yet
    paid, and deducts outstanding clawback balances.  A shortfall is
    carried forward to tranche 2.

    Tranche 2 releases collection holdbacks whose deal was collected
    within the grace period after departure, forfeits the rest, and
    recovers the carried-forward clawback from what was released.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The settlement service
    gathers the inputs and persists the lines.

Invariants enforced:
    - Tranche totals are never negative.
    - Tranche 1: carry-forward = max(0, deductions - releases).
    - Tranche 2: deduction = min(carry-forward, released); the remainder
      of the carry-forward is written off (an amount-0 line).
    - Forfeit, carry-forward and write-off lines carry amount 0 and a
      note with the figure.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from incentive_engines.proration import fnf_proration_factor
from incentive_kernel.domain.payouts import ClawbackLedgerEntry, MonthlyPayoutLine
from incentive_kernel.domain.records import DealCollection
from incentive_kernel.domain.settlement import (
    FnfLineType,
    FnfSettlement,
    FnfSettlementLine,
    TrancheResult,
)
from incentive_kernel.domain.snapshot import HoldbackItem
from incentive_kernel.domain.values import HUNDRED, ONE, ZERO, fmt_money, round_money
from incentive_kernel.logging_config import get_logger

logger = get_logger("engines.settlement")


@dataclass(frozen=True)
class ComponentEntitlement:
    """YTD amount earned for one component and what was already paid."""

    line_type: FnfLineType
    payout_type: str
    ytd_entitlement_usd: Decimal
    prior_paid_usd: Decimal


def _line(
    settlement: FnfSettlement,
    tranche: int,
    line_type: FnfLineType,
    amount: Decimal,
    notes: str,
    rate: Decimal = ONE,
    local_currency: str = "USD",
    payout_type: str | None = None,
    deal_id: UUID | None = None,
    source_payout_id: UUID | None = None,
    amount_local: Decimal | None = None,
) -> FnfSettlementLine:
    return FnfSettlementLine(
        id=uuid4(),
        settlement_id=settlement.id,
        tranche=tranche,
        line_type=line_type,
        amount_usd=amount,
        amount_local=amount_local if amount_local is not None else round_money(amount * rate),
        local_currency=local_currency,
        exchange_rate_used=rate,
        payout_type=payout_type,
        deal_id=deal_id,
        source_payout_id=source_payout_id,
        notes=notes,
    )


# ---------------------------------------------------------------------------
# Tranche 1
# ---------------------------------------------------------------------------


def calculate_tranche1_lines(
    settlement: FnfSettlement,
    payout_lines: Sequence[MonthlyPayoutLine],
    entitlements: Sequence[ComponentEntitlement],
    outstanding: Sequence[ClawbackLedgerEntry],
    compensation_rate: Decimal = ONE,
    local_currency: str = "USD",
    days_in_year: int = 365,
    deal_labels: Mapping[UUID, str] | None = None,
) -> TrancheResult:
    """
    Tranche 1 lines for ``settlement``.

    Args:
        payout_lines: The employee's payout lines of the fiscal year.
        entitlements: YTD entitlement per settled component.
        outstanding: Ledger entries still pending or partial.
        deal_labels: deal id -> project id, for line notes.
    """
    labels = deal_labels or {}
    lines: list[FnfSettlementLine] = []
    positive = ZERO

    for payout in payout_lines:
        if payout.year_end_usd <= ZERO:
            continue
        lines.append(_line(
            settlement, 1, FnfLineType.YEAR_END_RELEASE, payout.year_end_usd,
            f"Year-end release for {payout.month_year} ({payout.payout_type})",
            rate=payout.exchange_rate_used,
            local_currency=payout.local_currency,
            payout_type=payout.payout_type,
            deal_id=payout.deal_id,
            source_payout_id=payout.id,
            amount_local=payout.year_end_local,
        ))
        positive += payout.year_end_usd

    factor = fnf_proration_factor(settlement.departure_date, days_in_year)
    for ent in entitlements:
        prorated = ent.ytd_entitlement_usd * factor
        due = round_money(max(ZERO, prorated - ent.prior_paid_usd))
        if due <= ZERO:
            continue
        lines.append(_line(
            settlement, 1, ent.line_type, due,
            f"Pro-rated settlement ({round_money(factor * HUNDRED, 1)}% of year, "
            f"YTD {fmt_money(ent.ytd_entitlement_usd)}, "
            f"prior paid {fmt_money(ent.prior_paid_usd)})",
            rate=compensation_rate,
            local_currency=local_currency,
            payout_type=ent.payout_type,
        ))
        positive += due

    clawbacks = ZERO
    for entry in outstanding:
        if not entry.is_outstanding or entry.remaining_amount_usd <= ZERO:
            continue
        clawbacks += entry.remaining_amount_usd
        label = labels.get(entry.deal_id, str(entry.deal_id))
        lines.append(_line(
            settlement, 1, FnfLineType.CLAWBACK_DEDUCTION, -entry.remaining_amount_usd,
            f"Clawback deduction for deal {label}",
            rate=compensation_rate,
            local_currency=local_currency,
            deal_id=entry.deal_id,
        ))

    net = positive - clawbacks
    carryforward = ZERO
    if net < ZERO:
        carryforward = -net
        lines.append(_line(
            settlement, 1, FnfLineType.CLAWBACK_CARRYFORWARD, ZERO,
            f"Clawback carry-forward of {fmt_money(carryforward)} to Tranche 2",
        ))

    logger.info(
        "fnf_tranche1_lines_calculated",
        extra={
            "settlement_id": str(settlement.id),
            "line_count": len(lines),
            "released_usd": str(positive),
            "clawback_usd": str(clawbacks),
            "carryforward_usd": str(carryforward),
        },
    )
    return TrancheResult(
        lines=tuple(lines),
        total_usd=max(net, ZERO),
        clawback_carryforward_usd=carryforward,
    )


# ---------------------------------------------------------------------------
# Tranche 2
# ---------------------------------------------------------------------------


def collected_within_grace(
    collection: DealCollection | None, settlement: FnfSettlement,
) -> bool:
    if collection is None or not collection.is_collected or collection.collection_date is None:
        return False
    deadline = settlement.departure_date + timedelta(days=settlement.collection_grace_days)
    return collection.collection_date <= deadline


def calculate_tranche2_lines(
    settlement: FnfSettlement,
    holdbacks: Sequence[HoldbackItem],
    collections: Mapping[UUID, DealCollection],
    carryforward_usd: Decimal,
    compensation_rate: Decimal = ONE,
    local_currency: str = "USD",
) -> TrancheResult:
    """Tranche 2 lines: release or forfeit each holdback, then net the carry-forward."""
    lines: list[FnfSettlementLine] = []
    released = ZERO

    for item in holdbacks:
        if item.amount_usd <= ZERO:
            continue
        collection = collections.get(item.deal_id)
        if collected_within_grace(collection, settlement):
            lines.append(_line(
                settlement, 2, FnfLineType.COLLECTION_RELEASE, item.amount_usd,
                f"Collection released - collected on {collection.collection_date.isoformat()}",
                rate=compensation_rate,
                local_currency=local_currency,
                payout_type=item.payout_type,
                deal_id=item.deal_id,
                source_payout_id=item.source_payout_id,
            ))
            released += item.amount_usd
        else:
            lines.append(_line(
                settlement, 2, FnfLineType.COLLECTION_FORFEIT, ZERO,
                f"Collection forfeited - {fmt_money(item.amount_usd)} not collected "
                f"within {settlement.collection_grace_days} days of departure",
                rate=compensation_rate,
                local_currency=local_currency,
                payout_type=item.payout_type,
                deal_id=item.deal_id,
                source_payout_id=item.source_payout_id,
            ))

    deduction = ZERO
    if carryforward_usd > ZERO:
        deduction = min(carryforward_usd, released)
        if deduction > ZERO:
            lines.append(_line(
                settlement, 2, FnfLineType.CLAWBACK_DEDUCTION, -deduction,
                f"Clawback carry-forward deduction from Tranche 1 "
                f"({fmt_money(carryforward_usd)} outstanding, {fmt_money(deduction)} recovered)",
                rate=compensation_rate,
                local_currency=local_currency,
            ))
        written_off = carryforward_usd - deduction
        if written_off > ZERO:
            lines.append(_line(
                settlement, 2, FnfLineType.CLAWBACK_WRITEOFF, ZERO,
                f"Unrecovered clawback written off: {fmt_money(written_off)}",
            ))

    total = max(released - deduction, ZERO)
    logger.info(
        "fnf_tranche2_lines_calculated",
        extra={
            "settlement_id": str(settlement.id),
            "line_count": len(lines),
            "released_usd": str(released),
            "deduction_usd": str(deduction),
            "total_usd": str(total),
        },
    )
    return TrancheResult(lines=tuple(lines), total_usd=total)
