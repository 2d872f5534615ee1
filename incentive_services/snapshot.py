"""
incentive_services.snapshot -- Prefetch of everything a payout run reads.

Responsibility:
    Issue one query per input family (employees, plans, assignments, deals,
    closing-ARR snapshots, targets, market rates, prior payments,
    collections, holdbacks) and freeze the results into a
    ``PayoutSnapshot``.  Per-employee calculations then run without any
    further database access.

Architecture position:
    Services -- called by ``PayoutRunOrchestrator`` after the run lock is
    held and clawback detection has run.

Invariants enforced:
    - Prior payments and holdbacks only come from months before the run
      month, so recalculating a run never reads its own output.
"""

from __future__ import annotations

from collections import defaultdict
from uuid import UUID

from incentive_kernel.domain.payouts import (
    COLLECTION_RELEASE,
    COMMISSION_TYPES,
    VARIABLE_PAY,
)
from incentive_kernel.domain.snapshot import HoldbackItem, PayoutSnapshot
from incentive_kernel.domain.values import ZERO, fiscal_year_of, normalize_month
from incentive_kernel.logging_config import get_logger
from incentive_services.repository import PayoutRepository

logger = get_logger("services.snapshot")


def collect_holdbacks(
    repo: PayoutRepository,
    fiscal_year: int,
    before_month: str | None = None,
    employee_id: UUID | None = None,
) -> dict[UUID, list[HoldbackItem]]:
    """
    Collection-timed amounts withheld by earlier runs, keyed by employee.

    Variable pay holdbacks come from each employee's latest attributions;
    commission holdbacks from deal-level commission lines.  A clawback
    reverses only the booking portion of an attribution, so clawed-back
    attributions still hold their collection portion.
    """
    holdbacks: dict[UUID, list[HoldbackItem]] = defaultdict(list)

    for attribution in repo.latest_attributions(fiscal_year, before_month=before_month):
        if employee_id is not None and attribution.employee_id != employee_id:
            continue
        if attribution.payout_on_collection_usd <= ZERO:
            continue
        holdbacks[attribution.employee_id].append(HoldbackItem(
            employee_id=attribution.employee_id,
            deal_id=attribution.deal_id,
            payout_type=VARIABLE_PAY,
            amount_usd=attribution.payout_on_collection_usd,
            source_run_id=attribution.payout_run_id,
        ))

    for line in repo.list_payout_lines(
        employee_id=employee_id,
        fiscal_year=fiscal_year,
        before_month=before_month,
        payout_types=COMMISSION_TYPES,
    ):
        if line.deal_id is None or line.collection_usd <= ZERO:
            continue
        holdbacks[line.employee_id].append(HoldbackItem(
            employee_id=line.employee_id,
            deal_id=line.deal_id,
            payout_type=line.payout_type,
            amount_usd=line.collection_usd,
            source_run_id=line.payout_run_id,
            source_payout_id=line.id,
        ))
    return dict(holdbacks)


def released_pairs(
    repo: PayoutRepository,
    fiscal_year: int,
    before_month: str | None = None,
    employee_id: UUID | None = None,
) -> frozenset[tuple[UUID, UUID]]:
    """(employee, deal) pairs for which a collection release was already paid."""
    return frozenset(
        (line.employee_id, line.deal_id)
        for line in repo.list_payout_lines(
            employee_id=employee_id,
            fiscal_year=fiscal_year,
            before_month=before_month,
            payout_types=[COLLECTION_RELEASE],
        )
        if line.deal_id is not None
    )


def build_snapshot(repo: PayoutRepository, run_id: UUID, month_year: str) -> PayoutSnapshot:
    """Prefetch every input of the run for ``month_year``."""
    month_year = normalize_month(month_year)
    fiscal_year = fiscal_year_of(month_year)

    employees = tuple(repo.list_active_employees())
    deals = tuple(repo.list_deals(fiscal_year, month_year))
    holdbacks = collect_holdbacks(repo, fiscal_year, before_month=month_year)

    deal_ids = {d.id for d in deals}
    for items in holdbacks.values():
        deal_ids.update(item.deal_id for item in items)

    snapshot = PayoutSnapshot(
        run_id=run_id,
        month_year=month_year,
        fiscal_year=fiscal_year,
        employees=employees,
        plans=repo.list_plans(),
        assignments=repo.list_assignments(fiscal_year),
        deals=deals,
        closing_snapshots=repo.list_closing_snapshots(fiscal_year, month_year),
        targets=repo.list_targets(fiscal_year),
        market_rates=repo.get_market_rates(month_year),
        prior_paid=repo.prior_paid(fiscal_year, month_year),
        collections=repo.list_collections(deal_ids),
        holdbacks={emp: tuple(items) for emp, items in holdbacks.items()},
        released=released_pairs(repo, fiscal_year, before_month=month_year),
    )

    logger.info(
        "payout_snapshot_built",
        extra={
            "run_id": str(run_id),
            "month_year": month_year,
            "employee_count": len(snapshot.employees),
            "plan_count": len(snapshot.plans),
            "deal_count": len(snapshot.deals),
            "holdback_employee_count": len(snapshot.holdbacks),
            "prior_paid_keys": len(snapshot.prior_paid),
        },
    )
    return snapshot
