"""
Payout Snapshot (``incentive_kernel.domain.snapshot``).

Responsibility
--------------
The immutable, prefetched input set of one payout run.  Built once by
``incentive_services.snapshot.build_snapshot`` after the run lock is held,
then shared read-only by every per-employee calculation, including those
running on worker threads.

Invariants enforced
-------------------
* Frozen; every collection is a tuple or a mapping that no calculation
  mutates.
* ``prior_paid`` only covers runs of earlier months in the same fiscal
  year, never the run being calculated.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from incentive_kernel.domain.plans import CompensationPlan, PlanAssignment
from incentive_kernel.domain.records import (
    ClosingArrSnapshot,
    Deal,
    DealCollection,
    Employee,
)
from incentive_kernel.domain.values import ZERO


@dataclass(frozen=True)
class HoldbackItem:
    """Collection-timed amount withheld by an earlier run for one deal."""

    employee_id: UUID
    deal_id: UUID
    payout_type: str
    amount_usd: Decimal
    source_run_id: UUID
    source_payout_id: UUID | None = None


@dataclass(frozen=True)
class PayoutSnapshot:
    run_id: UUID
    month_year: str
    fiscal_year: int
    employees: tuple[Employee, ...] = ()
    plans: Mapping[UUID, CompensationPlan] = field(default_factory=dict)
    assignments: Mapping[UUID, tuple[PlanAssignment, ...]] = field(default_factory=dict)
    # Fiscal-year deals booked up to and including month_year.
    deals: tuple[Deal, ...] = ()
    # employee_code -> snapshots of the fiscal year up to month_year.
    closing_snapshots: Mapping[str, tuple[ClosingArrSnapshot, ...]] = field(default_factory=dict)
    # (employee_code, metric_type) -> target for the fiscal year.
    targets: Mapping[tuple[str, str], Decimal] = field(default_factory=dict)
    # currency -> market rate for month_year.
    market_rates: Mapping[str, Decimal] = field(default_factory=dict)
    # (employee_id, component_type, metric_name) -> paid by earlier months.
    prior_paid: Mapping[tuple[UUID, str, str], Decimal] = field(default_factory=dict)
    # deal_id -> collection record.
    collections: Mapping[UUID, DealCollection] = field(default_factory=dict)
    # employee_id -> amounts withheld on collection by earlier runs.
    holdbacks: Mapping[UUID, tuple[HoldbackItem, ...]] = field(default_factory=dict)
    # (employee_id, deal_id) pairs already released by an earlier run.
    released: frozenset[tuple[UUID, UUID]] = frozenset()

    def target_for(self, employee_code: str, metric_type: str) -> Decimal:
        return self.targets.get((employee_code, metric_type), ZERO)

    def prior_paid_for(self, employee_id: UUID, component_type: str, metric_name: str) -> Decimal:
        return self.prior_paid.get((employee_id, component_type, metric_name), ZERO)

    def market_rate_for(self, currency: str, reference_currency: str) -> Decimal | None:
        if currency.upper() == reference_currency.upper():
            return Decimal("1")
        return self.market_rates.get(currency.upper())
