"""
Compensation Plan Domain Models (``incentive_kernel.domain.plans``).

Responsibility
--------------
Frozen dataclass value objects describing how an employee is paid:
compensation plans, their weighted metrics and multiplier grids,
commission rules, SPIFF rules, renewal multipliers, and the assignment of
a plan to an employee for a date range.

Architecture position
---------------------
**Kernel domain** -- pure data definitions with ZERO I/O.  Plans are
configuration: administrators edit them, calculations only read them.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary and percentage fields use ``Decimal`` -- NEVER ``float``.
* Every booking/collection/year-end split sums to 100.
* Multiplier tiers have ``min_pct < max_pct``.
* A metric's grid, once sorted by ``min_pct``, has no overlapping tiers.

Failure modes
-------------
* ``InvalidSplitError`` when a split does not sum to 100.
* ``InvalidMultiplierGridError`` for overlapping or unsorted tiers.
* ``ValueError`` for negative rates or weightages.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from incentive_kernel.domain.values import HUNDRED, ZERO
from incentive_kernel.exceptions import InvalidMultiplierGridError, InvalidSplitError
from incentive_kernel.logging_config import get_logger

logger = get_logger("domain.plans")


class LogicType(str, Enum):
    """How achievement translates into metric payout."""

    LINEAR = "Linear"
    GATED_THRESHOLD = "Gated_Threshold"
    STEPPED_ACCELERATOR = "Stepped_Accelerator"


class CommissionType(str, Enum):
    """Revenue line kinds that can carry a commission rule."""

    PERPETUAL_LICENSE = "Perpetual License"
    MANAGED_SERVICES = "Managed Services"
    IMPLEMENTATION = "Implementation"
    CR_ER = "CR/ER"


@dataclass(frozen=True)
class PayoutSplit:
    """Booking / collection / year-end percentages of a gross amount."""

    booking_pct: Decimal
    collection_pct: Decimal
    year_end_pct: Decimal

    def __post_init__(self):
        for pct in (self.booking_pct, self.collection_pct, self.year_end_pct):
            if pct < ZERO:
                raise ValueError("split percentages cannot be negative")
        total = self.booking_pct + self.collection_pct + self.year_end_pct
        if total != HUNDRED:
            raise InvalidSplitError("payout split", str(total))

    @classmethod
    def of(cls, booking, collection, year_end) -> PayoutSplit:
        return cls(Decimal(str(booking)), Decimal(str(collection)), Decimal(str(year_end)))

    @classmethod
    def collection_only(cls) -> PayoutSplit:
        return cls(ZERO, HUNDRED, ZERO)

    @classmethod
    def upfront(cls) -> PayoutSplit:
        return cls(HUNDRED, ZERO, ZERO)

    def merged_upfront(self) -> PayoutSplit:
        """Collection share moved into booking (clawback-exempt plans)."""
        return PayoutSplit(
            self.booking_pct + self.collection_pct, ZERO, self.year_end_pct,
        )


@dataclass(frozen=True)
class MultiplierTier:
    """One row of a metric's multiplier grid: ``min_pct <= ach < max_pct``."""

    min_pct: Decimal
    max_pct: Decimal
    multiplier: Decimal

    def __post_init__(self):
        if self.min_pct >= self.max_pct:
            raise ValueError(
                f"tier min_pct ({self.min_pct}) must be below max_pct ({self.max_pct})"
            )
        if self.multiplier < ZERO:
            raise ValueError("tier multiplier cannot be negative")


def validate_tiers(tiers: Sequence[MultiplierTier], metric_name: str = "") -> None:
    """
    Check that a grid is ascending by ``min_pct`` and non-overlapping.

    Raises:
        InvalidMultiplierGridError: on the first offending pair.
    """
    for previous, current in zip(tiers, tiers[1:]):
        if current.min_pct < previous.min_pct:
            raise InvalidMultiplierGridError(
                metric_name,
                f"tier starting at {current.min_pct}% follows tier starting at "
                f"{previous.min_pct}%",
            )
        if current.min_pct < previous.max_pct:
            raise InvalidMultiplierGridError(
                metric_name,
                f"tier {previous.min_pct}-{previous.max_pct}% overlaps "
                f"tier {current.min_pct}-{current.max_pct}%",
            )


@dataclass(frozen=True)
class PlanMetric:
    """A weighted performance metric inside a compensation plan."""

    id: UUID
    metric_name: str
    weightage_percent: Decimal
    logic_type: LogicType = LogicType.LINEAR
    gate_threshold_percent: Decimal | None = None
    split: PayoutSplit | None = None  # None -> engine default split
    tiers: tuple[MultiplierTier, ...] = ()

    def __post_init__(self):
        if self.weightage_percent < ZERO or self.weightage_percent > HUNDRED:
            raise ValueError("weightage_percent must be between 0 and 100")
        # Grids may be stored in any order.
        validate_tiers(self.sorted_tiers, self.metric_name)

    @property
    def sorted_tiers(self) -> tuple[MultiplierTier, ...]:
        return tuple(sorted(self.tiers, key=lambda t: t.min_pct))


@dataclass(frozen=True)
class CommissionRule:
    """Commission configuration for one revenue line kind."""

    id: UUID
    commission_type: CommissionType
    commission_rate_pct: Decimal
    split: PayoutSplit | None = None  # None -> engine default split
    min_threshold_usd: Decimal | None = None
    min_gp_margin_pct: Decimal | None = None
    is_active: bool = True

    def __post_init__(self):
        if self.commission_rate_pct < ZERO:
            raise ValueError("commission_rate_pct cannot be negative")


@dataclass(frozen=True)
class SpiffRule:
    """Incentive tied to the weightage of a linked plan metric."""

    id: UUID
    spiff_name: str
    linked_metric_name: str
    spiff_rate_pct: Decimal
    split: PayoutSplit | None = None  # None -> engine default split
    min_deal_value_usd: Decimal | None = None
    is_active: bool = True


@dataclass(frozen=True)
class RenewalMultiplierTier:
    """Closing-ARR renewal multiplier by contract renewal years."""

    min_years: int
    max_years: int | None
    multiplier_value: Decimal

    def matches(self, years: int) -> bool:
        if years < self.min_years:
            return False
        return self.max_years is None or years <= self.max_years


@dataclass(frozen=True)
class CompensationPlan:
    """A compensation plan with its metrics and rules."""

    id: UUID
    name: str
    metrics: tuple[PlanMetric, ...] = ()
    commission_rules: tuple[CommissionRule, ...] = ()
    spiff_rules: tuple[SpiffRule, ...] = ()
    renewal_tiers: tuple[RenewalMultiplierTier, ...] = ()
    is_clawback_exempt: bool = False
    clawback_period_days: int = 180
    nrr_ote_percent: Decimal = ZERO
    cr_er_min_gp_margin_pct: Decimal = ZERO
    impl_min_gp_margin_pct: Decimal = ZERO
    nrr_split: PayoutSplit = field(
        default_factory=lambda: PayoutSplit(ZERO, HUNDRED, ZERO)
    )

    def __post_init__(self):
        if self.clawback_period_days < 0:
            raise ValueError("clawback_period_days cannot be negative")
        logger.debug(
            "compensation_plan_initialized",
            extra={
                "plan_id": str(self.id),
                "plan_name": self.name,
                "metric_count": len(self.metrics),
                "commission_rule_count": len(self.commission_rules),
                "spiff_rule_count": len(self.spiff_rules),
            },
        )

    def metric_by_name(self, name: str) -> PlanMetric | None:
        for metric in self.metrics:
            if metric.metric_name == name:
                return metric
        return None

    def active_commission_rule(self, commission_type: CommissionType) -> CommissionRule | None:
        for rule in self.commission_rules:
            if rule.commission_type == commission_type and rule.is_active:
                return rule
        return None


@dataclass(frozen=True)
class PlanAssignment:
    """An employee's plan for an inclusive date range."""

    id: UUID
    employee_id: UUID
    plan_id: UUID
    effective_start_date: date
    effective_end_date: date
    target_bonus_usd: Decimal | None = None

    def __post_init__(self):
        if self.effective_end_date < self.effective_start_date:
            raise ValueError("effective_end_date precedes effective_start_date")

    def covers(self, day: date) -> bool:
        return self.effective_start_date <= day <= self.effective_end_date
