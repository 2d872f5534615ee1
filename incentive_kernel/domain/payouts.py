"""
Payout Domain Models (``incentive_kernel.domain.payouts``).

Responsibility
--------------
Frozen dataclass value objects for everything a payout run produces:
the run itself, payout lines, deal attributions, calculation detail rows,
and the clawback ledger with its recovery records.  Also owns the payout
type vocabulary and its classification.

Architecture position
---------------------
**Kernel domain** -- pure data, ZERO I/O.  Engines build these; services
persist them through the repository.

Invariants enforced
-------------------
* ``ClawbackLedgerEntry``: ``original = recovered + remaining`` and
  ``remaining >= 0`` after every mutation; status only moves forward
  ``pending -> partial -> recovered``.
* Run status transitions are validated by ``PayoutRunStatus.can_lock``.

Failure modes
-------------
* ``LedgerInvariantError`` on any ledger mutation that would violate the
  balance equation or regress the status.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from incentive_kernel.domain.values import ZERO
from incentive_kernel.exceptions import LedgerInvariantError

# ---------------------------------------------------------------------------
# Payout type vocabulary
# ---------------------------------------------------------------------------

VARIABLE_PAY = "Variable Pay"
NRR_ADDITIONAL_PAY = "NRR Additional Pay"
SPIFF = "SPIFF"
DEAL_TEAM_SPIFF = "Deal Team SPIFF"
COLLECTION_RELEASE = "Collection Release"
CLAWBACK_RELEASE = "Clawback Release"
YEAR_END_RELEASE = "Year-End Release"
CLAWBACK = "Clawback"
CLAWBACK_RECOVERY = "Clawback Recovery"

VP_TYPES = frozenset({VARIABLE_PAY})
COMMISSION_TYPES = frozenset(
    {"Managed Services", "Implementation", "CR/ER", "Perpetual License"}
)
ADDITIONAL_PAY_TYPES = frozenset({NRR_ADDITIONAL_PAY, SPIFF, DEAL_TEAM_SPIFF})
RELEASE_TYPES = frozenset({COLLECTION_RELEASE, CLAWBACK_RELEASE, YEAR_END_RELEASE})
DEDUCTION_TYPES = frozenset({CLAWBACK, CLAWBACK_RECOVERY})

# Payout types written by the clawback detector; they survive a run's
# delete-and-reinsert of calculation output.
DETECTOR_OWNED_TYPES = frozenset({CLAWBACK})


class PayoutCategory(str, Enum):
    VP = "vp"
    COMMISSION = "commission"
    ADDITIONAL_PAY = "additional_pay"
    RELEASE = "release"
    DEDUCTION = "deduction"
    UNKNOWN = "unknown"


def classify_payout_type(payout_type: str | None) -> PayoutCategory:
    """Classify a payout_type string into a reporting category."""
    if not payout_type:
        return PayoutCategory.UNKNOWN
    if payout_type in VP_TYPES:
        return PayoutCategory.VP
    if payout_type in COMMISSION_TYPES:
        return PayoutCategory.COMMISSION
    if payout_type in ADDITIONAL_PAY_TYPES:
        return PayoutCategory.ADDITIONAL_PAY
    if payout_type in RELEASE_TYPES:
        return PayoutCategory.RELEASE
    if payout_type in DEDUCTION_TYPES:
        return PayoutCategory.DEDUCTION
    return PayoutCategory.UNKNOWN


def is_vp_like_for_holdback(payout_type: str | None) -> bool:
    """VP and additional pay convert at the compensation rate."""
    return classify_payout_type(payout_type) in (
        PayoutCategory.VP, PayoutCategory.ADDITIONAL_PAY,
    )


class ExchangeRateType(str, Enum):
    COMPENSATION = "compensation"
    MARKET = "market"


class ComponentType(str, Enum):
    """Calculation component a detail row belongs to."""

    VARIABLE_PAY = "variable_pay"
    COMMISSION = "commission"
    NRR = "nrr"
    SPIFF = "spiff"


# ---------------------------------------------------------------------------
# Payout run
# ---------------------------------------------------------------------------


class PayoutRunStatus(str, Enum):
    """Payout run lifecycle states."""

    DRAFT = "draft"
    CALCULATING = "calculating"
    REVIEW = "review"
    APPROVED = "approved"
    PAID = "paid"
    LOCKED = "locked"

    @classmethod
    def lockable(cls) -> tuple[PayoutRunStatus, ...]:
        """Statuses from which a run may enter ``calculating``."""
        return (cls.DRAFT, cls.REVIEW)


@dataclass(frozen=True)
class PayoutRun:
    """A monthly payout run and its totals."""

    id: UUID
    month_year: str
    run_status: PayoutRunStatus = PayoutRunStatus.DRAFT
    is_locked: bool = False
    calculated_at: datetime | None = None
    total_payout_usd: Decimal = ZERO
    total_variable_pay_usd: Decimal = ZERO
    total_commissions_usd: Decimal = ZERO
    total_additional_pay_usd: Decimal = ZERO
    total_clawbacks_usd: Decimal = ZERO
    notes: str | None = None

    @property
    def fiscal_year(self) -> int:
        return int(self.month_year[:4])


# ---------------------------------------------------------------------------
# Run output rows
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MonthlyPayoutLine:
    """One payout line: (run, employee, payout type[, deal])."""

    id: UUID
    payout_run_id: UUID
    employee_id: UUID
    month_year: str
    payout_type: str
    amount_usd: Decimal
    amount_local: Decimal
    local_currency: str
    exchange_rate_used: Decimal
    exchange_rate_type: ExchangeRateType
    booking_usd: Decimal = ZERO
    collection_usd: Decimal = ZERO
    year_end_usd: Decimal = ZERO
    booking_local: Decimal = ZERO
    collection_local: Decimal = ZERO
    year_end_local: Decimal = ZERO
    clawback_amount_usd: Decimal = ZERO
    plan_id: UUID | None = None
    deal_id: UUID | None = None
    notes: str | None = None

    @property
    def category(self) -> PayoutCategory:
        return classify_payout_type(self.payout_type)


@dataclass(frozen=True)
class VariablePayAttribution:
    """A deal's pro-rata share of a metric's variable pay for one employee."""

    id: UUID
    payout_run_id: UUID
    deal_id: UUID
    employee_id: UUID
    metric_name: str
    fiscal_year: int
    calculation_month: str
    deal_value_usd: Decimal
    proportion_pct: Decimal
    variable_pay_split_usd: Decimal
    payout_on_booking_usd: Decimal
    payout_on_collection_usd: Decimal
    payout_on_year_end_usd: Decimal
    clawback_eligible_usd: Decimal
    total_actual_usd: Decimal = ZERO
    target_usd: Decimal = ZERO
    achievement_pct: Decimal = ZERO
    multiplier: Decimal = ZERO
    total_variable_pay_usd: Decimal = ZERO
    is_clawback_triggered: bool = False
    clawback_amount_usd: Decimal = ZERO
    plan_id: UUID | None = None


@dataclass(frozen=True)
class PayoutMetricDetail:
    """Per-metric workings: YTD eligible, prior paid, this month's delta."""

    employee_id: UUID
    component_type: ComponentType
    metric_name: str
    allocated_ote_usd: Decimal
    target_usd: Decimal
    actual_usd: Decimal
    achievement_pct: Decimal
    multiplier: Decimal
    ytd_eligible_usd: Decimal
    prior_paid_usd: Decimal
    this_month_usd: Decimal
    booking_usd: Decimal
    collection_usd: Decimal
    year_end_usd: Decimal
    notes: str | None = None


@dataclass(frozen=True)
class PayoutDealDetail:
    """Per-deal workings for commissions, NRR and SPIFF."""

    employee_id: UUID
    component_type: ComponentType
    deal_id: UUID
    project_id: str
    line_label: str
    deal_value_usd: Decimal
    gp_margin_pct: Decimal | None
    is_eligible: bool
    exclusion_reason: str | None
    payout_usd: Decimal = ZERO
    booking_usd: Decimal = ZERO
    collection_usd: Decimal = ZERO
    year_end_usd: Decimal = ZERO


@dataclass(frozen=True)
class ClosingArrDetail:
    """Audit row for one closing-ARR snapshot considered by a run."""

    employee_id: UUID
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
    exclusion_reason: str | None


# ---------------------------------------------------------------------------
# Clawback ledger
# ---------------------------------------------------------------------------


class LedgerStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    RECOVERED = "recovered"

    @property
    def rank(self) -> int:
        return {"pending": 0, "partial": 1, "recovered": 2}[self.value]


@dataclass(frozen=True)
class ClawbackLedgerEntry:
    """
    Outstanding clawback balance for one employee and deal.

    Contract:
        Mutations return a new entry; the original is untouched.
    Guarantees:
        - ``original_amount_usd == recovered_amount_usd + remaining_amount_usd``.
        - ``remaining_amount_usd >= 0``.
        - Status is monotonic.
    """

    id: UUID
    employee_id: UUID
    deal_id: UUID
    original_amount_usd: Decimal
    recovered_amount_usd: Decimal = ZERO
    remaining_amount_usd: Decimal | None = None
    status: LedgerStatus = LedgerStatus.PENDING
    triggered_month: str = ""
    deal_collection_id: UUID | None = None
    last_recovery_month: str | None = None
    triggered_run_id: UUID | None = None
    resolved_run_id: UUID | None = None
    released_amount_usd: Decimal = ZERO

    def __post_init__(self):
        if self.remaining_amount_usd is None:
            object.__setattr__(
                self,
                "remaining_amount_usd",
                self.original_amount_usd - self.recovered_amount_usd,
            )
        self.check_invariant()

    def check_invariant(self) -> None:
        if self.original_amount_usd < ZERO:
            raise LedgerInvariantError(str(self.id), "original amount is negative")
        if self.remaining_amount_usd < ZERO:
            raise LedgerInvariantError(str(self.id), "remaining amount is negative")
        if self.recovered_amount_usd + self.remaining_amount_usd != self.original_amount_usd:
            raise LedgerInvariantError(
                str(self.id),
                f"original {self.original_amount_usd} != recovered "
                f"{self.recovered_amount_usd} + remaining {self.remaining_amount_usd}",
            )

    @property
    def is_outstanding(self) -> bool:
        return self.status in (LedgerStatus.PENDING, LedgerStatus.PARTIAL)

    def _transition(self, status: LedgerStatus) -> LedgerStatus:
        if status.rank < self.status.rank:
            raise LedgerInvariantError(
                str(self.id), f"status cannot move from {self.status.value} to {status.value}",
            )
        return status

    def apply_recovery(self, amount: Decimal, month_year: str) -> ClawbackLedgerEntry:
        """Recover ``amount`` (0 < amount <= remaining) from this entry."""
        if amount <= ZERO:
            raise LedgerInvariantError(str(self.id), f"recovery amount {amount} must be positive")
        if amount > self.remaining_amount_usd:
            raise LedgerInvariantError(
                str(self.id),
                f"recovery {amount} exceeds remaining {self.remaining_amount_usd}",
            )
        recovered = self.recovered_amount_usd + amount
        remaining = self.remaining_amount_usd - amount
        status = LedgerStatus.RECOVERED if remaining == ZERO else LedgerStatus.PARTIAL
        return replace(
            self,
            recovered_amount_usd=recovered,
            remaining_amount_usd=remaining,
            status=self._transition(status),
            last_recovery_month=month_year,
        )

    def reverse_recovery(self, amount: Decimal) -> ClawbackLedgerEntry:
        """Undo a recovery recorded by a run that is being recalculated."""
        if amount <= ZERO or amount > self.recovered_amount_usd:
            raise LedgerInvariantError(
                str(self.id), f"cannot reverse recovery of {amount}",
            )
        recovered = self.recovered_amount_usd - amount
        remaining = self.remaining_amount_usd + amount
        status = LedgerStatus.PENDING if recovered == ZERO else LedgerStatus.PARTIAL
        # Only reversal may move status backwards.
        return replace(
            self,
            recovered_amount_usd=recovered,
            remaining_amount_usd=remaining,
            status=status,
        )

    def settle_on_collection(self, month_year: str, run_id: UUID) -> ClawbackLedgerEntry:
        """
        Deal collected after clawback: the outstanding balance is forgiven.

        ``released_amount_usd`` keeps what recoveries had actually deducted,
        which is the amount owed back to the employee.
        """
        return replace(
            self,
            released_amount_usd=self.recovered_amount_usd,
            recovered_amount_usd=self.original_amount_usd,
            remaining_amount_usd=ZERO,
            status=self._transition(LedgerStatus.RECOVERED),
            last_recovery_month=month_year,
            resolved_run_id=run_id,
        )


@dataclass(frozen=True)
class ClawbackRecovery:
    """Amount a run deducted from one ledger entry."""

    id: UUID
    payout_run_id: UUID
    ledger_entry_id: UUID
    employee_id: UUID
    month_year: str
    amount_usd: Decimal


@dataclass(frozen=True)
class ClawbackResult:
    total_clawbacks_usd: Decimal
    count: int


@dataclass(frozen=True)
class RecoveryResult:
    adjusted_payable_usd: Decimal
    recovered_usd: Decimal
    recoveries: tuple[ClawbackRecovery, ...] = ()
