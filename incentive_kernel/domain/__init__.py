"""
Pure domain layer.

Frozen data transfer objects and value helpers with NO dependencies on
the ORM, the database, the wall clock or any I/O.  Everything here is
immutable and deterministic.
"""

from incentive_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from incentive_kernel.domain.payouts import (
    ClawbackLedgerEntry,
    ClawbackRecovery,
    ClawbackResult,
    ClosingArrDetail,
    ComponentType,
    ExchangeRateType,
    LedgerStatus,
    MonthlyPayoutLine,
    PayoutCategory,
    PayoutDealDetail,
    PayoutMetricDetail,
    PayoutRun,
    PayoutRunStatus,
    RecoveryResult,
    VariablePayAttribution,
    classify_payout_type,
)
from incentive_kernel.domain.plans import (
    CommissionRule,
    CommissionType,
    CompensationPlan,
    LogicType,
    MultiplierTier,
    PayoutSplit,
    PlanAssignment,
    PlanMetric,
    RenewalMultiplierTier,
    SpiffRule,
)
from incentive_kernel.domain.records import (
    ClosingArrSnapshot,
    Deal,
    DealCollection,
    Employee,
    ExchangeRate,
    MetricType,
    ParticipantRole,
    PerformanceTarget,
)
from incentive_kernel.domain.settlement import (
    FnfLineType,
    FnfSettlement,
    FnfSettlementLine,
    TrancheResult,
    TrancheStatus,
)
from incentive_kernel.domain.snapshot import HoldbackItem, PayoutSnapshot

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "ClawbackLedgerEntry",
    "ClawbackRecovery",
    "ClawbackResult",
    "ClosingArrDetail",
    "ComponentType",
    "ExchangeRateType",
    "LedgerStatus",
    "MonthlyPayoutLine",
    "PayoutCategory",
    "PayoutDealDetail",
    "PayoutMetricDetail",
    "PayoutRun",
    "PayoutRunStatus",
    "RecoveryResult",
    "VariablePayAttribution",
    "classify_payout_type",
    "CommissionRule",
    "CommissionType",
    "CompensationPlan",
    "LogicType",
    "MultiplierTier",
    "PayoutSplit",
    "PlanAssignment",
    "PlanMetric",
    "RenewalMultiplierTier",
    "SpiffRule",
    "ClosingArrSnapshot",
    "Deal",
    "DealCollection",
    "Employee",
    "ExchangeRate",
    "MetricType",
    "ParticipantRole",
    "PerformanceTarget",
    "HoldbackItem",
    "PayoutSnapshot",
    "FnfLineType",
    "FnfSettlement",
    "FnfSettlementLine",
    "TrancheResult",
    "TrancheStatus",
]
