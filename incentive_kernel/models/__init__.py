"""ORM models for the incentive payout engine."""

from incentive_kernel.models.audit import AuditAction, AuditCategory, PayoutAuditLog
from incentive_kernel.models.ledger import ClawbackLedgerModel, ClawbackRecoveryModel
from incentive_kernel.models.payout import (
    ClosingArrDetailModel,
    MonthlyPayoutModel,
    PayoutDealDetailModel,
    PayoutMetricDetailModel,
    PayoutRunModel,
    VariablePayAttributionModel,
)
from incentive_kernel.models.plan import (
    ClosingArrRenewalMultiplierModel,
    CompensationPlanModel,
    MultiplierGridModel,
    PlanAssignmentModel,
    PlanCommissionModel,
    PlanMetricModel,
    PlanSpiffModel,
)
from incentive_kernel.models.records import (
    ClosingArrSnapshotModel,
    DealCollectionModel,
    DealModel,
    EmployeeModel,
    ExchangeRateModel,
    PerformanceTargetModel,
)
from incentive_kernel.models.settlement import FnfSettlementLineModel, FnfSettlementModel


def import_all_models() -> None:
    """Import every model module so ``Base.metadata`` is complete."""
    import incentive_kernel.models.audit  # noqa: F401
    import incentive_kernel.models.ledger  # noqa: F401
    import incentive_kernel.models.payout  # noqa: F401
    import incentive_kernel.models.plan  # noqa: F401
    import incentive_kernel.models.records  # noqa: F401
    import incentive_kernel.models.settlement  # noqa: F401


__all__ = [
    "AuditAction",
    "AuditCategory",
    "PayoutAuditLog",
    "ClawbackLedgerModel",
    "ClawbackRecoveryModel",
    "ClosingArrDetailModel",
    "MonthlyPayoutModel",
    "PayoutDealDetailModel",
    "PayoutMetricDetailModel",
    "PayoutRunModel",
    "VariablePayAttributionModel",
    "ClosingArrRenewalMultiplierModel",
    "CompensationPlanModel",
    "MultiplierGridModel",
    "PlanAssignmentModel",
    "PlanCommissionModel",
    "PlanMetricModel",
    "PlanSpiffModel",
    "ClosingArrSnapshotModel",
    "DealCollectionModel",
    "DealModel",
    "EmployeeModel",
    "ExchangeRateModel",
    "PerformanceTargetModel",
    "FnfSettlementLineModel",
    "FnfSettlementModel",
    "import_all_models",
]
