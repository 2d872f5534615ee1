"""
Module: incentive_services
Responsibility:
    Stateful services of the payout engine: the repository boundary, the
    run snapshot, audit buffering, prerequisite validation, the clawback
    ledger, the run orchestrator and F&F settlement.

Architecture position:
    Services -- outermost layer.  May import ``incentive_kernel``,
    ``incentive_config`` and ``incentive_engines``.  Nothing imports this
    package except tests and callers of the engine.
"""

from incentive_services.audit_service import AuditEntry, AuditSink
from incentive_services.clawback_service import (
    ClawbackService,
    clawback_deadline,
    compensation_rate_for,
)
from incentive_services.payout_run_service import (
    PayoutRunOrchestrator,
    PayoutRunResult,
    summarize_run_lines,
)
from incentive_services.repository import PayoutRepository
from incentive_services.settlement_service import FnfSettlementService, build_entitlements
from incentive_services.snapshot import build_snapshot, collect_holdbacks, released_pairs
from incentive_services.sql_repository import SqlAlchemyPayoutRepository
from incentive_services.validation_service import (
    RunValidation,
    RunValidationService,
    ValidationIssue,
)

__all__ = [
    "AuditEntry",
    "AuditSink",
    "ClawbackService",
    "clawback_deadline",
    "compensation_rate_for",
    "PayoutRunOrchestrator",
    "PayoutRunResult",
    "summarize_run_lines",
    "PayoutRepository",
    "FnfSettlementService",
    "build_entitlements",
    "build_snapshot",
    "collect_holdbacks",
    "released_pairs",
    "SqlAlchemyPayoutRepository",
    "RunValidation",
    "RunValidationService",
    "ValidationIssue",
]
