"""
Tests for the typed exception hierarchy.

Covers:
- Every exception carries a machine-readable code
- Structured fields and hierarchy membership
"""

import pytest

from incentive_kernel.exceptions import (
    ClawbackError,
    ConfigurationError,
    CurrencyError,
    ExchangeRateNotFoundError,
    IncentiveKernelError,
    InvalidMultiplierGridError,
    InvalidSplitError,
    LedgerInvariantError,
    PayoutRunNotFoundError,
    PersistenceMismatchError,
    PlanError,
    RunError,
    RunLockError,
    RunValidationError,
    SettlementEmployeeMismatchError,
    SettlementError,
    SettlementNotFoundError,
    TrancheOrderError,
)

CASES = [
    (ConfigurationError("batch_size", "must be at least 1"), "INVALID_CONFIGURATION", IncentiveKernelError),
    (InvalidMultiplierGridError("ARR", "overlap"), "INVALID_MULTIPLIER_GRID", PlanError),
    (InvalidSplitError("plan", "105"), "INVALID_SPLIT", PlanError),
    (PayoutRunNotFoundError("r1"), "PAYOUT_RUN_NOT_FOUND", RunError),
    (RunLockError("r1", "paid"), "RUN_LOCK_NOT_ACQUIRED", RunError),
    (RunValidationError("2026-03", ["no employees"]), "RUN_VALIDATION_FAILED", RunError),
    (PersistenceMismatchError("r1", "monthly_payouts", 2), "PERSISTENCE_MISMATCH", RunError),
    (ExchangeRateNotFoundError("INR", "2026-03"), "EXCHANGE_RATE_NOT_FOUND", CurrencyError),
    (LedgerInvariantError("e1", "negative"), "LEDGER_INVARIANT_VIOLATION", ClawbackError),
    (SettlementNotFoundError("s1"), "SETTLEMENT_NOT_FOUND", SettlementError),
    (TrancheOrderError("s1", "draft"), "TRANCHE_ORDER_VIOLATION", SettlementError),
    (SettlementEmployeeMismatchError("s1", "e1"), "SETTLEMENT_EMPLOYEE_MISMATCH", SettlementError),
]


class TestExceptionCodes:
    """Every exception exposes a stable code."""

    @pytest.mark.parametrize("exc,code,parent", CASES, ids=[c[1] for c in CASES])
    def test_code_and_parent(self, exc, code, parent):
        assert exc.code == code
        assert isinstance(exc, parent)
        assert isinstance(exc, IncentiveKernelError)

    def test_structured_fields(self):
        exc = RunValidationError("2026-03", ["no employees", "no plans"])

        assert exc.month_year == "2026-03"
        assert exc.errors == ["no employees", "no plans"]
        assert "no employees; no plans" in str(exc)

    def test_persistence_mismatch_message(self):
        exc = PersistenceMismatchError("r1", "monthly_payouts", 2)

        assert str(exc) == "2 row(s) in monthly_payouts remain for run r1 after delete"
