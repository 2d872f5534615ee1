"""
Typed Exception Hierarchy for the Incentive Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Payout calculation failures have very different consequences: a locked month
must stop a run before it starts, a missing plan assignment only skips one
employee, and a persistence failure must revert the whole run.  Callers can
only make those distinctions reliably when:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        orchestrator.run_payout_calculation(run_id, "2026-03")
    except RunLockError as e:
        api_response(code=e.code, run=e.run_id, status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    IncentiveKernelError (base)
    |
    +-- ConfigurationError
    |
    +-- PlanError
    |   +-- InvalidMultiplierGridError
    |   +-- InvalidSplitError
    |
    +-- RunError
    |   +-- PayoutRunNotFoundError
    |   +-- RunLockError
    |   +-- RunValidationError
    |   +-- PersistenceMismatchError
    |
    +-- CurrencyError
    |   +-- ExchangeRateNotFoundError
    |
    +-- ClawbackError
    |   +-- LedgerInvariantError
    |
    +-- SettlementError
        +-- SettlementNotFoundError
        +-- SettlementEmployeeMismatchError
        +-- TrancheOrderError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                        | When Raised
-------------|-----------------------------|----------------------------------------
Config       | INVALID_CONFIGURATION       | Engine config value out of range
-------------|-----------------------------|----------------------------------------
Plan         | INVALID_MULTIPLIER_GRID     | Tiers overlap or are not ascending
             | INVALID_SPLIT               | Booking/collection/year-end != 100
-------------|-----------------------------|----------------------------------------
Run          | PAYOUT_RUN_NOT_FOUND        | Run id does not exist
             | RUN_LOCK_NOT_ACQUIRED       | Run status not draft/review (CAS lost)
             | RUN_VALIDATION_FAILED       | Blocking prerequisite errors
             | PERSISTENCE_MISMATCH        | Rows left behind after delete
-------------|-----------------------------|----------------------------------------
Currency     | EXCHANGE_RATE_NOT_FOUND     | No market rate for currency/month
-------------|-----------------------------|----------------------------------------
Clawback     | LEDGER_INVARIANT_VIOLATION  | original != recovered + remaining
-------------|-----------------------------|----------------------------------------
Settlement   | SETTLEMENT_NOT_FOUND        | Settlement id does not exist
             | SETTLEMENT_EMPLOYEE_MISMATCH| Settlement belongs to another employee
             | TRANCHE_ORDER_VIOLATION     | Tranche 2 before tranche 1
"""


class IncentiveKernelError(Exception):
    """
    Base exception for all incentive kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INCENTIVE_KERNEL_ERROR"


# Configuration


class ConfigurationError(IncentiveKernelError):
    """Engine configuration is invalid."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid configuration for {field_name}: {reason}")


# Plan configuration


class PlanError(IncentiveKernelError):
    """Base exception for compensation plan configuration errors."""

    code: str = "PLAN_ERROR"


class InvalidMultiplierGridError(PlanError):
    """Multiplier tiers overlap, are unsorted, or have min >= max."""

    code: str = "INVALID_MULTIPLIER_GRID"

    def __init__(self, metric_name: str, reason: str):
        self.metric_name = metric_name
        self.reason = reason
        super().__init__(f"Invalid multiplier grid for {metric_name}: {reason}")


class InvalidSplitError(PlanError):
    """Booking/collection/year-end percentages do not sum to 100."""

    code: str = "INVALID_SPLIT"

    def __init__(self, owner: str, total: str):
        self.owner = owner
        self.total = total
        super().__init__(
            f"Payout split for {owner} must sum to 100, got {total}"
        )


# Payout runs


class RunError(IncentiveKernelError):
    """Base exception for payout run errors."""

    code: str = "RUN_ERROR"


class PayoutRunNotFoundError(RunError):
    """Payout run with given ID was not found."""

    code: str = "PAYOUT_RUN_NOT_FOUND"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Payout run not found: {run_id}")


class RunLockError(RunError):
    """Compare-and-swap on the run status did not succeed."""

    code: str = "RUN_LOCK_NOT_ACQUIRED"

    def __init__(self, run_id: str, current_status: str | None):
        self.run_id = run_id
        self.current_status = current_status
        super().__init__(
            f"Could not lock payout run {run_id}: status is {current_status!r}, "
            "expected 'draft' or 'review'"
        )


class RunValidationError(RunError):
    """Blocking prerequisite errors prevent the run from starting."""

    code: str = "RUN_VALIDATION_FAILED"

    def __init__(self, month_year: str, errors: list[str]):
        self.month_year = month_year
        self.errors = errors
        super().__init__(
            f"Payout run for {month_year} failed validation: {'; '.join(errors)}"
        )


class PersistenceMismatchError(RunError):
    """Rows for the run survived the delete step of delete-and-reinsert."""

    code: str = "PERSISTENCE_MISMATCH"

    def __init__(self, run_id: str, table: str, remaining: int):
        self.run_id = run_id
        self.table = table
        self.remaining = remaining
        super().__init__(
            f"{remaining} row(s) in {table} remain for run {run_id} after delete"
        )


# Currency


class CurrencyError(IncentiveKernelError):
    """Base exception for currency errors."""

    code: str = "CURRENCY_ERROR"


class ExchangeRateNotFoundError(CurrencyError):
    """No market exchange rate for a currency in a month."""

    code: str = "EXCHANGE_RATE_NOT_FOUND"

    def __init__(self, currency: str, month_year: str):
        self.currency = currency
        self.month_year = month_year
        super().__init__(f"No exchange rate for {currency} in {month_year}")


# Clawbacks


class ClawbackError(IncentiveKernelError):
    """Base exception for clawback ledger errors."""

    code: str = "CLAWBACK_ERROR"


class LedgerInvariantError(ClawbackError):
    """A ledger mutation would break original = recovered + remaining."""

    code: str = "LEDGER_INVARIANT_VIOLATION"

    def __init__(self, entry_id: str, reason: str):
        self.entry_id = entry_id
        self.reason = reason
        super().__init__(f"Clawback ledger entry {entry_id}: {reason}")


# Full & final settlement


class SettlementError(IncentiveKernelError):
    """Base exception for full & final settlement errors."""

    code: str = "SETTLEMENT_ERROR"


class SettlementNotFoundError(SettlementError):
    """Settlement with given ID was not found."""

    code: str = "SETTLEMENT_NOT_FOUND"

    def __init__(self, settlement_id: str):
        self.settlement_id = settlement_id
        super().__init__(f"F&F settlement not found: {settlement_id}")


class TrancheOrderError(SettlementError):
    """Tranche 2 requested before tranche 1 was calculated."""

    code: str = "TRANCHE_ORDER_VIOLATION"

    def __init__(self, settlement_id: str, tranche1_status: str):
        self.settlement_id = settlement_id
        self.tranche1_status = tranche1_status
        super().__init__(
            f"Settlement {settlement_id}: tranche 1 is {tranche1_status!r}, "
            "calculate it before tranche 2"
        )


class SettlementEmployeeMismatchError(SettlementError):
    """Settlement requested for an employee it does not belong to."""

    code: str = "SETTLEMENT_EMPLOYEE_MISMATCH"

    def __init__(self, settlement_id: str, employee_id: str):
        self.settlement_id = settlement_id
        self.employee_id = employee_id
        super().__init__(
            f"Settlement {settlement_id} does not belong to employee {employee_id}"
        )
