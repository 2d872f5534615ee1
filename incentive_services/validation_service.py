"""
incentive_services.validation_service -- Pre-run checks for a payout month.

Responsibility:
    Decide whether a payout run for a month may start.  Blocking problems
    are returned as errors; conditions that only cause an employee to be
    skipped are returned as warnings.

Architecture position:
    Services -- read-only.  Called by ``PayoutRunOrchestrator`` before the
    run lock is taken, and usable on its own for a pre-flight check.

Invariants enforced:
    - Never raises for a data problem; the orchestrator turns
      ``is_valid=False`` into ``RunValidationError``.
    - ``no_employees`` short-circuits: nothing else is checked.
"""

from __future__ import annotations

from dataclasses import dataclass

from incentive_config.schema import EngineConfig
from incentive_engines.proration import assignment_for_month
from incentive_kernel.domain.payouts import PayoutRunStatus
from incentive_kernel.domain.values import fiscal_year_of, normalize_month
from incentive_kernel.logging_config import get_logger
from incentive_services.repository import PayoutRepository

logger = get_logger("services.validation")


@dataclass(frozen=True)
class ValidationIssue:
    issue_type: str
    message: str


@dataclass(frozen=True)
class RunValidation:
    is_valid: bool
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()

    @property
    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.errors]


class RunValidationService:
    """Prerequisite checks over the repository."""

    def __init__(self, repository: PayoutRepository, config: EngineConfig):
        self._repo = repository
        self._config = config

    def validate_run_prerequisites(self, month_year: str) -> RunValidation:
        month_year = normalize_month(month_year)
        reference = self._config.reference_currency.upper()
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        run = self._repo.get_run_for_month(month_year)
        if run is not None and (run.is_locked or run.run_status == PayoutRunStatus.LOCKED):
            errors.append(ValidationIssue(
                "month_locked",
                f"Payout run for {month_year} is locked and cannot be recalculated",
            ))

        employees = self._repo.list_active_employees()
        if not employees:
            errors.append(ValidationIssue("no_employees", "No active employees found"))
            return self._finish(month_year, errors, warnings)

        foreign = [e for e in employees if e.local_currency.upper() != reference]

        missing_rate = [e for e in foreign if e.compensation_exchange_rate is None]
        for employee in missing_rate:
            errors.append(ValidationIssue(
                "missing_compensation_rate",
                f"Employee {employee.employee_code} ({employee.local_currency}) "
                f"has no compensation exchange rate",
            ))

        market_rates = self._repo.get_market_rates(month_year)
        for currency in sorted({e.local_currency.upper() for e in foreign}):
            if currency not in market_rates:
                errors.append(ValidationIssue(
                    "missing_market_rate",
                    f"No market exchange rate for {currency} in {month_year}",
                ))

        assignments = self._repo.list_assignments(fiscal_year_of(month_year))
        unassigned = [
            e for e in employees
            if assignment_for_month(assignments.get(e.id, ()), month_year) is None
        ]
        if unassigned:
            warnings.append(ValidationIssue(
                "missing_plan_assignment",
                f"{len(unassigned)} employee(s) without plan assignments will be skipped",
            ))

        return self._finish(month_year, errors, warnings)

    def _finish(
        self,
        month_year: str,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> RunValidation:
        result = RunValidation(
            is_valid=not errors,
            errors=tuple(errors),
            warnings=tuple(warnings),
        )
        log = logger.info if result.is_valid else logger.warning
        log(
            "run_prerequisites_validated",
            extra={
                "month_year": month_year,
                "is_valid": result.is_valid,
                "error_types": sorted({i.issue_type for i in errors}),
                "warning_types": sorted({i.issue_type for i in warnings}),
            },
        )
        return result
