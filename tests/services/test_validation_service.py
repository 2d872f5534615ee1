"""
Tests for RunValidationService.

Covers:
- No active employees short-circuits
- Locked month
- Missing compensation and market rates block the run
- Missing plan assignments only warn
"""

from decimal import Decimal

from incentive_kernel.domain.payouts import PayoutRunStatus
from incentive_services.validation_service import RunValidationService
from tests.builders import assignment, employee, plan


def _issue_types(issues) -> set[str]:
    return {issue.issue_type for issue in issues}


class TestRunValidation:
    """Tests for validate_run_prerequisites."""

    def test_no_employees(self, repo, config):
        result = RunValidationService(repo, config).validate_run_prerequisites("2026-03")

        assert not result.is_valid
        assert result.error_messages == ["No active employees found"]

    def test_ready_month(self, repo, config, seed):
        emp = seed.employee(employee())
        p = seed.plan(plan())
        seed.assignment(assignment(emp.id, p.id))

        result = RunValidationService(repo, config).validate_run_prerequisites("2026-03")

        assert result.is_valid
        assert result.errors == ()
        assert result.warnings == ()

    def test_locked_month(self, repo, config, seed):
        seed.employee(employee())
        seed.run("2026-03", status=PayoutRunStatus.LOCKED, is_locked=True)

        result = RunValidationService(repo, config).validate_run_prerequisites("2026-03")

        assert not result.is_valid
        assert "month_locked" in _issue_types(result.errors)

    def test_missing_rates(self, repo, config, seed):
        seed.employee(employee("E010", local_currency="INR"))
        seed.employee(employee(
            "E011", local_currency="EUR", compensation_exchange_rate=Decimal("0.92"),
        ))
        seed.market_rate("EUR", "2026-03", "0.93")

        result = RunValidationService(repo, config).validate_run_prerequisites("2026-03")

        assert not result.is_valid
        assert _issue_types(result.errors) == {"missing_compensation_rate", "missing_market_rate"}
        assert any("INR in 2026-03" in m for m in result.error_messages)
        assert not any("EUR" in m for m in result.error_messages)

    def test_unassigned_employee_is_a_warning(self, repo, config, seed):
        seed.employee(employee())

        result = RunValidationService(repo, config).validate_run_prerequisites("2026-03")

        assert result.is_valid
        [warning] = result.warnings
        assert warning.issue_type == "missing_plan_assignment"
        assert warning.message.startswith("1 employee(s)")

    def test_inactive_employees_ignored(self, repo, config, seed):
        seed.employee(employee(is_active=False))

        result = RunValidationService(repo, config).validate_run_prerequisites("2026-03")

        assert _issue_types(result.errors) == {"no_employees"}
