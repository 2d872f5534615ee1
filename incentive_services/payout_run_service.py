"""
incentive_services.payout_run_service -- Monthly payout run orchestration.

Responsibility:
    Drive one payout run end to end: validate prerequisites, take the run
    lock, detect clawbacks, prefetch the snapshot, calculate every
    employee in bounded-parallel batches, replace the run's previous
    output, apply clawback recoveries and resolutions, write totals and
    hand the run over for review.

Architecture position:
    Services -- the only caller of ``calculate_monthly_payout`` in
    production.  Owns its sessions through an injected session factory.

Invariants enforced:
    - The lock is a compare-and-swap ``draft|review -> calculating``
      committed on its own, before any input is read.
    - All output of a calculation (deletes, inserts, ledger changes,
      totals, status ``review``) commits in one transaction.
    - Recalculating a run yields the same output: earlier recoveries are
      reversed and earlier calculation rows deleted first.  Clawback
      lines written by detection survive the delete.
    - Any failure after the lock rolls back and returns the run to
      ``draft`` in a fresh transaction before re-raising.

Failure modes:
    - PayoutRunNotFoundError: unknown run id.
    - RunValidationError: blocking prerequisite errors.
    - RunLockError: run is not in a lockable status.
    - PersistenceMismatchError: rows of the run survived the delete.
    - Any engine error (e.g. ExchangeRateNotFoundError) aborts the run.

Audit relevance:
    ``run_calculated``, ``payout_calculated`` and the exchange-rate audit
    actions are buffered and written after the commit.
"""

from __future__ import annotations

import contextvars
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from incentive_config.schema import EngineConfig
from incentive_engines.payout import EmployeePayoutResult, calculate_monthly_payout
from incentive_kernel.domain.clock import Clock, SystemClock
from incentive_kernel.domain.payouts import (
    CLAWBACK,
    DETECTOR_OWNED_TYPES,
    ExchangeRateType,
    MonthlyPayoutLine,
    PayoutCategory,
    PayoutRunStatus,
)
from incentive_kernel.domain.snapshot import PayoutSnapshot
from incentive_kernel.domain.values import ZERO, normalize_month, round_money
from incentive_kernel.exceptions import (
    PayoutRunNotFoundError,
    PersistenceMismatchError,
    RunLockError,
    RunValidationError,
)
from incentive_kernel.logging_config import LogContext, get_logger
from incentive_kernel.models.audit import AuditAction, AuditCategory
from incentive_services.audit_service import AuditEntry, AuditSink
from incentive_services.clawback_service import ClawbackService
from incentive_services.repository import PayoutRepository
from incentive_services.snapshot import build_snapshot
from incentive_services.sql_repository import SqlAlchemyPayoutRepository
from incentive_services.validation_service import RunValidationService, ValidationIssue

logger = get_logger("services.payout_run")

RepositoryFactory = Callable[[Session, UUID], PayoutRepository]


@dataclass(frozen=True)
class PayoutRunResult:
    run_id: UUID
    month_year: str
    employee_count: int
    skipped_count: int
    total_payout_usd: Decimal
    total_variable_pay_usd: Decimal
    total_commissions_usd: Decimal
    total_additional_pay_usd: Decimal
    total_clawbacks_usd: Decimal
    clawback_count: int = 0
    recovered_usd: Decimal = ZERO
    warnings: tuple[ValidationIssue, ...] = ()


def summarize_run_lines(lines: Sequence[MonthlyPayoutLine]) -> dict[str, Decimal]:
    """Run totals keyed by ``payout_runs`` column name."""
    totals = {
        "total_payout_usd": ZERO,
        "total_variable_pay_usd": ZERO,
        "total_commissions_usd": ZERO,
        "total_additional_pay_usd": ZERO,
        "total_clawbacks_usd": ZERO,
    }
    for line in lines:
        if line.payout_type == CLAWBACK:
            totals["total_clawbacks_usd"] += abs(line.amount_usd)
            continue
        totals["total_payout_usd"] += line.amount_usd
        category = line.category
        if category == PayoutCategory.VP:
            totals["total_variable_pay_usd"] += line.amount_usd
        elif category == PayoutCategory.COMMISSION:
            totals["total_commissions_usd"] += line.amount_usd
        elif category == PayoutCategory.ADDITIONAL_PAY:
            totals["total_additional_pay_usd"] += line.amount_usd
    return {key: round_money(value) for key, value in totals.items()}


class PayoutRunOrchestrator:
    """
    Runs the monthly payout calculation.

    Contract:
        ``run_payout_calculation`` either leaves the run in ``review``
        with a complete, committed output, or leaves it in ``draft`` (or
        untouched when the lock was never acquired) and raises.
    Non-goals:
        - No partial resume; a failed run is recalculated from scratch.
        - No cancellation or timeout.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: EngineConfig,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        repository_factory: RepositoryFactory | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or uuid4()
        self._repository_factory = repository_factory or SqlAlchemyPayoutRepository

    def _repository(self, session: Session) -> PayoutRepository:
        return self._repository_factory(session, self._actor_id)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run_payout_calculation(self, run_id: UUID, month_year: str) -> PayoutRunResult:
        """
        Calculate (or recalculate) the payout run ``run_id``.

        Args:
            run_id: Run to calculate; must belong to ``month_year``.
            month_year: ``YYYY-MM``.

        Returns:
            PayoutRunResult with the committed totals.
        """
        month_year = normalize_month(month_year)
        with LogContext.bind(run_id=run_id, month_year=month_year, actor_id=self._actor_id):
            logger.info("payout_run_started", extra={"month_year": month_year})
            warnings = self._validate_and_lock(run_id, month_year)

            audit = AuditSink(self._session_factory, self._clock, self._actor_id)
            session = self._session_factory()
            try:
                result = self._calculate(session, run_id, month_year, audit, warnings)
                session.commit()
            except Exception:
                session.rollback()
                audit.discard()
                logger.error(
                    "payout_run_failed",
                    extra={"month_year": month_year},
                    exc_info=True,
                )
                self._revert_to_draft(run_id)
                raise
            finally:
                session.close()

            audit.flush()
            logger.info(
                "payout_run_completed",
                extra={
                    "month_year": month_year,
                    "employee_count": result.employee_count,
                    "skipped_count": result.skipped_count,
                    "total_payout_usd": str(result.total_payout_usd),
                    "total_clawbacks_usd": str(result.total_clawbacks_usd),
                },
            )
            return result

    # -------------------------------------------------------------------------
    # Lock and revert
    # -------------------------------------------------------------------------

    def _validate_and_lock(self, run_id: UUID, month_year: str) -> tuple[ValidationIssue, ...]:
        session = self._session_factory()
        try:
            repo = self._repository(session)
            run = repo.get_run(run_id)
            if run is None:
                raise PayoutRunNotFoundError(str(run_id))
            if run.month_year != month_year:
                raise RunValidationError(
                    month_year, [f"Run {run_id} belongs to {run.month_year}"],
                )

            validation = RunValidationService(repo, self._config).validate_run_prerequisites(
                month_year,
            )
            if not validation.is_valid:
                raise RunValidationError(month_year, validation.error_messages)

            if not repo.try_lock_run(run_id):
                raise RunLockError(str(run_id), run.run_status.value)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info("payout_run_locked", extra={"month_year": month_year})
        return validation.warnings

    def _revert_to_draft(self, run_id: UUID) -> None:
        session = self._session_factory()
        try:
            self._repository(session).set_run_status(run_id, PayoutRunStatus.DRAFT)
            session.commit()
            logger.warning("payout_run_reverted_to_draft")
        except Exception:
            session.rollback()
            logger.error("payout_run_revert_failed", exc_info=True)
        finally:
            session.close()

    # -------------------------------------------------------------------------
    # Calculation
    # -------------------------------------------------------------------------

    def _calculate(
        self,
        session: Session,
        run_id: UUID,
        month_year: str,
        audit: AuditSink,
        warnings: tuple[ValidationIssue, ...],
    ) -> PayoutRunResult:
        repo = self._repository(session)
        clawbacks = ClawbackService(repo, self._clock, self._config, audit)

        clawbacks.reverse_run_recoveries(run_id)
        clawback_result = clawbacks.check_and_apply_clawbacks(run_id, month_year)

        snapshot = build_snapshot(repo, run_id, month_year)
        results = self._calculate_employees(snapshot)

        repo.delete_run_output(run_id, DETECTOR_OWNED_TYPES)
        for table, remaining in repo.count_run_output(run_id, DETECTOR_OWNED_TYPES).items():
            if remaining:
                raise PersistenceMismatchError(str(run_id), table, remaining)

        recovered = ZERO
        for result in results:
            repo.add_payout_lines(result.lines)
            repo.add_attributions(result.attributions)
            repo.add_details(
                run_id, result.metric_details, result.deal_details, result.closing_details,
            )
            recovery = clawbacks.apply_clawback_recoveries(
                result.employee_id, result.payable_usd, month_year, run_id,
            )
            recovered += recovery.recovered_usd
            clawbacks.resolve_collected_clawbacks(result.employee_id, month_year, run_id)
            audit.record_all(self._employee_audit(run_id, result, recovery.recovered_usd))

        totals = summarize_run_lines(repo.list_payout_lines(run_id=run_id))
        repo.finalize_run(run_id, self._clock.now(), totals)

        audit.record(AuditEntry(
            action=AuditAction.RUN_CALCULATED,
            category=AuditCategory.RUN_LIFECYCLE,
            entity_type="payout_run",
            entity_id=run_id,
            payout_run_id=run_id,
            month_year=month_year,
            amount_usd=totals["total_payout_usd"],
            payload={
                "employee_count": len(results),
                "skipped_count": len(snapshot.employees) - len(results),
                "clawback_count": clawback_result.count,
                **totals,
            },
        ))

        return PayoutRunResult(
            run_id=run_id,
            month_year=month_year,
            employee_count=len(results),
            skipped_count=len(snapshot.employees) - len(results),
            clawback_count=clawback_result.count,
            recovered_usd=recovered,
            warnings=warnings,
            **totals,
        )

    def _calculate_employees(self, snapshot: PayoutSnapshot) -> list[EmployeePayoutResult]:
        """Pure per-employee calculation in batches of ``batch_size``."""
        employees = snapshot.employees
        batch_size = self._config.batch_size
        results: list[EmployeePayoutResult] = []

        with ThreadPoolExecutor(
            max_workers=self._config.max_workers,
            thread_name_prefix="payout-calc",
        ) as executor:
            for start in range(0, len(employees), batch_size):
                batch = employees[start:start + batch_size]
                futures = [
                    executor.submit(
                        contextvars.copy_context().run,
                        calculate_monthly_payout,
                        employee,
                        snapshot.month_year,
                        snapshot,
                        self._config,
                    )
                    for employee in batch
                ]
                # Results are collected in employee order; the first failure aborts the run.
                batch_results = [future.result() for future in futures]
                results.extend(r for r in batch_results if r is not None)
                logger.debug(
                    "payout_batch_completed",
                    extra={
                        "batch_start": start,
                        "batch_size": len(batch),
                        "calculated": sum(1 for r in batch_results if r is not None),
                    },
                )
        return results

    def _employee_audit(
        self,
        run_id: UUID,
        result: EmployeePayoutResult,
        recovered_usd: Decimal,
    ) -> list[AuditEntry]:
        currency = next(
            (line.local_currency for line in result.lines),
            self._config.reference_currency,
        )
        entries = [
            AuditEntry(
                action=AuditAction.PAYOUT_CALCULATED,
                category=AuditCategory.CALCULATION,
                entity_type="employee",
                entity_id=result.employee_id,
                payout_run_id=run_id,
                employee_id=result.employee_id,
                month_year=result.month_year,
                amount_usd=round_money(result.total_usd),
                amount_local=round_money(sum((l.amount_local for l in result.lines), ZERO)),
                local_currency=currency,
                payload={
                    "employee_code": result.employee_code,
                    "plan_id": result.plan_id,
                    "line_count": len(result.lines),
                    "variable_pay_usd": result.variable_pay_usd,
                    "commissions_usd": result.commissions_usd,
                    "additional_pay_usd": result.additional_pay_usd,
                    "recovered_usd": recovered_usd,
                },
            ),
            AuditEntry(
                action=AuditAction.RATE_USED_COMPENSATION,
                category=AuditCategory.RATE_USAGE,
                entity_type="employee",
                entity_id=result.employee_id,
                payout_run_id=run_id,
                employee_id=result.employee_id,
                month_year=result.month_year,
                local_currency=currency,
                exchange_rate_used=result.compensation_rate,
                rate_type=ExchangeRateType.COMPENSATION.value,
            ),
        ]
        market_lines = [
            l for l in result.lines if l.exchange_rate_type == ExchangeRateType.MARKET
        ]
        if market_lines:
            entries.append(AuditEntry(
                action=AuditAction.RATE_USED_MARKET,
                category=AuditCategory.RATE_USAGE,
                entity_type="employee",
                entity_id=result.employee_id,
                payout_run_id=run_id,
                employee_id=result.employee_id,
                month_year=result.month_year,
                amount_usd=sum((l.amount_usd for l in market_lines), ZERO),
                local_currency=currency,
                exchange_rate_used=result.market_rate,
                rate_type=ExchangeRateType.MARKET.value,
            ))
        if result.has_rate_mismatch:
            entries.append(AuditEntry(
                action=AuditAction.RATE_MISMATCH,
                category=AuditCategory.RATE_USAGE,
                entity_type="employee",
                entity_id=result.employee_id,
                payout_run_id=run_id,
                employee_id=result.employee_id,
                month_year=result.month_year,
                local_currency=currency,
                payload={
                    "compensation_rate": result.compensation_rate,
                    "market_rate": result.market_rate,
                },
            ))
        return entries
