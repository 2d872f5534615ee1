"""
incentive_services.clawback_service -- Clawback detection, recovery and resolution.

Responsibility:
    Detect deals whose collection deadline has passed, claw back the
    upfront variable pay attributed to them, deduct outstanding balances
    from later payouts, and settle the ledger when a clawed-back deal is
    finally collected.

Architecture position:
    Services -- runs inside the run orchestrator's transaction.  Detection
    happens once per run, before the snapshot is taken; recovery and
    resolution happen per employee after the pure calculation.

Invariants enforced:
    - Deadline = end of booking month + clawback period, or the first
      milestone due date when that is earlier; trigger when today is past
      the deadline.
    - Clawback-exempt plans are never clawed back.
    - One ledger entry per (employee, deal).
    - Recoveries never exceed the payable amount or the remaining balance.
    - A run's recoveries are reversed before the run is recalculated.

Failure modes:
    - LedgerInvariantError from the ledger entry on any inconsistent
      mutation.
    - ExchangeRateNotFoundError when a non-USD employee has no
      compensation rate.

Audit relevance:
    Each triggered clawback records a ``clawback_applied`` audit entry.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from incentive_config.schema import EngineConfig
from incentive_kernel.domain.clock import Clock
from incentive_kernel.domain.payouts import (
    CLAWBACK,
    CLAWBACK_RECOVERY,
    CLAWBACK_RELEASE,
    ClawbackLedgerEntry,
    ClawbackRecovery,
    ClawbackResult,
    ExchangeRateType,
    MonthlyPayoutLine,
    RecoveryResult,
    VariablePayAttribution,
)
from incentive_kernel.domain.records import DealCollection, Employee
from incentive_kernel.domain.values import (
    ONE,
    ZERO,
    fiscal_year_of,
    fmt_money,
    month_end,
    normalize_month,
    round_money,
)
from incentive_kernel.exceptions import ExchangeRateNotFoundError
from incentive_kernel.logging_config import get_logger
from incentive_kernel.models.audit import AuditAction, AuditCategory
from incentive_services.audit_service import AuditEntry, AuditSink
from incentive_services.repository import PayoutRepository

logger = get_logger("services.clawback")


def compensation_rate_for(
    employee: Employee, month_year: str, reference_currency: str,
) -> Decimal:
    if employee.pays_in(reference_currency):
        return ONE
    if employee.compensation_exchange_rate is None:
        raise ExchangeRateNotFoundError(employee.local_currency, month_year)
    return employee.compensation_exchange_rate


def clawback_deadline(collection: DealCollection, period_days: int) -> date:
    """Last day on which the deal may still be collected without a clawback."""
    deadline = month_end(collection.booking_month) + timedelta(days=period_days)
    milestone = collection.first_milestone_due_date
    if milestone is not None and milestone < deadline:
        return milestone
    return deadline


def is_collected_by(collection: DealCollection | None, month_year: str) -> bool:
    return (
        collection is not None
        and collection.is_collected
        and collection.collection_month is not None
        and collection.collection_month <= month_year
    )


class ClawbackService:
    """
    Clawback ledger operations over a ``PayoutRepository``.

    The caller owns the transaction; every write is flushed only.
    """

    def __init__(
        self,
        repository: PayoutRepository,
        clock: Clock,
        config: EngineConfig,
        audit: AuditSink | None = None,
    ):
        self._repo = repository
        self._clock = clock
        self._config = config
        self._audit = audit

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def check_and_apply_clawbacks(self, run_id: UUID, month_year: str) -> ClawbackResult:
        """
        Trigger clawbacks for every uncollected deal past its deadline.

        Returns:
            ClawbackResult with the USD total clawed back and the number
            of (employee, deal) clawbacks created.
        """
        month_year = normalize_month(month_year)
        today = self._clock.today()
        plans = self._repo.list_plans()
        total = ZERO
        count = 0

        for collection in self._repo.list_open_collections():
            attributions = [
                a for a in self._repo.latest_attributions(
                    fiscal_year_of(collection.booking_month),
                    before_month=month_year,
                    deal_id=collection.deal_id,
                )
                if not a.is_clawback_triggered
            ]
            eligible = [
                a for a in attributions
                if a.plan_id is None
                or a.plan_id not in plans
                or not plans[a.plan_id].is_clawback_exempt
            ]
            if not eligible:
                continue

            periods = [
                plans[a.plan_id].clawback_period_days
                for a in eligible
                if a.plan_id is not None and a.plan_id in plans
            ]
            period = min(periods) if periods else self._config.default_clawback_period_days
            deadline = clawback_deadline(collection, period)
            if today <= deadline:
                continue

            by_employee: dict[UUID, list[VariablePayAttribution]] = defaultdict(list)
            for attribution in eligible:
                by_employee[attribution.employee_id].append(attribution)

            deal_total = ZERO
            for employee_id, rows in by_employee.items():
                amount = round_money(sum((a.clawback_eligible_usd for a in rows), ZERO))
                if amount <= ZERO:
                    continue
                if self._repo.get_ledger_entry(employee_id, collection.deal_id) is not None:
                    continue
                self._apply_clawback(run_id, month_year, collection, employee_id, rows, amount)
                deal_total += amount
                count += 1

            if deal_total > ZERO:
                self._repo.mark_collection_clawed_back(collection.id, deal_total)
                total += deal_total
                logger.warning(
                    "clawback_triggered",
                    extra={
                        "deal_id": str(collection.deal_id),
                        "project_id": collection.project_id,
                        "deadline": deadline.isoformat(),
                        "today": today.isoformat(),
                        "period_days": period,
                        "amount_usd": str(deal_total),
                    },
                )

        logger.info(
            "clawback_check_completed",
            extra={
                "run_id": str(run_id),
                "month_year": month_year,
                "clawback_count": count,
                "total_clawbacks_usd": str(total),
            },
        )
        return ClawbackResult(total_clawbacks_usd=total, count=count)

    def _apply_clawback(
        self,
        run_id: UUID,
        month_year: str,
        collection: DealCollection,
        employee_id: UUID,
        attributions: list[VariablePayAttribution],
        amount: Decimal,
    ) -> None:
        employee = self._repo.get_employee(employee_id)
        if employee is None:
            logger.error(
                "clawback_employee_missing",
                extra={"employee_id": str(employee_id), "deal_id": str(collection.deal_id)},
            )
            return
        rate = compensation_rate_for(employee, month_year, self._config.reference_currency)
        line = MonthlyPayoutLine(
            id=uuid4(),
            payout_run_id=run_id,
            employee_id=employee_id,
            month_year=month_year,
            payout_type=CLAWBACK,
            amount_usd=-amount,
            amount_local=round_money(-amount * rate),
            local_currency=employee.local_currency,
            exchange_rate_used=rate,
            exchange_rate_type=ExchangeRateType.COMPENSATION,
            clawback_amount_usd=amount,
            plan_id=attributions[0].plan_id,
            deal_id=collection.deal_id,
            notes=f"Clawback for deal {collection.project_id} - {collection.customer_name}",
        )
        self._repo.add_payout_lines([line])
        self._repo.add_ledger_entry(ClawbackLedgerEntry(
            id=uuid4(),
            employee_id=employee_id,
            deal_id=collection.deal_id,
            original_amount_usd=amount,
            triggered_month=month_year,
            deal_collection_id=collection.id,
            triggered_run_id=run_id,
        ))
        self._repo.mark_attributions_clawed_back([a.id for a in attributions], amount)

        if self._audit is not None:
            self._audit.record(AuditEntry(
                action=AuditAction.CLAWBACK_APPLIED,
                category=AuditCategory.ADJUSTMENT,
                entity_type="deal",
                entity_id=collection.deal_id,
                payout_run_id=run_id,
                employee_id=employee_id,
                month_year=month_year,
                amount_usd=amount,
                amount_local=line.amount_local,
                local_currency=employee.local_currency,
                exchange_rate_used=rate,
                rate_type=ExchangeRateType.COMPENSATION.value,
                payload={"project_id": collection.project_id},
            ))

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def reverse_run_recoveries(self, run_id: UUID) -> int:
        """Undo every recovery a run recorded; returns how many were reversed."""
        recoveries = self._repo.list_recoveries(run_id)
        by_employee: dict[UUID, list[ClawbackRecovery]] = defaultdict(list)
        for recovery in recoveries:
            by_employee[recovery.employee_id].append(recovery)

        for employee_id, items in by_employee.items():
            entries = {e.id: e for e in self._repo.list_ledger_entries(employee_id)}
            for recovery in items:
                entry = entries.get(recovery.ledger_entry_id)
                if entry is None:
                    continue
                entry = entry.reverse_recovery(recovery.amount_usd)
                entries[entry.id] = entry
                self._repo.update_ledger_entry(entry)

        deleted = self._repo.delete_recoveries(run_id)
        if deleted:
            logger.info(
                "run_recoveries_reversed",
                extra={"run_id": str(run_id), "recovery_count": deleted},
            )
        return deleted

    def apply_clawback_recoveries(
        self,
        employee_id: UUID,
        payable_usd: Decimal,
        month_year: str,
        run_id: UUID,
    ) -> RecoveryResult:
        """
        Deduct outstanding clawback balances from this month's payable.

        Entries are consumed oldest first.  Entries whose deal has since
        been collected are left for ``resolve_collected_clawbacks``.

        Args:
            payable_usd: Amount payable at booking this month.

        Returns:
            RecoveryResult with the payable after deductions.
        """
        month_year = normalize_month(month_year)
        remaining_payable = max(payable_usd, ZERO)
        if remaining_payable <= ZERO:
            return RecoveryResult(adjusted_payable_usd=remaining_payable, recovered_usd=ZERO)

        entries = self._repo.list_ledger_entries(employee_id, outstanding_only=True)
        if not entries:
            return RecoveryResult(adjusted_payable_usd=remaining_payable, recovered_usd=ZERO)

        collections = self._repo.list_collections([e.deal_id for e in entries])
        employee = self._repo.get_employee(employee_id)
        rate = ONE
        if employee is not None:
            rate = compensation_rate_for(employee, month_year, self._config.reference_currency)
        currency = employee.local_currency if employee is not None else self._config.reference_currency

        recovered_total = ZERO
        recoveries: list[ClawbackRecovery] = []
        lines: list[MonthlyPayoutLine] = []
        for entry in entries:
            if remaining_payable <= ZERO:
                break
            if is_collected_by(collections.get(entry.deal_id), month_year):
                continue
            amount = min(remaining_payable, entry.remaining_amount_usd)
            if amount <= ZERO:
                continue
            updated = entry.apply_recovery(amount, month_year)
            self._repo.update_ledger_entry(updated)
            recovery = ClawbackRecovery(
                id=uuid4(),
                payout_run_id=run_id,
                ledger_entry_id=entry.id,
                employee_id=employee_id,
                month_year=month_year,
                amount_usd=amount,
            )
            self._repo.add_recovery(recovery)
            recoveries.append(recovery)
            collection = collections.get(entry.deal_id)
            label = collection.project_id if collection is not None else str(entry.deal_id)
            lines.append(MonthlyPayoutLine(
                id=uuid4(),
                payout_run_id=run_id,
                employee_id=employee_id,
                month_year=month_year,
                payout_type=CLAWBACK_RECOVERY,
                amount_usd=-amount,
                amount_local=round_money(-amount * rate),
                local_currency=currency,
                exchange_rate_used=rate,
                exchange_rate_type=ExchangeRateType.COMPENSATION,
                booking_usd=-amount,
                booking_local=round_money(-amount * rate),
                deal_id=entry.deal_id,
                notes=(
                    f"Clawback recovery for deal {label}: {fmt_money(amount)} "
                    f"of {fmt_money(entry.remaining_amount_usd)} outstanding"
                ),
            ))
            remaining_payable -= amount
            recovered_total += amount

        if lines:
            self._repo.add_payout_lines(lines)
            logger.info(
                "clawback_recovered",
                extra={
                    "employee_id": str(employee_id),
                    "month_year": month_year,
                    "recovered_usd": str(recovered_total),
                    "entry_count": len(recoveries),
                },
            )
        return RecoveryResult(
            adjusted_payable_usd=remaining_payable,
            recovered_usd=recovered_total,
            recoveries=tuple(recoveries),
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_collected_clawbacks(
        self, employee_id: UUID, month_year: str, run_id: UUID,
    ) -> tuple[MonthlyPayoutLine, ...]:
        """
        Release clawed-back amounts for deals collected by ``month_year``.

        The ledger entry is settled and a ``Clawback Release`` line repays
        what recoveries had already deducted.  Entries with nothing
        recovered are settled without a line.  Entries already settled by
        ``run_id`` only get their release line re-emitted.
        """
        month_year = normalize_month(month_year)
        entries = [
            e for e in self._repo.list_ledger_entries(employee_id)
            if e.resolved_run_id is None or e.resolved_run_id == run_id
        ]
        if not entries:
            return ()

        collections = self._repo.list_collections([e.deal_id for e in entries])
        employee = self._repo.get_employee(employee_id)
        rate = ONE
        if employee is not None:
            rate = compensation_rate_for(employee, month_year, self._config.reference_currency)
        currency = employee.local_currency if employee is not None else self._config.reference_currency

        lines: list[MonthlyPayoutLine] = []
        for entry in entries:
            collection = collections.get(entry.deal_id)
            if not is_collected_by(collection, month_year):
                continue
            if entry.resolved_run_id is None:
                entry = entry.settle_on_collection(month_year, run_id)
                self._repo.update_ledger_entry(entry)
            amount = entry.released_amount_usd
            if amount <= ZERO:
                continue
            lines.append(MonthlyPayoutLine(
                id=uuid4(),
                payout_run_id=run_id,
                employee_id=employee_id,
                month_year=month_year,
                payout_type=CLAWBACK_RELEASE,
                amount_usd=amount,
                amount_local=round_money(amount * rate),
                local_currency=currency,
                exchange_rate_used=rate,
                exchange_rate_type=ExchangeRateType.COMPENSATION,
                booking_usd=amount,
                booking_local=round_money(amount * rate),
                deal_id=entry.deal_id,
                notes=f"Clawback reversed - deal {collection.project_id} collected",
            ))

        if lines:
            self._repo.add_payout_lines(lines)
            logger.info(
                "clawbacks_resolved_on_collection",
                extra={
                    "employee_id": str(employee_id),
                    "month_year": month_year,
                    "resolved_count": len(lines),
                    "released_usd": str(sum((l.amount_usd for l in lines), ZERO)),
                },
            )
        return tuple(lines)
