"""
incentive_services.settlement_service -- Full & Final settlement of a departed employee.

Responsibility:
    Gather the inputs of each F&F tranche (payout lines of the fiscal
    year, YTD entitlements, outstanding clawbacks, collection holdbacks),
    run the tranche math of ``incentive_engines.settlement`` and persist
    the resulting lines and header totals.

Architecture position:
    Services -- works inside the caller's transaction through a
    ``PayoutRepository``.  The caller commits and then flushes the audit
    sink.

Invariants enforced:
    - A tranche's lines are cleared before it is recalculated.
    - Tranche 2 requires tranche 1 to have been calculated; its
      carry-forward is read from the settlement header.
    - Holdbacks already released by a payout run are not settled again.

Failure modes:
    - SettlementNotFoundError, SettlementEmployeeMismatchError,
      TrancheOrderError.
    - ExchangeRateNotFoundError when a non-USD employee has no
      compensation rate.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from incentive_config.schema import EngineConfig
from incentive_engines.settlement import (
    ComponentEntitlement,
    calculate_tranche1_lines,
    calculate_tranche2_lines,
)
from incentive_kernel.domain.payouts import (
    NRR_ADDITIONAL_PAY,
    SPIFF,
    VARIABLE_PAY,
    ComponentType,
    MonthlyPayoutLine,
    PayoutMetricDetail,
)
from incentive_kernel.domain.records import Employee
from incentive_kernel.domain.settlement import (
    FnfLineType,
    FnfSettlement,
    TrancheResult,
    TrancheStatus,
)
from incentive_kernel.domain.values import ONE, ZERO, month_of
from incentive_kernel.exceptions import (
    SettlementEmployeeMismatchError,
    SettlementNotFoundError,
    TrancheOrderError,
)
from incentive_kernel.logging_config import LogContext, get_logger
from incentive_kernel.models.audit import AuditAction, AuditCategory
from incentive_services.audit_service import AuditEntry, AuditSink
from incentive_services.clawback_service import compensation_rate_for
from incentive_services.repository import PayoutRepository
from incentive_services.snapshot import collect_holdbacks, released_pairs

logger = get_logger("services.settlement")

# (line type, component, payout type) of each pro-rated settlement line.
_SETTLED_COMPONENTS = (
    (FnfLineType.VP_SETTLEMENT, ComponentType.VARIABLE_PAY, VARIABLE_PAY),
    (FnfLineType.NRR_SETTLEMENT, ComponentType.NRR, NRR_ADDITIONAL_PAY),
    (FnfLineType.SPIFF_SETTLEMENT, ComponentType.SPIFF, SPIFF),
)


def build_entitlements(
    details: list[PayoutMetricDetail],
    payout_lines: list[MonthlyPayoutLine],
) -> list[ComponentEntitlement]:
    """YTD entitlement per component from the latest run's metric details."""
    entitlements = []
    for line_type, component, payout_type in _SETTLED_COMPONENTS:
        rows = [d for d in details if d.component_type == component]
        if not rows:
            continue
        entitlements.append(ComponentEntitlement(
            line_type=line_type,
            payout_type=payout_type,
            ytd_entitlement_usd=sum((d.ytd_eligible_usd for d in rows), ZERO),
            prior_paid_usd=sum(
                (l.amount_usd for l in payout_lines if l.payout_type == payout_type),
                ZERO,
            ),
        ))
    return entitlements


class FnfSettlementService:
    """
    Calculates the two F&F tranches.

    Contract:
        Each call recomputes one tranche from scratch and returns the
        ``TrancheResult`` it persisted.
    """

    def __init__(
        self,
        repository: PayoutRepository,
        config: EngineConfig,
        audit: AuditSink | None = None,
    ):
        self._repo = repository
        self._config = config
        self._audit = audit

    def _require(self, settlement_id: UUID) -> FnfSettlement:
        settlement = self._repo.get_settlement(settlement_id)
        if settlement is None:
            raise SettlementNotFoundError(str(settlement_id))
        return settlement

    def _currency(self, employee: Employee | None, on: date) -> tuple[Decimal, str]:
        if employee is None:
            return ONE, self._config.reference_currency
        rate = compensation_rate_for(employee, month_of(on), self._config.reference_currency)
        return rate, employee.local_currency

    # ------------------------------------------------------------------
    # Tranche 1
    # ------------------------------------------------------------------

    def calculate_tranche1(
        self,
        settlement_id: UUID,
        employee_id: UUID,
        fiscal_year: int,
        departure_date: date,
    ) -> TrancheResult:
        """
        Year-end releases, pro-rated entitlements and clawback deductions.

        Args:
            departure_date: Last working day; sets the pro-ration factor.

        Returns:
            TrancheResult; a shortfall is stored as the header's
            ``clawback_carryforward_usd``.
        """
        settlement = self._require(settlement_id)
        if settlement.employee_id != employee_id:
            raise SettlementEmployeeMismatchError(str(settlement_id), str(employee_id))
        settlement = replace(settlement, fiscal_year=fiscal_year, departure_date=departure_date)

        with LogContext.bind(settlement_id=str(settlement_id), employee_id=str(employee_id)):
            employee = self._repo.get_employee(employee_id)
            rate, currency = self._currency(employee, departure_date)

            payout_lines = self._repo.list_payout_lines(
                employee_id=employee_id, fiscal_year=fiscal_year,
            )
            details = self._repo.latest_metric_details(
                employee_id, fiscal_year, f"{fiscal_year:04d}-12",
            )
            entitlements = build_entitlements(details, payout_lines)
            outstanding = self._repo.list_ledger_entries(employee_id, outstanding_only=True)
            deals = self._repo.get_deals(e.deal_id for e in outstanding)

            result = calculate_tranche1_lines(
                settlement,
                payout_lines,
                entitlements,
                outstanding,
                compensation_rate=rate,
                local_currency=currency,
                days_in_year=self._config.days_in_year,
                deal_labels={deal_id: d.project_id for deal_id, d in deals.items()},
            )

            self._repo.clear_tranche_lines(settlement_id, 1)
            self._repo.add_tranche_lines(result.lines)
            settlement = replace(
                settlement,
                tranche1_status=TrancheStatus.CALCULATED,
                tranche1_total_usd=result.total_usd,
                clawback_carryforward_usd=result.clawback_carryforward_usd,
            )
            self._repo.save_settlement(settlement)
            self._record(settlement, 1, result)

            logger.info(
                "fnf_tranche1_calculated",
                extra={
                    "fiscal_year": fiscal_year,
                    "departure_date": departure_date.isoformat(),
                    "total_usd": str(result.total_usd),
                    "carryforward_usd": str(result.clawback_carryforward_usd),
                },
            )
        return result

    # ------------------------------------------------------------------
    # Tranche 2
    # ------------------------------------------------------------------

    def calculate_tranche2(self, settlement_id: UUID) -> TrancheResult:
        """Release or forfeit collection holdbacks, net of the carry-forward."""
        settlement = self._require(settlement_id)
        if settlement.tranche1_status == TrancheStatus.DRAFT:
            raise TrancheOrderError(str(settlement_id), settlement.tranche1_status.value)

        employee_id = settlement.employee_id
        with LogContext.bind(settlement_id=str(settlement_id), employee_id=str(employee_id)):
            employee = self._repo.get_employee(employee_id)
            rate, currency = self._currency(employee, settlement.departure_date)

            released = released_pairs(
                self._repo, settlement.fiscal_year, employee_id=employee_id,
            )
            holdbacks = [
                item
                for item in collect_holdbacks(
                    self._repo, settlement.fiscal_year, employee_id=employee_id,
                ).get(employee_id, [])
                if (employee_id, item.deal_id) not in released
            ]
            collections = self._repo.list_collections(item.deal_id for item in holdbacks)

            result = calculate_tranche2_lines(
                settlement,
                holdbacks,
                collections,
                settlement.clawback_carryforward_usd,
                compensation_rate=rate,
                local_currency=currency,
            )

            self._repo.clear_tranche_lines(settlement_id, 2)
            self._repo.add_tranche_lines(result.lines)
            settlement = replace(
                settlement,
                tranche2_status=TrancheStatus.CALCULATED,
                tranche2_total_usd=result.total_usd,
            )
            self._repo.save_settlement(settlement)
            self._record(settlement, 2, result)

            logger.info(
                "fnf_tranche2_calculated",
                extra={
                    "holdback_count": len(holdbacks),
                    "total_usd": str(result.total_usd),
                },
            )
        return result

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def set_tranche_status(
        self, settlement_id: UUID, tranche: int, status: TrancheStatus,
    ) -> FnfSettlement:
        """Move a calculated tranche forward (``approved``, ``paid``)."""
        settlement = self._require(settlement_id)
        field_name = {1: "tranche1_status", 2: "tranche2_status"}.get(tranche)
        if field_name is None:
            raise ValueError(f"tranche must be 1 or 2, got {tranche}")
        current: TrancheStatus = getattr(settlement, field_name)
        order = list(TrancheStatus)
        if current == TrancheStatus.DRAFT or order.index(status) < order.index(current):
            raise TrancheOrderError(str(settlement_id), current.value)

        settlement = replace(settlement, **{field_name: status})
        self._repo.save_settlement(settlement)
        if self._audit is not None:
            self._audit.record(AuditEntry(
                action=AuditAction.FNF_STATUS_CHANGED,
                category=AuditCategory.FNF_SETTLEMENT,
                entity_type="fnf_settlement",
                entity_id=settlement_id,
                employee_id=settlement.employee_id,
                payload={"tranche": tranche, "from": current.value, "to": status.value},
            ))
        logger.info(
            "fnf_tranche_status_changed",
            extra={
                "settlement_id": str(settlement_id),
                "tranche": tranche,
                "from_status": current.value,
                "to_status": status.value,
            },
        )
        return settlement

    def _record(self, settlement: FnfSettlement, tranche: int, result: TrancheResult) -> None:
        if self._audit is None:
            return
        self._audit.record(AuditEntry(
            action=AuditAction.FNF_TRANCHE_CALCULATED,
            category=AuditCategory.FNF_SETTLEMENT,
            entity_type="fnf_settlement",
            entity_id=settlement.id,
            employee_id=settlement.employee_id,
            amount_usd=result.total_usd,
            payload={
                "tranche": tranche,
                "line_count": len(result.lines),
                "clawback_carryforward_usd": result.clawback_carryforward_usd,
                "departure_date": settlement.departure_date.isoformat(),
            },
        ))
