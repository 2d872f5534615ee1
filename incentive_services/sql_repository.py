"""
incentive_services.sql_repository -- SQLAlchemy implementation of ``PayoutRepository``.

Responsibility:
    Translate each typed repository method into ``select`` / ``update`` /
    ``delete`` statements over ``incentive_kernel.models`` and convert rows
    to domain DTOs with ``to_dto``.

Architecture position:
    Services -- the only module in this package that builds SQL.

Invariants enforced:
    - ``try_lock_run`` is a single conditional UPDATE; success is judged
      by ``rowcount`` so two concurrent callers cannot both win.
    - Every inserted row carries ``created_by_id`` of the acting user.
    - Month ranges compare normalized ``YYYY-MM`` strings.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from incentive_kernel.domain.payouts import (
    ClawbackLedgerEntry,
    ClawbackRecovery,
    ClosingArrDetail,
    LedgerStatus,
    MonthlyPayoutLine,
    PayoutDealDetail,
    PayoutMetricDetail,
    PayoutRun,
    PayoutRunStatus,
    VariablePayAttribution,
)
from incentive_kernel.domain.plans import CompensationPlan, PlanAssignment
from incentive_kernel.domain.records import (
    ClosingArrSnapshot,
    Deal,
    DealCollection,
    Employee,
)
from incentive_kernel.domain.settlement import FnfSettlement, FnfSettlementLine
from incentive_kernel.domain.values import (
    first_month_of_year,
    fiscal_year_end,
    fiscal_year_start,
    to_decimal,
)
from incentive_kernel.logging_config import get_logger
from incentive_kernel.models.ledger import ClawbackLedgerModel, ClawbackRecoveryModel
from incentive_kernel.models.payout import (
    ClosingArrDetailModel,
    MonthlyPayoutModel,
    PayoutDealDetailModel,
    PayoutMetricDetailModel,
    PayoutRunModel,
    VariablePayAttributionModel,
)
from incentive_kernel.models.plan import CompensationPlanModel, PlanAssignmentModel
from incentive_kernel.models.records import (
    ClosingArrSnapshotModel,
    DealCollectionModel,
    DealModel,
    EmployeeModel,
    ExchangeRateModel,
    PerformanceTargetModel,
)
from incentive_kernel.models.settlement import FnfSettlementLineModel, FnfSettlementModel
from incentive_services.repository import PayoutRepository

logger = get_logger("services.repository")


def _fy_end_month(fiscal_year: int) -> str:
    return f"{fiscal_year:04d}-12"


class SqlAlchemyPayoutRepository(PayoutRepository):
    """
    ``PayoutRepository`` over a SQLAlchemy ``Session``.

    Args:
        session: Session owned by the caller; never committed here.
        actor_id: Written to ``created_by_id`` / ``updated_by_id``.
    """

    def __init__(self, session: Session, actor_id: UUID):
        self._session = session
        self._actor_id = actor_id

    @property
    def session(self) -> Session:
        return self._session

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def _run_model(self, run_id: UUID) -> PayoutRunModel | None:
        return self._session.get(PayoutRunModel, run_id)

    def get_run(self, run_id: UUID) -> PayoutRun | None:
        model = self._run_model(run_id)
        return model.to_dto() if model is not None else None

    def get_run_for_month(self, month_year: str) -> PayoutRun | None:
        model = self._session.execute(
            select(PayoutRunModel).where(PayoutRunModel.month_year == month_year)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def try_lock_run(self, run_id: UUID) -> bool:
        lockable = [s.value for s in PayoutRunStatus.lockable()]
        result = self._session.execute(
            update(PayoutRunModel)
            .where(
                PayoutRunModel.id == run_id,
                PayoutRunModel.run_status.in_(lockable),
                PayoutRunModel.is_locked.is_(False),
            )
            .values(
                run_status=PayoutRunStatus.CALCULATING.value,
                updated_by_id=self._actor_id,
            )
        )
        self._session.flush()
        acquired = result.rowcount == 1
        logger.debug(
            "run_lock_attempted",
            extra={"run_id": str(run_id), "acquired": acquired},
        )
        return acquired

    def set_run_status(self, run_id: UUID, status: PayoutRunStatus) -> None:
        self._session.execute(
            update(PayoutRunModel)
            .where(PayoutRunModel.id == run_id)
            .values(run_status=status.value, updated_by_id=self._actor_id)
        )
        self._session.flush()

    def finalize_run(
        self,
        run_id: UUID,
        calculated_at: datetime,
        totals: dict[str, Decimal],
    ) -> None:
        self._session.execute(
            update(PayoutRunModel)
            .where(PayoutRunModel.id == run_id)
            .values(
                run_status=PayoutRunStatus.REVIEW.value,
                calculated_at=calculated_at,
                updated_by_id=self._actor_id,
                **totals,
            )
        )
        self._session.flush()

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def list_active_employees(self) -> list[Employee]:
        models = self._session.execute(
            select(EmployeeModel)
            .where(EmployeeModel.is_active.is_(True))
            .order_by(EmployeeModel.employee_code)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def get_employee(self, employee_id: UUID) -> Employee | None:
        model = self._session.get(EmployeeModel, employee_id)
        return model.to_dto() if model is not None else None

    def list_plans(self) -> dict[UUID, CompensationPlan]:
        models = self._session.execute(select(CompensationPlanModel)).scalars().all()
        return {m.id: m.to_dto() for m in models}

    def list_assignments(self, fiscal_year: int) -> dict[UUID, tuple[PlanAssignment, ...]]:
        models = self._session.execute(
            select(PlanAssignmentModel)
            .where(
                PlanAssignmentModel.effective_start_date <= fiscal_year_end(fiscal_year),
                PlanAssignmentModel.effective_end_date >= fiscal_year_start(fiscal_year),
            )
            .order_by(PlanAssignmentModel.employee_id, PlanAssignmentModel.effective_start_date)
        ).scalars().all()
        grouped: dict[UUID, list[PlanAssignment]] = defaultdict(list)
        for model in models:
            grouped[model.employee_id].append(model.to_dto())
        return {emp: tuple(items) for emp, items in grouped.items()}

    def list_deals(self, fiscal_year: int, through_month: str) -> list[Deal]:
        models = self._session.execute(
            select(DealModel)
            .where(
                DealModel.month_year >= first_month_of_year(fiscal_year),
                DealModel.month_year <= through_month,
            )
            .order_by(DealModel.month_year, DealModel.project_id)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def get_deals(self, deal_ids: Iterable[UUID]) -> dict[UUID, Deal]:
        ids = list(set(deal_ids))
        if not ids:
            return {}
        models = self._session.execute(
            select(DealModel).where(DealModel.id.in_(ids))
        ).scalars().all()
        return {m.id: m.to_dto() for m in models}

    def list_closing_snapshots(
        self, fiscal_year: int, through_month: str,
    ) -> dict[str, tuple[ClosingArrSnapshot, ...]]:
        models = self._session.execute(
            select(ClosingArrSnapshotModel)
            .where(
                ClosingArrSnapshotModel.month_year >= first_month_of_year(fiscal_year),
                ClosingArrSnapshotModel.month_year <= through_month,
            )
            .order_by(ClosingArrSnapshotModel.employee_code, ClosingArrSnapshotModel.month_year)
        ).scalars().all()
        grouped: dict[str, list[ClosingArrSnapshot]] = defaultdict(list)
        for model in models:
            grouped[model.employee_code].append(model.to_dto())
        return {code: tuple(items) for code, items in grouped.items()}

    def list_targets(self, fiscal_year: int) -> dict[tuple[str, str], Decimal]:
        models = self._session.execute(
            select(PerformanceTargetModel).where(PerformanceTargetModel.effective_year == fiscal_year)
        ).scalars().all()
        return {(m.employee_code, m.metric_type): m.target_value_usd for m in models}

    def get_market_rates(self, month_year: str) -> dict[str, Decimal]:
        models = self._session.execute(
            select(ExchangeRateModel).where(ExchangeRateModel.month_year == month_year)
        ).scalars().all()
        return {m.currency_code.upper(): m.rate_to_usd for m in models}

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def list_collections(self, deal_ids: Iterable[UUID] | None = None) -> dict[UUID, DealCollection]:
        stmt = select(DealCollectionModel)
        if deal_ids is not None:
            ids = list(set(deal_ids))
            if not ids:
                return {}
            stmt = stmt.where(DealCollectionModel.deal_id.in_(ids))
        models = self._session.execute(stmt).scalars().all()
        return {m.deal_id: m.to_dto() for m in models}

    def list_open_collections(self) -> list[DealCollection]:
        models = self._session.execute(
            select(DealCollectionModel)
            .where(
                DealCollectionModel.is_collected.is_(False),
                DealCollectionModel.is_clawback_triggered.is_(False),
            )
            .order_by(DealCollectionModel.booking_month, DealCollectionModel.project_id)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def mark_collection_clawed_back(self, collection_id: UUID, amount_usd: Decimal) -> None:
        self._session.execute(
            update(DealCollectionModel)
            .where(DealCollectionModel.id == collection_id)
            .values(
                is_clawback_triggered=True,
                clawback_amount_usd=amount_usd,
                updated_by_id=self._actor_id,
            )
        )
        self._session.flush()

    # ------------------------------------------------------------------
    # Run output
    # ------------------------------------------------------------------

    def prior_paid(
        self, fiscal_year: int, before_month: str,
    ) -> dict[tuple[UUID, str, str], Decimal]:
        rows = self._session.execute(
            select(
                PayoutMetricDetailModel.employee_id,
                PayoutMetricDetailModel.component_type,
                PayoutMetricDetailModel.metric_name,
                func.sum(PayoutMetricDetailModel.this_month_usd),
            )
            .join(PayoutRunModel, PayoutRunModel.id == PayoutMetricDetailModel.payout_run_id)
            .where(
                PayoutRunModel.month_year >= first_month_of_year(fiscal_year),
                PayoutRunModel.month_year < before_month,
            )
            .group_by(
                PayoutMetricDetailModel.employee_id,
                PayoutMetricDetailModel.component_type,
                PayoutMetricDetailModel.metric_name,
            )
        ).all()
        return {
            (emp, component, metric): to_decimal(total)
            for emp, component, metric, total in rows
        }

    def latest_attributions(
        self,
        fiscal_year: int,
        before_month: str | None = None,
        deal_id: UUID | None = None,
    ) -> list[VariablePayAttribution]:
        stmt = select(VariablePayAttributionModel).where(
            VariablePayAttributionModel.fiscal_year == fiscal_year,
        )
        if before_month is not None:
            stmt = stmt.where(VariablePayAttributionModel.calculation_month < before_month)
        if deal_id is not None:
            stmt = stmt.where(VariablePayAttributionModel.deal_id == deal_id)
        models = self._session.execute(stmt).scalars().all()

        latest: dict[UUID, str] = {}
        for model in models:
            current = latest.get(model.employee_id)
            if current is None or model.calculation_month > current:
                latest[model.employee_id] = model.calculation_month
        selected = [
            m for m in models if m.calculation_month == latest[m.employee_id]
        ]
        selected.sort(key=lambda m: (str(m.employee_id), str(m.deal_id), m.metric_name))
        return [m.to_dto() for m in selected]

    def mark_attributions_clawed_back(
        self, attribution_ids: Sequence[UUID], amount_usd: Decimal,
    ) -> None:
        if not attribution_ids:
            return
        for model in self._session.execute(
            select(VariablePayAttributionModel)
            .where(VariablePayAttributionModel.id.in_(list(attribution_ids)))
        ).scalars():
            model.is_clawback_triggered = True
            model.clawback_amount_usd = model.clawback_eligible_usd
            model.updated_by_id = self._actor_id
        self._session.flush()
        logger.debug(
            "attributions_marked_clawed_back",
            extra={"count": len(attribution_ids), "amount_usd": str(amount_usd)},
        )

    def list_payout_lines(
        self,
        employee_id: UUID | None = None,
        fiscal_year: int | None = None,
        before_month: str | None = None,
        run_id: UUID | None = None,
        payout_types: Iterable[str] | None = None,
    ) -> list[MonthlyPayoutLine]:
        stmt = select(MonthlyPayoutModel)
        if employee_id is not None:
            stmt = stmt.where(MonthlyPayoutModel.employee_id == employee_id)
        if fiscal_year is not None:
            stmt = stmt.where(
                MonthlyPayoutModel.month_year >= first_month_of_year(fiscal_year),
                MonthlyPayoutModel.month_year <= _fy_end_month(fiscal_year),
            )
        if before_month is not None:
            stmt = stmt.where(MonthlyPayoutModel.month_year < before_month)
        if run_id is not None:
            stmt = stmt.where(MonthlyPayoutModel.payout_run_id == run_id)
        if payout_types is not None:
            stmt = stmt.where(MonthlyPayoutModel.payout_type.in_(list(payout_types)))
        stmt = stmt.order_by(MonthlyPayoutModel.month_year, MonthlyPayoutModel.payout_type)
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    def add_payout_lines(self, lines: Sequence[MonthlyPayoutLine]) -> None:
        self._session.add_all(
            [MonthlyPayoutModel.from_dto(line, self._actor_id) for line in lines]
        )
        self._session.flush()

    def add_attributions(self, attributions: Sequence[VariablePayAttribution]) -> None:
        self._session.add_all(
            [VariablePayAttributionModel.from_dto(a, self._actor_id) for a in attributions]
        )
        self._session.flush()

    def add_details(
        self,
        run_id: UUID,
        metric_details: Sequence[PayoutMetricDetail],
        deal_details: Sequence[PayoutDealDetail],
        closing_details: Sequence[ClosingArrDetail],
    ) -> None:
        models: list = [
            PayoutMetricDetailModel.from_dto(d, run_id, self._actor_id) for d in metric_details
        ]
        models.extend(
            PayoutDealDetailModel.from_dto(d, run_id, self._actor_id) for d in deal_details
        )
        models.extend(
            ClosingArrDetailModel.from_dto(d, run_id, self._actor_id) for d in closing_details
        )
        self._session.add_all(models)
        self._session.flush()

    def _run_output_tables(self, run_id: UUID, keep_payout_types: Iterable[str]):
        keep = list(keep_payout_types)
        return {
            MonthlyPayoutModel.__tablename__: (
                MonthlyPayoutModel,
                [
                    MonthlyPayoutModel.payout_run_id == run_id,
                    MonthlyPayoutModel.payout_type.not_in(keep),
                ],
            ),
            VariablePayAttributionModel.__tablename__: (
                VariablePayAttributionModel,
                [VariablePayAttributionModel.payout_run_id == run_id],
            ),
            PayoutMetricDetailModel.__tablename__: (
                PayoutMetricDetailModel,
                [PayoutMetricDetailModel.payout_run_id == run_id],
            ),
            PayoutDealDetailModel.__tablename__: (
                PayoutDealDetailModel,
                [PayoutDealDetailModel.payout_run_id == run_id],
            ),
            ClosingArrDetailModel.__tablename__: (
                ClosingArrDetailModel,
                [ClosingArrDetailModel.payout_run_id == run_id],
            ),
        }

    def delete_run_output(self, run_id: UUID, keep_payout_types: Iterable[str]) -> dict[str, int]:
        deleted: dict[str, int] = {}
        for table, (model, criteria) in self._run_output_tables(run_id, keep_payout_types).items():
            result = self._session.execute(
                delete(model).where(*criteria).execution_options(synchronize_session=False)
            )
            deleted[table] = result.rowcount
        self._session.flush()
        # Deleted rows may still sit in the identity map.
        self._session.expire_all()
        logger.info(
            "run_output_deleted",
            extra={"run_id": str(run_id), **{f"deleted_{k}": v for k, v in deleted.items()}},
        )
        return deleted

    def count_run_output(self, run_id: UUID, keep_payout_types: Iterable[str]) -> dict[str, int]:
        counts: dict[str, int] = {}
        for table, (model, criteria) in self._run_output_tables(run_id, keep_payout_types).items():
            counts[table] = self._session.execute(
                select(func.count()).select_from(model).where(*criteria)
            ).scalar_one()
        return counts

    # ------------------------------------------------------------------
    # Clawback ledger
    # ------------------------------------------------------------------

    def get_ledger_entry(self, employee_id: UUID, deal_id: UUID) -> ClawbackLedgerEntry | None:
        model = self._session.execute(
            select(ClawbackLedgerModel).where(
                ClawbackLedgerModel.employee_id == employee_id,
                ClawbackLedgerModel.deal_id == deal_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_ledger_entries(
        self, employee_id: UUID, outstanding_only: bool = False,
    ) -> list[ClawbackLedgerEntry]:
        stmt = select(ClawbackLedgerModel).where(ClawbackLedgerModel.employee_id == employee_id)
        if outstanding_only:
            stmt = stmt.where(
                ClawbackLedgerModel.status.in_(
                    [LedgerStatus.PENDING.value, LedgerStatus.PARTIAL.value]
                )
            )
        stmt = stmt.order_by(
            ClawbackLedgerModel.triggered_month,
            ClawbackLedgerModel.created_at,
            ClawbackLedgerModel.id,
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    def add_ledger_entry(self, entry: ClawbackLedgerEntry) -> None:
        self._session.add(ClawbackLedgerModel.from_dto(entry, self._actor_id))
        self._session.flush()

    def update_ledger_entry(self, entry: ClawbackLedgerEntry) -> None:
        entry.check_invariant()
        model = self._session.get(ClawbackLedgerModel, entry.id)
        if model is None:
            self.add_ledger_entry(entry)
            return
        model.apply_dto(entry)
        model.updated_by_id = self._actor_id
        self._session.flush()

    def list_recoveries(self, run_id: UUID) -> list[ClawbackRecovery]:
        models = self._session.execute(
            select(ClawbackRecoveryModel).where(ClawbackRecoveryModel.payout_run_id == run_id)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def add_recovery(self, recovery: ClawbackRecovery) -> None:
        self._session.add(ClawbackRecoveryModel.from_dto(recovery, self._actor_id))
        self._session.flush()

    def delete_recoveries(self, run_id: UUID) -> int:
        result = self._session.execute(
            delete(ClawbackRecoveryModel)
            .where(ClawbackRecoveryModel.payout_run_id == run_id)
            .execution_options(synchronize_session=False)
        )
        self._session.flush()
        return result.rowcount

    # ------------------------------------------------------------------
    # F&F settlements
    # ------------------------------------------------------------------

    def get_settlement(self, settlement_id: UUID) -> FnfSettlement | None:
        model = self._session.get(FnfSettlementModel, settlement_id)
        return model.to_dto() if model is not None else None

    def save_settlement(self, settlement: FnfSettlement) -> None:
        model = self._session.get(FnfSettlementModel, settlement.id)
        if model is None:
            self._session.add(FnfSettlementModel.from_dto(settlement, self._actor_id))
        else:
            model.departure_date = settlement.departure_date
            model.fiscal_year = settlement.fiscal_year
            model.collection_grace_days = settlement.collection_grace_days
            model.tranche1_status = settlement.tranche1_status.value
            model.tranche1_total_usd = settlement.tranche1_total_usd
            model.tranche2_status = settlement.tranche2_status.value
            model.tranche2_total_usd = settlement.tranche2_total_usd
            model.clawback_carryforward_usd = settlement.clawback_carryforward_usd
            model.updated_by_id = self._actor_id
        self._session.flush()

    def clear_tranche_lines(self, settlement_id: UUID, tranche: int) -> int:
        result = self._session.execute(
            delete(FnfSettlementLineModel)
            .where(
                FnfSettlementLineModel.settlement_id == settlement_id,
                FnfSettlementLineModel.tranche == tranche,
            )
            .execution_options(synchronize_session=False)
        )
        self._session.flush()
        return result.rowcount

    def add_tranche_lines(self, lines: Sequence[FnfSettlementLine]) -> None:
        self._session.add_all(
            [FnfSettlementLineModel.from_dto(line, self._actor_id) for line in lines]
        )
        self._session.flush()

    def list_tranche_lines(self, settlement_id: UUID, tranche: int) -> list[FnfSettlementLine]:
        models = self._session.execute(
            select(FnfSettlementLineModel).where(
                FnfSettlementLineModel.settlement_id == settlement_id,
                FnfSettlementLineModel.tranche == tranche,
            )
        ).scalars().all()
        return [m.to_dto() for m in models]

    def latest_metric_details(
        self, employee_id: UUID, fiscal_year: int, through_month: str,
    ) -> list[PayoutMetricDetail]:
        latest_month = self._session.execute(
            select(func.max(PayoutRunModel.month_year))
            .join(PayoutMetricDetailModel, PayoutMetricDetailModel.payout_run_id == PayoutRunModel.id)
            .where(
                PayoutMetricDetailModel.employee_id == employee_id,
                PayoutRunModel.month_year >= first_month_of_year(fiscal_year),
                PayoutRunModel.month_year <= through_month,
            )
        ).scalar_one_or_none()
        if latest_month is None:
            return []
        models = self._session.execute(
            select(PayoutMetricDetailModel)
            .join(PayoutRunModel, PayoutMetricDetailModel.payout_run_id == PayoutRunModel.id)
            .where(
                PayoutMetricDetailModel.employee_id == employee_id,
                PayoutRunModel.month_year == latest_month,
            )
        ).scalars().all()
        return [m.to_dto() for m in models]
