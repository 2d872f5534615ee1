"""
Payout Run ORM Models (``incentive_kernel.models.payout``).

Responsibility:
    Persistence for payout runs and everything a run produces: payout lines,
    deal variable-pay attributions, and the metric / deal / closing-ARR
    detail rows that explain each figure.

Architecture position:
    **Kernel persistence**.  Written only by the run orchestrator and the
    clawback service; every output row carries ``payout_run_id`` so a run
    can delete and reinsert its own output.

Invariants enforced:
    - ``payout_runs.month_year`` unique (uq_payout_run_month).
    - One attribution per (run, deal, employee, metric)
      (uq_vp_attribution_key).
    - Run status stored as String(50) ``PayoutRunStatus.value``.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from incentive_kernel.db.base import CurrencyCode, MonthYear, TrackedBase

# ---------------------------------------------------------------------------
# PayoutRunModel
# ---------------------------------------------------------------------------


class PayoutRunModel(TrackedBase):
    """
    ORM model for ``PayoutRun``.

    Guarantees:
        - ``run_status`` is the compare-and-swap target of the run lock.
        - Totals are written once per successful calculation.
    """

    __tablename__ = "payout_runs"

    month_year: Mapped[str] = mapped_column(MonthYear(), nullable=False)
    run_status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_payout_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_variable_pay_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_commissions_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_additional_pay_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_clawbacks_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("month_year", name="uq_payout_run_month"),
    )

    def to_dto(self):
        from incentive_kernel.domain.payouts import PayoutRun, PayoutRunStatus

        return PayoutRun(
            id=self.id,
            month_year=self.month_year,
            run_status=PayoutRunStatus(self.run_status),
            is_locked=self.is_locked,
            calculated_at=self.calculated_at,
            total_payout_usd=self.total_payout_usd,
            total_variable_pay_usd=self.total_variable_pay_usd,
            total_commissions_usd=self.total_commissions_usd,
            total_additional_pay_usd=self.total_additional_pay_usd,
            total_clawbacks_usd=self.total_clawbacks_usd,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "PayoutRunModel":
        return cls(
            id=dto.id,
            month_year=dto.month_year,
            run_status=dto.run_status.value,
            is_locked=dto.is_locked,
            calculated_at=dto.calculated_at,
            total_payout_usd=dto.total_payout_usd,
            total_variable_pay_usd=dto.total_variable_pay_usd,
            total_commissions_usd=dto.total_commissions_usd,
            total_additional_pay_usd=dto.total_additional_pay_usd,
            total_clawbacks_usd=dto.total_clawbacks_usd,
            notes=dto.notes,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<PayoutRunModel {self.month_year} [{self.run_status}]>"


# ---------------------------------------------------------------------------
# MonthlyPayoutModel
# ---------------------------------------------------------------------------


class MonthlyPayoutModel(TrackedBase):
    """ORM model for ``MonthlyPayoutLine``."""

    __tablename__ = "monthly_payouts"

    payout_run_id: Mapped[UUID] = mapped_column(ForeignKey("payout_runs.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    month_year: Mapped[str] = mapped_column(MonthYear(), nullable=False)
    payout_type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount_usd: Mapped[Decimal] = mapped_column(nullable=False)
    amount_local: Mapped[Decimal] = mapped_column(nullable=False)
    local_currency: Mapped[str] = mapped_column(CurrencyCode(), nullable=False)
    exchange_rate_used: Mapped[Decimal] = mapped_column(nullable=False)
    exchange_rate_type: Mapped[str] = mapped_column(String(50), nullable=False)
    booking_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    collection_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    year_end_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    booking_local: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    collection_local: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    year_end_local: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    clawback_amount_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    plan_id: Mapped[UUID | None] = mapped_column(nullable=True)
    deal_id: Mapped[UUID | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_monthly_payout_run_employee", "payout_run_id", "employee_id"),
        Index("idx_monthly_payout_employee_month", "employee_id", "month_year"),
    )

    def to_dto(self):
        from incentive_kernel.domain.payouts import ExchangeRateType, MonthlyPayoutLine

        return MonthlyPayoutLine(
            id=self.id,
            payout_run_id=self.payout_run_id,
            employee_id=self.employee_id,
            month_year=self.month_year,
            payout_type=self.payout_type,
            amount_usd=self.amount_usd,
            amount_local=self.amount_local,
            local_currency=self.local_currency,
            exchange_rate_used=self.exchange_rate_used,
            exchange_rate_type=ExchangeRateType(self.exchange_rate_type),
            booking_usd=self.booking_usd,
            collection_usd=self.collection_usd,
            year_end_usd=self.year_end_usd,
            booking_local=self.booking_local,
            collection_local=self.collection_local,
            year_end_local=self.year_end_local,
            clawback_amount_usd=self.clawback_amount_usd,
            plan_id=self.plan_id,
            deal_id=self.deal_id,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "MonthlyPayoutModel":
        return cls(
            id=dto.id,
            payout_run_id=dto.payout_run_id,
            employee_id=dto.employee_id,
            month_year=dto.month_year,
            payout_type=dto.payout_type,
            amount_usd=dto.amount_usd,
            amount_local=dto.amount_local,
            local_currency=dto.local_currency,
            exchange_rate_used=dto.exchange_rate_used,
            exchange_rate_type=dto.exchange_rate_type.value,
            booking_usd=dto.booking_usd,
            collection_usd=dto.collection_usd,
            year_end_usd=dto.year_end_usd,
            booking_local=dto.booking_local,
            collection_local=dto.collection_local,
            year_end_local=dto.year_end_local,
            clawback_amount_usd=dto.clawback_amount_usd,
            plan_id=dto.plan_id,
            deal_id=dto.deal_id,
            notes=dto.notes,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<MonthlyPayoutModel {self.payout_type} {self.amount_usd} USD>"


# ---------------------------------------------------------------------------
# VariablePayAttributionModel
# ---------------------------------------------------------------------------


class VariablePayAttributionModel(TrackedBase):
    """ORM model for ``VariablePayAttribution``."""

    __tablename__ = "deal_variable_pay_attribution"

    payout_run_id: Mapped[UUID] = mapped_column(ForeignKey("payout_runs.id"), nullable=False)
    deal_id: Mapped[UUID] = mapped_column(ForeignKey("deals.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    metric_name: Mapped[str] = mapped_column(String(200), nullable=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    calculation_month: Mapped[str] = mapped_column(MonthYear(), nullable=False)
    deal_value_usd: Mapped[Decimal] = mapped_column(nullable=False)
    proportion_pct: Mapped[Decimal] = mapped_column(nullable=False)
    variable_pay_split_usd: Mapped[Decimal] = mapped_column(nullable=False)
    payout_on_booking_usd: Mapped[Decimal] = mapped_column(nullable=False)
    payout_on_collection_usd: Mapped[Decimal] = mapped_column(nullable=False)
    payout_on_year_end_usd: Mapped[Decimal] = mapped_column(nullable=False)
    clawback_eligible_usd: Mapped[Decimal] = mapped_column(nullable=False)
    total_actual_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    target_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    achievement_pct: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_variable_pay_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    is_clawback_triggered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    clawback_amount_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    plan_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "payout_run_id", "deal_id", "employee_id", "metric_name",
            name="uq_vp_attribution_key",
        ),
        Index("idx_vp_attribution_deal", "deal_id"),
    )

    def to_dto(self):
        from incentive_kernel.domain.payouts import VariablePayAttribution

        return VariablePayAttribution(
            id=self.id,
            payout_run_id=self.payout_run_id,
            deal_id=self.deal_id,
            employee_id=self.employee_id,
            metric_name=self.metric_name,
            fiscal_year=self.fiscal_year,
            calculation_month=self.calculation_month,
            deal_value_usd=self.deal_value_usd,
            proportion_pct=self.proportion_pct,
            variable_pay_split_usd=self.variable_pay_split_usd,
            payout_on_booking_usd=self.payout_on_booking_usd,
            payout_on_collection_usd=self.payout_on_collection_usd,
            payout_on_year_end_usd=self.payout_on_year_end_usd,
            clawback_eligible_usd=self.clawback_eligible_usd,
            total_actual_usd=self.total_actual_usd,
            target_usd=self.target_usd,
            achievement_pct=self.achievement_pct,
            multiplier=self.multiplier,
            total_variable_pay_usd=self.total_variable_pay_usd,
            is_clawback_triggered=self.is_clawback_triggered,
            clawback_amount_usd=self.clawback_amount_usd,
            plan_id=self.plan_id,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "VariablePayAttributionModel":
        return cls(
            id=dto.id,
            payout_run_id=dto.payout_run_id,
            deal_id=dto.deal_id,
            employee_id=dto.employee_id,
            metric_name=dto.metric_name,
            fiscal_year=dto.fiscal_year,
            calculation_month=dto.calculation_month,
            deal_value_usd=dto.deal_value_usd,
            proportion_pct=dto.proportion_pct,
            variable_pay_split_usd=dto.variable_pay_split_usd,
            payout_on_booking_usd=dto.payout_on_booking_usd,
            payout_on_collection_usd=dto.payout_on_collection_usd,
            payout_on_year_end_usd=dto.payout_on_year_end_usd,
            clawback_eligible_usd=dto.clawback_eligible_usd,
            total_actual_usd=dto.total_actual_usd,
            target_usd=dto.target_usd,
            achievement_pct=dto.achievement_pct,
            multiplier=dto.multiplier,
            total_variable_pay_usd=dto.total_variable_pay_usd,
            is_clawback_triggered=dto.is_clawback_triggered,
            clawback_amount_usd=dto.clawback_amount_usd,
            plan_id=dto.plan_id,
            created_by_id=created_by_id,
        )


# ---------------------------------------------------------------------------
# Detail rows
# ---------------------------------------------------------------------------


class PayoutMetricDetailModel(TrackedBase):
    """Per-metric workings of one employee in one run."""

    __tablename__ = "payout_metric_details"

    payout_run_id: Mapped[UUID] = mapped_column(ForeignKey("payout_runs.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    component_type: Mapped[str] = mapped_column(String(50), nullable=False)
    metric_name: Mapped[str] = mapped_column(String(200), nullable=False)
    allocated_ote_usd: Mapped[Decimal] = mapped_column(nullable=False)
    target_usd: Mapped[Decimal] = mapped_column(nullable=False)
    actual_usd: Mapped[Decimal] = mapped_column(nullable=False)
    achievement_pct: Mapped[Decimal] = mapped_column(nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(nullable=False)
    ytd_eligible_usd: Mapped[Decimal] = mapped_column(nullable=False)
    prior_paid_usd: Mapped[Decimal] = mapped_column(nullable=False)
    this_month_usd: Mapped[Decimal] = mapped_column(nullable=False)
    booking_usd: Mapped[Decimal] = mapped_column(nullable=False)
    collection_usd: Mapped[Decimal] = mapped_column(nullable=False)
    year_end_usd: Mapped[Decimal] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_metric_detail_run_employee", "payout_run_id", "employee_id"),
    )

    def to_dto(self):
        from incentive_kernel.domain.payouts import ComponentType, PayoutMetricDetail

        return PayoutMetricDetail(
            employee_id=self.employee_id,
            component_type=ComponentType(self.component_type),
            metric_name=self.metric_name,
            allocated_ote_usd=self.allocated_ote_usd,
            target_usd=self.target_usd,
            actual_usd=self.actual_usd,
            achievement_pct=self.achievement_pct,
            multiplier=self.multiplier,
            ytd_eligible_usd=self.ytd_eligible_usd,
            prior_paid_usd=self.prior_paid_usd,
            this_month_usd=self.this_month_usd,
            booking_usd=self.booking_usd,
            collection_usd=self.collection_usd,
            year_end_usd=self.year_end_usd,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto, payout_run_id: UUID, created_by_id: UUID) -> "PayoutMetricDetailModel":
        return cls(
            payout_run_id=payout_run_id,
            employee_id=dto.employee_id,
            component_type=dto.component_type.value,
            metric_name=dto.metric_name,
            allocated_ote_usd=dto.allocated_ote_usd,
            target_usd=dto.target_usd,
            actual_usd=dto.actual_usd,
            achievement_pct=dto.achievement_pct,
            multiplier=dto.multiplier,
            ytd_eligible_usd=dto.ytd_eligible_usd,
            prior_paid_usd=dto.prior_paid_usd,
            this_month_usd=dto.this_month_usd,
            booking_usd=dto.booking_usd,
            collection_usd=dto.collection_usd,
            year_end_usd=dto.year_end_usd,
            notes=dto.notes,
            created_by_id=created_by_id,
        )


class PayoutDealDetailModel(TrackedBase):
    """Per-deal workings for commission, NRR and SPIFF lines."""

    __tablename__ = "payout_deal_details"

    payout_run_id: Mapped[UUID] = mapped_column(ForeignKey("payout_runs.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    component_type: Mapped[str] = mapped_column(String(50), nullable=False)
    deal_id: Mapped[UUID] = mapped_column(nullable=False)
    project_id: Mapped[str] = mapped_column(String(100), nullable=False)
    line_label: Mapped[str] = mapped_column(String(200), nullable=False)
    deal_value_usd: Mapped[Decimal] = mapped_column(nullable=False)
    gp_margin_pct: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)
    exclusion_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    payout_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    booking_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    collection_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    year_end_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    __table_args__ = (
        Index("idx_deal_detail_run_employee", "payout_run_id", "employee_id"),
    )

    def to_dto(self):
        from incentive_kernel.domain.payouts import ComponentType, PayoutDealDetail

        return PayoutDealDetail(
            employee_id=self.employee_id,
            component_type=ComponentType(self.component_type),
            deal_id=self.deal_id,
            project_id=self.project_id,
            line_label=self.line_label,
            deal_value_usd=self.deal_value_usd,
            gp_margin_pct=self.gp_margin_pct,
            is_eligible=self.is_eligible,
            exclusion_reason=self.exclusion_reason,
            payout_usd=self.payout_usd,
            booking_usd=self.booking_usd,
            collection_usd=self.collection_usd,
            year_end_usd=self.year_end_usd,
        )

    @classmethod
    def from_dto(cls, dto, payout_run_id: UUID, created_by_id: UUID) -> "PayoutDealDetailModel":
        return cls(
            payout_run_id=payout_run_id,
            employee_id=dto.employee_id,
            component_type=dto.component_type.value,
            deal_id=dto.deal_id,
            project_id=dto.project_id,
            line_label=dto.line_label,
            deal_value_usd=dto.deal_value_usd,
            gp_margin_pct=dto.gp_margin_pct,
            is_eligible=dto.is_eligible,
            exclusion_reason=dto.exclusion_reason,
            payout_usd=dto.payout_usd,
            booking_usd=dto.booking_usd,
            collection_usd=dto.collection_usd,
            year_end_usd=dto.year_end_usd,
            created_by_id=created_by_id,
        )


class ClosingArrDetailModel(TrackedBase):
    """Audit row for one closing-ARR snapshot considered by a run."""

    __tablename__ = "closing_arr_payout_details"

    payout_run_id: Mapped[UUID] = mapped_column(ForeignKey("payout_runs.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    project_id: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    month_year: Mapped[str] = mapped_column(MonthYear(), nullable=False)
    end_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    is_multi_year: Mapped[bool] = mapped_column(Boolean, nullable=False)
    renewal_years: Mapped[int] = mapped_column(Integer, nullable=False)
    closing_arr_usd: Mapped[Decimal] = mapped_column(nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(nullable=False)
    adjusted_arr_usd: Mapped[Decimal] = mapped_column(nullable=False)
    is_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)
    exclusion_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_closing_detail_run_employee", "payout_run_id", "employee_id"),
    )

    def to_dto(self):
        from incentive_kernel.domain.payouts import ClosingArrDetail

        return ClosingArrDetail(
            employee_id=self.employee_id,
            project_id=self.project_id,
            customer_name=self.customer_name,
            month_year=self.month_year,
            end_date=self.end_date,
            is_multi_year=self.is_multi_year,
            renewal_years=self.renewal_years,
            closing_arr_usd=self.closing_arr_usd,
            multiplier=self.multiplier,
            adjusted_arr_usd=self.adjusted_arr_usd,
            is_eligible=self.is_eligible,
            exclusion_reason=self.exclusion_reason,
        )

    @classmethod
    def from_dto(cls, dto, payout_run_id: UUID, created_by_id: UUID) -> "ClosingArrDetailModel":
        return cls(
            payout_run_id=payout_run_id,
            employee_id=dto.employee_id,
            project_id=dto.project_id,
            customer_name=dto.customer_name,
            month_year=dto.month_year,
            end_date=dto.end_date,
            is_multi_year=dto.is_multi_year,
            renewal_years=dto.renewal_years,
            closing_arr_usd=dto.closing_arr_usd,
            multiplier=dto.multiplier,
            adjusted_arr_usd=dto.adjusted_arr_usd,
            is_eligible=dto.is_eligible,
            exclusion_reason=dto.exclusion_reason,
            created_by_id=created_by_id,
        )
