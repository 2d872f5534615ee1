"""
Compensation Plan ORM Models (``incentive_kernel.models.plan``).

Responsibility:
    SQLAlchemy ORM models that persist compensation plans, their metrics,
    multiplier grids, commission rules, SPIFF rules, closing-ARR renewal
    multipliers and plan assignments.  ``to_dto()`` rebuilds the frozen
    domain objects of ``incentive_kernel.domain.plans``.

Architecture position:
    **Kernel persistence** -- companions to the pure DTOs.  Inherits from
    ``TrackedBase`` (UUID PK, created/updated audit columns).

Invariants enforced:
    - All percentage and money columns are Decimal (Numeric(38,9)).
    - Enum fields stored as String(50) containing the enum ``.value``.
    - One commission rule per (plan, commission type)
      (uq_plan_commission_type).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from incentive_kernel.db.base import TrackedBase


def _split_from_columns(booking, collection, year_end):
    """PayoutSplit from nullable columns; None when no split is stored."""
    from incentive_kernel.domain.plans import PayoutSplit

    if booking is None:
        return None
    return PayoutSplit(booking, collection or Decimal("0"), year_end or Decimal("0"))


def _split_columns(split) -> dict:
    if split is None:
        return {
            "payout_on_booking_pct": None,
            "payout_on_collection_pct": None,
            "payout_on_year_end_pct": None,
        }
    return {
        "payout_on_booking_pct": split.booking_pct,
        "payout_on_collection_pct": split.collection_pct,
        "payout_on_year_end_pct": split.year_end_pct,
    }


# ---------------------------------------------------------------------------
# CompensationPlanModel
# ---------------------------------------------------------------------------


class CompensationPlanModel(TrackedBase):
    """
    ORM model for ``CompensationPlan``.

    Guarantees:
        - ``name`` is unique (uq_comp_plan_name).
        - Child collections load eagerly enough for a single prefetch pass
          (``selectin``).
    """

    __tablename__ = "comp_plans"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_clawback_exempt: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    clawback_period_days: Mapped[int] = mapped_column(Integer, default=180, nullable=False)
    nrr_ote_percent: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    cr_er_min_gp_margin_pct: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    impl_min_gp_margin_pct: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    nrr_payout_on_booking_pct: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    nrr_payout_on_collection_pct: Mapped[Decimal] = mapped_column(default=Decimal("100"), nullable=False)
    nrr_payout_on_year_end_pct: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    metrics: Mapped[list["PlanMetricModel"]] = relationship(
        back_populates="plan", lazy="selectin", cascade="all, delete-orphan",
    )
    commissions: Mapped[list["PlanCommissionModel"]] = relationship(
        lazy="selectin", cascade="all, delete-orphan",
    )
    spiffs: Mapped[list["PlanSpiffModel"]] = relationship(
        lazy="selectin", cascade="all, delete-orphan",
    )
    renewal_multipliers: Mapped[list["ClosingArrRenewalMultiplierModel"]] = relationship(
        lazy="selectin", cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("name", name="uq_comp_plan_name"),
    )

    def to_dto(self):
        from incentive_kernel.domain.plans import CompensationPlan, PayoutSplit

        return CompensationPlan(
            id=self.id,
            name=self.name,
            metrics=tuple(m.to_dto() for m in self.metrics),
            commission_rules=tuple(c.to_dto() for c in self.commissions),
            spiff_rules=tuple(s.to_dto() for s in self.spiffs),
            renewal_tiers=tuple(
                r.to_dto() for r in sorted(self.renewal_multipliers, key=lambda r: r.min_years)
            ),
            is_clawback_exempt=self.is_clawback_exempt,
            clawback_period_days=self.clawback_period_days,
            nrr_ote_percent=self.nrr_ote_percent,
            cr_er_min_gp_margin_pct=self.cr_er_min_gp_margin_pct,
            impl_min_gp_margin_pct=self.impl_min_gp_margin_pct,
            nrr_split=PayoutSplit(
                self.nrr_payout_on_booking_pct,
                self.nrr_payout_on_collection_pct,
                self.nrr_payout_on_year_end_pct,
            ),
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "CompensationPlanModel":
        model = cls(
            id=dto.id,
            name=dto.name,
            is_clawback_exempt=dto.is_clawback_exempt,
            clawback_period_days=dto.clawback_period_days,
            nrr_ote_percent=dto.nrr_ote_percent,
            cr_er_min_gp_margin_pct=dto.cr_er_min_gp_margin_pct,
            impl_min_gp_margin_pct=dto.impl_min_gp_margin_pct,
            nrr_payout_on_booking_pct=dto.nrr_split.booking_pct,
            nrr_payout_on_collection_pct=dto.nrr_split.collection_pct,
            nrr_payout_on_year_end_pct=dto.nrr_split.year_end_pct,
            created_by_id=created_by_id,
        )
        model.metrics = [PlanMetricModel.from_dto(m, dto.id, created_by_id) for m in dto.metrics]
        model.commissions = [
            PlanCommissionModel.from_dto(c, dto.id, created_by_id) for c in dto.commission_rules
        ]
        model.spiffs = [PlanSpiffModel.from_dto(s, dto.id, created_by_id) for s in dto.spiff_rules]
        model.renewal_multipliers = [
            ClosingArrRenewalMultiplierModel.from_dto(r, dto.id, created_by_id)
            for r in dto.renewal_tiers
        ]
        return model

    def __repr__(self) -> str:
        return f"<CompensationPlanModel {self.name}>"


# ---------------------------------------------------------------------------
# PlanMetricModel / MultiplierGridModel
# ---------------------------------------------------------------------------


class PlanMetricModel(TrackedBase):
    """ORM model for ``PlanMetric``; owns its multiplier grid rows."""

    __tablename__ = "plan_metrics"

    plan_id: Mapped[UUID] = mapped_column(ForeignKey("comp_plans.id"), nullable=False)
    metric_name: Mapped[str] = mapped_column(String(200), nullable=False)
    weightage_percent: Mapped[Decimal] = mapped_column(nullable=False)
    logic_type: Mapped[str] = mapped_column(String(50), nullable=False, default="Linear")
    gate_threshold_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    payout_on_booking_pct: Mapped[Decimal | None] = mapped_column(nullable=True)
    payout_on_collection_pct: Mapped[Decimal | None] = mapped_column(nullable=True)
    payout_on_year_end_pct: Mapped[Decimal | None] = mapped_column(nullable=True)

    plan: Mapped[CompensationPlanModel] = relationship(back_populates="metrics")
    grids: Mapped[list["MultiplierGridModel"]] = relationship(
        lazy="selectin", cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("plan_id", "metric_name", name="uq_plan_metric_name"),
        Index("idx_plan_metric_plan", "plan_id"),
    )

    def to_dto(self):
        from incentive_kernel.domain.plans import LogicType, PlanMetric

        return PlanMetric(
            id=self.id,
            metric_name=self.metric_name,
            weightage_percent=self.weightage_percent,
            logic_type=LogicType(self.logic_type),
            gate_threshold_percent=self.gate_threshold_percent,
            split=_split_from_columns(
                self.payout_on_booking_pct,
                self.payout_on_collection_pct,
                self.payout_on_year_end_pct,
            ),
            tiers=tuple(
                g.to_dto() for g in sorted(self.grids, key=lambda g: g.min_pct)
            ),
        )

    @classmethod
    def from_dto(cls, dto, plan_id: UUID, created_by_id: UUID) -> "PlanMetricModel":
        model = cls(
            id=dto.id,
            plan_id=plan_id,
            metric_name=dto.metric_name,
            weightage_percent=dto.weightage_percent,
            logic_type=dto.logic_type.value,
            gate_threshold_percent=dto.gate_threshold_percent,
            **_split_columns(dto.split),
            created_by_id=created_by_id,
        )
        model.grids = [
            MultiplierGridModel(
                plan_metric_id=dto.id,
                min_pct=t.min_pct,
                max_pct=t.max_pct,
                multiplier_value=t.multiplier,
                created_by_id=created_by_id,
            )
            for t in dto.tiers
        ]
        return model

    def __repr__(self) -> str:
        return f"<PlanMetricModel {self.metric_name} ({self.weightage_percent}%)>"


class MultiplierGridModel(TrackedBase):
    """One multiplier tier of a plan metric."""

    __tablename__ = "multiplier_grids"

    plan_metric_id: Mapped[UUID] = mapped_column(ForeignKey("plan_metrics.id"), nullable=False)
    min_pct: Mapped[Decimal] = mapped_column(nullable=False)
    max_pct: Mapped[Decimal] = mapped_column(nullable=False)
    multiplier_value: Mapped[Decimal] = mapped_column(nullable=False)

    __table_args__ = (
        Index("idx_multiplier_grid_metric", "plan_metric_id"),
    )

    def to_dto(self):
        from incentive_kernel.domain.plans import MultiplierTier

        return MultiplierTier(self.min_pct, self.max_pct, self.multiplier_value)


# ---------------------------------------------------------------------------
# PlanCommissionModel / PlanSpiffModel / renewal multipliers
# ---------------------------------------------------------------------------


class PlanCommissionModel(TrackedBase):
    """ORM model for ``CommissionRule``."""

    __tablename__ = "plan_commissions"

    plan_id: Mapped[UUID] = mapped_column(ForeignKey("comp_plans.id"), nullable=False)
    commission_type: Mapped[str] = mapped_column(String(50), nullable=False)
    commission_rate_pct: Mapped[Decimal] = mapped_column(nullable=False)
    min_threshold_usd: Mapped[Decimal | None] = mapped_column(nullable=True)
    min_gp_margin_pct: Mapped[Decimal | None] = mapped_column(nullable=True)
    payout_on_booking_pct: Mapped[Decimal | None] = mapped_column(nullable=True)
    payout_on_collection_pct: Mapped[Decimal | None] = mapped_column(nullable=True)
    payout_on_year_end_pct: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("plan_id", "commission_type", name="uq_plan_commission_type"),
    )

    def to_dto(self):
        from incentive_kernel.domain.plans import CommissionRule, CommissionType

        return CommissionRule(
            id=self.id,
            commission_type=CommissionType(self.commission_type),
            commission_rate_pct=self.commission_rate_pct,
            split=_split_from_columns(
                self.payout_on_booking_pct,
                self.payout_on_collection_pct,
                self.payout_on_year_end_pct,
            ),
            min_threshold_usd=self.min_threshold_usd,
            min_gp_margin_pct=self.min_gp_margin_pct,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, plan_id: UUID, created_by_id: UUID) -> "PlanCommissionModel":
        return cls(
            id=dto.id,
            plan_id=plan_id,
            commission_type=dto.commission_type.value,
            commission_rate_pct=dto.commission_rate_pct,
            min_threshold_usd=dto.min_threshold_usd,
            min_gp_margin_pct=dto.min_gp_margin_pct,
            **_split_columns(dto.split),
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )


class PlanSpiffModel(TrackedBase):
    """ORM model for ``SpiffRule``."""

    __tablename__ = "plan_spiffs"

    plan_id: Mapped[UUID] = mapped_column(ForeignKey("comp_plans.id"), nullable=False)
    spiff_name: Mapped[str] = mapped_column(String(200), nullable=False)
    linked_metric_name: Mapped[str] = mapped_column(String(200), nullable=False)
    spiff_rate_pct: Mapped[Decimal] = mapped_column(nullable=False)
    min_deal_value_usd: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    payout_on_booking_pct: Mapped[Decimal | None] = mapped_column(nullable=True)
    payout_on_collection_pct: Mapped[Decimal | None] = mapped_column(nullable=True)
    payout_on_year_end_pct: Mapped[Decimal | None] = mapped_column(nullable=True)

    def to_dto(self):
        from incentive_kernel.domain.plans import SpiffRule

        return SpiffRule(
            id=self.id,
            spiff_name=self.spiff_name,
            linked_metric_name=self.linked_metric_name,
            spiff_rate_pct=self.spiff_rate_pct,
            split=_split_from_columns(
                self.payout_on_booking_pct,
                self.payout_on_collection_pct,
                self.payout_on_year_end_pct,
            ),
            min_deal_value_usd=self.min_deal_value_usd,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, plan_id: UUID, created_by_id: UUID) -> "PlanSpiffModel":
        return cls(
            id=dto.id,
            plan_id=plan_id,
            spiff_name=dto.spiff_name,
            linked_metric_name=dto.linked_metric_name,
            spiff_rate_pct=dto.spiff_rate_pct,
            min_deal_value_usd=dto.min_deal_value_usd,
            is_active=dto.is_active,
            **_split_columns(dto.split),
            created_by_id=created_by_id,
        )


class ClosingArrRenewalMultiplierModel(TrackedBase):
    """Renewal-years tier for closing-ARR adjustments."""

    __tablename__ = "closing_arr_renewal_multipliers"

    plan_id: Mapped[UUID] = mapped_column(ForeignKey("comp_plans.id"), nullable=False)
    min_years: Mapped[int] = mapped_column(Integer, nullable=False)
    max_years: Mapped[int | None] = mapped_column(Integer, nullable=True)
    multiplier_value: Mapped[Decimal] = mapped_column(nullable=False)

    def to_dto(self):
        from incentive_kernel.domain.plans import RenewalMultiplierTier

        return RenewalMultiplierTier(self.min_years, self.max_years, self.multiplier_value)

    @classmethod
    def from_dto(cls, dto, plan_id: UUID, created_by_id: UUID) -> "ClosingArrRenewalMultiplierModel":
        return cls(
            plan_id=plan_id,
            min_years=dto.min_years,
            max_years=dto.max_years,
            multiplier_value=dto.multiplier_value,
            created_by_id=created_by_id,
        )


# ---------------------------------------------------------------------------
# PlanAssignmentModel
# ---------------------------------------------------------------------------


class PlanAssignmentModel(TrackedBase):
    """
    ORM model for ``PlanAssignment`` -- which plan an employee is on, and when.

    Guarantees:
        - Indexed by (employee_id, effective_start_date) for the per-month
          coverage lookup.
    """

    __tablename__ = "plan_assignments"

    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    plan_id: Mapped[UUID] = mapped_column(ForeignKey("comp_plans.id"), nullable=False)
    effective_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    effective_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    target_bonus_usd: Mapped[Decimal | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_plan_assignment_employee", "employee_id", "effective_start_date"),
    )

    def to_dto(self):
        from incentive_kernel.domain.plans import PlanAssignment

        return PlanAssignment(
            id=self.id,
            employee_id=self.employee_id,
            plan_id=self.plan_id,
            effective_start_date=self.effective_start_date,
            effective_end_date=self.effective_end_date,
            target_bonus_usd=self.target_bonus_usd,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "PlanAssignmentModel":
        return cls(
            id=dto.id,
            employee_id=dto.employee_id,
            plan_id=dto.plan_id,
            effective_start_date=dto.effective_start_date,
            effective_end_date=dto.effective_end_date,
            target_bonus_usd=dto.target_bonus_usd,
            created_by_id=created_by_id,
        )
