"""
Ingested Record ORM Models (``incentive_kernel.models.records``).

Responsibility:
    Persistence for the externally ingested inputs of a payout run:
    employees, deals, closing-ARR snapshots, deal collections,
    performance targets and market exchange rates.

Architecture position:
    **Kernel persistence**.  These tables are written by ingestion tooling
    outside this package and are read-only during calculation; the only
    calculation-time writes are the clawback flags on ``deal_collections``.

Invariants enforced:
    - ``employees.employee_code`` unique (uq_employee_code).
    - One target per (employee code, year, metric type) (uq_performance_target).
    - One market rate per (currency, month) (uq_exchange_rate_month).
    - One collection record per deal (uq_deal_collection_deal).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from incentive_kernel.db.base import CurrencyCode, MonthYear, TrackedBase

# Participant role -> deal column holding the employee code.
PARTICIPANT_COLUMNS = {
    "sales_rep": "sales_rep_employee_code",
    "sales_head": "sales_head_employee_code",
    "sales_engineering": "sales_engineering_employee_code",
    "sales_engineering_head": "sales_engineering_head_employee_code",
    "channel_sales": "channel_sales_employee_code",
    "product_specialist": "product_specialist_employee_code",
    "product_specialist_head": "product_specialist_head_employee_code",
    "solution_manager": "solution_manager_employee_code",
    "solution_manager_head": "solution_manager_head_employee_code",
    "solution_architect": "solution_architect_employee_code",
}


class EmployeeModel(TrackedBase):
    """ORM model for ``Employee``."""

    __tablename__ = "employees"

    employee_code: Mapped[str] = mapped_column(String(50), nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    local_currency: Mapped[str] = mapped_column(CurrencyCode(), default="USD", nullable=False)
    compensation_exchange_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    tvp_usd: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    departure_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    manager_employee_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sales_function: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_code", name="uq_employee_code"),
    )

    def to_dto(self):
        from incentive_kernel.domain.records import Employee

        return Employee(
            id=self.id,
            employee_code=self.employee_code,
            full_name=self.full_name,
            local_currency=self.local_currency,
            compensation_exchange_rate=self.compensation_exchange_rate,
            tvp_usd=self.tvp_usd,
            is_active=self.is_active,
            departure_date=self.departure_date,
            manager_employee_code=self.manager_employee_code,
            sales_function=self.sales_function,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "EmployeeModel":
        return cls(
            id=dto.id,
            employee_code=dto.employee_code,
            full_name=dto.full_name,
            local_currency=dto.local_currency,
            compensation_exchange_rate=dto.compensation_exchange_rate,
            tvp_usd=dto.tvp_usd,
            is_active=dto.is_active,
            departure_date=dto.departure_date,
            manager_employee_code=dto.manager_employee_code,
            sales_function=dto.sales_function,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<EmployeeModel {self.employee_code} ({self.local_currency})>"


class DealModel(TrackedBase):
    """
    ORM model for ``Deal``.

    Participants are stored as one nullable employee-code column per role
    (see ``PARTICIPANT_COLUMNS``).
    """

    __tablename__ = "deals"

    project_id: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    month_year: Mapped[str] = mapped_column(MonthYear(), nullable=False)
    new_software_booking_arr_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    perpetual_license_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    managed_services_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    implementation_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    cr_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    er_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    tcv_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    gp_margin_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    linked_to_impl: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    sales_rep_employee_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sales_head_employee_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sales_engineering_employee_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sales_engineering_head_employee_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    channel_sales_employee_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    product_specialist_employee_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    product_specialist_head_employee_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    solution_manager_employee_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    solution_manager_head_employee_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    solution_architect_employee_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_deal_month", "month_year"),
    )

    def to_dto(self):
        from incentive_kernel.domain.records import Deal, ParticipantRole

        participants = tuple(
            (ParticipantRole(role), getattr(self, column))
            for role, column in PARTICIPANT_COLUMNS.items()
            if getattr(self, column)
        )
        return Deal(
            id=self.id,
            project_id=self.project_id,
            customer_name=self.customer_name,
            month_year=self.month_year,
            new_software_booking_arr_usd=self.new_software_booking_arr_usd,
            perpetual_license_usd=self.perpetual_license_usd,
            managed_services_usd=self.managed_services_usd,
            implementation_usd=self.implementation_usd,
            cr_usd=self.cr_usd,
            er_usd=self.er_usd,
            tcv_usd=self.tcv_usd,
            gp_margin_percent=self.gp_margin_percent,
            linked_to_impl=self.linked_to_impl,
            participants=participants,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "DealModel":
        model = cls(
            id=dto.id,
            project_id=dto.project_id,
            customer_name=dto.customer_name,
            month_year=dto.month_year,
            new_software_booking_arr_usd=dto.new_software_booking_arr_usd,
            perpetual_license_usd=dto.perpetual_license_usd,
            managed_services_usd=dto.managed_services_usd,
            implementation_usd=dto.implementation_usd,
            cr_usd=dto.cr_usd,
            er_usd=dto.er_usd,
            tcv_usd=dto.tcv_usd,
            gp_margin_percent=dto.gp_margin_percent,
            linked_to_impl=dto.linked_to_impl,
            created_by_id=created_by_id,
        )
        for role, code in dto.participants:
            setattr(model, PARTICIPANT_COLUMNS[role.value], code)
        return model

    def __repr__(self) -> str:
        return f"<DealModel {self.project_id} {self.month_year}>"


class ClosingArrSnapshotModel(TrackedBase):
    """ORM model for ``ClosingArrSnapshot``."""

    __tablename__ = "closing_arr_actuals"

    employee_code: Mapped[str] = mapped_column(String(50), nullable=False)
    project_id: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    month_year: Mapped[str] = mapped_column(MonthYear(), nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    closing_arr_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    is_multi_year: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    renewal_years: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        Index("idx_closing_arr_employee_month", "employee_code", "month_year"),
    )

    def to_dto(self):
        from incentive_kernel.domain.records import ClosingArrSnapshot

        return ClosingArrSnapshot(
            id=self.id,
            employee_code=self.employee_code,
            project_id=self.project_id,
            customer_name=self.customer_name,
            month_year=self.month_year,
            end_date=self.end_date,
            closing_arr_usd=self.closing_arr_usd,
            is_multi_year=self.is_multi_year,
            renewal_years=self.renewal_years,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "ClosingArrSnapshotModel":
        return cls(
            id=dto.id,
            employee_code=dto.employee_code,
            project_id=dto.project_id,
            customer_name=dto.customer_name,
            month_year=dto.month_year,
            end_date=dto.end_date,
            closing_arr_usd=dto.closing_arr_usd,
            is_multi_year=dto.is_multi_year,
            renewal_years=dto.renewal_years,
            created_by_id=created_by_id,
        )


class DealCollectionModel(TrackedBase):
    """
    ORM model for ``DealCollection``.

    ``is_clawback_triggered`` and ``clawback_amount_usd`` are the only
    columns the payout engine writes.
    """

    __tablename__ = "deal_collections"

    deal_id: Mapped[UUID] = mapped_column(ForeignKey("deals.id"), nullable=False)
    project_id: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    booking_month: Mapped[str] = mapped_column(MonthYear(), nullable=False)
    deal_value_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    is_collected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    collection_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    collection_month: Mapped[str | None] = mapped_column(MonthYear(), nullable=True)
    first_milestone_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_clawback_triggered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    clawback_amount_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    __table_args__ = (
        UniqueConstraint("deal_id", name="uq_deal_collection_deal"),
        Index("idx_deal_collection_status", "is_collected", "is_clawback_triggered"),
    )

    def to_dto(self):
        from incentive_kernel.domain.records import DealCollection

        return DealCollection(
            id=self.id,
            deal_id=self.deal_id,
            project_id=self.project_id,
            customer_name=self.customer_name,
            booking_month=self.booking_month,
            deal_value_usd=self.deal_value_usd,
            is_collected=self.is_collected,
            collection_date=self.collection_date,
            collection_month=self.collection_month,
            first_milestone_due_date=self.first_milestone_due_date,
            is_clawback_triggered=self.is_clawback_triggered,
            clawback_amount_usd=self.clawback_amount_usd,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "DealCollectionModel":
        return cls(
            id=dto.id,
            deal_id=dto.deal_id,
            project_id=dto.project_id,
            customer_name=dto.customer_name,
            booking_month=dto.booking_month,
            deal_value_usd=dto.deal_value_usd,
            is_collected=dto.is_collected,
            collection_date=dto.collection_date,
            collection_month=dto.collection_month,
            first_milestone_due_date=dto.first_milestone_due_date,
            is_clawback_triggered=dto.is_clawback_triggered,
            clawback_amount_usd=dto.clawback_amount_usd,
            created_by_id=created_by_id,
        )


class PerformanceTargetModel(TrackedBase):
    """ORM model for ``PerformanceTarget``."""

    __tablename__ = "performance_targets"

    employee_code: Mapped[str] = mapped_column(String(50), nullable=False)
    effective_year: Mapped[int] = mapped_column(Integer, nullable=False)
    metric_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_value_usd: Mapped[Decimal] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "employee_code", "effective_year", "metric_type",
            name="uq_performance_target",
        ),
    )

    def to_dto(self):
        from incentive_kernel.domain.records import PerformanceTarget

        return PerformanceTarget(
            employee_code=self.employee_code,
            effective_year=self.effective_year,
            metric_type=self.metric_type,
            target_value_usd=self.target_value_usd,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "PerformanceTargetModel":
        return cls(
            employee_code=dto.employee_code,
            effective_year=dto.effective_year,
            metric_type=dto.metric_type,
            target_value_usd=dto.target_value_usd,
            created_by_id=created_by_id,
        )


class ExchangeRateModel(TrackedBase):
    """ORM model for monthly market ``ExchangeRate`` rows."""

    __tablename__ = "exchange_rates"

    currency_code: Mapped[str] = mapped_column(CurrencyCode(), nullable=False)
    month_year: Mapped[str] = mapped_column(MonthYear(), nullable=False)
    rate_to_usd: Mapped[Decimal] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("currency_code", "month_year", name="uq_exchange_rate_month"),
    )

    def to_dto(self):
        from incentive_kernel.domain.records import ExchangeRate

        return ExchangeRate(
            currency_code=self.currency_code,
            month_year=self.month_year,
            rate_to_usd=self.rate_to_usd,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "ExchangeRateModel":
        return cls(
            currency_code=dto.currency_code,
            month_year=dto.month_year,
            rate_to_usd=dto.rate_to_usd,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<ExchangeRateModel {self.currency_code} {self.month_year}: {self.rate_to_usd}>"
