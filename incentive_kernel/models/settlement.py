"""
Full & Final Settlement ORM Models (``incentive_kernel.models.settlement``).

Responsibility:
    Persistence for F&F settlement headers and their tranche lines.

Invariants enforced:
    - One settlement per (employee, departure date) (uq_fnf_employee_departure).
    - ``tranche`` is 1 or 2 (checked on DTO conversion).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from incentive_kernel.db.base import CurrencyCode, TrackedBase


class FnfSettlementModel(TrackedBase):
    """ORM model for ``FnfSettlement``."""

    __tablename__ = "fnf_settlements"

    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    departure_date: Mapped[date] = mapped_column(Date, nullable=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    collection_grace_days: Mapped[int] = mapped_column(Integer, default=90, nullable=False)
    tranche1_status: Mapped[str] = mapped_column(String(50), default="draft", nullable=False)
    tranche1_total_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    tranche2_status: Mapped[str] = mapped_column(String(50), default="draft", nullable=False)
    tranche2_total_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    clawback_carryforward_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "departure_date", name="uq_fnf_employee_departure"),
    )

    def to_dto(self):
        from incentive_kernel.domain.settlement import FnfSettlement, TrancheStatus

        return FnfSettlement(
            id=self.id,
            employee_id=self.employee_id,
            departure_date=self.departure_date,
            fiscal_year=self.fiscal_year,
            collection_grace_days=self.collection_grace_days,
            tranche1_status=TrancheStatus(self.tranche1_status),
            tranche1_total_usd=self.tranche1_total_usd,
            tranche2_status=TrancheStatus(self.tranche2_status),
            tranche2_total_usd=self.tranche2_total_usd,
            clawback_carryforward_usd=self.clawback_carryforward_usd,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "FnfSettlementModel":
        return cls(
            id=dto.id,
            employee_id=dto.employee_id,
            departure_date=dto.departure_date,
            fiscal_year=dto.fiscal_year,
            collection_grace_days=dto.collection_grace_days,
            tranche1_status=dto.tranche1_status.value,
            tranche1_total_usd=dto.tranche1_total_usd,
            tranche2_status=dto.tranche2_status.value,
            tranche2_total_usd=dto.tranche2_total_usd,
            clawback_carryforward_usd=dto.clawback_carryforward_usd,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<FnfSettlementModel {self.departure_date} "
            f"T1={self.tranche1_status} T2={self.tranche2_status}>"
        )


class FnfSettlementLineModel(TrackedBase):
    """ORM model for ``FnfSettlementLine``."""

    __tablename__ = "fnf_settlement_lines"

    settlement_id: Mapped[UUID] = mapped_column(ForeignKey("fnf_settlements.id"), nullable=False)
    tranche: Mapped[int] = mapped_column(Integer, nullable=False)
    line_type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount_usd: Mapped[Decimal] = mapped_column(nullable=False)
    amount_local: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    local_currency: Mapped[str] = mapped_column(CurrencyCode(), default="USD", nullable=False)
    exchange_rate_used: Mapped[Decimal] = mapped_column(default=Decimal("1"), nullable=False)
    payout_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    deal_id: Mapped[UUID | None] = mapped_column(nullable=True)
    source_payout_id: Mapped[UUID | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_fnf_line_settlement_tranche", "settlement_id", "tranche"),
    )

    def to_dto(self):
        from incentive_kernel.domain.settlement import FnfLineType, FnfSettlementLine

        return FnfSettlementLine(
            id=self.id,
            settlement_id=self.settlement_id,
            tranche=self.tranche,
            line_type=FnfLineType(self.line_type),
            amount_usd=self.amount_usd,
            amount_local=self.amount_local,
            local_currency=self.local_currency,
            exchange_rate_used=self.exchange_rate_used,
            payout_type=self.payout_type,
            deal_id=self.deal_id,
            source_payout_id=self.source_payout_id,
            notes=self.notes or "",
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "FnfSettlementLineModel":
        return cls(
            id=dto.id,
            settlement_id=dto.settlement_id,
            tranche=dto.tranche,
            line_type=dto.line_type.value,
            amount_usd=dto.amount_usd,
            amount_local=dto.amount_local,
            local_currency=dto.local_currency,
            exchange_rate_used=dto.exchange_rate_used,
            payout_type=dto.payout_type,
            deal_id=dto.deal_id,
            source_payout_id=dto.source_payout_id,
            notes=dto.notes,
            created_by_id=created_by_id,
        )
