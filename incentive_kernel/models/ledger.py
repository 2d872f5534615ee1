"""
Clawback Ledger ORM Models (``incentive_kernel.models.ledger``).

Responsibility:
    Persistence for clawback ledger entries and the per-run recovery rows
    that explain every change to an entry's recovered balance.

Architecture position:
    **Kernel persistence**.  Written only by ``ClawbackService``.

Invariants enforced:
    - ``original_amount_usd = recovered_amount_usd + remaining_amount_usd``
      is re-checked whenever a row is converted to its DTO.
    - One recovery row per (run, ledger entry) (uq_clawback_recovery_run_entry).

Audit relevance:
    Recovery rows are what make a run reversible: recomputing a run first
    hands its recoveries back to the ledger, then recovers afresh.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from incentive_kernel.db.base import MonthYear, TrackedBase


class ClawbackLedgerModel(TrackedBase):
    """ORM model for ``ClawbackLedgerEntry``."""

    __tablename__ = "clawback_ledger"

    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    deal_id: Mapped[UUID] = mapped_column(ForeignKey("deals.id"), nullable=False)
    deal_collection_id: Mapped[UUID | None] = mapped_column(nullable=True)
    original_amount_usd: Mapped[Decimal] = mapped_column(nullable=False)
    recovered_amount_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    remaining_amount_usd: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    triggered_month: Mapped[str] = mapped_column(MonthYear(), nullable=False)
    last_recovery_month: Mapped[str | None] = mapped_column(MonthYear(), nullable=True)
    triggered_run_id: Mapped[UUID | None] = mapped_column(nullable=True)
    resolved_run_id: Mapped[UUID | None] = mapped_column(nullable=True)
    released_amount_usd: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "deal_id", name="uq_clawback_ledger_employee_deal"),
        Index("idx_clawback_ledger_employee_status", "employee_id", "status"),
    )

    def to_dto(self):
        from incentive_kernel.domain.payouts import ClawbackLedgerEntry, LedgerStatus

        return ClawbackLedgerEntry(
            id=self.id,
            employee_id=self.employee_id,
            deal_id=self.deal_id,
            original_amount_usd=self.original_amount_usd,
            recovered_amount_usd=self.recovered_amount_usd,
            remaining_amount_usd=self.remaining_amount_usd,
            status=LedgerStatus(self.status),
            triggered_month=self.triggered_month,
            deal_collection_id=self.deal_collection_id,
            last_recovery_month=self.last_recovery_month,
            triggered_run_id=self.triggered_run_id,
            resolved_run_id=self.resolved_run_id,
            released_amount_usd=self.released_amount_usd,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "ClawbackLedgerModel":
        return cls(
            id=dto.id,
            employee_id=dto.employee_id,
            deal_id=dto.deal_id,
            deal_collection_id=dto.deal_collection_id,
            original_amount_usd=dto.original_amount_usd,
            recovered_amount_usd=dto.recovered_amount_usd,
            remaining_amount_usd=dto.remaining_amount_usd,
            status=dto.status.value,
            triggered_month=dto.triggered_month,
            last_recovery_month=dto.last_recovery_month,
            triggered_run_id=dto.triggered_run_id,
            resolved_run_id=dto.resolved_run_id,
            released_amount_usd=dto.released_amount_usd,
            created_by_id=created_by_id,
        )

    def apply_dto(self, dto) -> None:
        """Copy the mutable balance fields of ``dto`` onto this row."""
        self.recovered_amount_usd = dto.recovered_amount_usd
        self.remaining_amount_usd = dto.remaining_amount_usd
        self.status = dto.status.value
        self.last_recovery_month = dto.last_recovery_month
        self.resolved_run_id = dto.resolved_run_id
        self.released_amount_usd = dto.released_amount_usd

    def __repr__(self) -> str:
        return (
            f"<ClawbackLedgerModel {self.status} "
            f"{self.remaining_amount_usd}/{self.original_amount_usd}>"
        )


class ClawbackRecoveryModel(TrackedBase):
    """ORM model for ``ClawbackRecovery``."""

    __tablename__ = "clawback_recoveries"

    payout_run_id: Mapped[UUID] = mapped_column(ForeignKey("payout_runs.id"), nullable=False)
    ledger_entry_id: Mapped[UUID] = mapped_column(ForeignKey("clawback_ledger.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    month_year: Mapped[str] = mapped_column(MonthYear(), nullable=False)
    amount_usd: Mapped[Decimal] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "payout_run_id", "ledger_entry_id", name="uq_clawback_recovery_run_entry",
        ),
    )

    def to_dto(self):
        from incentive_kernel.domain.payouts import ClawbackRecovery

        return ClawbackRecovery(
            id=self.id,
            payout_run_id=self.payout_run_id,
            ledger_entry_id=self.ledger_entry_id,
            employee_id=self.employee_id,
            month_year=self.month_year,
            amount_usd=self.amount_usd,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "ClawbackRecoveryModel":
        return cls(
            id=dto.id,
            payout_run_id=dto.payout_run_id,
            ledger_entry_id=dto.ledger_entry_id,
            employee_id=dto.employee_id,
            month_year=dto.month_year,
            amount_usd=dto.amount_usd,
            created_by_id=created_by_id,
        )
