"""
Payout Audit Log ORM Model (``incentive_kernel.models.audit``).

Responsibility:
    Append-only record of calculation events: run completion, per-employee
    payouts, exchange rates used, rate mismatches, clawbacks applied and
    F&F tranche calculations.

Architecture position:
    **Kernel persistence**.  Written exclusively through
    ``incentive_services.audit_service.AuditSink``, which never lets a
    failed write abort a calculation.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from incentive_kernel.db.base import Base, CurrencyCode, MonthYear, UUIDString


class AuditAction(str, Enum):
    """
    Auditable calculation events.

    Contract: every member is emitted by exactly one service call site.
    """

    RUN_CALCULATED = "run_calculated"
    PAYOUT_CALCULATED = "payout_calculated"
    RATE_USED_COMPENSATION = "rate_used_compensation"
    RATE_USED_MARKET = "rate_used_market"
    RATE_MISMATCH = "rate_mismatch"
    CLAWBACK_APPLIED = "clawback_applied"
    FNF_TRANCHE_CALCULATED = "fnf_tranche_calculated"
    FNF_STATUS_CHANGED = "fnf_status_changed"


class AuditCategory(str, Enum):
    RUN_LIFECYCLE = "run_lifecycle"
    CALCULATION = "calculation"
    RATE_USAGE = "rate_usage"
    ADJUSTMENT = "adjustment"
    FNF_SETTLEMENT = "fnf_settlement"


class PayoutAuditLog(Base):
    """
    One audit row.

    Contract:
        Rows are append-only; nothing in this package updates or deletes
        them, including a run's delete-and-reinsert.
    """

    __tablename__ = "payout_audit_log"

    __table_args__ = (
        Index("idx_payout_audit_entity", "entity_type", "entity_id"),
        Index("idx_payout_audit_run", "payout_run_id"),
        Index("idx_payout_audit_action", "action"),
    )

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    payout_run_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    employee_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    month_year: Mapped[str | None] = mapped_column(MonthYear(), nullable=True)
    amount_usd: Mapped[Decimal | None] = mapped_column(nullable=True)
    amount_local: Mapped[Decimal | None] = mapped_column(nullable=True)
    local_currency: Mapped[str | None] = mapped_column(CurrencyCode(), nullable=True)
    exchange_rate_used: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<PayoutAuditLog {self.action} on {self.entity_type}:{self.entity_id}>"
