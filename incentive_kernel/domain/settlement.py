"""
Full & Final Settlement Domain Models (``incentive_kernel.domain.settlement``).

Frozen value objects for the two-tranche terminal settlement of a departed
employee.  Tranche 1 releases year-end reserves net of outstanding
clawbacks; tranche 2 releases collection holdbacks after a grace period.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from incentive_kernel.domain.values import ZERO


class TrancheStatus(str, Enum):
    DRAFT = "draft"
    CALCULATED = "calculated"
    APPROVED = "approved"
    PAID = "paid"


class FnfLineType(str, Enum):
    YEAR_END_RELEASE = "year_end_release"
    VP_SETTLEMENT = "vp_settlement"
    NRR_SETTLEMENT = "nrr_settlement"
    SPIFF_SETTLEMENT = "spiff_settlement"
    CLAWBACK_DEDUCTION = "clawback_deduction"
    CLAWBACK_CARRYFORWARD = "clawback_carryforward"
    COLLECTION_RELEASE = "collection_release"
    COLLECTION_FORFEIT = "collection_forfeit"
    CLAWBACK_WRITEOFF = "clawback_writeoff"


@dataclass(frozen=True)
class FnfSettlement:
    """Settlement header for one departure."""

    id: UUID
    employee_id: UUID
    departure_date: date
    fiscal_year: int
    collection_grace_days: int = 90
    tranche1_status: TrancheStatus = TrancheStatus.DRAFT
    tranche1_total_usd: Decimal = ZERO
    tranche2_status: TrancheStatus = TrancheStatus.DRAFT
    tranche2_total_usd: Decimal = ZERO
    clawback_carryforward_usd: Decimal = ZERO

    def __post_init__(self):
        if self.collection_grace_days < 0:
            raise ValueError("collection_grace_days cannot be negative")


@dataclass(frozen=True)
class FnfSettlementLine:
    """One line of a tranche."""

    id: UUID
    settlement_id: UUID
    tranche: int
    line_type: FnfLineType
    amount_usd: Decimal
    amount_local: Decimal = ZERO
    local_currency: str = "USD"
    exchange_rate_used: Decimal = Decimal("1")
    payout_type: str | None = None
    deal_id: UUID | None = None
    source_payout_id: UUID | None = None
    notes: str = ""

    def __post_init__(self):
        if self.tranche not in (1, 2):
            raise ValueError(f"tranche must be 1 or 2, got {self.tranche}")


@dataclass(frozen=True)
class TrancheResult:
    lines: tuple[FnfSettlementLine, ...]
    total_usd: Decimal
    clawback_carryforward_usd: Decimal = ZERO
