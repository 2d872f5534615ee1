"""
Transactional Record Models (``incentive_kernel.domain.records``).

Responsibility
--------------
Frozen dataclass value objects for the externally ingested inputs of a
payout calculation: employees, deals, closing-ARR snapshots, deal
collections, performance targets and market exchange rates.

Architecture position
---------------------
**Kernel domain** -- pure data, ZERO I/O.  Read-only during calculation.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal``; missing revenue lines are zero,
  never None.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from incentive_kernel.domain.values import ZERO


class ParticipantRole(str, Enum):
    """Roles through which an employee is credited with a deal."""

    SALES_REP = "sales_rep"
    SALES_HEAD = "sales_head"
    SALES_ENGINEERING = "sales_engineering"
    SALES_ENGINEERING_HEAD = "sales_engineering_head"
    CHANNEL_SALES = "channel_sales"
    PRODUCT_SPECIALIST = "product_specialist"
    PRODUCT_SPECIALIST_HEAD = "product_specialist_head"
    SOLUTION_MANAGER = "solution_manager"
    SOLUTION_MANAGER_HEAD = "solution_manager_head"
    SOLUTION_ARCHITECT = "solution_architect"


class MetricType(str, Enum):
    """Performance target keys."""

    NEW_SOFTWARE_ARR = "new_software_arr"
    CLOSING_ARR = "closing_arr"
    CR_ER = "cr_er"
    IMPLEMENTATION = "implementation"


@dataclass(frozen=True)
class Employee:
    """A payee of the incentive engine."""

    id: UUID
    employee_code: str
    full_name: str
    local_currency: str = "USD"
    compensation_exchange_rate: Decimal | None = None
    tvp_usd: Decimal | None = None
    is_active: bool = True
    departure_date: date | None = None
    manager_employee_code: str | None = None
    sales_function: str | None = None

    def __post_init__(self):
        if self.compensation_exchange_rate is not None and self.compensation_exchange_rate <= ZERO:
            raise ValueError("compensation_exchange_rate must be positive")

    def pays_in(self, currency: str) -> bool:
        return self.local_currency.upper() == currency.upper()


@dataclass(frozen=True)
class Deal:
    """A booked deal with its revenue lines and credited participants."""

    id: UUID
    project_id: str
    customer_name: str
    month_year: str
    new_software_booking_arr_usd: Decimal = ZERO
    perpetual_license_usd: Decimal = ZERO
    managed_services_usd: Decimal = ZERO
    implementation_usd: Decimal = ZERO
    cr_usd: Decimal = ZERO
    er_usd: Decimal = ZERO
    tcv_usd: Decimal = ZERO
    gp_margin_percent: Decimal | None = None
    linked_to_impl: bool = False
    # role -> employee code
    participants: tuple[tuple[ParticipantRole, str], ...] = ()

    @property
    def cr_er_usd(self) -> Decimal:
        return self.cr_usd + self.er_usd

    @property
    def participant_codes(self) -> frozenset[str]:
        return frozenset(code for _, code in self.participants if code)

    def has_participant(self, employee_code: str) -> bool:
        return employee_code in self.participant_codes


@dataclass(frozen=True)
class ClosingArrSnapshot:
    """Monthly snapshot of a renewing contract's ARR for one employee."""

    id: UUID
    employee_code: str
    project_id: str
    customer_name: str
    month_year: str
    end_date: date | None
    closing_arr_usd: Decimal
    is_multi_year: bool = False
    renewal_years: int = 1


@dataclass(frozen=True)
class DealCollection:
    """Cash collection tracking for a deal."""

    id: UUID
    deal_id: UUID
    project_id: str
    customer_name: str
    booking_month: str
    deal_value_usd: Decimal = ZERO
    is_collected: bool = False
    collection_date: date | None = None
    collection_month: str | None = None
    first_milestone_due_date: date | None = None
    is_clawback_triggered: bool = False
    clawback_amount_usd: Decimal = ZERO


@dataclass(frozen=True)
class PerformanceTarget:
    """Annual target for one employee and metric type."""

    employee_code: str
    effective_year: int
    metric_type: str
    target_value_usd: Decimal


@dataclass(frozen=True)
class ExchangeRate:
    """Market rate: local-currency units per USD for a month."""

    currency_code: str
    month_year: str
    rate_to_usd: Decimal

    def __post_init__(self):
        if self.rate_to_usd <= ZERO:
            raise ValueError("rate_to_usd must be positive")
