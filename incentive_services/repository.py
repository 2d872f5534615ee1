"""
incentive_services.repository -- Typed data-access interface of the payout engine.

Responsibility:
    Declare every read and write the services need as an explicit, typed
    method over domain DTOs.  Services and the snapshot builder depend on
    this interface only; ``SqlAlchemyPayoutRepository`` is the shipped
    implementation.

Architecture position:
    Services -- boundary between orchestration and persistence.  Methods
    accept and return frozen DTOs from ``incentive_kernel.domain``; no ORM
    object crosses this interface.

Invariants enforced:
    - ``try_lock_run`` is an atomic compare-and-swap on the run status.
    - Writes are flushed, never committed; the caller owns the
      transaction.

Failure modes:
    - Implementations raise ``PayoutRunNotFoundError`` /
      ``SettlementNotFoundError`` from the ``require_*`` helpers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from incentive_kernel.domain.payouts import (
    ClawbackLedgerEntry,
    ClawbackRecovery,
    ClosingArrDetail,
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


class PayoutRepository(ABC):
    """
    Abstract data access for payout runs, ledgers and settlements.

    Contract:
        Every method works inside the caller's transaction.
    Non-goals:
        - No caching; the run snapshot is the only cache.
        - No ingestion of employees, deals or plans (read-only here).
    """

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    @abstractmethod
    def get_run(self, run_id: UUID) -> PayoutRun | None: ...

    @abstractmethod
    def get_run_for_month(self, month_year: str) -> PayoutRun | None: ...

    @abstractmethod
    def try_lock_run(self, run_id: UUID) -> bool:
        """Move the run to ``calculating`` iff its status is lockable."""

    @abstractmethod
    def set_run_status(self, run_id: UUID, status: PayoutRunStatus) -> None: ...

    @abstractmethod
    def finalize_run(
        self,
        run_id: UUID,
        calculated_at: datetime,
        totals: dict[str, Decimal],
    ) -> None:
        """Write totals, ``calculated_at`` and status ``review``."""

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    @abstractmethod
    def list_active_employees(self) -> list[Employee]: ...

    @abstractmethod
    def get_employee(self, employee_id: UUID) -> Employee | None: ...

    @abstractmethod
    def list_plans(self) -> dict[UUID, CompensationPlan]: ...

    @abstractmethod
    def list_assignments(self, fiscal_year: int) -> dict[UUID, tuple[PlanAssignment, ...]]:
        """Assignments overlapping ``fiscal_year``, keyed by employee id."""

    @abstractmethod
    def list_deals(self, fiscal_year: int, through_month: str) -> list[Deal]:
        """Deals booked from January of ``fiscal_year`` through ``through_month``."""

    @abstractmethod
    def get_deals(self, deal_ids: Iterable[UUID]) -> dict[UUID, Deal]: ...

    @abstractmethod
    def list_closing_snapshots(
        self, fiscal_year: int, through_month: str,
    ) -> dict[str, tuple[ClosingArrSnapshot, ...]]: ...

    @abstractmethod
    def list_targets(self, fiscal_year: int) -> dict[tuple[str, str], Decimal]: ...

    @abstractmethod
    def get_market_rates(self, month_year: str) -> dict[str, Decimal]: ...

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    @abstractmethod
    def list_collections(self, deal_ids: Iterable[UUID] | None = None) -> dict[UUID, DealCollection]:
        """Collection records keyed by deal id; all records when ``deal_ids`` is None."""

    @abstractmethod
    def list_open_collections(self) -> list[DealCollection]:
        """Uncollected records whose clawback has not been triggered."""

    @abstractmethod
    def mark_collection_clawed_back(self, collection_id: UUID, amount_usd: Decimal) -> None: ...

    # ------------------------------------------------------------------
    # Run output
    # ------------------------------------------------------------------

    @abstractmethod
    def prior_paid(
        self, fiscal_year: int, before_month: str,
    ) -> dict[tuple[UUID, str, str], Decimal]:
        """Sum of ``this_month_usd`` per (employee, component, metric) of earlier months."""

    @abstractmethod
    def latest_attributions(
        self,
        fiscal_year: int,
        before_month: str | None = None,
        deal_id: UUID | None = None,
    ) -> list[VariablePayAttribution]:
        """Per employee, the attributions of its latest calculation month."""

    @abstractmethod
    def mark_attributions_clawed_back(
        self, attribution_ids: Sequence[UUID], amount_usd: Decimal,
    ) -> None: ...

    @abstractmethod
    def list_payout_lines(
        self,
        employee_id: UUID | None = None,
        fiscal_year: int | None = None,
        before_month: str | None = None,
        run_id: UUID | None = None,
        payout_types: Iterable[str] | None = None,
    ) -> list[MonthlyPayoutLine]: ...

    @abstractmethod
    def add_payout_lines(self, lines: Sequence[MonthlyPayoutLine]) -> None: ...

    @abstractmethod
    def add_attributions(self, attributions: Sequence[VariablePayAttribution]) -> None: ...

    @abstractmethod
    def add_details(
        self,
        run_id: UUID,
        metric_details: Sequence[PayoutMetricDetail],
        deal_details: Sequence[PayoutDealDetail],
        closing_details: Sequence[ClosingArrDetail],
    ) -> None: ...

    @abstractmethod
    def delete_run_output(self, run_id: UUID, keep_payout_types: Iterable[str]) -> dict[str, int]:
        """Delete the run's calculation-owned rows; returns deleted counts per table."""

    @abstractmethod
    def count_run_output(self, run_id: UUID, keep_payout_types: Iterable[str]) -> dict[str, int]: ...

    # ------------------------------------------------------------------
    # Clawback ledger
    # ------------------------------------------------------------------

    @abstractmethod
    def get_ledger_entry(self, employee_id: UUID, deal_id: UUID) -> ClawbackLedgerEntry | None: ...

    @abstractmethod
    def list_ledger_entries(
        self, employee_id: UUID, outstanding_only: bool = False,
    ) -> list[ClawbackLedgerEntry]:
        """Entries ordered oldest first (triggered month, then creation)."""

    @abstractmethod
    def add_ledger_entry(self, entry: ClawbackLedgerEntry) -> None: ...

    @abstractmethod
    def update_ledger_entry(self, entry: ClawbackLedgerEntry) -> None: ...

    @abstractmethod
    def list_recoveries(self, run_id: UUID) -> list[ClawbackRecovery]: ...

    @abstractmethod
    def add_recovery(self, recovery: ClawbackRecovery) -> None: ...

    @abstractmethod
    def delete_recoveries(self, run_id: UUID) -> int: ...

    # ------------------------------------------------------------------
    # F&F settlements
    # ------------------------------------------------------------------

    @abstractmethod
    def get_settlement(self, settlement_id: UUID) -> FnfSettlement | None: ...

    @abstractmethod
    def save_settlement(self, settlement: FnfSettlement) -> None: ...

    @abstractmethod
    def clear_tranche_lines(self, settlement_id: UUID, tranche: int) -> int: ...

    @abstractmethod
    def add_tranche_lines(self, lines: Sequence[FnfSettlementLine]) -> None: ...

    @abstractmethod
    def list_tranche_lines(self, settlement_id: UUID, tranche: int) -> list[FnfSettlementLine]: ...

    @abstractmethod
    def latest_metric_details(
        self, employee_id: UUID, fiscal_year: int, through_month: str,
    ) -> list[PayoutMetricDetail]:
        """Metric details of the employee's latest run in the fiscal year."""
