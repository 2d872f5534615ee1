"""
Tests for FnfSettlementService.

Covers:
- Tranche 1 from the fiscal year's payout lines, latest metric details
  and outstanding clawbacks
- Recalculation replaces a tranche's lines
- Carry-forward from tranche 1 recovered in tranche 2
- Tranche 2 holdbacks: collected within grace, forfeited, already released,
  clawed back and later collected
- Tranche ordering and status transitions
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from incentive_kernel.domain.payouts import (
    CLAWBACK_RELEASE,
    COLLECTION_RELEASE,
    VARIABLE_PAY,
    ComponentType,
    PayoutMetricDetail,
)
from incentive_kernel.domain.settlement import FnfLineType, TrancheStatus
from incentive_kernel.exceptions import (
    SettlementEmployeeMismatchError,
    SettlementNotFoundError,
    TrancheOrderError,
)
from incentive_kernel.models.audit import AuditAction
from incentive_services.audit_service import AuditSink
from incentive_services.settlement_service import FnfSettlementService, build_entitlements
from tests.builders import (
    attribution,
    collection,
    deal,
    employee,
    ledger_entry,
    payout_line,
)

DEPARTURE = date(2026, 6, 30)


def _vp_detail(employee_id, ytd: str) -> PayoutMetricDetail:
    value = Decimal(ytd)
    return PayoutMetricDetail(
        employee_id=employee_id,
        component_type=ComponentType.VARIABLE_PAY,
        metric_name="New Software ARR",
        allocated_ote_usd=Decimal("100000"),
        target_usd=Decimal("500000"),
        actual_usd=Decimal("200000"),
        achievement_pct=Decimal("40"),
        multiplier=Decimal("1"),
        ytd_eligible_usd=value,
        prior_paid_usd=Decimal("0"),
        this_month_usd=value,
        booking_usd=value,
        collection_usd=Decimal("0"),
        year_end_usd=Decimal("0"),
    )


def _by_type(lines):
    return {line.line_type: line for line in lines}


class TestBuildEntitlements:
    """Tests for build_entitlements."""

    def test_components_with_details_only(self):
        emp_id = uuid4()
        details = [_vp_detail(emp_id, "30000"), _vp_detail(emp_id, "10000")]
        lines = [
            payout_line(emp_id, VARIABLE_PAY, "6000"),
            payout_line(emp_id, VARIABLE_PAY, "4000"),
            payout_line(emp_id, "SPIFF", "900"),
        ]

        [entitlement] = build_entitlements(details, lines)

        assert entitlement.line_type == FnfLineType.VP_SETTLEMENT
        assert entitlement.ytd_entitlement_usd == Decimal("40000")
        assert entitlement.prior_paid_usd == Decimal("10000")


@pytest.mark.integration
class TestSettlementService:
    """Tranche calculation over the database."""

    @pytest.fixture(autouse=True)
    def _seed(self, seed, repo):
        self.seed = seed
        self.repo = repo
        self.emp = seed.employee(employee())
        self.jan_run = seed.run("2026-01")
        self.feb_run = seed.run("2026-02")
        self.deal_a = seed.deal(deal("PRJ-A", "2026-01", arr="100000"))
        self.deal_b = seed.deal(deal("PRJ-B", "2026-02", arr="40000"))
        seed.payout_lines(payout_line(
            self.emp.id, VARIABLE_PAY, "10000", month_year="2026-01",
            run_id=self.jan_run.id, split=("7000", "2500", "500"),
        ))
        repo.add_details(self.feb_run.id, [_vp_detail(self.emp.id, "40000")], [], [])
        self.settlement = seed.settlement(self.emp.id, DEPARTURE)

    def _service(self, config, audit=None) -> FnfSettlementService:
        return FnfSettlementService(self.repo, config, audit)

    def test_tranche1(self, config):
        self.seed.ledger_entry(ledger_entry(self.emp.id, self.deal_a.id, original="1000"))

        result = self._service(config).calculate_tranche1(
            self.settlement.id, self.emp.id, 2026, DEPARTURE,
        )

        lines = _by_type(result.lines)
        assert lines[FnfLineType.YEAR_END_RELEASE].amount_usd == Decimal("500")
        # 40,000 x 181/365 - 10,000 already paid
        assert lines[FnfLineType.VP_SETTLEMENT].amount_usd == Decimal("9835.62")
        deduction = lines[FnfLineType.CLAWBACK_DEDUCTION]
        assert deduction.amount_usd == Decimal("-1000")
        assert deduction.notes == "Clawback deduction for deal PRJ-A"
        assert result.total_usd == Decimal("9335.62")
        saved = self.repo.get_settlement(self.settlement.id)
        assert saved.tranche1_status == TrancheStatus.CALCULATED
        assert saved.tranche1_total_usd == Decimal("9335.62")
        assert saved.clawback_carryforward_usd == Decimal("0")

    def test_recalculation_replaces_lines(self, config):
        service = self._service(config)
        service.calculate_tranche1(self.settlement.id, self.emp.id, 2026, DEPARTURE)

        service.calculate_tranche1(self.settlement.id, self.emp.id, 2026, DEPARTURE)

        assert len(self.repo.list_tranche_lines(self.settlement.id, 1)) == 2

    def test_employee_mismatch(self, config):
        with pytest.raises(SettlementEmployeeMismatchError):
            self._service(config).calculate_tranche1(
                self.settlement.id, uuid4(), 2026, DEPARTURE,
            )

    def test_unknown_settlement(self, config):
        with pytest.raises(SettlementNotFoundError):
            self._service(config).calculate_tranche2(uuid4())

    def test_tranche2_requires_tranche1(self, config):
        with pytest.raises(TrancheOrderError):
            self._service(config).calculate_tranche2(self.settlement.id)

    def test_carryforward_recovered_in_tranche2(self, config):
        self.seed.ledger_entry(ledger_entry(self.emp.id, self.deal_a.id, original="12000"))
        self.seed.attributions(attribution(
            self.emp.id, self.deal_a.id, self.feb_run.id, "2026-02", share="10000",
        ))
        self.seed.collection(collection(
            self.deal_a, is_collected=True, collection_date=date(2026, 8, 15),
        ))
        service = self._service(config)

        first = service.calculate_tranche1(self.settlement.id, self.emp.id, 2026, DEPARTURE)
        second = service.calculate_tranche2(self.settlement.id)

        assert first.total_usd == Decimal("0")
        assert first.clawback_carryforward_usd == Decimal("1664.38")
        lines = _by_type(second.lines)
        assert lines[FnfLineType.COLLECTION_RELEASE].amount_usd == Decimal("2500")
        assert lines[FnfLineType.CLAWBACK_DEDUCTION].amount_usd == Decimal("-1664.38")
        assert FnfLineType.CLAWBACK_WRITEOFF not in lines
        assert second.total_usd == Decimal("835.62")
        saved = self.repo.get_settlement(self.settlement.id)
        assert saved.tranche2_status == TrancheStatus.CALCULATED
        assert saved.tranche2_total_usd == Decimal("835.62")

    def test_clawback_release_does_not_block_holdback(self, config):
        aug_run = self.seed.run("2026-08")
        self.seed.attributions(attribution(
            self.emp.id, self.deal_a.id, self.feb_run.id, "2026-02", share="10000",
            is_clawback_triggered=True,
        ))
        self.seed.collection(collection(
            self.deal_a, is_collected=True, collection_date=date(2026, 8, 15),
            is_clawback_triggered=True,
        ))
        self.seed.payout_lines(payout_line(
            self.emp.id, CLAWBACK_RELEASE, "7000", month_year="2026-08",
            run_id=aug_run.id, deal_id=self.deal_a.id,
        ))
        service = self._service(config)
        service.calculate_tranche1(self.settlement.id, self.emp.id, 2026, DEPARTURE)

        result = service.calculate_tranche2(self.settlement.id)

        [line] = result.lines
        assert line.line_type == FnfLineType.COLLECTION_RELEASE
        assert line.amount_usd == Decimal("2500")
        assert result.total_usd == Decimal("2500")

    def test_uncollected_commission_forfeited(self, config):
        self.seed.payout_lines(payout_line(
            self.emp.id, "Managed Services", "2000", month_year="2026-02",
            run_id=self.feb_run.id, split=("1500", "500", "0"), deal_id=self.deal_b.id,
        ))
        self.seed.collection(collection(self.deal_b))
        service = self._service(config)
        service.calculate_tranche1(self.settlement.id, self.emp.id, 2026, DEPARTURE)

        result = service.calculate_tranche2(self.settlement.id)

        [line] = result.lines
        assert line.line_type == FnfLineType.COLLECTION_FORFEIT
        assert line.amount_usd == Decimal("0")
        assert "$500.00 not collected within 90 days" in line.notes
        assert result.total_usd == Decimal("0")

    def test_released_holdback_not_settled_again(self, config):
        self.seed.attributions(attribution(
            self.emp.id, self.deal_a.id, self.feb_run.id, "2026-02", share="10000",
        ))
        self.seed.collection(collection(
            self.deal_a, is_collected=True, collection_date=date(2026, 2, 20),
        ))
        self.seed.payout_lines(payout_line(
            self.emp.id, COLLECTION_RELEASE, "2500", month_year="2026-02",
            run_id=self.feb_run.id, deal_id=self.deal_a.id,
        ))
        service = self._service(config)
        service.calculate_tranche1(self.settlement.id, self.emp.id, 2026, DEPARTURE)

        result = service.calculate_tranche2(self.settlement.id)

        assert result.lines == ()
        assert result.total_usd == Decimal("0")


@pytest.mark.integration
class TestTrancheStatus:
    """Tests for set_tranche_status."""

    @pytest.fixture(autouse=True)
    def _seed(self, seed, repo, config, session_factory, clock, test_actor_id):
        self.emp = seed.employee(employee())
        self.settlement = seed.settlement(self.emp.id, DEPARTURE)
        self.audit = AuditSink(session_factory, clock, test_actor_id)
        self.service = FnfSettlementService(repo, config, self.audit)
        self.service.calculate_tranche1(self.settlement.id, self.emp.id, 2026, DEPARTURE)

    def test_approve_then_pay(self):
        self.service.set_tranche_status(self.settlement.id, 1, TrancheStatus.APPROVED)

        settled = self.service.set_tranche_status(self.settlement.id, 1, TrancheStatus.PAID)

        assert settled.tranche1_status == TrancheStatus.PAID
        changes = [e for e in self.audit.pending if e.action == AuditAction.FNF_STATUS_CHANGED]
        assert [c.payload["to"] for c in changes] == ["approved", "paid"]

    def test_cannot_move_backwards(self):
        self.service.set_tranche_status(self.settlement.id, 1, TrancheStatus.APPROVED)

        with pytest.raises(TrancheOrderError):
            self.service.set_tranche_status(self.settlement.id, 1, TrancheStatus.CALCULATED)

    def test_uncalculated_tranche_cannot_be_approved(self):
        with pytest.raises(TrancheOrderError):
            self.service.set_tranche_status(self.settlement.id, 2, TrancheStatus.APPROVED)

    def test_unknown_tranche(self):
        with pytest.raises(ValueError):
            self.service.set_tranche_status(self.settlement.id, 3, TrancheStatus.APPROVED)
