"""
Tests for deal-level variable pay attribution and closing ARR.

Covers:
- Aggregate-then-distribute pro-rata attribution
- Booking / collection / year-end split of each share
- Deal qualification (participant, YTD window, positive value)
- Closing ARR from the latest snapshot month
- Renewal multipliers and contract end date exclusions
"""

from datetime import date
from decimal import Decimal

import pytest

from incentive_engines.attribution import (
    DEFAULT_VP_SPLIT,
    attribute_variable_pay,
    calculate_closing_arr,
    qualifying_deals,
    renewal_multiplier,
    split_amount,
)
from incentive_kernel.domain.plans import PayoutSplit, RenewalMultiplierTier
from tests.builders import closing_snapshot, deal, metric


class TestSplitAmount:
    """Tests for splitting an amount three ways."""

    def test_default_split(self):
        assert split_amount(Decimal("6000"), DEFAULT_VP_SPLIT) == (
            Decimal("4200.00"), Decimal("1500.00"), Decimal("300.00"),
        )

    def test_year_end_absorbs_rounding(self):
        booking, collection, year_end = split_amount(
            Decimal("333.33"), PayoutSplit.of(70, 25, 5),
        )

        assert booking + collection + year_end == Decimal("333.33")
        assert year_end == Decimal("16.67")


class TestQualifyingDeals:
    """Tests for deal selection."""

    def test_filters_participant_window_and_value(self):
        mine = deal("PRJ-1", "2026-01", arr="30000")
        later = deal("PRJ-2", "2026-04", arr="30000")
        other_rep = deal("PRJ-3", "2026-01", arr="30000", rep="E999")
        empty = deal("PRJ-4", "2026-02", arr="0")
        last_year = deal("PRJ-5", "2025-12", arr="30000")

        result = qualifying_deals([mine, later, other_rep, empty, last_year], "E001", "2026-03")

        assert result == [mine]


class TestAttributeVariablePay:
    """Tests for aggregate-then-distribute attribution."""

    def setup_method(self):
        self.metric = metric()
        self.deal_a = deal("PRJ-A", "2026-01", arr="30000")
        self.deal_b = deal("PRJ-B", "2026-02", arr="70000")

    def _attribute(self, deals, month="2026-02", target="100000", allocation="20000"):
        return attribute_variable_pay(
            deals,
            "E001",
            self.metric,
            Decimal(target),
            Decimal(allocation),
            2026,
            month,
        )

    def test_payout_computed_on_aggregate(self):
        outcome = self._attribute([self.deal_a, self.deal_b])

        assert outcome.total_actual_usd == Decimal("100000")
        assert outcome.achievement_pct == Decimal("100")
        assert outcome.total_variable_pay_usd == Decimal("20000.00")

    def test_shares_are_pro_rata_not_equal(self):
        """30% of the actual earns 30% of the payout."""
        outcome = self._attribute([self.deal_a, self.deal_b])

        shares = {s.project_id: s for s in outcome.shares}
        assert shares["PRJ-A"].variable_pay_split_usd == Decimal("6000.00")
        assert shares["PRJ-B"].variable_pay_split_usd == Decimal("14000.00")
        assert shares["PRJ-A"].proportion_pct == Decimal("30.0000")

    def test_share_split_and_clawback_eligibility(self):
        outcome = self._attribute([self.deal_a, self.deal_b])

        share = outcome.shares[0]
        assert share.payout_on_booking_usd == Decimal("4200.00")
        assert share.payout_on_collection_usd == Decimal("1500.00")
        assert share.payout_on_year_end_usd == Decimal("300.00")
        assert share.clawback_eligible_usd == share.payout_on_booking_usd

    def test_metric_split_overrides_default(self):
        self.metric = metric(split=PayoutSplit.of(100, 0, 0))

        outcome = self._attribute([self.deal_a])

        assert outcome.split == PayoutSplit.of(100, 0, 0)
        assert outcome.shares[0].payout_on_collection_usd == Decimal("0")

    def test_shares_sum_to_total_within_rounding(self):
        deals = [deal(f"PRJ-{i}", "2026-01", arr="10000") for i in range(3)]

        outcome = self._attribute(deals, month="2026-01", target="30000", allocation="1000")

        total = sum(s.variable_pay_split_usd for s in outcome.shares)
        assert abs(total - outcome.total_variable_pay_usd) <= Decimal("0.015")

    def test_future_deals_excluded_from_ytd(self):
        outcome = self._attribute([self.deal_a, self.deal_b], month="2026-01")

        assert outcome.total_actual_usd == Decimal("30000")
        assert [s.project_id for s in outcome.shares] == ["PRJ-A"]

    def test_no_deals_gives_empty_outcome(self):
        outcome = self._attribute([])

        assert outcome.total_variable_pay_usd == Decimal("0")
        assert outcome.shares == ()

    def test_zero_target_gives_no_shares(self):
        outcome = self._attribute([self.deal_a], target="0")

        assert outcome.achievement_pct == Decimal("0")
        assert outcome.shares == ()

    def test_month_outside_fiscal_year_rejected(self):
        with pytest.raises(ValueError):
            attribute_variable_pay(
                [self.deal_a], "E001", self.metric,
                Decimal("100000"), Decimal("20000"), 2025, "2026-01",
            )


class TestRenewalMultiplier:
    """Tests for renewal-years tier lookup."""

    def setup_method(self):
        self.tiers = (
            RenewalMultiplierTier(1, 1, Decimal("1.0")),
            RenewalMultiplierTier(2, 3, Decimal("1.1")),
            RenewalMultiplierTier(4, None, Decimal("1.25")),
        )

    def test_matching_tier(self):
        assert renewal_multiplier(3, self.tiers) == Decimal("1.1")

    def test_open_ended_tier(self):
        assert renewal_multiplier(7, self.tiers) == Decimal("1.25")

    def test_no_tiers_falls_back_to_one(self):
        assert renewal_multiplier(3, ()) == Decimal("1")


class TestClosingArr:
    """Tests for the closing ARR metric."""

    def setup_method(self):
        self.tiers = (RenewalMultiplierTier(2, 3, Decimal("1.2")),)

    def test_uses_latest_month_only(self):
        """Snapshots are a balance, not a flow: no summing across months."""
        snapshots = [
            closing_snapshot(project_id="RNW-1", month_year="2026-02", arr="90000"),
            closing_snapshot(project_id="RNW-1", month_year="2026-03", arr="100000"),
        ]

        outcome = calculate_closing_arr(snapshots, 2026)

        assert outcome.latest_month == "2026-03"
        assert outcome.total_adjusted_arr_usd == Decimal("100000")
        assert len(outcome.lines) == 1

    def test_multi_year_renewal_multiplier(self):
        snapshots = [
            closing_snapshot(arr="100000", is_multi_year=True, renewal_years=3),
        ]

        outcome = calculate_closing_arr(snapshots, 2026, self.tiers)

        assert outcome.lines[0].multiplier == Decimal("1.2")
        assert outcome.total_adjusted_arr_usd == Decimal("120000.0")

    def test_contract_ending_in_fiscal_year_excluded_but_recorded(self):
        snapshots = [
            closing_snapshot(project_id="RNW-1", arr="100000"),
            closing_snapshot(
                project_id="RNW-2", arr="50000", end_date=date(2026, 12, 31),
                is_multi_year=True, renewal_years=3,
            ),
            closing_snapshot(project_id="RNW-3", arr="25000", end_date=None),
        ]

        outcome = calculate_closing_arr(snapshots, 2026, self.tiers)

        assert outcome.total_adjusted_arr_usd == Decimal("100000")
        lines = {line.project_id: line for line in outcome.lines}
        assert not lines["RNW-2"].is_eligible
        assert lines["RNW-2"].multiplier == Decimal("1")
        assert lines["RNW-2"].adjusted_arr_usd == Decimal("50000")
        assert "2026-12-31" in lines["RNW-2"].exclusion_reason
        assert lines["RNW-3"].exclusion_reason == "No contract end date"

    def test_other_fiscal_year_ignored(self):
        snapshots = [closing_snapshot(month_year="2025-12")]

        outcome = calculate_closing_arr(snapshots, 2026)

        assert outcome.latest_month is None
        assert outcome.total_adjusted_arr_usd == Decimal("0")
