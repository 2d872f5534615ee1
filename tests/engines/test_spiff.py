"""
Tests for SPIFF calculation.

Covers:
- Per-deal SPIFF on the linked metric's allocated OTE
- Minimum deal value exclusion
- Missing linked metric
- Inactive rules
"""

from decimal import Decimal

from incentive_engines.spiff import calculate_all_spiffs, calculate_spiff_payout
from tests.builders import CLOSING_ARR_METRIC, NEW_ARR_METRIC, deal, metric, spiff_rule


class TestSpiffPayout:
    """Tests for one SPIFF rule."""

    def setup_method(self):
        self.metrics = [
            metric(NEW_ARR_METRIC, weightage="40"),
            metric(CLOSING_ARR_METRIC, weightage="60"),
        ]
        self.rule = spiff_rule(rate="10")

    def test_payout_per_deal(self):
        """40,000 allocated x 50,000 / 500,000 x 10%."""
        result = calculate_spiff_payout(
            self.rule, [deal(arr="50000")], self.metrics,
            Decimal("100000"), Decimal("500000"),
        )

        assert result.allocated_ote_usd == Decimal("40000.00")
        assert result.payout_usd == Decimal("400.00")
        assert result.eligible_actual_usd == Decimal("50000")

    def test_deals_summed(self):
        deals = [deal("PRJ-1", arr="50000"), deal("PRJ-2", arr="25000")]

        result = calculate_spiff_payout(
            self.rule, deals, self.metrics, Decimal("100000"), Decimal("500000"),
        )

        assert result.payout_usd == Decimal("600.00")
        assert len(result.deal_lines) == 2

    def test_minimum_deal_value_excludes(self):
        rule = spiff_rule(rate="10", min_deal_value_usd=Decimal("30000"))
        deals = [deal("PRJ-1", arr="50000"), deal("PRJ-2", arr="25000")]

        result = calculate_spiff_payout(
            rule, deals, self.metrics, Decimal("100000"), Decimal("500000"),
        )

        excluded = [line for line in result.deal_lines if not line.is_eligible]
        assert result.payout_usd == Decimal("400.00")
        assert [line.project_id for line in excluded] == ["PRJ-2"]
        assert "below minimum $30,000.00" in excluded[0].exclusion_reason
        assert result.eligible_actual_usd == Decimal("50000")

    def test_zero_value_deals_skipped(self):
        result = calculate_spiff_payout(
            self.rule, [deal(arr="0")], self.metrics, Decimal("100000"), Decimal("500000"),
        )

        assert result.deal_lines == ()

    def test_zero_target_pays_nothing(self):
        result = calculate_spiff_payout(
            self.rule, [deal(arr="50000")], self.metrics, Decimal("100000"), Decimal("0"),
        )

        assert result.payout_usd == Decimal("0")
        assert result.deal_lines[0].is_eligible

    def test_missing_linked_metric(self):
        rule = spiff_rule(linked_metric="Pipeline")

        result = calculate_spiff_payout(
            rule, [deal(arr="50000")], self.metrics, Decimal("100000"), Decimal("500000"),
        )

        assert result.payout_usd == Decimal("0")
        assert result.notes == "Linked metric Pipeline not in plan"


class TestAllSpiffs:
    """Tests for evaluating a plan's SPIFF rules."""

    def test_inactive_rules_skipped_and_targets_by_metric(self):
        rules = [
            spiff_rule("Active", rate="10"),
            spiff_rule("Retired", rate="50", is_active=False),
        ]

        results = calculate_all_spiffs(
            rules,
            [deal(arr="50000")],
            [metric(NEW_ARR_METRIC, weightage="40")],
            Decimal("100000"),
            {NEW_ARR_METRIC: Decimal("500000")},
        )

        assert [r.spiff_name for r in results] == ["Active"]
        assert results[0].target_usd == Decimal("500000")

    def test_missing_target_defaults_to_zero(self):
        results = calculate_all_spiffs(
            [spiff_rule()], [deal(arr="50000")],
            [metric(NEW_ARR_METRIC, weightage="40")], Decimal("100000"), {},
        )

        assert results[0].payout_usd == Decimal("0")
