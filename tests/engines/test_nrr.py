"""
Tests for NRR additional pay.

Covers:
- Combined CR/ER + implementation target
- GP margin gating per revenue line
- Payout = OTE x NRR OTE% x achievement
"""

from decimal import Decimal

from incentive_engines.nrr import calculate_nrr_payout, evaluate_nrr_deal
from tests.builders import deal


class TestEvaluateNrrDeal:
    """Tests for per-deal eligibility."""

    def test_no_minimum_means_eligible(self):
        line = evaluate_nrr_deal(
            deal(cr_usd="10000", er_usd="5000", implementation_usd="20000"),
            Decimal("0"), Decimal("0"),
        )

        assert line.eligible_total_usd == Decimal("35000")
        assert line.exclusion_reason is None

    def test_lines_gated_independently(self):
        line = evaluate_nrr_deal(
            deal(cr_usd="10000", implementation_usd="20000", gp_margin_percent="22"),
            Decimal("20"), Decimal("30"),
        )

        assert line.eligible_cr_er_usd == Decimal("10000")
        assert line.eligible_implementation_usd == Decimal("0")
        assert "Implementation minimum 30.0%" in line.exclusion_reason
        assert line.is_eligible

    def test_missing_margin_excludes_gated_lines(self):
        line = evaluate_nrr_deal(
            deal(cr_usd="10000"), Decimal("20"), Decimal("0"),
        )

        assert not line.is_eligible
        assert line.exclusion_reason == "GP margin not available for CR/ER"


class TestNrrPayout:
    """Tests for the NRR payout formula."""

    def test_payout_formula(self):
        """120,000 eligible against 300,000 -> 40% of a 4% OTE slice."""
        deals = [
            deal("PRJ-1", cr_usd="50000", er_usd="10000"),
            deal("PRJ-2", implementation_usd="60000"),
        ]

        result = calculate_nrr_payout(
            deals,
            cr_er_target=Decimal("200000"),
            impl_target=Decimal("100000"),
            nrr_ote_pct=Decimal("4"),
            variable_ote=Decimal("100000"),
        )

        assert result.target_usd == Decimal("300000")
        assert result.eligible_actual_usd == Decimal("120000")
        assert result.achievement_pct == Decimal("40")
        assert result.payout_usd == Decimal("1600.00")

    def test_ineligible_value_does_not_count(self):
        deals = [
            deal("PRJ-1", cr_usd="60000", gp_margin_percent="10"),
            deal("PRJ-2", implementation_usd="60000", gp_margin_percent="40"),
        ]

        result = calculate_nrr_payout(
            deals, Decimal("200000"), Decimal("100000"),
            Decimal("4"), Decimal("100000"),
            cr_er_min_margin=Decimal("20"), impl_min_margin=Decimal("30"),
        )

        assert result.eligible_actual_usd == Decimal("60000")
        assert result.payout_usd == Decimal("800.00")

    def test_deals_without_nrr_lines_ignored(self):
        result = calculate_nrr_payout(
            [deal(arr="50000")], Decimal("100"), Decimal("100"),
            Decimal("4"), Decimal("100000"),
        )

        assert result.deal_lines == ()

    def test_zero_ote_pct_pays_nothing(self):
        result = calculate_nrr_payout(
            [deal(cr_usd="50000")], Decimal("100000"), Decimal("0"),
            Decimal("0"), Decimal("100000"),
        )

        assert result.achievement_pct == Decimal("50")
        assert result.payout_usd == Decimal("0")

    def test_zero_target_pays_nothing(self):
        result = calculate_nrr_payout(
            [deal(cr_usd="50000")], Decimal("0"), Decimal("0"),
            Decimal("4"), Decimal("100000"),
        )

        assert result.payout_usd == Decimal("0")
