"""
Tests for incremental (YTD minus prior) accounting.

Covers:
- this_month = max(0, ytd - prior)
- Proportional sub-splits that sum to this_month
- Zero and negative YTD
"""

from decimal import Decimal

from incentive_engines.incremental import NOTHING_DUE, calculate_incremental


def _split(booking, collection, year_end):
    return Decimal(booking), Decimal(collection), Decimal(year_end)


class TestIncremental:
    """Tests for calculate_incremental."""

    def test_first_month_pays_full_ytd(self):
        amount = calculate_incremental(
            Decimal("10000"), Decimal("0"), _split("7000", "2500", "500"),
        )

        assert amount.this_month == Decimal("10000.00")
        assert (amount.booking, amount.collection, amount.year_end) == _split(
            "7000.00", "2500.00", "500.00",
        )

    def test_later_month_pays_delta_with_same_proportions(self):
        amount = calculate_incremental(
            Decimal("22800"), Decimal("20000"), _split("15960", "5700", "1140"),
        )

        assert amount.this_month == Decimal("2800.00")
        assert amount.booking == Decimal("1960.00")
        assert amount.collection == Decimal("700.00")
        assert amount.year_end == Decimal("140.00")

    def test_sub_splits_sum_exactly(self):
        amount = calculate_incremental(
            Decimal("1000"), Decimal("666.67"), _split("700", "250", "50"),
        )

        assert amount.booking + amount.collection + amount.year_end == amount.this_month

    def test_prior_above_ytd_pays_nothing(self):
        """A shrinking YTD never produces a negative payment."""
        amount = calculate_incremental(
            Decimal("18000"), Decimal("20000"), _split("12600", "4500", "900"),
        )

        assert amount == NOTHING_DUE
        assert amount.is_zero

    def test_fully_paid_pays_nothing(self):
        amount = calculate_incremental(
            Decimal("5000"), Decimal("5000"), _split("5000", "0", "0"),
        )

        assert amount.is_zero

    def test_zero_ytd_pays_nothing(self):
        assert calculate_incremental(Decimal("0"), Decimal("0"), _split("0", "0", "0")) == NOTHING_DUE

