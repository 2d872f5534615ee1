"""
Tests for plan assignment lookup and pro-ration.

Covers:
- Assignment covering a month (latest start wins)
- Blended target bonus across mid-year plan changes
- F&F pro-ration factor
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from incentive_engines.proration import (
    assignment_for_month,
    blended_target_bonus,
    fnf_proration_factor,
)
from incentive_kernel.domain.values import round_money
from tests.builders import assignment


class TestAssignmentForMonth:
    """Tests for assignment lookup."""

    def setup_method(self):
        self.employee_id = uuid4()
        self.first = assignment(
            self.employee_id, uuid4(), start=date(2026, 1, 1), end=date(2026, 6, 15),
        )
        self.second = assignment(
            self.employee_id, uuid4(), start=date(2026, 6, 16), end=date(2026, 12, 31),
        )

    def test_single_covering_assignment(self):
        assert assignment_for_month([self.first, self.second], "2026-03") is self.first

    def test_overlapping_month_picks_latest_start(self):
        assert assignment_for_month([self.first, self.second], "2026-06") is self.second

    def test_no_assignment(self):
        assert assignment_for_month([self.first], "2026-09") is None


class TestBlendedTargetBonus:
    """Tests for mid-year target blending."""

    def setup_method(self):
        employee_id = uuid4()
        self.jan_may = assignment(
            employee_id, uuid4(), start=date(2026, 1, 1), end=date(2026, 5, 31), target="20000",
        )
        self.jun_dec = assignment(
            employee_id, uuid4(), start=date(2026, 6, 1), end=date(2026, 12, 31), target="24000",
        )

    def test_month_in_first_segment_uses_its_target(self):
        assert blended_target_bonus(
            [self.jan_may, self.jun_dec], 2026, "2026-03",
        ) == Decimal("20000")

    def test_month_in_later_segment_blends_by_days(self):
        """20,000 x 151/365 + 24,000 x 214/365."""
        blended = blended_target_bonus([self.jan_may, self.jun_dec], 2026, "2026-07")

        assert round_money(blended) == Decimal("22345.21")

    def test_single_assignment(self):
        assert blended_target_bonus([self.jun_dec], 2026, "2026-08") == Decimal("24000")

    def test_missing_target_uses_fallback(self):
        no_target = assignment(uuid4(), uuid4(), target=None)

        assert blended_target_bonus(
            [no_target], 2026, "2026-04", fallback_target=Decimal("90000"),
        ) == Decimal("90000")

    def test_no_assignment_for_month(self):
        assert blended_target_bonus([self.jan_may], 2026, "2026-08") == Decimal("0")


class TestFnfProrationFactor:
    """Tests for the departure pro-ration factor."""

    def test_mid_year(self):
        """Jan 1 to Jun 30 inclusive is 181 days."""
        assert fnf_proration_factor(date(2026, 6, 30)) == Decimal(181) / Decimal(365)

    def test_first_day(self):
        assert fnf_proration_factor(date(2026, 1, 1)) == Decimal(1) / Decimal(365)

    def test_clamped_to_one(self):
        assert fnf_proration_factor(date(2024, 12, 31), days_in_year=365) == Decimal("1")

    def test_leap_year_days(self):
        assert fnf_proration_factor(date(2024, 12, 31), days_in_year=366) == Decimal("1")
