"""
Property-based tests for the payout engines.

Properties checked:
- split_amount: the three portions always sum to the amount
- calculate_incremental: never pays more than what is still due, and the
  split of this month's amount is exact
- calculate_metric_payout: non-decreasing in achievement on a graded grid
- attribute_variable_pay: deal shares add up to the metric payout within
  half a cent per share
- ClawbackLedgerEntry: recovered + remaining stays equal to the original,
  status never moves backwards, over-recovery is rejected
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from incentive_engines.attribution import attribute_variable_pay, split_amount
from incentive_engines.incremental import calculate_incremental
from incentive_engines.multiplier import calculate_metric_payout
from incentive_kernel.domain.plans import PayoutSplit
from incentive_kernel.exceptions import LedgerInvariantError
from tests.builders import deal, ledger_entry, metric

money = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("10000000"), places=2,
    allow_nan=False, allow_infinity=False,
)
achievement = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("300"), places=2,
    allow_nan=False, allow_infinity=False,
)


@st.composite
def splits(draw) -> PayoutSplit:
    booking = draw(st.integers(min_value=0, max_value=100))
    collection = draw(st.integers(min_value=0, max_value=100 - booking))
    return PayoutSplit.of(booking, collection, 100 - booking - collection)


class TestSplitProperties:

    @given(amount=money, split=splits())
    @settings(max_examples=200, deadline=None)
    def test_portions_sum_to_amount(self, amount, split):
        booking, collection, year_end = split_amount(amount, split)

        assert booking + collection + year_end == amount
        assert booking >= 0
        assert collection >= 0


class TestIncrementalProperties:

    @given(ytd=money, prior=money, split=splits())
    @settings(max_examples=200, deadline=None)
    def test_never_exceeds_amount_due(self, ytd, prior, split):
        result = calculate_incremental(ytd, prior, split_amount(ytd, split))

        assert result.this_month >= 0
        assert result.this_month <= max(Decimal("0"), ytd - prior)
        assert result.booking + result.collection + result.year_end == result.this_month
        if prior < ytd:
            assert prior + result.this_month == ytd


class TestMultiplierProperties:

    @given(low=achievement, high=achievement)
    @settings(max_examples=200, deadline=None)
    def test_payout_non_decreasing(self, low, high):
        if low > high:
            low, high = high, low
        graded = metric()

        assert (
            calculate_metric_payout(low, Decimal("100000"), graded)
            <= calculate_metric_payout(high, Decimal("100000"), graded)
        )


class TestAttributionProperties:

    @given(values=st.lists(
        st.integers(min_value=1, max_value=5_000_000), min_size=1, max_size=8,
    ))
    @settings(max_examples=100, deadline=None)
    def test_shares_add_up(self, values):
        deals = [
            deal(f"PRJ-{i}", "2026-01", arr=str(v)) for i, v in enumerate(values)
        ]

        outcome = attribute_variable_pay(
            deals, "E001", metric(), Decimal("1000000"), Decimal("100000"),
            2026, "2026-03",
        )

        total = sum((s.variable_pay_split_usd for s in outcome.shares), Decimal("0"))
        tolerance = Decimal("0.005") * len(outcome.shares)
        assert abs(total - outcome.total_variable_pay_usd) <= tolerance
        assert all(s.variable_pay_split_usd >= 0 for s in outcome.shares)


class TestLedgerProperties:

    @given(
        original=st.integers(min_value=1, max_value=1_000_000),
        payables=st.lists(st.integers(min_value=1, max_value=400_000), max_size=10),
    )
    @settings(max_examples=200, deadline=None)
    def test_recoveries_keep_balance(self, original, payables):
        entry = ledger_entry(uuid4(), uuid4(), original=str(original))
        ranks = [entry.status.rank]

        for payable in payables:
            if not entry.is_outstanding:
                break
            amount = min(Decimal(payable), entry.remaining_amount_usd)
            entry = entry.apply_recovery(amount, "2026-03")
            ranks.append(entry.status.rank)

        assert entry.recovered_amount_usd + entry.remaining_amount_usd == Decimal(original)
        assert entry.remaining_amount_usd >= 0
        assert ranks == sorted(ranks)

    @given(original=st.integers(min_value=1, max_value=1_000_000), excess=st.integers(min_value=1))
    @settings(max_examples=50, deadline=None)
    def test_over_recovery_rejected(self, original, excess):
        entry = ledger_entry(uuid4(), uuid4(), original=str(original))

        with pytest.raises(LedgerInvariantError):
            entry.apply_recovery(Decimal(original + excess), "2026-03")
