"""
Tests for clawback ledger entry invariants.

Covers:
- original = recovered + remaining
- Recovery, reversal and settlement transitions
- Monotonic status
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from incentive_kernel.domain.payouts import LedgerStatus
from incentive_kernel.exceptions import LedgerInvariantError
from tests.builders import ledger_entry


class TestLedgerEntry:
    """Tests for ClawbackLedgerEntry."""

    def setup_method(self):
        self.entry = ledger_entry(uuid4(), uuid4(), original="1000")

    def test_remaining_defaults_to_outstanding_balance(self):
        assert self.entry.remaining_amount_usd == Decimal("1000")
        assert self.entry.status == LedgerStatus.PENDING
        assert self.entry.is_outstanding

    def test_inconsistent_amounts_rejected(self):
        with pytest.raises(LedgerInvariantError) as exc_info:
            ledger_entry(uuid4(), uuid4(), original="1000", recovered="200",
                         remaining_amount_usd=Decimal("900"))

        assert exc_info.value.code == "LEDGER_INVARIANT_VIOLATION"

    def test_negative_remaining_rejected(self):
        with pytest.raises(LedgerInvariantError):
            ledger_entry(uuid4(), uuid4(), original="100", recovered="150")

    def test_partial_recovery(self):
        updated = self.entry.apply_recovery(Decimal("400"), "2026-03")

        assert updated.recovered_amount_usd == Decimal("400")
        assert updated.remaining_amount_usd == Decimal("600")
        assert updated.status == LedgerStatus.PARTIAL
        assert updated.last_recovery_month == "2026-03"
        assert self.entry.recovered_amount_usd == Decimal("0")

    def test_full_recovery(self):
        updated = self.entry.apply_recovery(Decimal("1000"), "2026-03")

        assert updated.status == LedgerStatus.RECOVERED
        assert not updated.is_outstanding

    def test_over_recovery_rejected(self):
        with pytest.raises(LedgerInvariantError):
            self.entry.apply_recovery(Decimal("1000.01"), "2026-03")

    def test_non_positive_recovery_rejected(self):
        with pytest.raises(LedgerInvariantError):
            self.entry.apply_recovery(Decimal("0"), "2026-03")

    def test_reverse_recovery_restores_state(self):
        updated = self.entry.apply_recovery(Decimal("400"), "2026-03")

        reverted = updated.reverse_recovery(Decimal("400"))

        assert reverted.remaining_amount_usd == Decimal("1000")
        assert reverted.status == LedgerStatus.PENDING

    def test_reverse_more_than_recovered_rejected(self):
        with pytest.raises(LedgerInvariantError):
            self.entry.reverse_recovery(Decimal("1"))

    def test_settle_on_collection(self):
        run_id = uuid4()
        partial = self.entry.apply_recovery(Decimal("250"), "2026-02")

        settled = partial.settle_on_collection("2026-04", run_id)

        assert settled.recovered_amount_usd == Decimal("1000")
        assert settled.remaining_amount_usd == Decimal("0")
        assert settled.status == LedgerStatus.RECOVERED
        assert settled.resolved_run_id == run_id
        assert settled.released_amount_usd == Decimal("250")

    def test_recovered_entry_cannot_be_recovered_again(self):
        recovered = self.entry.apply_recovery(Decimal("1000"), "2026-03")

        with pytest.raises(LedgerInvariantError):
            recovered.apply_recovery(Decimal("1"), "2026-04")
