"""Tests for the shared column types (incentive_kernel/db/base.py)."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from incentive_kernel.db.base import CurrencyCode, MonthYear, UUIDString
from incentive_kernel.models.records import ExchangeRateModel


class TestMonthYear:
    """Tests for payout month binding."""

    def test_pads_month(self):
        assert MonthYear().process_bind_param("2026-3", None) == "2026-03"

    def test_keeps_canonical_month(self):
        assert MonthYear().process_bind_param("2026-12", None) == "2026-12"

    @pytest.mark.parametrize("value", ["2026-13", "2026-00", "March 2026", "2026"])
    def test_rejects_malformed_month(self, value):
        with pytest.raises(ValueError):
            MonthYear().process_bind_param(value, None)

    def test_none_passes_through(self):
        assert MonthYear().process_bind_param(None, None) is None


class TestCurrencyCode:
    """Tests for currency code binding."""

    def test_upper_cases(self):
        assert CurrencyCode().process_bind_param(" inr", None) == "INR"

    def test_none_passes_through(self):
        assert CurrencyCode().process_bind_param(None, None) is None


class TestUUIDString:
    """Tests for UUID key binding."""

    def test_bind_and_read(self):
        uid = uuid4()
        col = UUIDString()

        stored = col.process_bind_param(uid, None)

        assert stored == str(uid)
        assert col.process_result_value(stored, None) == uid


class TestStoredValues:
    """Stored values go through the column types."""

    def test_exchange_rate_stored_canonical(self, session, test_actor_id):
        session.add(ExchangeRateModel(
            currency_code="eur",
            month_year="2026-4",
            rate_to_usd=Decimal("0.93"),
            created_by_id=test_actor_id,
        ))
        session.flush()

        row = session.execute(
            select(ExchangeRateModel.currency_code, ExchangeRateModel.month_year)
        ).one()

        assert tuple(row) == ("EUR", "2026-04")

    def test_query_parameters_normalized(self, session, test_actor_id):
        session.add(ExchangeRateModel(
            currency_code="EUR",
            month_year="2026-04",
            rate_to_usd=Decimal("0.93"),
            created_by_id=test_actor_id,
        ))
        session.flush()

        found = session.execute(
            select(ExchangeRateModel.rate_to_usd).where(
                ExchangeRateModel.currency_code == "eur",
                ExchangeRateModel.month_year == "2026-4",
            )
        ).scalar_one()

        assert found == Decimal("0.93")
