# tests/test_currency.py
"""
Currency and Model Tests - Projection and Snapshot Validation

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- bullion.domain.currency (project, project_snapshot, rate_for)
- bullion.domain.models (PriceSnapshot, StoredPriceRow, AlertRule)
"""
from datetime import datetime, timezone

import pytest

from bullion.domain.currency import DEFAULT_FX_RATES, project, project_snapshot, rate_for
from bullion.domain.errors import InvalidPriceError
from bullion.domain.models import (
    AlertCondition,
    AlertRule,
    Currency,
    Instrument,
    PriceSnapshot,
    StoredPriceRow,
    parse_timestamp,
)

from conftest import make_snapshot


class TestProjection:
    @pytest.mark.parametrize("currency,rate", [("USD", 1.0), ("EUR", 0.92), ("GBP", 0.79), ("INR", 83.12)])
    def test_project_gold(self, currency, rate):
        assert project(2000.0, currency) == pytest.approx(2000.0 * rate)

    def test_unknown_currency(self):
        with pytest.raises(ValueError):
            rate_for("JPY", DEFAULT_FX_RATES)

    def test_missing_rate(self):
        with pytest.raises(ValueError, match="No FX rate configured for EUR"):
            rate_for(Currency.EUR, {"USD": 1.0})

    def test_snapshot_projection_converts_every_instrument(self):
        usd = make_snapshot(source="fake")
        eur = project_snapshot(usd, Currency.EUR)
        assert eur.currency is Currency.EUR
        for instrument, price in usd.prices.items():
            assert eur.price(instrument) == pytest.approx(price * 0.92)
        assert eur.timestamp == usd.timestamp
        assert eur.source == "fake"
        # source snapshot untouched
        assert usd.price(Instrument.GOLD) == 2000.0

    def test_usd_projection_is_identity(self):
        usd = make_snapshot()
        assert project_snapshot(usd, "USD") is usd

    def test_only_projects_from_usd(self):
        eur = make_snapshot(currency=Currency.EUR)
        with pytest.raises(ValueError, match="only project from USD"):
            project_snapshot(eur, Currency.GBP)


class TestPriceSnapshot:
    def test_rejects_non_positive_price(self):
        with pytest.raises(InvalidPriceError):
            PriceSnapshot(currency=Currency.USD, prices={Instrument.GOLD: 0.0}, timestamp=1)

    def test_rejects_empty(self):
        with pytest.raises(InvalidPriceError):
            PriceSnapshot(currency=Currency.USD, prices={}, timestamp=1)


class TestRows:
    def test_stored_row_round_trip_keeps_nullable_columns(self):
        row = StoredPriceRow(
            instrument=Instrument.SILVER,
            price_usd=25.0,
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            price_eur=23.0,
        ).to_row()
        assert row["metal_type"] == "silver"
        assert row["timestamp"] == "2024-01-01T00:00:00+00:00"
        parsed = StoredPriceRow.from_row(row)
        assert parsed.price_gbp is None
        assert parsed.price_in(Currency.EUR) == 23.0

    def test_alert_rule_from_row(self):
        rule = AlertRule.from_row({
            "id": 3,
            "user_id": "u1",
            "metal_type": "gold",
            "target_price": "2050",
            "condition": "ABOVE",
            "is_active": True,
            "triggered_at": "2024-01-01T00:00:00Z",
        })
        assert rule.condition is AlertCondition.ABOVE
        assert rule.currency is Currency.USD
        assert not rule.is_armed
        assert rule.is_crossed(2050.0)
        assert not rule.is_crossed(2049.99)

    def test_parse_timestamp_variants(self):
        expected = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert parse_timestamp("2024-01-01T00:00:00Z") == expected
        assert parse_timestamp("2024-01-01T00:00:00") == expected
        assert parse_timestamp(expected.timestamp()) == expected
        with pytest.raises(ValueError):
            parse_timestamp(None)
