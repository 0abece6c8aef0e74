# tests/test_price_writer.py
"""
Price Writer Tests - Rows, Change Analytics and Failure Isolation

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- bullion.application.price_writer (PriceWriter, compute_change)
- bullion.adapters.persistence.row_store (InMemoryRowStore)
"""
from datetime import datetime, timezone

import pytest

from bullion.adapters.persistence.row_store import PRICES_TABLE, InMemoryRowStore
from bullion.application.price_writer import PriceWriter, compute_change
from bullion.domain.currency import project_snapshot
from bullion.domain.errors import PersistenceError
from bullion.domain.models import Currency, Instrument

from conftest import make_snapshot


def _cycle(gold=2000.0, currencies=tuple(Currency)):
    usd = make_snapshot({Instrument.GOLD: gold, Instrument.SILVER: 25.0}, source="Gold API")
    return {c: project_snapshot(usd, c) for c in currencies}


class TestComputeChange:
    def test_against_prior(self):
        change, pct = compute_change(1950.0, 1900.0)
        assert change == pytest.approx(50.0)
        assert pct == pytest.approx(50.0 / 1900.0 * 100.0)

    def test_no_prior(self):
        assert compute_change(1950.0, None) == (0.0, 0.0)

    def test_zero_prior(self):
        assert compute_change(1950.0, 0.0) == (0.0, 0.0)


class TestPriceWriter:
    def test_first_cycle_has_zero_change(self, store, wall_clock):
        result = PriceWriter(store, clock=wall_clock).write_cycle(_cycle())

        assert result.ok
        assert len(result.written) == 2
        gold = next(r for r in result.written if r.instrument is Instrument.GOLD)
        assert gold.change_24h == 0.0
        assert gold.change_percentage == 0.0
        assert gold.price_eur == pytest.approx(1840.0)
        assert gold.price_inr == pytest.approx(2000.0 * 83.12)
        assert gold.bid_price == pytest.approx(1998.0)
        assert gold.ask_price == pytest.approx(2002.0)
        assert gold.high_24h == pytest.approx(2040.0)
        assert gold.low_24h == pytest.approx(1960.0)
        assert gold.source == "Gold API"
        assert gold.timestamp == wall_clock.now

    def test_change_against_latest_row(self, store, wall_clock):
        writer = PriceWriter(store, clock=wall_clock)
        writer.write_cycle(_cycle(gold=1900.0))
        wall_clock.advance(minutes=5)
        result = writer.write_cycle(_cycle(gold=1950.0))

        gold = next(r for r in result.written if r.instrument is Instrument.GOLD)
        assert gold.change_24h == pytest.approx(50.0)
        assert gold.change_percentage == pytest.approx(50.0 / 1900.0 * 100.0)
        assert len(store.select_where(PRICES_TABLE, metal_type="gold")) == 2

    def test_missing_currency_columns_stay_null(self, store, wall_clock):
        result = PriceWriter(store, clock=wall_clock).write_cycle(_cycle(currencies=(Currency.USD,)))
        gold = next(r for r in result.written if r.instrument is Instrument.GOLD)
        assert gold.price_eur is None
        assert gold.price_gbp is None

    def test_requires_usd_snapshot(self, store):
        snapshots = _cycle()
        del snapshots[Currency.USD]
        with pytest.raises(ValueError, match="USD"):
            PriceWriter(store).write_cycle(snapshots)

    def test_one_failing_instrument_does_not_stop_others(self, wall_clock):
        class FlakyStore(InMemoryRowStore):
            def insert(self, table, row):
                if row.get("metal_type") == "gold":
                    raise PersistenceError("disk full")
                return super().insert(table, row)

        store = FlakyStore()
        result = PriceWriter(store, clock=wall_clock).write_cycle(_cycle())

        assert not result.ok
        assert set(result.failed) == {Instrument.GOLD}
        assert "disk full" in result.failed[Instrument.GOLD]
        assert [r.instrument for r in result.written] == [Instrument.SILVER]
        assert store.select_latest(PRICES_TABLE, "metal_type", "silver") is not None

    def test_rows_are_stamped_with_cycle_time(self, store):
        fixed = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
        result = PriceWriter(store, clock=lambda: fixed).write_cycle(_cycle())
        assert result.timestamp == fixed
        assert all(r.timestamp == fixed for r in result.written)
