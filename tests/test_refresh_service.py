# tests/test_refresh_service.py
"""
Refresh Cycle Tests - Service Orchestration and Scheduler

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- bullion.application.refresh_service (PriceRefreshService, CycleReport)
- bullion.application.scheduler (RefreshScheduler)
- tests.conftest (FakeSource, FakeClock)
"""
import random
import threading

import pytest
from unittest.mock import Mock

from bullion.adapters.persistence.row_store import (
    ALERT_HISTORY_TABLE,
    ALERTS_TABLE,
    PRICES_TABLE,
    InMemoryRowStore,
)
from bullion.application.alert_evaluator import AlertEvaluator
from bullion.application.fallback import FALLBACK_SOURCE, FallbackPriceGenerator
from bullion.application.price_cache import PriceCache
from bullion.application.price_writer import PriceWriter
from bullion.application.refresh_service import PriceRefreshService
from bullion.application.scheduler import RefreshScheduler
from bullion.domain.errors import PersistenceError
from bullion.domain.models import Instrument

from conftest import FakeSource


def _service(source, store, clock, evaluator=None):
    cache = PriceCache(source, fallback=FallbackPriceGenerator(rng=random.Random(3)), clock=clock)
    return PriceRefreshService(cache, PriceWriter(store), evaluator or AlertEvaluator(store))


def _gold_rule(store, target=1990.0):
    store.insert(ALERTS_TABLE, {
        "id": 1, "user_id": "u1", "metal_type": "gold", "target_price": target,
        "condition": "above", "is_active": True, "triggered_at": None,
    })


class TestPriceRefreshService:
    def test_cycle_writes_every_instrument_and_evaluates(self, store, clock, fake_source):
        _gold_rule(store)
        service = _service(fake_source, store, clock)

        report = service.run_cycle()

        assert report.ok
        assert not report.used_fallback
        assert {row.instrument for row in report.write.written} == set(Instrument)
        gold = store.select_latest(PRICES_TABLE, "metal_type", "gold")
        assert gold["price_usd"] == 2000.0
        assert gold["price_eur"] == pytest.approx(1840.0)
        assert len(report.alerts.triggered) == 1
        assert service.last_report is report
        assert fake_source.calls == 1

    def test_outage_stores_fallback_cycle(self, store, clock):
        source = FakeSource(fail=True)
        report = _service(source, store, clock).run_cycle()

        assert report.used_fallback
        rows = store.select_where(PRICES_TABLE)
        assert len(rows) == len(Instrument)
        assert {row["source"] for row in rows} == {FALLBACK_SOURCE}

    def test_write_failure_does_not_stop_alerts(self, clock, fake_source):
        class FlakyStore(InMemoryRowStore):
            def insert(self, table, row):
                if table == PRICES_TABLE and row.get("metal_type") == "silver":
                    raise PersistenceError("timeout")
                return super().insert(table, row)

        store = FlakyStore()
        _gold_rule(store)
        report = _service(fake_source, store, clock).run_cycle()

        assert not report.ok
        assert set(report.write.failed) == {Instrument.SILVER}
        assert len(report.alerts.triggered) == 1
        assert len(store.select_where(ALERT_HISTORY_TABLE)) == 1

    def test_evaluation_failure_is_reported(self, store, clock, fake_source):
        evaluator = Mock()
        evaluator.evaluate_alerts.side_effect = PersistenceError("rules unavailable")
        report = _service(fake_source, store, clock, evaluator=evaluator).run_cycle()

        assert report.alerts is None
        assert report.alert_error == "rules unavailable"
        assert not report.ok
        assert len(report.write.written) == len(Instrument)

    def test_consecutive_cycles_within_ttl_fetch_once(self, store, clock, fake_source):
        service = _service(fake_source, store, clock)
        service.run_cycle()
        clock.advance(30)
        second = service.run_cycle()
        assert fake_source.calls == 1
        gold = next(r for r in second.write.written if r.instrument is Instrument.GOLD)
        assert gold.change_24h == 0.0


class TestRefreshScheduler:
    def test_run_once_survives_failing_job(self):
        job = Mock(side_effect=RuntimeError("boom"))
        scheduler = RefreshScheduler(job, interval_seconds=60)

        assert scheduler.run_once() is True
        assert scheduler.run_once() is True
        assert scheduler.failures == 2
        assert scheduler.last_error == "boom"
        assert job.call_count == 2

    def test_run_once_skips_when_already_running(self):
        entered = threading.Event()
        release = threading.Event()

        def job():
            entered.set()
            release.wait(5)

        scheduler = RefreshScheduler(job, interval_seconds=60)
        worker = threading.Thread(target=scheduler.run_once)
        worker.start()
        assert entered.wait(5)

        assert scheduler.run_once() is False
        assert scheduler.skipped == 1

        release.set()
        worker.join(5)
        assert scheduler.runs == 1

    def test_start_runs_immediately_and_stops(self):
        ran = threading.Event()
        scheduler = RefreshScheduler(ran.set, interval_seconds=3600)

        scheduler.start()
        assert ran.wait(5)
        assert scheduler.is_running
        scheduler.stop(timeout=5)

        assert not scheduler.is_running
        assert scheduler.runs == 1

    def test_double_start_rejected(self):
        scheduler = RefreshScheduler(lambda: None, interval_seconds=3600)
        scheduler.start()
        try:
            with pytest.raises(RuntimeError):
                scheduler.start()
        finally:
            scheduler.stop(timeout=5)

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            RefreshScheduler(lambda: None, interval_seconds=0)
