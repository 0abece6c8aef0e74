# src/bullion/application/refresh_service.py
"""
Refresh Service - One Full Price Cycle

A cycle is: read the price cache for every supported currency (one
deduplicated upstream fetch at most) -> persist one row per instrument ->
evaluate alert rules over the freshly written prices.

The three stages run sequentially. A persistence failure on some
instruments never stops the alert evaluation, and an evaluation failure is
recorded in the report rather than raised.

Files that USE this module:
- bullion.app (runs cycles from the scheduler or once in batch mode)
- bullion.application.health (last cycle report)
- tests.test_refresh_service (unit tests)

Files that this module USES:
- bullion.application.price_cache (PriceCache)
- bullion.application.price_writer (PriceWriter, WriteCycleResult)
- bullion.application.alert_evaluator (AlertEvaluator, AlertEvaluationResult)
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from bullion.adapters.formatting.formatter import format_cycle_summary
from bullion.application.alert_evaluator import AlertEvaluationResult, AlertEvaluator
from bullion.application.price_cache import PriceCache
from bullion.application.price_writer import PriceWriter, WriteCycleResult
from bullion.domain.models import Currency, PriceSnapshot, utc_now

log = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Summary of one refresh cycle."""
    started_at: datetime
    finished_at: datetime
    snapshot: PriceSnapshot
    write: WriteCycleResult
    alerts: Optional[AlertEvaluationResult] = None
    alert_error: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.snapshot.is_fallback

    @property
    def ok(self) -> bool:
        return self.write.ok and self.alert_error is None

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


class PriceRefreshService:
    """Runs refresh cycles: cache -> writer -> alert evaluator."""

    def __init__(
        self,
        cache: PriceCache,
        writer: PriceWriter,
        evaluator: AlertEvaluator,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.cache = cache
        self.writer = writer
        self.evaluator = evaluator
        self._clock = clock
        self._lock = threading.Lock()
        self.last_report: Optional[CycleReport] = None

    def run_cycle(self) -> CycleReport:
        """
        Run one full cycle.

        Returns:
            CycleReport for the cycle

        Raises:
            Exception: Only for failures outside the per-instrument and
                per-evaluation isolation (e.g. a missing USD projection)
        """
        started = self._clock()
        snapshots = self.cache.get_all_prices()
        usd = snapshots[Currency.USD]
        if usd.is_fallback:
            log.warning("Upstream unavailable, this cycle stores fallback prices")

        write = self.writer.write_cycle(snapshots)

        alerts: Optional[AlertEvaluationResult] = None
        alert_error: Optional[str] = None
        try:
            alerts = self.evaluator.evaluate_alerts()
        except Exception as e:
            alert_error = str(e)
            log.error("Alert evaluation failed: %s", e)

        report = CycleReport(
            started_at=started,
            finished_at=self._clock(),
            snapshot=usd,
            write=write,
            alerts=alerts,
            alert_error=alert_error,
        )
        with self._lock:
            self.last_report = report
        log.info(format_cycle_summary(report))
        return report
