# src/bullion/application/scheduler.py
"""
Refresh Scheduler - Fixed-Interval Background Job

Drives a job (normally PriceRefreshService.run_cycle) on a daemon thread:
once immediately at start, then every ``interval_seconds`` measured from the
end of the previous run, so runs never overlap.

``run_once`` carries re-entrancy protection: if a run is already in
progress (e.g. a manual trigger racing the timer) the call is skipped rather
than queued. Any exception raised by the job is logged and swallowed so
the next tick proceeds independently.

Files that USE this module:
- bullion.app (serving mode)
- tests.test_refresh_service (scheduler tests)

Files that this module USES:
- None (standard library threading only)
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Optional

from bullion.domain.models import utc_now

log = logging.getLogger(__name__)


class RefreshScheduler:
    """Runs a job at startup and then on a fixed delay until stopped."""

    def __init__(self, job: Callable[[], Any], interval_seconds: float, name: str = "price-refresh"):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.job = job
        self.interval = interval_seconds
        self.name = name
        self.runs = 0
        self.failures = 0
        self.skipped = 0
        self.last_run_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self._run_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> bool:
        """
        Run the job now unless a run is already in progress.

        Returns:
            True if the job ran (successfully or not), False if skipped
        """
        # Re-entrancy protection: skip if a run is already in progress
        if not self._run_lock.acquire(blocking=False):
            self.skipped += 1
            log.warning("%s: skipping run (previous run still in progress)", self.name)
            return False
        try:
            self.last_run_at = utc_now()
            self.runs += 1
            self.job()
            self.last_error = None
        except Exception as e:
            self.failures += 1
            self.last_error = str(e)
            log.exception("%s: run failed: %s", self.name, e)
        finally:
            self._run_lock.release()
        return True

    def _loop(self) -> None:
        log.info("%s: started (interval=%.0fs)", self.name, self.interval)
        while not self._stop.is_set():
            self.run_once()
            if self._stop.wait(self.interval):
                break
        log.info("%s: stopped after %d runs", self.name, self.runs)

    def start(self) -> None:
        """Start the background thread; the first run happens immediately."""
        if self.is_running:
            raise RuntimeError(f"{self.name} is already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to stop and wait for the current run to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_forever(self) -> None:
        """Start and block until stop() is called or KeyboardInterrupt."""
        self.start()
        try:
            while self._thread is not None and self._thread.is_alive():
                self._thread.join(0.5)
        finally:
            self.stop()
