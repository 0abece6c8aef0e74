# src/bullion/application/fallback.py
"""
Fallback Price Generator - Degraded Prices During Upstream Outages

When every upstream source fails, readers still need a value. This generator
produces a complete USD snapshot by taking a bounded random walk around the
last known good snapshot, or around a fixed baseline when nothing has been
fetched yet. Values never drift more than ``max_drift_pct`` away from their
anchor and are always positive.

Files that USE this module:
- bullion.application.price_cache (serves fallback snapshots on fetch failure)
- tests.test_price_cache (outage behaviour)

Files that this module USES:
- bullion.domain.models (Currency, Instrument, PriceSnapshot)
"""
from __future__ import annotations

import logging
import random
import threading
import time
from typing import Dict, Mapping, Optional

from bullion.domain.models import Currency, Instrument, PriceSnapshot, tracked_instruments

log = logging.getLogger(__name__)

FALLBACK_SOURCE = "fallback"

# USD per troy ounce used before any live snapshot has been seen
BASELINE_PRICES: Dict[Instrument, float] = {
    Instrument.GOLD: 1950.50,
    Instrument.SILVER: 24.30,
    Instrument.PLATINUM: 950.75,
    Instrument.PALLADIUM: 1280.25,
    Instrument.GOLD_22K: 1950.50 * 0.9167,
}


class FallbackPriceGenerator:
    """Bounded random walk around the last known good prices."""

    def __init__(
        self,
        step_pct: float = 0.5,
        max_drift_pct: float = 5.0,
        rng: Optional[random.Random] = None,
        include_gold_22k: bool = True,
        baseline: Optional[Mapping[Instrument, float]] = None,
    ):
        """
        Args:
            step_pct: Largest single-step move, in percent of the current value
            max_drift_pct: Largest distance from the anchor, in percent
            rng: Seedable random source
            include_gold_22k: Whether to generate the 22k grade
            baseline: Anchor prices used until a live snapshot is seen
        """
        self.step = step_pct / 100.0
        self.max_drift = max_drift_pct / 100.0
        self.rng = rng or random.Random()
        self.instruments = tracked_instruments(include_gold_22k)
        self._anchor: Dict[Instrument, float] = dict(baseline or BASELINE_PRICES)
        self._current: Dict[Instrument, float] = dict(self._anchor)
        self._has_live_anchor = False
        self._lock = threading.Lock()

    @property
    def has_live_anchor(self) -> bool:
        return self._has_live_anchor

    def anchor(self, snapshot: PriceSnapshot) -> None:
        """Re-centre the walk on a freshly fetched USD snapshot."""
        if snapshot.currency is not Currency.USD or snapshot.is_fallback:
            return
        with self._lock:
            for instrument, price in snapshot.prices.items():
                self._anchor[instrument] = price
                self._current[instrument] = price
            self._has_live_anchor = True

    def _walk(self, instrument: Instrument) -> float:
        anchor = self._anchor.get(instrument)
        if anchor is None:
            gold = self._anchor[Instrument.GOLD]
            anchor = gold * BASELINE_PRICES[instrument] / BASELINE_PRICES[Instrument.GOLD]
            self._anchor[instrument] = anchor
        current = self._current.get(instrument, anchor)
        moved = current * (1.0 + self.rng.uniform(-self.step, self.step))
        low, high = anchor * (1.0 - self.max_drift), anchor * (1.0 + self.max_drift)
        return min(max(moved, low), high)

    def generate(self, timestamp: Optional[int] = None) -> PriceSnapshot:
        """
        Produce one complete fallback snapshot in USD.

        All instruments are generated in the same pass, so the snapshot is
        internally consistent.
        """
        with self._lock:
            prices = {instrument: self._walk(instrument) for instrument in self.instruments}
            self._current.update(prices)
        log.debug("Generated fallback prices (anchored on %s)",
                  "last known good" if self._has_live_anchor else "baseline")
        return PriceSnapshot(
            currency=Currency.USD,
            prices=prices,
            timestamp=timestamp or int(time.time()),
            source=FALLBACK_SOURCE,
            derived=frozenset(prices),
            is_fallback=True,
        )
