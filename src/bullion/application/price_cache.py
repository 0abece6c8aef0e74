# src/bullion/application/price_cache.py
"""
Single-Flight Price Cache

The cache is the only caller of the upstream PriceSource. It guarantees that
at most one upstream fetch is in flight per process: callers arriving while a
fetch is running block on that fetch's Future and receive the very same
result object instead of starting another fetch. Warm reads inside the TTL
never touch the source.

Shared state is the triple (entry, captured_at, in-flight future), guarded by
one lock. The upstream call itself happens outside the lock, once the
in-flight future is published, so warm readers are never blocked by a slow
provider.

On upstream failure nothing is cached; the waiting callers receive a
fallback snapshot and the next call is free to retry the source.

Files that USE this module:
- bullion.application.refresh_service (warms the cache for every currency each cycle)
- bullion.application.health (cache age and counters)
- bullion.app (constructs and injects the cache)
- tests.test_price_cache (unit tests)

Files that this module USES:
- bullion.adapters.providers.base (PriceSource contract)
- bullion.application.fallback (FallbackPriceGenerator)
- bullion.domain.currency (project_snapshot)
- bullion.domain.models (CachedSnapshot, Currency, PriceSnapshot)
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional

from bullion.domain.currency import DEFAULT_FX_RATES, project_snapshot
from bullion.domain.models import (
    BASE_CURRENCY,
    SUPPORTED_CURRENCIES,
    CachedSnapshot,
    Currency,
    PriceSnapshot,
)
from bullion.application.fallback import FallbackPriceGenerator

log = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Counters exposed for health reporting."""
    fetches: int = 0  # upstream calls started
    hits: int = 0  # reads served from a warm entry
    joins: int = 0  # reads that waited on an in-flight fetch
    fallbacks: int = 0  # fetches that ended in a fallback snapshot
    last_error: Optional[str] = None


class PriceCache:
    """
    Single-flight, TTL-bounded cache in front of one PriceSource.

    Args:
        source: Upstream source; anything with ``fetch_base_prices(currency)``
        ttl_seconds: Freshness window of a successful fetch
        fx_rates: Static USD -> currency table used for projections
        fallback: Generator used when the source fails
        clock: Monotonic clock in seconds (injectable for tests)
        currencies: Currencies to project every fetched snapshot into
    """

    def __init__(
        self,
        source,
        ttl_seconds: float = 60.0,
        fx_rates: Mapping[str, float] = DEFAULT_FX_RATES,
        fallback: Optional[FallbackPriceGenerator] = None,
        clock: Callable[[], float] = time.monotonic,
        currencies: Iterable[Currency] = SUPPORTED_CURRENCIES,
    ):
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must not be negative")
        self.source = source
        self.ttl = ttl_seconds
        self.fx_rates = dict(fx_rates)
        self.fallback = fallback or FallbackPriceGenerator()
        self.currencies = tuple(dict.fromkeys((Currency.USD, *currencies)))
        self.stats = CacheStats()
        self._clock = clock
        self._lock = threading.Lock()
        self._entry: Optional[CachedSnapshot] = None
        self._in_flight: Optional[Future] = None

    def get_prices(self, currency: Currency | str = Currency.USD) -> PriceSnapshot:
        """
        Return the current snapshot in ``currency``.

        Never raises for upstream problems: a live, derived or fallback
        snapshot is always returned.

        Raises:
            ValueError: If the currency is not one the cache projects into
        """
        currency = Currency(currency)
        if currency not in self.currencies:
            raise ValueError(f"Currency {currency.value} is not served by this cache")
        return self._resolve().by_currency[currency]

    def get_all_prices(self) -> Mapping[Currency, PriceSnapshot]:
        """
        Return every currency's snapshot from a single cache read.

        All values derive from the same base reading, including when the read
        ends in a fallback pass.
        """
        return dict(self._resolve().by_currency)

    def peek(self) -> Optional[CachedSnapshot]:
        """Return the cached entry without fetching (may be stale or None)."""
        with self._lock:
            return self._entry

    def age(self) -> Optional[float]:
        """Seconds since the cached entry was captured, or None when empty."""
        entry = self.peek()
        return None if entry is None else entry.age(self._clock())

    def invalidate(self) -> None:
        """Drop the cached entry; the next read fetches."""
        with self._lock:
            self._entry = None

    def _resolve(self) -> CachedSnapshot:
        with self._lock:
            entry = self._entry
            if entry is not None and entry.age(self._clock()) < self.ttl:
                self.stats.hits += 1
                return entry
            future = self._in_flight
            leader = future is None
            if leader:
                future = Future()
                self._in_flight = future
            else:
                self.stats.joins += 1

        if not leader:
            return future.result()

        try:
            result = self._fetch()
        except BaseException as e:
            with self._lock:
                self._in_flight = None
            future.set_exception(e)
            raise

        with self._lock:
            if not result.base.is_fallback:
                self._entry = result
            self._in_flight = None
        future.set_result(result)
        return result

    def _fetch(self) -> CachedSnapshot:
        """Call the source once; degrade to the fallback generator on any failure."""
        self.stats.fetches += 1
        try:
            base = self.source.fetch_base_prices(BASE_CURRENCY)
        except Exception as e:
            self.stats.fallbacks += 1
            self.stats.last_error = str(e)
            log.warning("Upstream fetch failed, serving fallback prices: %s", e)
            base = self.fallback.generate()
        else:
            self.stats.last_error = None
            self.fallback.anchor(base)
            log.info("Fetched base prices from %s (%d instruments)", base.source, len(base.prices))
        return self._project(base)

    def _project(self, base: PriceSnapshot) -> CachedSnapshot:
        by_currency = {
            currency: project_snapshot(base, currency, self.fx_rates)
            for currency in self.currencies
        }
        return CachedSnapshot(base=base, by_currency=by_currency, captured_at=self._clock())
