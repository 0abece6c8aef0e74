# src/bullion/adapters/providers/base.py
"""
Base Price Source Interface

This module defines the abstract base class for all upstream price sources
and the derivation helper that fills in instruments a provider does not
cover.

Every source honours one contract: ``fetch_base_prices(base_currency)``
returns a complete, internally consistent PriceSnapshot or raises
ProviderUnavailableError. Partial data never raises: as long as gold is
observed, the missing instruments are derived from it.

Files that USE this module:
- bullion.adapters.providers.gold_api (GoldApiSource implements PriceSource)
- bullion.adapters.providers.metal_price_api (MetalPriceApiSource implements PriceSource)
- bullion.adapters.providers.goodreturns (ScrapedGoldSource implements PriceSource)
- bullion.application.source_chain (chains PriceSource instances)
- bullion.application.price_cache (the cache is the only caller of a PriceSource)

Files that this module USES:
- bullion.domain.models (Currency, Instrument, PriceSnapshot)
- bullion.domain.currency (project_snapshot for non-USD requests)
- bullion.shared.rate_limiter (per-source upstream budget)
"""
from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Mapping, Optional

import requests

from bullion.domain.currency import DEFAULT_FX_RATES, project_snapshot
from bullion.domain.errors import ProviderUnavailableError
from bullion.domain.models import Currency, Instrument, PriceSnapshot, tracked_instruments
from bullion.shared.rate_limiter import RateLimitConfig, RateLimiter, per_minute, upstream_limiter

log = logging.getLogger(__name__)


class PriceDeriver:
    """
    Derives plausible prices for instruments a provider does not expose.

    A derived price is ``gold * ratio`` multiplied by a uniform factor in
    ``[1 - jitter, 1 + jitter]`` so the stored series is not obviously flat.
    These values are estimates, not observations; snapshots list them in
    ``PriceSnapshot.derived``.
    """

    def __init__(
        self,
        ratios: Mapping[str, float],
        jitter: Optional[Mapping[str, float]] = None,
        rng: Optional[random.Random] = None,
        include_gold_22k: bool = True,
    ):
        self.ratios = {Instrument(name): float(ratio) for name, ratio in ratios.items()}
        self.jitter = {Instrument(name): float(j) for name, j in (jitter or {}).items()}
        self.rng = rng or random.Random()
        self.instruments = tracked_instruments(include_gold_22k)

    def derive(self, instrument: Instrument, gold_price: float) -> float:
        """
        Derive one instrument's price from the gold price.

        Raises:
            KeyError: If no ratio is configured for the instrument
        """
        ratio = self.ratios[instrument]
        j = self.jitter.get(instrument, 0.0)
        factor = (1.0 - j) + self.rng.random() * 2.0 * j
        return gold_price * ratio * factor

    def complete(self, observed: Mapping[Instrument, float]) -> tuple[Dict[Instrument, float], frozenset]:
        """
        Fill every tracked instrument missing from ``observed``.

        Args:
            observed: Prices the provider actually returned (must include gold)

        Returns:
            (prices for every tracked instrument, set of derived instruments)

        Raises:
            ProviderUnavailableError: If gold itself is missing, or a missing
                instrument has no configured ratio
        """
        gold = observed.get(Instrument.GOLD)
        if not gold or gold <= 0:
            raise ProviderUnavailableError("Primary instrument (gold) unavailable")

        prices: Dict[Instrument, float] = {}
        derived = set()
        for instrument in self.instruments:
            value = observed.get(instrument)
            if value is not None and value > 0:
                prices[instrument] = float(value)
                continue
            try:
                prices[instrument] = self.derive(instrument, gold)
            except KeyError:
                log.error("No derivation ratio configured for %s", instrument.value)
                raise ProviderUnavailableError(f"Cannot derive {instrument.value}: no ratio configured")
            derived.add(instrument)
        return prices, frozenset(derived)


class PriceSource(ABC):
    """
    Abstract upstream price source.

    Subclasses implement ``_fetch_usd_snapshot``; the base class handles the
    rate-limit budget and projection into a non-USD base currency.
    """

    name: str = "source"

    def __init__(
        self,
        deriver: PriceDeriver,
        timeout: int = 10,
        fx_rates: Mapping[str, float] = DEFAULT_FX_RATES,
        limiter: Optional[RateLimiter] = None,
        limit: Optional[RateLimitConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.deriver = deriver
        self.timeout = timeout
        self.fx_rates = dict(fx_rates)
        self.limiter = limiter or upstream_limiter
        self.limit = limit or per_minute(30)
        self.http = session or requests

    def fetch_base_prices(self, base_currency: Currency = Currency.USD) -> PriceSnapshot:
        """
        Fetch one snapshot quoted in ``base_currency``.

        Raises:
            ProviderUnavailableError: On network, timeout, HTTP, parse or budget failure
        """
        snapshot = self._fetch_usd_snapshot()
        if Currency(base_currency) is not Currency.USD:
            snapshot = project_snapshot(snapshot, Currency(base_currency), self.fx_rates)
        return snapshot

    @abstractmethod
    def _fetch_usd_snapshot(self) -> PriceSnapshot:
        """Return a complete USD snapshot or raise ProviderUnavailableError."""
        raise NotImplementedError

    def _spend_budget(self) -> None:
        if not self.limiter.is_allowed(self.name, self.limit):
            retry_after = self.limiter.get_retry_after(self.name, self.limit)
            log.warning("%s: upstream request budget exhausted (%d per %.0fs), next slot in %.0fs",
                        self.name, self.limit.max_requests, self.limit.time_window, retry_after)
            raise ProviderUnavailableError(f"{self.name} rate limit reached, retry in {retry_after:.0f}s")

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a JSON document with the configured timeout.

        Raises:
            ProviderUnavailableError: If the request fails, times out, or returns invalid JSON
        """
        self._spend_budget()
        try:
            resp = self.http.get(
                url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.Timeout:
            log.error("%s timeout after %d seconds (%s)", self.name, self.timeout, url)
            raise ProviderUnavailableError(f"{self.name} timeout after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            log.error("%s request failed: %s", self.name, e)
            raise ProviderUnavailableError(f"{self.name} request failed: {e}")
        except ValueError as e:
            log.error("%s returned invalid JSON: %s", self.name, e)
            raise ProviderUnavailableError(f"{self.name} returned invalid JSON: {e}")


def positive_float(value: Any) -> Optional[float]:
    """Return ``value`` as a positive float, or None if it is missing or invalid."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def instruments_label(instruments: Iterable[Instrument]) -> str:
    return ",".join(sorted(i.value for i in instruments)) or "-"
