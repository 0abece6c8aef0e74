# src/bullion/adapters/providers/goodreturns.py
"""
Scraped Gold Price Source

Exposes the goodreturns.in crawler behind the PriceSource contract. The page
publishes 24k and 22k gold per gram in INR; both are converted to USD per
troy ounce through the static FX table. Silver, platinum and palladium are
derived from the converted gold price.

The crawler has its own timeout, TTL cache and single-flight guard, so a
slow page load never costs more than one request per window.

Files that USE this module:
- bullion.app (builds ScrapedGoldSource when "goodreturns" is in PRICE_SOURCES)
- tests.test_providers (unit tests)

Files that this module USES:
- bullion.adapters.crawlers.goodreturns_crawler (GoodReturnsCrawler)
- bullion.adapters.providers.base (PriceSource, PriceDeriver)
"""
from __future__ import annotations

import logging
import time

from bullion.adapters.crawlers.base import BaseCrawler, CrawlerError
from bullion.adapters.providers.base import PriceSource, instruments_label
from bullion.domain.currency import rate_for
from bullion.domain.errors import ProviderUnavailableError
from bullion.domain.models import Currency, Instrument, PriceSnapshot

log = logging.getLogger(__name__)

SOURCE_LABEL = "GoodReturns (scraped)"
GRAMS_PER_TROY_OUNCE = 31.1034768


class ScrapedGoldSource(PriceSource):
    """PriceSource backed by an HTML crawler quoting INR per gram."""

    name = "goodreturns"

    def __init__(self, *args, crawler: BaseCrawler, **kwargs):
        super().__init__(*args, **kwargs)
        self.crawler = crawler

    def _inr_gram_to_usd_ounce(self, inr_per_gram: float) -> float:
        return inr_per_gram * GRAMS_PER_TROY_OUNCE / rate_for(Currency.INR, self.fx_rates)

    def _fetch_usd_snapshot(self) -> PriceSnapshot:
        try:
            result = self.crawler.fetch()
        except CrawlerError as e:
            raise ProviderUnavailableError(f"{self.name}: {e}") from e

        observed = {}
        if result.gold_24k_per_gram:
            observed[Instrument.GOLD] = self._inr_gram_to_usd_ounce(result.gold_24k_per_gram)
        if result.gold_22k_per_gram:
            observed[Instrument.GOLD_22K] = self._inr_gram_to_usd_ounce(result.gold_22k_per_gram)

        # 24k missing but 22k present: gold recovered from the purity ratio
        recovered = False
        if Instrument.GOLD not in observed and Instrument.GOLD_22K in observed:
            ratio = self.deriver.ratios.get(Instrument.GOLD_22K)
            if ratio:
                observed[Instrument.GOLD] = observed[Instrument.GOLD_22K] / ratio
                recovered = True

        prices, derived = self.deriver.complete(observed)
        if recovered:
            derived = derived | {Instrument.GOLD}
        log.info("GoodReturns: gold=%.2f USD/oz, derived=%s", prices[Instrument.GOLD], instruments_label(derived))
        timestamp = int(result.timestamp.timestamp()) if result.timestamp else int(time.time())
        return PriceSnapshot(
            currency=Currency.USD,
            prices=prices,
            timestamp=timestamp,
            source=SOURCE_LABEL,
            derived=derived,
        )
