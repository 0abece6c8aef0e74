# src/bullion/adapters/providers/gold_api.py
"""
Gold API Price Source

Client for https://api.gold-api.com. The API reliably covers gold (XAU) and
silver (XAG), so a fetch costs exactly two upstream calls; platinum,
palladium and the 22k grade are derived from the gold price.

If the silver call fails the fetch still succeeds with a derived silver
price. If the gold call fails the whole fetch fails.

Files that USE this module:
- bullion.app (builds GoldApiSource from settings)
- tests.test_providers (unit tests)

Files that this module USES:
- bullion.adapters.providers.base (PriceSource, PriceDeriver)
- bullion.domain.models (Instrument, PriceSnapshot)
"""
from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Optional

from bullion.adapters.providers.base import PriceSource, instruments_label, positive_float
from bullion.domain.errors import ProviderUnavailableError
from bullion.domain.models import Currency, Instrument, PriceSnapshot

log = logging.getLogger(__name__)

SOURCE_LABEL = "Gold API"


class GoldApiSource(PriceSource):
    """Gold API price source (observed gold and silver, derived others)."""

    name = "gold_api"

    def __init__(self, *args, base_url: str = "https://api.gold-api.com", **kwargs):
        super().__init__(*args, **kwargs)
        self.base_url = base_url.rstrip("/")

    def _quote(self, symbol: str) -> tuple[float, Optional[int]]:
        """
        Fetch one symbol's price.

        Returns:
            (price in USD per troy ounce, Unix timestamp from updatedAt or None)

        Raises:
            ProviderUnavailableError: If the request fails or the price is missing
        """
        data = self._get_json(f"{self.base_url}/price/{symbol}")
        if not isinstance(data, dict):
            raise ProviderUnavailableError(f"{self.name}: unexpected response type for {symbol}")
        price = positive_float(data.get("price"))
        if price is None:
            raise ProviderUnavailableError(f"{self.name}: no usable price for {symbol}: {data.get('price')!r}")
        return price, _parse_updated_at(data.get("updatedAt"))

    def _fetch_usd_snapshot(self) -> PriceSnapshot:
        gold, updated_at = self._quote("XAU")

        observed = {Instrument.GOLD: gold}
        try:
            silver, _ = self._quote("XAG")
            observed[Instrument.SILVER] = silver
        except ProviderUnavailableError as e:
            log.warning("Silver quote unavailable, deriving from gold: %s", e)

        prices, derived = self.deriver.complete(observed)
        log.info("Gold API: gold=%.2f USD, derived=%s", gold, instruments_label(derived))
        return PriceSnapshot(
            currency=Currency.USD,
            prices=prices,
            timestamp=updated_at or int(time.time()),
            source=SOURCE_LABEL,
            derived=derived,
        )


def _parse_updated_at(value) -> Optional[int]:
    if not value:
        return None
    try:
        return int(datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp())
    except ValueError:
        log.debug("Unparseable updatedAt %r, using wall clock", value)
        return None
