# src/bullion/adapters/providers/metal_price_api.py
"""
Metal Price API Source

Client for https://api.metalpriceapi.com. One ``/latest`` call returns rates
for XAU, XAG, XPT and XPD against the requested base. The API quotes
"ounces per currency unit", so the price is the inverse of the rate.

Files that USE this module:
- bullion.app (builds MetalPriceApiSource when listed in PRICE_SOURCES)
- tests.test_providers (unit tests)

Files that this module USES:
- bullion.adapters.providers.base (PriceSource, PriceDeriver)
"""
from __future__ import annotations

import logging
import time

from bullion.adapters.providers.base import PriceSource, instruments_label, positive_float
from bullion.domain.errors import ProviderUnavailableError
from bullion.domain.models import Currency, Instrument, PriceSnapshot

log = logging.getLogger(__name__)

SOURCE_LABEL = "Metal Price API"

SYMBOLS = {
    "XAU": Instrument.GOLD,
    "XAG": Instrument.SILVER,
    "XPT": Instrument.PLATINUM,
    "XPD": Instrument.PALLADIUM,
}


class MetalPriceApiSource(PriceSource):
    """Metal Price API source (all four metals observed in one call)."""

    name = "metal_price_api"

    def __init__(self, *args, api_key: str, base_url: str = "https://api.metalpriceapi.com/v1", **kwargs):
        """
        Raises:
            ValueError: If the API key is missing
        """
        if not api_key:
            raise ValueError("Metal Price API key not configured (METALS_API_KEY)")
        super().__init__(*args, **kwargs)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    def _fetch_usd_snapshot(self) -> PriceSnapshot:
        data = self._get_json(
            f"{self.base_url}/latest",
            params={
                "api_key": self.api_key,
                "base": Currency.USD.value,
                "currencies": ",".join(SYMBOLS),
            },
        )
        if not isinstance(data, dict) or not isinstance(data.get("rates"), dict):
            raise ProviderUnavailableError(f"{self.name}: response missing 'rates'")

        rates = data["rates"]
        observed = {}
        for symbol, instrument in SYMBOLS.items():
            rate = positive_float(rates.get(symbol))
            if rate is not None:
                observed[instrument] = 1.0 / rate
            else:
                log.warning("%s: no rate for %s", self.name, symbol)

        prices, derived = self.deriver.complete(observed)
        log.info("Metal Price API: gold=%.2f USD, derived=%s", prices[Instrument.GOLD], instruments_label(derived))
        timestamp = data.get("timestamp")
        return PriceSnapshot(
            currency=Currency.USD,
            prices=prices,
            timestamp=int(timestamp) if isinstance(timestamp, (int, float)) and timestamp > 0 else int(time.time()),
            source=SOURCE_LABEL,
            derived=derived,
        )
