# src/bullion/application/price_writer.py
"""
Price Persistence Writer - Time Series Rows With Derived Analytics

Once per refresh cycle the writer appends one row per instrument, carrying
the USD price, every other currency's projected price and analytics computed
relative to the previous stored row:

- change_24h = new USD price - prior USD price (0 with no prior row)
- change_percentage = change_24h / prior * 100 (0 with no prior row)
- bid/ask = price * 0.999 / 1.001 (illustrative 0.1% spread)
- high_24h/low_24h = price * 1.02 / 0.98 (illustrative daily range)

Bid, ask, high and low are placeholders, not observed market data.

Each instrument is an independent unit of work: a read or insert failure on
one instrument is recorded and the remaining instruments are still written.

Files that USE this module:
- bullion.application.refresh_service (write_cycle after warming the cache)
- tests.test_price_writer (unit tests)

Files that this module USES:
- bullion.adapters.persistence.row_store (RowStore, PRICES_TABLE)
- bullion.domain.models (StoredPriceRow, PriceSnapshot)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from bullion.adapters.persistence.row_store import PRICES_TABLE, RowStore
from bullion.domain.models import (
    Currency,
    Instrument,
    PriceSnapshot,
    StoredPriceRow,
    utc_now,
)

log = logging.getLogger(__name__)

BID_FACTOR = 0.999
ASK_FACTOR = 1.001
HIGH_FACTOR = 1.02
LOW_FACTOR = 0.98


@dataclass
class WriteCycleResult:
    """Outcome of one write cycle."""
    timestamp: datetime
    written: List[StoredPriceRow] = field(default_factory=list)
    failed: Dict[Instrument, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def compute_change(new_price: float, prior_price: Optional[float]) -> tuple[float, float]:
    """
    Absolute and percentage change against the prior price.

    Returns:
        (change, change_percentage); both 0 when there is no usable prior price
    """
    if prior_price is None or prior_price <= 0:
        return 0.0, 0.0
    change = new_price - prior_price
    return change, change / prior_price * 100.0


class PriceWriter:
    """Appends one analytics-enriched row per instrument per cycle."""

    def __init__(self, store: RowStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self._clock = clock

    def write_cycle(self, snapshots_by_currency: Mapping[Currency, PriceSnapshot]) -> WriteCycleResult:
        """
        Persist one cycle.

        Args:
            snapshots_by_currency: One snapshot per currency, all derived from the same base fetch

        Returns:
            WriteCycleResult with written rows and per-instrument failures

        Raises:
            ValueError: If no USD snapshot is supplied
        """
        usd = snapshots_by_currency.get(Currency.USD)
        if usd is None:
            raise ValueError("write_cycle requires a USD snapshot")

        result = WriteCycleResult(timestamp=self._clock())
        for instrument, price_usd in usd.prices.items():
            try:
                row = self._write_instrument(instrument, price_usd, snapshots_by_currency, usd, result.timestamp)
            except Exception as e:
                log.error("Error inserting %s price: %s", instrument.value, e)
                result.failed[instrument] = str(e)
                continue
            result.written.append(row)
            log.info("Updated %s: USD %.2f (%+.2f%%)", instrument.value, price_usd, row.change_percentage)

        if result.failed:
            log.warning(
                "Price cycle finished with failures for: %s (%d of %d written)",
                ", ".join(sorted(i.value for i in result.failed)),
                len(result.written),
                len(usd.prices),
            )
        return result

    def _write_instrument(
        self,
        instrument: Instrument,
        price_usd: float,
        snapshots: Mapping[Currency, PriceSnapshot],
        usd: PriceSnapshot,
        timestamp: datetime,
    ) -> StoredPriceRow:
        prior = self.store.select_latest(PRICES_TABLE, "metal_type", instrument.value)
        prior_price = float(prior["price_usd"]) if prior and prior.get("price_usd") is not None else None
        change, change_pct = compute_change(price_usd, prior_price)

        def _in(currency: Currency) -> Optional[float]:
            snap = snapshots.get(currency)
            return snap.price(instrument) if snap is not None else None

        row = StoredPriceRow(
            instrument=instrument,
            price_usd=price_usd,
            timestamp=timestamp,
            price_eur=_in(Currency.EUR),
            price_gbp=_in(Currency.GBP),
            price_inr=_in(Currency.INR),
            bid_price=price_usd * BID_FACTOR,
            ask_price=price_usd * ASK_FACTOR,
            change_24h=change,
            change_percentage=change_pct,
            high_24h=price_usd * HIGH_FACTOR,
            low_24h=price_usd * LOW_FACTOR,
            source=usd.source,
        )
        stored = self.store.insert(PRICES_TABLE, row.to_row())
        return StoredPriceRow.from_row(stored)
