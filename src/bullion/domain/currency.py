# src/bullion/domain/currency.py
"""
Currency Projection - Static FX Conversion

Derives prices in every supported currency from one USD reading using a
static conversion table. The table is an approximation for display purposes,
not live FX.

Files that USE this module:
- bullion.application.price_cache (projects the base snapshot per currency)
- bullion.adapters.providers.* (convert when a non-USD base is requested)
- bullion.config.settings (DEFAULT_FX_RATES)

Files that this module USES:
- bullion.domain.models (Currency, PriceSnapshot)
"""
from __future__ import annotations

from dataclasses import replace
from typing import Mapping

from bullion.domain.models import Currency, PriceSnapshot

# USD -> currency multipliers
DEFAULT_FX_RATES: dict[str, float] = {
    "USD": 1.0,
    "EUR": 0.92,
    "GBP": 0.79,
    "INR": 83.12,
}


def rate_for(target_currency: Currency | str, rates: Mapping[str, float]) -> float:
    """
    Look up the USD->target multiplier.

    Raises:
        ValueError: If the currency is not in the table
    """
    code = Currency(target_currency).value
    if code == Currency.USD.value:
        return 1.0
    try:
        return float(rates[code])
    except KeyError:
        raise ValueError(f"No FX rate configured for {code}") from None


def project(base_price_usd: float, target_currency: Currency | str, rates: Mapping[str, float] = DEFAULT_FX_RATES) -> float:
    """Convert a USD price into ``target_currency``."""
    return base_price_usd * rate_for(target_currency, rates)


def project_snapshot(
    snapshot: PriceSnapshot,
    target_currency: Currency | str,
    rates: Mapping[str, float] = DEFAULT_FX_RATES,
) -> PriceSnapshot:
    """
    Project a USD snapshot into another currency.

    Every instrument is converted independently; the source snapshot is
    returned unchanged when the target is USD and is never modified.

    Raises:
        ValueError: If the snapshot is not quoted in USD or the target is unknown
    """
    if snapshot.currency is not Currency.USD:
        raise ValueError(f"Can only project from USD, got {snapshot.currency.value}")
    target_currency = Currency(target_currency)
    if target_currency is Currency.USD:
        return snapshot
    rate = rate_for(target_currency, rates)
    return replace(
        snapshot,
        currency=target_currency,
        prices={instrument: price * rate for instrument, price in snapshot.prices.items()},
    )
