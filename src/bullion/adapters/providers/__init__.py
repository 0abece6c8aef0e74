"""
Provider Adapters - Upstream Price Sources

This package contains adapters for external precious-metal price sources.
All sources implement the PriceSource contract.
"""

from bullion.adapters.providers.base import PriceDeriver, PriceSource
from bullion.adapters.providers.gold_api import GoldApiSource
from bullion.adapters.providers.goodreturns import ScrapedGoldSource
from bullion.adapters.providers.metal_price_api import MetalPriceApiSource

__all__ = [
    "PriceDeriver",
    "PriceSource",
    "GoldApiSource",
    "MetalPriceApiSource",
    "ScrapedGoldSource",
]
