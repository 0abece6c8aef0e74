# src/bullion/application/source_chain.py
"""
Source Chain - Ordered Failover Across Price Sources

Wraps several PriceSource instances behind the same contract. Sources are
tried in configured order; the first one that returns a snapshot wins and is
remembered for health reporting. When all fail, a single
ProviderUnavailableError naming every failure is raised, which the price
cache turns into its fallback path.

Files that USE this module:
- bullion.app (wraps the configured sources)
- tests.test_providers (failover tests)

Files that this module USES:
- bullion.adapters.providers.base (PriceSource contract)
- bullion.domain.errors (ProviderUnavailableError)
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from bullion.adapters.providers.base import PriceSource
from bullion.domain.errors import ProviderUnavailableError
from bullion.domain.models import Currency, PriceSnapshot

log = logging.getLogger(__name__)


class ChainedPriceSource:
    """
    Source chain that tries multiple sources in order.
    Tracks which source was actually used.
    """

    name = "chain"

    def __init__(self, sources: Sequence[PriceSource]):
        """
        Args:
            sources: Sources in priority order (at least one)

        Raises:
            ValueError: If no sources are given
        """
        if not sources:
            raise ValueError("ChainedPriceSource needs at least one source")
        self.sources = list(sources)
        self.last_used_source: Optional[str] = None

    def fetch_base_prices(self, base_currency: Currency = Currency.USD) -> PriceSnapshot:
        """
        Fetch from the first source that succeeds.

        Raises:
            ProviderUnavailableError: If every source fails
        """
        errors = []
        for source in self.sources:
            try:
                snapshot = source.fetch_base_prices(base_currency)
            except ProviderUnavailableError as e:
                log.warning("Source %s failed, trying next: %s", source.name, e)
                errors.append(f"{source.name}={e}")
                continue
            self.last_used_source = source.name
            return snapshot

        log.error("All price sources failed: %s", "; ".join(errors))
        raise ProviderUnavailableError("All sources failed: " + "; ".join(errors))

    def get_last_source(self) -> Optional[str]:
        """
        Get the name of the last source that successfully provided data.

        Returns:
            Source name or None if no fetch has succeeded yet
        """
        return self.last_used_source
