# src/bullion/application/__init__.py
"""
Application Layer - Use Cases and Services

This package contains application services that orchestrate domain logic:
the single-flight price cache, the fallback generator, the persistence
writer, the alert evaluator and the refresh cycle driving them.
Upstream and storage I/O goes through adapters passed in at construction.
"""

from bullion.application.alert_evaluator import AlertEvaluationResult, AlertEvaluator
from bullion.application.fallback import FallbackPriceGenerator
from bullion.application.price_cache import CacheStats, PriceCache
from bullion.application.price_writer import PriceWriter, WriteCycleResult, compute_change
from bullion.application.refresh_service import CycleReport, PriceRefreshService
from bullion.application.scheduler import RefreshScheduler
from bullion.application.source_chain import ChainedPriceSource

__all__ = [
    "AlertEvaluationResult",
    "AlertEvaluator",
    "CacheStats",
    "ChainedPriceSource",
    "CycleReport",
    "FallbackPriceGenerator",
    "PriceCache",
    "PriceRefreshService",
    "PriceWriter",
    "RefreshScheduler",
    "WriteCycleResult",
    "compute_change",
]
