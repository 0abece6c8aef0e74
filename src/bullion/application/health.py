# src/bullion/application/health.py
"""
Health Checker - System Monitoring and Diagnostics

This module reports the health of the engine: price cache age and fallback
state, outcome of the last refresh cycle, row store reachability and
freshness, and upstream reachability. It never goes through the price cache
to reach the upstream, so a health check cannot consume or refresh cached
prices.

The cache and last_cycle checks only describe the process they run in. A
separate --health process judges the serving loop by the newest stored row
instead (store check with max_row_age).

Files that USE this module:
- bullion.app (--health command line flag)
- tests.test_health (unit tests)

Files that this module USES:
- bullion.application.price_cache (cache age and counters)
- bullion.application.refresh_service (last cycle report)
- bullion.adapters.persistence.row_store (reachability and freshness check)
- bullion.application.fallback (FALLBACK_SOURCE label of generated rows)
- bullion.adapters.formatting.formatter (format_elapsed for cache ages)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Sequence

import requests  # type: ignore[import-untyped]  # HTTP library for the upstream check

from bullion.adapters.formatting.formatter import format_elapsed
from bullion.adapters.persistence.row_store import PRICES_TABLE, RowStore
from bullion.application.fallback import FALLBACK_SOURCE
from bullion.application.price_cache import PriceCache
from bullion.application.refresh_service import PriceRefreshService
from bullion.domain.models import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

UPSTREAM_CHECK_TIMEOUT = 5

COMPONENTS = ("cache", "last_cycle", "store", "upstream")


@dataclass
class HealthStatus:
    """Represents the health status of a component."""
    is_healthy: bool
    message: str
    last_check: datetime
    details: Optional[Dict[str, Any]] = None


class HealthChecker:
    """Centralized health checking for the engine components."""

    def __init__(
        self,
        cache: PriceCache,
        store: RowStore,
        service: Optional[PriceRefreshService] = None,
        upstream_url: Optional[str] = None,
        max_cache_age: Optional[float] = None,
        max_row_age: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            cache: The process-wide price cache
            store: Row store to check
            service: Refresh service whose last cycle is reported (optional)
            upstream_url: Base URL of the Gold API; None skips the upstream check
            max_cache_age: Age in seconds beyond which a warm cache counts as stale
            max_row_age: Age in seconds beyond which the newest stored gold row
                counts as stale; None only checks that the store answers
            clock: UTC wall clock used to age stored rows
        """
        self.cache = cache
        self.store = store
        self.service = service
        self.upstream_url = upstream_url
        self.max_cache_age = max_cache_age
        self.max_row_age = max_row_age
        self._clock = clock

    def check_cache(self) -> HealthStatus:
        """Check cache age and whether the last fetch ended in a fallback."""
        stats = self.cache.stats
        entry = self.cache.peek()
        details = {
            "fetches": stats.fetches,
            "hits": stats.hits,
            "joins": stats.joins,
            "fallbacks": stats.fallbacks,
            "last_error": stats.last_error,
            "fallback_anchor": "last known good" if self.cache.fallback.has_live_anchor else "baseline",
        }
        get_last_source = getattr(self.cache.source, "get_last_source", None)
        if get_last_source is not None:
            details["last_source"] = get_last_source()
        if entry is None:
            healthy = stats.fetches == 0
            message = "Cache empty (no fetch yet)" if healthy else "Cache empty, last fetch fell back"
            if stats.last_error:
                message += f": {stats.last_error}"
            return HealthStatus(healthy, message, datetime.now(timezone.utc), details)

        age = self.cache.age() or 0.0
        details.update({"age_seconds": age, "source": entry.base.source})
        if stats.last_error:
            return HealthStatus(
                is_healthy=False,
                message=f"Serving fallback prices, upstream error: {stats.last_error}",
                last_check=datetime.now(timezone.utc),
                details=details,
            )
        if self.max_cache_age is not None and age > self.max_cache_age:
            return HealthStatus(
                is_healthy=False,
                message=f"Cache stale: last live fetch {format_elapsed(age)} ago",
                last_check=datetime.now(timezone.utc),
                details=details,
            )
        return HealthStatus(
            is_healthy=True,
            message=f"Cache healthy, {entry.base.source} prices {format_elapsed(age)} old",
            last_check=datetime.now(timezone.utc),
            details=details,
        )

    def check_last_cycle(self) -> HealthStatus:
        """Check the outcome of the most recent refresh cycle."""
        report = self.service.last_report if self.service is not None else None
        if report is None:
            return HealthStatus(
                is_healthy=True,
                message="No refresh cycle yet (first run)",
                last_check=datetime.now(timezone.utc),
                details={"has_cycle": False},
            )
        details = {
            "has_cycle": True,
            "finished_at": report.finished_at.isoformat(),
            "written": len(report.write.written),
            "failed": sorted(i.value for i in report.write.failed),
            "used_fallback": report.used_fallback,
            "alert_error": report.alert_error,
            "triggered": len(report.alerts.triggered) if report.alerts else 0,
        }
        if report.ok:
            message = f"Last cycle ok, {len(report.write.written)} rows written"
        else:
            problems = []
            if report.write.failed:
                problems.append("failed rows: " + ", ".join(details["failed"]))
            if report.alert_error:
                problems.append(f"alerts: {report.alert_error}")
            message = "Last cycle degraded - " + "; ".join(problems)
        return HealthStatus(report.ok, message, datetime.now(timezone.utc), details)

    def check_store(self) -> HealthStatus:
        """
        Check that the row store answers a read and, with max_row_age set,
        that the newest gold row is recent live data.
        """
        try:
            latest = self.store.select_latest(PRICES_TABLE, "metal_type", "gold")
        except Exception as e:
            logger.error("Store health check failed: %s", e)
            return HealthStatus(
                is_healthy=False,
                message=f"Store error: {str(e)}",
                last_check=datetime.now(timezone.utc),
            )

        details: Dict[str, Any] = {
            "latest_gold_timestamp": latest.get("timestamp") if latest else None,
            "latest_gold_source": latest.get("source") if latest else None,
        }
        if self.max_row_age is None:
            return HealthStatus(
                is_healthy=True,
                message="Store reachable" + ("" if latest else " (no gold rows yet)"),
                last_check=datetime.now(timezone.utc),
                details=details,
            )

        if latest is None:
            return HealthStatus(False, "Store reachable but holds no gold rows", datetime.now(timezone.utc), details)
        try:
            age = (self._clock() - parse_timestamp(latest["timestamp"])).total_seconds()
        except (KeyError, TypeError, ValueError) as e:
            return HealthStatus(False, f"Newest gold row has no usable timestamp: {e}",
                                datetime.now(timezone.utc), details)
        details["row_age_seconds"] = age
        if age > self.max_row_age:
            return HealthStatus(False, f"Store stale: newest gold row {format_elapsed(age)} old",
                                datetime.now(timezone.utc), details)
        if latest.get("source") == FALLBACK_SOURCE:
            return HealthStatus(False, "Newest gold row is fallback data (upstream unavailable)",
                                datetime.now(timezone.utc), details)
        return HealthStatus(
            is_healthy=True,
            message=f"Store fresh, newest gold row {format_elapsed(age)} old from {latest.get('source')}",
            last_check=datetime.now(timezone.utc),
            details=details,
        )

    def check_upstream(self) -> HealthStatus:
        """Check Gold API reachability with a single lightweight GET."""
        if not self.upstream_url:
            return HealthStatus(
                is_healthy=True,
                message="Upstream check not configured",
                last_check=datetime.now(timezone.utc),
                details={"configured": False},
            )
        url = f"{self.upstream_url.rstrip('/')}/price/XAU"
        try:
            response = requests.get(url, timeout=UPSTREAM_CHECK_TIMEOUT)
            response.raise_for_status()
            data = response.json()
            price = data.get("price") if isinstance(data, dict) else None
            if price is None:
                return HealthStatus(
                    is_healthy=False,
                    message="Upstream returned no gold price",
                    last_check=datetime.now(timezone.utc),
                    details={"raw_response": data},
                )
            return HealthStatus(
                is_healthy=True,
                message=f"Upstream reachable, gold {float(price):,.2f} USD",
                last_check=datetime.now(timezone.utc),
                details={"price": float(price)},
            )
        except Exception as e:
            logger.error("Upstream health check failed: %s", e)
            return HealthStatus(
                is_healthy=False,
                message=f"Upstream error: {str(e)}",
                last_check=datetime.now(timezone.utc),
            )

    def get_overall_health(self, components: Sequence[str] = COMPONENTS) -> Dict[str, Any]:
        """
        Get overall health status of the selected components.

        Returns degraded status if any component fails, even if others are healthy.

        Args:
            components: Names from COMPONENTS to run, in report order
        """
        checks_by_name = {
            "cache": self.check_cache,
            "last_cycle": self.check_last_cycle,
            "store": self.check_store,
            "upstream": self.check_upstream,
        }
        unknown = [name for name in components if name not in checks_by_name]
        if unknown:
            raise ValueError(f"Unknown health component(s): {unknown}")
        checks = {name: checks_by_name[name]() for name in components}

        healthy_checks = [name for name, check in checks.items() if check.is_healthy]
        failed_checks = [name for name, check in checks.items() if not check.is_healthy]
        overall_healthy = len(failed_checks) == 0

        if overall_healthy:
            status_message = "All systems healthy"
        else:
            status_message = f"Degraded - {len(failed_checks)} component(s) failed: {', '.join(failed_checks)}"

        return {
            "overall_healthy": overall_healthy,
            "status": "healthy" if overall_healthy else "degraded",
            "message": status_message,
            "healthy_components": healthy_checks,
            "failed_components": failed_checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                name: {
                    "healthy": check.is_healthy,
                    "message": check.message,
                    "last_check": check.last_check.isoformat(),
                    "details": check.details,
                }
                for name, check in checks.items()
            },
        }
