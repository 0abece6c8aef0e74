# src/bullion/app.py
"""
Application Entry Point - Engine Wiring and Startup

This module is the composition root of the price engine. It builds the
upstream sources, the single process-wide price cache, the row store, the
writer and the alert evaluator from settings, then either serves (refresh
loop on a fixed interval), runs one cycle (--once) or prints a health
report (--health).

Files that USE this module:
- python -m bullion (module entry point)
- bullion console script (pyproject.toml)
- tests.test_app (wiring tests)

Files that this module USES:
- bullion.shared.logging_conf (setup_logging for logging configuration)
- bullion.config (settings for configuration management)
- bullion.adapters.* (sources, crawler, row store, formatter)
- bullion.application.* (cache, writer, evaluator, refresh service, scheduler, health)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations for forward references

import argparse  # Command line flags (--once, --health)
import atexit  # Register cleanup functions to run when program exits
import json  # Machine-readable health output
import logging  # Standard library for logging messages and errors
import os  # Operating system interface for environment variables and process management
import random  # Seedable randomness for derivation and fallback
import sys  # System-specific parameters and functions for exit codes
from pathlib import Path  # Object-oriented filesystem paths
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

from pydantic import ValidationError  # Raised by Settings for malformed env values

from bullion.adapters.crawlers.goodreturns_crawler import GoodReturnsCrawler
from bullion.adapters.formatting.formatter import format_health_report, snapshot_lines
from bullion.adapters.persistence.row_store import InMemoryRowStore, JsonFileRowStore, RowStore
from bullion.adapters.providers import (
    GoldApiSource,
    MetalPriceApiSource,
    PriceDeriver,
    PriceSource,
    ScrapedGoldSource,
)
from bullion.application.alert_evaluator import AlertEvaluator
from bullion.application.fallback import FallbackPriceGenerator
from bullion.application.health import HealthChecker
from bullion.application.price_cache import PriceCache
from bullion.application.price_writer import PriceWriter
from bullion.application.refresh_service import PriceRefreshService
from bullion.application.scheduler import RefreshScheduler
from bullion.application.source_chain import ChainedPriceSource
from bullion.domain.errors import ConfigurationError
from bullion.domain.models import Currency
from bullion.shared.logging_conf import setup_logging
from bullion.shared.rate_limiter import RateLimiter, per_minute

if TYPE_CHECKING:
    from bullion.config.settings import Settings

logger = logging.getLogger(__name__)

# --health runs in its own process; serving-loop health skips the upstream check
CLI_HEALTH_COMPONENTS = ("store", "upstream")
SERVING_HEALTH_COMPONENTS = ("cache", "last_cycle", "store")


# PID file path for preventing multiple serving instances
# Can be overridden via BULLION_PID_FILE environment variable
def _get_pid_file(settings: Optional[Settings] = None) -> Path:
    """Get PID file path from environment or default location next to the store."""
    pid_file = os.environ.get("BULLION_PID_FILE")
    if pid_file:
        return Path(pid_file)
    data_dir = settings.store_path.parent if settings is not None else Path("./data")
    return data_dir / "bullion.pid"


def _check_existing_instance(pid_file: Path) -> None:
    """
    Check if another engine instance is already running.

    Raises RuntimeError if PID file exists and process is still running.
    """
    if pid_file.exists():
        try:
            with open(pid_file, "r") as f:
                old_pid = int(f.read().strip())

            # Check if process is still running
            try:
                os.kill(old_pid, 0)  # Signal 0 doesn't kill, just checks if process exists
                raise RuntimeError(
                    f"Another bullion instance is already running (PID: {old_pid}).\n"
                    f"Please stop it first with: kill {old_pid}"
                )
            except ProcessLookupError:
                # Process doesn't exist, stale PID file - remove it
                pid_file.unlink()
        except (ValueError, IOError):
            # Invalid PID file, remove it
            pid_file.unlink()


def _create_pid_file(pid_file: Path) -> None:
    """Create PID file with current process ID."""
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    with open(pid_file, "w") as f:
        f.write(str(os.getpid()))


def _remove_pid_file(pid_file: Path) -> None:
    """Remove PID file on exit."""
    if pid_file.exists():
        try:
            pid_file.unlink()
        except OSError as e:
            logger.warning("Could not remove PID file %s: %s", pid_file, e)


# -------- wiring --------

def build_sources(settings: Settings, rng: random.Random) -> List[PriceSource]:
    """
    Build the configured upstream sources in PRICE_SOURCES order.

    All sources share one deriver (and so one seeded RNG) and one rate limiter.

    Raises:
        ConfigurationError: If a source is listed without its required settings
    """
    deriver = PriceDeriver(
        settings.derivation_ratios,
        jitter=settings.derivation_jitter,
        rng=rng,
        include_gold_22k=settings.track_gold_22k,
    )
    limiter = RateLimiter()
    limit = per_minute(settings.upstream_max_requests_per_minute)
    common = dict(
        deriver=deriver,
        timeout=settings.http_timeout_seconds,
        fx_rates=settings.fx_rates,
        limiter=limiter,
        limit=limit,
    )

    sources: List[PriceSource] = []
    for name in settings.price_sources:
        if name == "gold_api":
            sources.append(GoldApiSource(base_url=settings.gold_api_url, **common))
        elif name == "metal_price_api":
            if not settings.metals_api_key:
                raise ConfigurationError("PRICE_SOURCES lists metal_price_api but METALS_API_KEY is not set")
            sources.append(MetalPriceApiSource(
                api_key=settings.metals_api_key,
                base_url=settings.metal_price_api_url,
                **common,
            ))
        elif name == "goodreturns":
            crawler = GoodReturnsCrawler(
                settings.goodreturns_url,
                timeout=settings.http_timeout_seconds,
                limiter=limiter,
            )
            sources.append(ScrapedGoldSource(crawler=crawler, **common))
    return sources


def build_store(settings: Settings) -> RowStore:
    """Build the row store selected by STORE_BACKEND."""
    if settings.store_backend == "memory":
        logger.warning("Using in-memory store: rows are lost at exit")
        return InMemoryRowStore()
    return JsonFileRowStore(settings.store_path)


def build_service(settings: Settings, store: Optional[RowStore] = None) -> PriceRefreshService:
    """
    Wire the full engine: sources -> cache -> writer -> evaluator -> service.

    Args:
        settings: Validated settings
        store: Optional store to use instead of the configured backend

    Returns:
        PriceRefreshService ready to run cycles
    """
    rng = random.Random(settings.random_seed)
    sources = build_sources(settings, rng)
    source = sources[0] if len(sources) == 1 else ChainedPriceSource(sources)
    fallback = FallbackPriceGenerator(
        step_pct=settings.fallback_step_pct,
        max_drift_pct=settings.fallback_max_drift_pct,
        rng=rng,
        include_gold_22k=settings.track_gold_22k,
    )
    cache = PriceCache(
        source,
        ttl_seconds=settings.cache_ttl_seconds,
        fx_rates=settings.fx_rates,
        fallback=fallback,
        currencies=[Currency(code) for code in settings.fx_rates],
    )
    store = store if store is not None else build_store(settings)
    writer = PriceWriter(store)
    evaluator = AlertEvaluator(store, retrigger_mode=settings.alert_retrigger_mode)
    return PriceRefreshService(cache, writer, evaluator)


def build_health_checker(settings: Settings, service: PriceRefreshService) -> HealthChecker:
    """Health checker whose stale limits are two refresh intervals."""
    upstream = settings.gold_api_url if "gold_api" in settings.price_sources else None
    return HealthChecker(
        cache=service.cache,
        store=service.writer.store,
        service=service,
        upstream_url=upstream,
        max_cache_age=settings.refresh_interval_seconds * 2,
        max_row_age=settings.refresh_interval_seconds * 2,
    )


def make_refresh_job(service: PriceRefreshService, checker: HealthChecker) -> Callable[[], None]:
    """Scheduler job: one cycle, plus a logged health report when the cycle is degraded."""

    def refresh_job() -> None:
        report = service.run_cycle()
        if not report.ok or report.used_fallback:
            health = checker.get_overall_health(SERVING_HEALTH_COMPONENTS)
            logger.warning("Cycle degraded, health:\n%s", format_health_report(health))

    return refresh_job


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bullion", description="Precious-metal price engine")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="run a single refresh cycle and exit")
    mode.add_argument("--health", action="store_true", help="print a health report and exit")
    parser.add_argument("--json", action="store_true", help="with --health, print the report as JSON")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Initialize and start the price engine.

    This function:
    1. Sets up logging from configuration
    2. Wires sources, cache, store, writer and evaluator
    3. Runs one cycle, prints a health report, or serves the refresh loop

    Returns:
        Process exit code
    """
    args = _parse_args(argv)

    # Logging + config
    # Import settings here so a bad .env fails with a readable error after argparse
    try:
        from bullion.config import settings
    except ValidationError as e:
        setup_logging()
        logger.error("Configuration error: %s", e)
        return 2

    setup_logging(
        level=getattr(logging, settings.log_level),
        log_file=settings.log_file,
        log_dir=settings.log_dir,
        max_bytes=settings.log_max_bytes,
        backup_count=settings.log_backup_count,
        log_to_stdout=settings.log_stdout,
    )

    try:
        service = build_service(settings)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 2

    if args.health:
        # A fresh process has no cache or cycle of its own; judge the serving loop by the store
        report = build_health_checker(settings, service).get_overall_health(CLI_HEALTH_COMPONENTS)
        print(json.dumps(report, indent=2) if args.json else format_health_report(report))
        return 0 if report["overall_healthy"] else 1

    if args.once:
        report = service.run_cycle()
        print(snapshot_lines(report.snapshot))
        return 0 if report.ok else 1

    # Serving mode: one instance per store
    pid_file = _get_pid_file(settings)
    logger.info("Working directory: %s", os.getcwd())
    logger.info("PID file location: %s", pid_file)
    try:
        _check_existing_instance(pid_file)
        _create_pid_file(pid_file)
        atexit.register(_remove_pid_file, pid_file)
        logger.info("Instance lock acquired (PID: %d)", os.getpid())
    except RuntimeError as e:
        logger.error(str(e))
        return 1

    job = make_refresh_job(service, build_health_checker(settings, service))
    scheduler = RefreshScheduler(job, settings.refresh_interval_seconds)
    logger.info(
        "Starting refresh loop… interval=%.1f minutes, cache ttl=%.0fs, sources=%s",
        settings.refresh_interval_minutes,
        settings.cache_ttl_seconds,
        ",".join(settings.price_sources),
    )
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        logger.info("Stopped by user (KeyboardInterrupt)")
    finally:
        _remove_pid_file(pid_file)
    return 0


if __name__ == "__main__":
    sys.exit(main())
