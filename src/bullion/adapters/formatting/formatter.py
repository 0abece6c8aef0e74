# src/bullion/adapters/formatting/formatter.py
"""
Text Formatter - Cycle Summaries and Reports

This module handles the plain-text rendering used in log lines and on the
command line: per-instrument price lines, percentage changes, cache ages,
one-line cycle summaries and the --health report.

Files that USE this module:
- bullion.application.refresh_service (format_cycle_summary after each cycle)
- bullion.app (format_health_report for --health, snapshot_lines for --once)
- bullion.application.health (format_elapsed for cache ages)
- tests.test_formatter (unit tests)

Files that this module USES:
- bullion.domain.models (PriceSnapshot)
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from bullion.domain.models import PriceSnapshot

if TYPE_CHECKING:
    from bullion.application.refresh_service import CycleReport

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "INR": "₹"}


def _fmt_pct(curr: float, prev: float) -> str:
    """
    Format percentage change between current and previous values.

    Formula: (new - old) / old * 100

    Args:
        curr: Current value (new)
        prev: Previous/baseline value (old)

    Returns:
        Formatted string like '+2.10%', '-3.10%', '0.00%', or '—' if prev <= 0
    """
    if prev <= 0:
        return "—"  # Guard: cannot calculate % change with invalid baseline
    delta = (curr - prev) / prev * 100.0
    if delta == 0:
        return "0.00%"
    return f"{delta:+.2f}%"


def format_elapsed(seconds: Optional[float]) -> str:
    """
    Format an age as 'Xh:YYmin', 'Ymin' or 'Zs'.

    Args:
        seconds: Elapsed time in seconds (clamped to >= 0), or None

    Returns:
        Formatted string like '2h:42min', '5min', '12s' or 'never'
    """
    if seconds is None:
        return "never"
    seconds = max(int(seconds), 0)
    if seconds < 60:
        return f"{seconds}s"
    minutes = seconds // 60
    hours = minutes // 60
    mins_only = minutes % 60
    if hours > 0:
        return f"{hours}h:{mins_only:02d}min"
    return f"{mins_only}min"


def _fmt_price(value: float, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency, currency + " ")
    return f"{symbol}{value:,.2f}"


def snapshot_lines(snap: Optional[PriceSnapshot], previous: Optional[PriceSnapshot] = None) -> str:
    """
    Format a snapshot as one line per instrument.

    Derived instruments are marked with '*'. When ``previous`` is given each
    line carries the percentage change against it.

    Args:
        snap: Snapshot to format (can be None)
        previous: Optional earlier snapshot in the same currency

    Returns:
        Multi-line string, or "No price data available" if snap is None
    """
    if snap is None:
        return "No price data available"

    currency = snap.currency.value
    lines = []
    for instrument, price in snap.prices.items():
        marker = "*" if instrument in snap.derived else " "
        line = f"{instrument.value:<10}{marker} {_fmt_price(price, currency):>14}"
        if previous is not None:
            prev = previous.price(instrument)
            line += f"  {_fmt_pct(price, prev or 0)}"
        lines.append(line)

    when = datetime.fromtimestamp(snap.timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    source = "generated locally (upstream unavailable)" if snap.is_fallback else snap.source
    lines.append(f"Source: {source}, as of {when}")
    if snap.derived and not snap.is_fallback:
        lines.append("* derived from gold")
    return "\n".join(lines)


def format_cycle_summary(report: "CycleReport") -> str:
    """
    One-line summary of a refresh cycle for the log.

    Example:
        'Cycle done in 0.42s: 5/5 rows written, source=gold_api, alerts 3 evaluated / 1 triggered'
    """
    write = report.write
    total = len(write.written) + len(write.failed)
    source = "fallback" if report.used_fallback else report.snapshot.source
    parts = [
        f"Cycle done in {report.duration_seconds:.2f}s: {len(write.written)}/{total} rows written",
        f"source={source}",
    ]
    if report.alerts is not None:
        alerts = report.alerts
        part = f"alerts {alerts.evaluated} evaluated / {len(alerts.triggered)} triggered"
        if alerts.skipped:
            part += f" / {len(alerts.skipped)} skipped"
        parts.append(part)
    elif report.alert_error is not None:
        parts.append(f"alerts failed ({report.alert_error})")
    if write.failed:
        parts.append("failed: " + ", ".join(sorted(i.value for i in write.failed)))
    return ", ".join(parts)


def format_health_report(report: Dict[str, Any]) -> str:
    """
    Render HealthChecker.get_overall_health() output for the terminal.

    Args:
        report: Dictionary as returned by get_overall_health()

    Returns:
        Multi-line string with one line per component
    """
    lines: List[str] = [f"Status: {report['status'].upper()} - {report['message']}"]
    for name, check in report["checks"].items():
        mark = "OK  " if check["healthy"] else "FAIL"
        lines.append(f"[{mark}] {name}: {check['message']}")
    return "\n".join(lines)
