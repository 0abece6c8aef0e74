# src/bullion/adapters/formatting/__init__.py
"""
Formatting Adapters - Log and Report Formatting

This package contains the plain-text formatting used for cycle log lines
and the --health report.
"""

from bullion.adapters.formatting.formatter import (
    format_cycle_summary,
    format_elapsed,
    format_health_report,
    snapshot_lines,
)

__all__ = [
    "format_cycle_summary",
    "format_elapsed",
    "format_health_report",
    "snapshot_lines",
]
