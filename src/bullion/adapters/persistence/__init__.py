"""
Persistence Adapters - Row Storage

This package contains the row-store contract and its backends.
"""

from bullion.adapters.persistence.row_store import (
    ALERT_HISTORY_TABLE,
    ALERTS_TABLE,
    PRICES_TABLE,
    InMemoryRowStore,
    JsonFileRowStore,
    RowStore,
)

__all__ = [
    "ALERT_HISTORY_TABLE",
    "ALERTS_TABLE",
    "PRICES_TABLE",
    "InMemoryRowStore",
    "JsonFileRowStore",
    "RowStore",
]
