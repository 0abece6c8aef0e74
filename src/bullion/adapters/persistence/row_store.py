# src/bullion/adapters/persistence/row_store.py
"""
Row Store - Generic Row-Based Storage Client

The engine talks to storage through a small row-oriented contract:
insert-one, select-latest-by-key (ordered by timestamp, newest first,
limit 1), select-where and update-by-id. No transactions span instruments.

Two backends are provided:
- InMemoryRowStore: thread-safe dictionaries, used by tests and ephemeral runs
- JsonFileRowStore: the whole database kept in one JSON document, written
  atomically (temp file + fsync + rename) after every mutation

Files that USE this module:
- bullion.application.price_writer (reads latest rows, inserts price rows)
- bullion.application.alert_evaluator (reads rules and prices, writes history)
- bullion.application.health (store reachability)
- bullion.app (selects the backend from settings)

Files that this module USES:
- bullion.domain.errors (PersistenceError)
- bullion.domain.models (parse_timestamp for ordering)
"""
from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from bullion.domain.errors import PersistenceError
from bullion.domain.models import parse_timestamp

log = logging.getLogger(__name__)

PRICES_TABLE = "metal_prices"
ALERTS_TABLE = "price_alerts"
ALERT_HISTORY_TABLE = "alert_history"


class RowStore(Protocol):
    """Row-based storage client contract."""

    def insert(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        ...

    def select_latest(
        self, table: str, column: str, value: Any, order_by: str = "timestamp"
    ) -> Optional[Dict[str, Any]]:
        ...

    def select_where(self, table: str, **equals: Any) -> List[Dict[str, Any]]:
        ...

    def update(self, table: str, row_id: int, values: Mapping[str, Any]) -> None:
        ...


def _order_key(row: Mapping[str, Any], order_by: str):
    # Ties on the order column resolve to the most recently inserted row
    return (parse_timestamp(row[order_by]), row.get("id", 0))


class InMemoryRowStore:
    """Thread-safe in-memory row store."""

    def __init__(self, tables: Optional[Mapping[str, List[Dict[str, Any]]]] = None):
        self._lock = threading.RLock()
        self._tables: Dict[str, List[Dict[str, Any]]] = {}
        self._next_id: Dict[str, int] = {}
        # (table, column, value, order_by) -> newest matching row
        self._latest: Dict[Tuple[str, str, Any, str], Dict[str, Any]] = {}
        for table, rows in (tables or {}).items():
            for row in rows:
                self.insert(table, row)

    def _rows(self, table: str) -> List[Dict[str, Any]]:
        return self._tables.setdefault(table, [])

    def _commit(self) -> None:
        """Hook for durable backends; called with the lock held after a mutation."""

    def _forget_latest(self, table: str) -> None:
        for key in [k for k in self._latest if k[0] == table]:
            del self._latest[key]

    def _note_latest(self, table: str, row: Dict[str, Any]) -> None:
        for key, current in list(self._latest.items()):
            _, column, value, order_by = key
            if key[0] != table or row.get(column) != value or row.get(order_by) is None:
                continue
            try:
                if _order_key(row, order_by) >= _order_key(current, order_by):
                    self._latest[key] = row
            except (TypeError, ValueError):
                del self._latest[key]

    def insert(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Append a row, assigning an id when it has none.

        Raises:
            PersistenceError: If the backend cannot persist the row; the
                row is then not kept in memory either
        """
        with self._lock:
            stored = dict(row)
            if stored.get("id") is None:
                stored["id"] = self._next_id.get(table, 1)
            previous_next_id = self._next_id.get(table)
            self._next_id[table] = max(self._next_id.get(table, 1), int(stored["id"]) + 1)
            rows = self._rows(table)
            rows.append(stored)
            try:
                self._commit()
            except Exception:
                rows.pop()
                if previous_next_id is None:
                    self._next_id.pop(table, None)
                else:
                    self._next_id[table] = previous_next_id
                raise
            self._note_latest(table, stored)
            return dict(stored)

    def select_latest(
        self, table: str, column: str, value: Any, order_by: str = "timestamp"
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            key = (table, column, value, order_by)
            latest = self._latest.get(key)
            if latest is None:
                matches = [r for r in self._rows(table) if r.get(column) == value and r.get(order_by) is not None]
                if not matches:
                    return None
                try:
                    latest = max(matches, key=lambda r: _order_key(r, order_by))
                except (TypeError, ValueError) as e:
                    raise PersistenceError(f"Cannot order {table} by {order_by}: {e}") from e
                self._latest[key] = latest
            return dict(latest)

    def select_where(self, table: str, **equals: Any) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                dict(r) for r in self._rows(table)
                if all(r.get(column) == value for column, value in equals.items())
            ]

    def update(self, table: str, row_id: int, values: Mapping[str, Any]) -> None:
        """
        Change columns of one row.

        Raises:
            PersistenceError: If the row does not exist, or the backend cannot
                persist the change (the row keeps its previous values)
        """
        with self._lock:
            for row in self._rows(table):
                if row.get("id") == row_id:
                    before = dict(row)
                    row.update(values)
                    self._forget_latest(table)
                    try:
                        self._commit()
                    except Exception:
                        row.clear()
                        row.update(before)
                        raise
                    return
            raise PersistenceError(f"{table}: no row with id {row_id}")

    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        """Deep copy of every table (for inspection and persistence)."""
        with self._lock:
            return deepcopy(self._tables)


class JsonFileRowStore(InMemoryRowStore):
    """
    Row store persisted as a single JSON document.

    The document is rewritten atomically after every mutation so readers of
    the file never observe a half-written database. A corrupt document is
    backed up to ``<name>.corrupt`` and the store starts empty.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__()
        self._loading = True
        try:
            for table, rows in self._load().items():
                for row in rows:
                    self.insert(table, row)
        finally:
            self._loading = False

    def _load(self) -> Dict[str, List[Dict[str, Any]]]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            backup_path = self.path.with_suffix(self.path.suffix + ".corrupt")
            shutil.copy2(self.path, backup_path)
            log.warning("Store file corrupted (JSON decode error), backed up to %s: %s", backup_path, e)
            return {}
        except OSError as e:
            raise PersistenceError(f"Failed to read store file {self.path}: {e}") from e
        if not isinstance(data, dict):
            log.warning("Store file %s has unexpected layout, starting empty", self.path)
            return {}
        return {table: rows for table, rows in data.items() if isinstance(rows, list)}

    def _commit(self) -> None:
        if getattr(self, "_loading", False):
            return
        temp_fd, temp_path = tempfile.mkstemp(suffix=".json.tmp", dir=str(self.path.parent), text=True)
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(self._tables, f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, str(self.path))
        except Exception as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise PersistenceError(f"Failed to save store file: {e}") from e
