"""File-backed table store used for actions, memory, sessions and usage.

Each table is a JSONL file under the data directory. Writes rewrite the
whole file through a temp file so a crash never leaves a half-written table.
All operations hold one store-wide lock, which makes ``update`` with an
``expect`` predicate an atomic compare-and-set.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from assistant_relay.logger import log


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class JsonlStore:
    """Minimal relational-ish store: insert, get, conditional update, select."""

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------
    def _path(self, table: str) -> Path:
        return self.root / f"{table}.jsonl"

    def _read_all(self, table: str) -> List[Dict[str, Any]]:
        path = self._path(table)
        if not path.exists():
            return []
        out: List[Dict[str, Any]] = []
        with path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                out.append(json.loads(line))
        return out

    def _write_all(self, table: str, rows: List[Dict[str, Any]]) -> None:
        path = self._path(table)
        tmp = path.with_suffix(".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            for row in rows:
                f.write(json.dumps(row, ensure_ascii=False) + "\n")
        tmp.replace(path)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row, assigning ``id`` and ``created_at``. Returns the stored row."""
        async with self._lock:
            record = {"id": str(uuid.uuid4())[:8], "created_at": _now_iso(), **row}
            rows = self._read_all(table)
            rows.append(record)
            self._write_all(table, rows)
            return dict(record)

    async def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            for row in self._read_all(table):
                if row.get("id") == row_id:
                    return dict(row)
        return None

    async def update(
        self,
        table: str,
        row_id: str,
        changes: Dict[str, Any],
        expect: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Apply ``changes`` to one row.

        When ``expect`` is given the update only happens if every expected
        field still holds the expected value. Returns the updated row, or
        None if the row is missing or the predicate did not hold.
        """
        async with self._lock:
            rows = self._read_all(table)
            for row in rows:
                if row.get("id") != row_id:
                    continue
                if expect and any(row.get(k) != v for k, v in expect.items()):
                    return None
                row.update(changes)
                self._write_all(table, rows)
                return dict(row)
        return None

    async def select(
        self,
        table: str,
        eq: Optional[Dict[str, Any]] = None,
        ilike: Optional[Dict[str, str]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Equality / case-insensitive substring filter with optional ordering."""
        async with self._lock:
            rows = self._read_all(table)

        if eq:
            rows = [r for r in rows if all(r.get(k) == v for k, v in eq.items())]
        if ilike:
            rows = [
                r for r in rows
                if all(str(needle).lower() in str(r.get(k, "")).lower() for k, needle in ilike.items())
            ]
        if order_by:
            if descending:
                # Newest insert wins ties
                rows.reverse()
            rows = sorted(rows, key=lambda r: (r.get(order_by) is None, r.get(order_by) or ""), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return [dict(r) for r in rows]

    async def upsert(self, table: str, row: Dict[str, Any], key: str) -> Dict[str, Any]:
        """Insert or replace the row whose ``key`` column matches."""
        async with self._lock:
            rows = self._read_all(table)
            for existing in rows:
                if existing.get(key) == row.get(key):
                    existing.update(row)
                    self._write_all(table, rows)
                    return dict(existing)
            record = {"id": str(uuid.uuid4())[:8], "created_at": _now_iso(), **row}
            rows.append(record)
            self._write_all(table, rows)
            return dict(record)


def open_store(config: Dict[str, Any]) -> Optional[JsonlStore]:
    """Return a store for the configured data dir, or None when persistence is off."""
    data_dir = config.get("data_dir")
    if not data_dir:
        log("storage_disabled", "No data directory configured, running without persistence", level="warn")
        return None
    try:
        return JsonlStore(data_dir)
    except OSError as e:
        log("storage_disabled", f"Cannot open data directory {data_dir}: {e}", level="warn")
        return None
