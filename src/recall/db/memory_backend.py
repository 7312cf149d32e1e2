"""In-process implementation of the storage interface.

Enforces the same foreign keys, cascades, and single-parent chunk rule as
the SQLite schema, so components behave identically against either variant.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any

from recall.db.backend import Filters, Row, StorageBackend
from recall.db.schema import FOREIGN_KEYS, TABLES, check_columns
from recall.errors import BlobExistsError, NotFoundError, StorageError


class MemoryBackend(StorageBackend):
    """Dict-backed tables and blobs. State lives as long as the instance."""

    def __init__(self, public_url_base: str = "memory://blobs") -> None:
        self._tables: dict[str, list[Row]] = {name: [] for name in TABLES}
        self._blobs: dict[str, bytes] = {}
        self._public_url_base = public_url_base.rstrip("/")
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    async def query(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Row]:
        filters = filters or {}
        check_columns(table, list(filters) + ([order_by] if order_by else []))
        rows = [r for r in self._tables[table] if _matches(r, filters)]
        if order_by:
            rows = sorted(rows, key=lambda r: (r.get(order_by) is None, r.get(order_by)))
        if descending:
            rows.reverse()
        end = offset + limit if limit is not None else None
        return [copy.deepcopy(r) for r in rows[offset:end]]

    async def count(self, table: str, filters: Filters | None = None) -> int:
        filters = filters or {}
        check_columns(table, list(filters))
        return sum(1 for r in self._tables[table] if _matches(r, filters))

    async def insert(self, table: str, rows: list[Row]) -> list[Row]:
        if not rows:
            return []
        async with self._lock:
            prepared = []
            existing_ids = {r["id"] for r in self._tables[table]}
            for row in rows:
                check_columns(table, list(row))
                full = {column: row.get(column) for column in TABLES[table]}
                if full["id"] in existing_ids:
                    raise StorageError(f"UNIQUE constraint failed: {table}.id ({full['id']})")
                self._check_foreign_keys(table, full)
                existing_ids.add(full["id"])
                prepared.append(full)
            self._tables[table].extend(prepared)
        return [copy.deepcopy(r) for r in prepared]

    async def update(self, table: str, filters: Filters, values: Row) -> list[Row]:
        check_columns(table, list(filters) + list(values))
        async with self._lock:
            updated = []
            for row in self._tables[table]:
                if _matches(row, filters):
                    candidate = {**row, **values}
                    self._check_foreign_keys(table, candidate)
                    row.update(values)
                    updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table: str, filters: Filters) -> int:
        check_columns(table, list(filters))
        async with self._lock:
            return self._delete_cascade(table, filters)

    # ------------------------------------------------------------------
    # Blobs
    # ------------------------------------------------------------------

    async def upload(self, path: str, data: bytes) -> str:
        async with self._lock:
            if path in self._blobs:
                raise BlobExistsError(f"A file already exists at '{path}'")
            self._blobs[path] = bytes(data)
        return path

    async def download(self, path: str) -> bytes:
        try:
            return self._blobs[path]
        except KeyError as exc:
            raise NotFoundError(f"No blob stored at '{path}'") from exc

    async def remove(self, paths: list[str]) -> None:
        async with self._lock:
            for path in paths:
                self._blobs.pop(path, None)

    def get_public_url(self, path: str) -> str:
        return f"{self._public_url_base}/{path}"

    def has_blob(self, path: str) -> bool:
        return path in self._blobs

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def _check_foreign_keys(self, table: str, row: Row) -> None:
        for column, parent in FOREIGN_KEYS.get(table, {}).items():
            value = row.get(column)
            if value is None:
                continue
            if not any(p["id"] == value for p in self._tables[parent]):
                raise StorageError(
                    f"FOREIGN KEY constraint failed: {table}.{column} -> {parent} ({value})"
                )
        if table == "chunks" and (row.get("file_id") is None) == (row.get("site_id") is None):
            raise StorageError("CHECK constraint failed: chunk needs exactly one parent")

    def _delete_cascade(self, table: str, filters: Filters) -> int:
        doomed = [r for r in self._tables[table] if _matches(r, filters)]
        if not doomed:
            return 0
        ids = [r["id"] for r in doomed]
        for child, refs in FOREIGN_KEYS.items():
            for column, parent in refs.items():
                if parent == table:
                    self._delete_cascade(child, {column: ids})
        doomed_ids = set(ids)
        self._tables[table] = [r for r in self._tables[table] if r["id"] not in doomed_ids]
        return len(doomed)


def _matches(row: Row, filters: Filters) -> bool:
    for column, expected in filters.items():
        actual: Any = row.get(column)
        if expected is None:
            if actual is not None:
                return False
        elif isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True
