"""SQLite + local-directory implementation of the storage interface.

One connection is shared by all tasks. Every blocking call runs in a worker
thread (``asyncio.to_thread``) behind a lock, so the event loop never waits
on disk I/O and statements never interleave on the connection.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path, PurePosixPath
from typing import Any, Callable

from recall.db.backend import Filters, Row, StorageBackend
from recall.db.connection import Database
from recall.db.schema import TABLES, check_columns, initialize
from recall.errors import BlobExistsError, NotFoundError, StorageError


class SqliteBackend(StorageBackend):
    """Rows in a SQLite file, blobs as files under *blob_dir*."""

    def __init__(
        self,
        db_path: Path | str,
        blob_dir: Path | str,
        public_url_base: str = "",
    ) -> None:
        self._conn = Database(db_path).connect(check_same_thread=False)
        initialize(self._conn)
        self._lock = threading.Lock()
        self._blob_root = Path(blob_dir)
        self._public_url_base = public_url_base.rstrip("/")

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
        where, params = _where(filters)
        sql = f"SELECT {', '.join(TABLES[table])} FROM {table}{where}"
        direction = "DESC" if descending else "ASC"
        sql += f" ORDER BY {order_by} {direction}, rowid {direction}" if order_by else f" ORDER BY rowid {direction}"
        if limit is not None or offset:
            sql += " LIMIT ? OFFSET ?"
            params += [limit if limit is not None else -1, offset]

        def _select() -> list[Row]:
            return [dict(r) for r in self._conn.execute(sql, params).fetchall()]

        return await self._run(_select)

    async def count(self, table: str, filters: Filters | None = None) -> int:
        filters = filters or {}
        check_columns(table, list(filters))
        where, params = _where(filters)

        def _count() -> int:
            return self._conn.execute(f"SELECT COUNT(*) FROM {table}{where}", params).fetchone()[0]

        return await self._run(_count)

    async def insert(self, table: str, rows: list[Row]) -> list[Row]:
        if not rows:
            return []
        columns = list(rows[0])
        check_columns(table, columns)
        placeholders = ", ".join("?" * len(columns))
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
        values = [tuple(row.get(c) for c in columns) for row in rows]

        def _insert() -> list[Row]:
            with self._conn:
                self._conn.executemany(sql, values)
            return [dict(row) for row in rows]

        return await self._run(_insert)

    async def update(self, table: str, filters: Filters, values: Row) -> list[Row]:
        check_columns(table, list(filters) + list(values))
        where, params = _where(filters)
        assignments = ", ".join(f"{c} = ?" for c in values)
        cols = ", ".join(TABLES[table])

        def _update() -> list[Row]:
            ids = [r[0] for r in self._conn.execute(f"SELECT id FROM {table}{where}", params)]
            if not ids:
                return []
            id_where, id_params = _where({"id": ids})
            with self._conn:
                self._conn.execute(
                    f"UPDATE {table} SET {assignments}{id_where}",
                    [*values.values(), *id_params],
                )
            rows = self._conn.execute(f"SELECT {cols} FROM {table}{id_where}", id_params)
            return [dict(r) for r in rows.fetchall()]

        return await self._run(_update)

    async def delete(self, table: str, filters: Filters) -> int:
        check_columns(table, list(filters))
        where, params = _where(filters)

        def _delete() -> int:
            with self._conn:
                return self._conn.execute(f"DELETE FROM {table}{where}", params).rowcount

        return await self._run(_delete)

    # ------------------------------------------------------------------
    # Blobs
    # ------------------------------------------------------------------

    async def upload(self, path: str, data: bytes) -> str:
        target = self._blob_path(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            try:
                with target.open("xb") as fh:
                    fh.write(data)
            except FileExistsError as exc:
                raise BlobExistsError(f"A file already exists at '{path}'") from exc
            except OSError as exc:
                raise StorageError(f"Upload failed for '{path}': {exc}") from exc

        await asyncio.to_thread(_write)
        return path

    async def download(self, path: str) -> bytes:
        target = self._blob_path(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise NotFoundError(f"No blob stored at '{path}'") from exc
        except OSError as exc:
            raise StorageError(f"Download failed for '{path}': {exc}") from exc

    async def remove(self, paths: list[str]) -> None:
        targets = [self._blob_path(p) for p in paths]

        def _unlink() -> None:
            for target in targets:
                try:
                    target.unlink(missing_ok=True)
                except OSError as exc:
                    raise StorageError(f"Failed to remove blob '{target}': {exc}") from exc

        await asyncio.to_thread(_unlink)

    def get_public_url(self, path: str) -> str:
        if self._public_url_base:
            return f"{self._public_url_base}/{path}"
        return self._blob_path(path).resolve().as_uri()

    async def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run(self, fn: Callable[[], Any]) -> Any:
        return await asyncio.to_thread(self._locked, fn)

    def _locked(self, fn: Callable[[], Any]) -> Any:
        with self._lock:
            try:
                return fn()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    def _blob_path(self, path: str) -> Path:
        parts = PurePosixPath(path).parts
        if not parts or path.startswith("/") or ".." in parts:
            raise StorageError(f"Invalid blob path '{path}'")
        return self._blob_root.joinpath(*parts)


def _where(filters: Filters) -> tuple[str, list[Any]]:
    """Build a WHERE clause from *filters*. Column names must be pre-validated."""
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in filters.items():
        if value is None:
            clauses.append(f"{column} IS NULL")
        elif isinstance(value, (list, tuple, set, frozenset)):
            values = list(value)
            if not values:
                clauses.append("0")
                continue
            clauses.append(f"{column} IN ({', '.join('?' * len(values))})")
            params.extend(values)
        else:
            clauses.append(f"{column} = ?")
            params.append(value)
    return (" WHERE " + " AND ".join(clauses)) if clauses else "", params
