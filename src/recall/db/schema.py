"""Logical table layout shared by every storage backend."""

from __future__ import annotations

import sqlite3

TABLES: dict[str, tuple[str, ...]] = {
    "contexts": ("id", "user_id", "name", "created_at", "updated_at"),
    "files": (
        "id",
        "context_id",
        "user_id",
        "name",
        "size",
        "type",
        "path",
        "content",
        "processing_status",
        "processing_error",
        "created_at",
        "updated_at",
    ),
    "sites": ("id", "context_id", "url", "title", "created_at"),
    "chunks": ("id", "content", "embedding", "file_id", "site_id", "metadata", "created_at"),
    "messages": ("id", "context_id", "role", "content", "created_at"),
}

# child table → {column: parent table}; every reference cascades on delete.
FOREIGN_KEYS: dict[str, dict[str, str]] = {
    "files": {"context_id": "contexts"},
    "sites": {"context_id": "contexts"},
    "chunks": {"file_id": "files", "site_id": "sites"},
    "messages": {"context_id": "contexts"},
}


def check_columns(table: str, columns: list[str] | tuple[str, ...]) -> None:
    """Raise ValueError if *table* or any of *columns* is not part of the schema."""
    known = TABLES.get(table)
    if known is None:
        raise ValueError(f"Unknown table '{table}'")
    unknown = [c for c in columns if c not in known]
    if unknown:
        raise ValueError(f"Unknown column(s) for '{table}': {', '.join(unknown)}")


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    from recall.db.migrations import run_migrations

    run_migrations(conn)
