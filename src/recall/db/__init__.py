"""Recall storage layer: schema, backends, and the embedding codec."""

from recall.db.backend import StorageBackend, blob_key
from recall.db.connection import Database
from recall.db.memory_backend import MemoryBackend
from recall.db.migrations import MIGRATIONS, run_migrations
from recall.db.schema import initialize
from recall.db.sqlite_backend import SqliteBackend
from recall.db.vectors import decode_embedding, encode_embedding

__all__ = [
    "Database",
    "MemoryBackend",
    "MIGRATIONS",
    "SqliteBackend",
    "StorageBackend",
    "blob_key",
    "decode_embedding",
    "encode_embedding",
    "initialize",
    "run_migrations",
]
