"""Storage capability set consumed by every recall component.

Components receive a ``StorageBackend`` instance and never inspect which
variant it is. Filters map a column to a value (equality), to ``None``
(IS NULL), or to a list (membership; an empty list matches nothing).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

Row = dict[str, Any]
Filters = dict[str, Any]


class StorageBackend(ABC):
    """Relational rows plus a blob store behind one async interface."""

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    @abstractmethod
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
        """Return matching rows as dicts."""

    @abstractmethod
    async def count(self, table: str, filters: Filters | None = None) -> int:
        """Return the number of matching rows."""

    @abstractmethod
    async def insert(self, table: str, rows: list[Row]) -> list[Row]:
        """Insert *rows* atomically and return them as stored.

        Raises:
            StorageError: On constraint violation (missing parent, duplicate id).
        """

    @abstractmethod
    async def update(self, table: str, filters: Filters, values: Row) -> list[Row]:
        """Apply *values* to matching rows and return the updated rows."""

    @abstractmethod
    async def delete(self, table: str, filters: Filters) -> int:
        """Delete matching rows (cascading to children). Returns rows deleted."""

    # ------------------------------------------------------------------
    # Blobs
    # ------------------------------------------------------------------

    @abstractmethod
    async def upload(self, path: str, data: bytes) -> str:
        """Store *data* under *path* and return the path.

        Raises:
            BlobExistsError: If *path* already holds a blob.
        """

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the blob stored under *path*.

        Raises:
            NotFoundError: If nothing is stored there.
        """

    @abstractmethod
    async def remove(self, paths: list[str]) -> None:
        """Delete the blobs at *paths*; missing blobs are ignored."""

    @abstractmethod
    def get_public_url(self, path: str) -> str:
        """Return a URL a client can use to fetch the blob at *path*."""

    async def close(self) -> None:
        """Release any held resources."""


def blob_key(user_id: str, context_id: str, filename: str) -> str:
    """Return the blob key for an uploaded file: ``{user}/contexts/{context}/{name}``."""
    return f"{user_id}/contexts/{context_id}/{filename}"
