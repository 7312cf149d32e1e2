"""Repository for contexts, documents, and messages.

Single typed interface over a ``StorageBackend``. Chunks have their own
store (``recall.db.chunk_store``) because they carry vectors.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from recall.db.backend import Row, StorageBackend
from recall.db.models import Context, File, Message, ProcessingStatus, Site
from recall.errors import NotFoundError


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> str:
    """ISO-8601 UTC timestamp with microseconds, so lexical order is time order."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class Repository:
    """Data access layer for every recall record except chunks.

    The backend is owned by the caller; the repository never closes it.
    """

    def __init__(self, backend: StorageBackend) -> None:
        """Initialise with an open storage backend.

        Args:
            backend: Any ``StorageBackend`` variant.
        """
        self._backend = backend

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    # ------------------------------------------------------------------
    # Contexts
    # ------------------------------------------------------------------

    async def create_context(self, name: str, user_id: str) -> Context:
        """Insert a new context owned by *user_id* and return it."""
        now = utcnow()
        context = Context(id=new_id(), user_id=user_id, name=name, created_at=now, updated_at=now)
        await self._backend.insert("contexts", [asdict(context)])
        return context

    async def get_context(self, context_id: str) -> Context | None:
        rows = await self._backend.query("contexts", {"id": context_id})
        return _row_to_context(rows[0]) if rows else None

    async def require_context(self, context_id: str) -> Context:
        """Return the context or raise NotFoundError."""
        context = await self.get_context(context_id)
        if context is None:
            raise NotFoundError(f"Context '{context_id}' not found")
        return context

    async def list_contexts(self, user_id: str | None = None) -> list[Context]:
        """Return contexts ordered by creation time (oldest first)."""
        filters = {"user_id": user_id} if user_id else None
        rows = await self._backend.query("contexts", filters, order_by="created_at")
        return [_row_to_context(r) for r in rows]

    async def delete_context(self, context_id: str) -> int:
        return await self._backend.delete("contexts", {"id": context_id})

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def create_file(
        self,
        context_id: str,
        user_id: str,
        name: str,
        size: int,
        type: str,
        path: str | None = None,
    ) -> File:
        """Insert a file record in ``pending`` state and return it.

        Raises:
            StorageError: If *context_id* does not exist.
        """
        now = utcnow()
        record = File(
            id=new_id(),
            context_id=context_id,
            user_id=user_id,
            name=name,
            size=size,
            type=type,
            path=path,
            processing_status=ProcessingStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        await self._backend.insert("files", [_file_to_row(record)])
        return record

    async def get_file(self, file_id: str) -> File | None:
        rows = await self._backend.query("files", {"id": file_id})
        return _row_to_file(rows[0]) if rows else None

    async def list_files(self, context_id: str) -> list[File]:
        rows = await self._backend.query("files", {"context_id": context_id}, order_by="created_at")
        return [_row_to_file(r) for r in rows]

    async def set_file_status(
        self,
        file_id: str,
        status: ProcessingStatus,
        error: str | None = None,
    ) -> File | None:
        """Move a file to *status*. Returns None when the file no longer exists."""
        rows = await self._backend.update(
            "files",
            {"id": file_id},
            {"processing_status": status.value, "processing_error": error, "updated_at": utcnow()},
        )
        return _row_to_file(rows[0]) if rows else None

    async def set_file_content(self, file_id: str, content: str) -> File | None:
        rows = await self._backend.update(
            "files", {"id": file_id}, {"content": content, "updated_at": utcnow()}
        )
        return _row_to_file(rows[0]) if rows else None

    async def delete_file(self, file_id: str) -> int:
        return await self._backend.delete("files", {"id": file_id})

    # ------------------------------------------------------------------
    # Sites
    # ------------------------------------------------------------------

    async def get_or_create_site(self, context_id: str, url: str, title: str = "") -> Site:
        """Return the site saved under *url* in *context_id*, creating it if absent.

        Raises:
            StorageError: If *context_id* does not exist.
        """
        rows = await self._backend.query("sites", {"context_id": context_id, "url": url})
        if rows:
            return _row_to_site(rows[0])
        site = Site(id=new_id(), context_id=context_id, url=url, title=title, created_at=utcnow())
        await self._backend.insert("sites", [asdict(site)])
        return site

    async def get_site(self, site_id: str) -> Site | None:
        rows = await self._backend.query("sites", {"id": site_id})
        return _row_to_site(rows[0]) if rows else None

    async def list_sites(self, context_id: str) -> list[Site]:
        rows = await self._backend.query("sites", {"context_id": context_id}, order_by="created_at")
        return [_row_to_site(r) for r in rows]

    async def delete_site(self, site_id: str) -> int:
        return await self._backend.delete("sites", {"id": site_id})

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def create_message(self, context_id: str, role: str, content: str) -> Message:
        """Insert a message. *role* must be ``user`` or ``assistant``."""
        if role not in ("user", "assistant"):
            raise ValueError(f"Invalid message role '{role}'")
        message = Message(
            id=new_id(), context_id=context_id, role=role, content=content, created_at=utcnow()
        )
        await self._backend.insert("messages", [asdict(message)])
        return message

    async def update_message(self, message_id: str, content: str) -> Message | None:
        rows = await self._backend.update("messages", {"id": message_id}, {"content": content})
        return _row_to_message(rows[0]) if rows else None

    async def delete_message(self, message_id: str) -> int:
        return await self._backend.delete("messages", {"id": message_id})

    async def list_messages(
        self, context_id: str, page: int = 1, page_size: int = 50
    ) -> list[Message]:
        """Return one page of a context's messages, oldest first.

        Args:
            context_id: Owning context.
            page: 1-based page number.
            page_size: Messages per page.
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be >= 1")
        rows = await self._backend.query(
            "messages",
            {"context_id": context_id},
            order_by="created_at",
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        return [_row_to_message(r) for r in rows]

    async def latest_messages(self, context_id: str, limit: int = 10) -> list[Message]:
        """Return the *limit* most recent messages, in chronological order."""
        rows = await self._backend.query(
            "messages",
            {"context_id": context_id},
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [_row_to_message(r) for r in reversed(rows)]


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_context(row: Row) -> Context:
    return Context(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _file_to_row(record: File) -> dict[str, Any]:
    row = asdict(record)
    row["processing_status"] = record.processing_status.value
    return row


def _row_to_file(row: Row) -> File:
    return File(
        id=row["id"],
        context_id=row["context_id"],
        user_id=row["user_id"],
        name=row["name"],
        size=row["size"],
        type=row["type"],
        path=row.get("path"),
        content=row.get("content"),
        processing_status=ProcessingStatus(row["processing_status"]),
        processing_error=row.get("processing_error"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _row_to_site(row: Row) -> Site:
    return Site(
        id=row["id"],
        context_id=row["context_id"],
        url=row["url"],
        title=row.get("title") or "",
        created_at=row.get("created_at"),
    )


def _row_to_message(row: Row) -> Message:
    return Message(
        id=row["id"],
        context_id=row["context_id"],
        role=row["role"],
        content=row["content"],
        created_at=row.get("created_at"),
    )
