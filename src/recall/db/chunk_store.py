"""Chunk persistence and per-context vector search.

A context's knowledge is the union of its files' chunks and its sites'
chunks. The two halves are fetched independently so one failing query does
not blind the other.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from loguru import logger

from recall.db.backend import Row, StorageBackend
from recall.db.models import Chunk, EmbeddedChunk, RetrievalResult
from recall.db.repository import new_id, utcnow
from recall.db.vectors import decode_embedding, encode_embedding
from recall.errors import StorageError, ValidationError
from recall.rag.similarity import cosine_similarity, rank


class ChunkStore:
    """Bulk insert, per-parent delete, and cosine search over stored chunks."""

    def __init__(self, backend: StorageBackend, dimensions: int | None = None) -> None:
        """
        Args:
            backend: Storage variant holding the ``chunks`` table.
            dimensions: Expected vector length, used by ``cleanup_invalid``.
                Search compares against the query vector's own length.
        """
        self._backend = backend
        self._dimensions = dimensions

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save(
        self,
        chunks: Sequence[EmbeddedChunk],
        file_id: str | None = None,
        site_id: str | None = None,
    ) -> list[Chunk]:
        """Persist *chunks* under exactly one parent document.

        Args:
            chunks: Embedded chunker output.
            file_id: Parent file, or None.
            site_id: Parent site, or None.

        Returns:
            The stored chunks with ids and timestamps set.

        Raises:
            ValidationError: If not exactly one parent id is given.
            StorageError: If the parent no longer exists or the insert fails.
        """
        if (file_id is None) == (site_id is None):
            raise ValidationError("Exactly one of file_id or site_id must be set")
        if not chunks:
            return []

        now = utcnow()
        stored = [
            Chunk(
                id=new_id(),
                content=c.content,
                embedding=list(c.embedding),
                file_id=file_id,
                site_id=site_id,
                metadata=json.dumps(c.metadata),
                created_at=now,
            )
            for c in chunks
        ]
        await self._backend.insert("chunks", [_chunk_to_row(c) for c in stored])
        logger.debug(
            "Saved {} chunks for {}", len(stored), f"file {file_id}" if file_id else f"site {site_id}"
        )
        return stored

    async def delete_by_parent(
        self, file_id: str | None = None, site_id: str | None = None
    ) -> int:
        """Delete every chunk of one parent document. Zero matches is a success.

        Raises:
            ValidationError: If not exactly one parent id is given.
        """
        if (file_id is None) == (site_id is None):
            raise ValidationError("Exactly one of file_id or site_id must be set")
        filters = {"file_id": file_id} if file_id else {"site_id": site_id}
        return await self._backend.delete("chunks", filters)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_for_context(self, context_id: str) -> list[Chunk]:
        """Return all chunks of a context; raises only if both halves fail."""
        file_rows, site_rows, errors = await self._fetch_context_rows(context_id)
        if len(errors) == 2:
            raise StorageError(
                f"Chunk lookup failed for context {context_id}: " + "; ".join(errors)
            )
        return [_row_to_chunk(r) for r in file_rows + site_rows]

    async def count_for_context(self, context_id: str) -> int:
        return len(await self.list_for_context(context_id))

    async def search(
        self, context_id: str, query_vector: Sequence[float], top_k: int
    ) -> list[RetrievalResult]:
        """Score every chunk in *context_id* against *query_vector*.

        Chunks whose stored vector cannot be decoded, or whose length differs
        from the query's, are skipped with a warning.

        Returns:
            Up to *top_k* results, highest similarity first.

        Raises:
            StorageError: Only when both the file-chunk and site-chunk
                lookups fail.
        """
        chunks = await self.list_for_context(context_id)
        dims = len(query_vector)
        scored: list[RetrievalResult] = []
        skipped = 0
        for chunk in chunks:
            if chunk.embedding is None or len(chunk.embedding) != dims:
                skipped += 1
                continue
            scored.append(RetrievalResult(chunk, cosine_similarity(query_vector, chunk.embedding)))
        if skipped:
            logger.warning(
                "Skipped {} chunk(s) in context {} with unusable or mismatched vectors (query dims={})",
                skipped,
                context_id,
                dims,
            )
        return rank(scored, top_k)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def cleanup_invalid(self, context_id: str) -> int:
        """Delete chunks whose stored vector is unusable. Returns the count removed.

        A vector is unusable if it does not decode, or (when the store was
        built with *dimensions*) has a different length.
        """
        chunks = await self.list_for_context(context_id)
        bad = [
            c.id
            for c in chunks
            if c.embedding is None
            or (self._dimensions is not None and len(c.embedding) != self._dimensions)
        ]
        if not bad:
            return 0
        removed = await self._backend.delete("chunks", {"id": bad})
        logger.info("Removed {} invalid chunk(s) from context {}", removed, context_id)
        return removed

    async def _fetch_context_rows(
        self, context_id: str
    ) -> tuple[list[Row], list[Row], list[str]]:
        errors: list[str] = []
        file_rows: list[Row] = []
        site_rows: list[Row] = []

        try:
            files = await self._backend.query("files", {"context_id": context_id})
            file_rows = await self._backend.query(
                "chunks", {"file_id": [f["id"] for f in files]}
            )
        except StorageError as exc:
            logger.error("File-chunk lookup failed for context {}: {}", context_id, exc)
            errors.append(f"file chunks: {exc}")

        try:
            sites = await self._backend.query("sites", {"context_id": context_id})
            site_rows = await self._backend.query(
                "chunks", {"site_id": [s["id"] for s in sites]}
            )
        except StorageError as exc:
            logger.error("Site-chunk lookup failed for context {}: {}", context_id, exc)
            errors.append(f"site chunks: {exc}")

        return file_rows, site_rows, errors


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _chunk_to_row(chunk: Chunk) -> Row:
    return {
        "id": chunk.id,
        "content": chunk.content,
        "embedding": encode_embedding(chunk.embedding) if chunk.embedding else None,
        "file_id": chunk.file_id,
        "site_id": chunk.site_id,
        "metadata": chunk.metadata,
        "created_at": chunk.created_at,
    }


def _row_to_chunk(row: Row) -> Chunk:
    return Chunk(
        id=row["id"],
        content=row["content"],
        embedding=decode_embedding(row.get("embedding")),
        file_id=row.get("file_id"),
        site_id=row.get("site_id"),
        metadata=row.get("metadata") or "{}",
        created_at=row.get("created_at"),
    )
