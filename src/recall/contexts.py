"""Context and document lifecycle: creation, listing, cascading deletion.

Relational rows are authoritative: a database failure aborts the operation.
Blob removal runs around them and only logs on failure, so a broken blob
store never leaves a user unable to delete their data.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from recall.db.chunk_store import ChunkStore
from recall.db.models import Context
from recall.db.repository import Repository
from recall.errors import NotFoundError, StorageError, ValidationError


@dataclass
class DeletionReport:
    """What a delete removed, plus any blob failures that were tolerated."""

    target_id: str
    kind: str  # context | file | site
    chunks: int = 0
    files: int = 0
    sites: int = 0
    messages: int = 0
    blob_errors: list[str] = field(default_factory=list)


class ContextService:
    def __init__(self, repo: Repository, store: ChunkStore, user_id: str = "local") -> None:
        self._repo = repo
        self._store = store
        self._user_id = user_id

    async def create_context(self, name: str) -> Context:
        name = name.strip()
        if not name:
            raise ValidationError("Context name must not be empty")
        context = await self._repo.create_context(name, self._user_id)
        logger.info("Created context '{}' ({})", name, context.id)
        return context

    async def list_contexts(self) -> list[Context]:
        return await self._repo.list_contexts(self._user_id)

    async def delete_context(self, context_id: str) -> DeletionReport:
        """Delete a context and everything saved in it.

        Order: blobs (failures logged), chunks, files, sites, messages, then
        the context row.

        Raises:
            NotFoundError: Unknown context.
            StorageError: A relational delete failed.
        """
        await self._repo.require_context(context_id)
        report = DeletionReport(target_id=context_id, kind="context")
        files = await self._repo.list_files(context_id)
        sites = await self._repo.list_sites(context_id)

        paths = [f.path for f in files if f.path]
        if paths:
            try:
                await self._repo.backend.remove(paths)
            except StorageError as exc:
                logger.error("Failed to remove blobs of context {}: {}", context_id, exc)
                report.blob_errors.append(str(exc))

        for f in files:
            report.chunks += await self._store.delete_by_parent(file_id=f.id)
        for s in sites:
            report.chunks += await self._store.delete_by_parent(site_id=s.id)
        backend = self._repo.backend
        report.files = await backend.delete("files", {"context_id": context_id})
        report.sites = await backend.delete("sites", {"context_id": context_id})
        report.messages = await backend.delete("messages", {"context_id": context_id})
        await self._repo.delete_context(context_id)

        logger.info(
            "Deleted context {}: {} chunks, {} files, {} sites, {} messages",
            context_id,
            report.chunks,
            report.files,
            report.sites,
            report.messages,
        )
        return report

    async def delete_document(self, document_id: str) -> DeletionReport:
        """Delete a file or site: its chunks, then its blob, then its row.

        Each step runs even if an earlier one failed. Relational failures
        are collected and raised together at the end; blob failures are
        only logged.

        Raises:
            NotFoundError: No file or site has *document_id*.
            StorageError: One or more relational steps failed.
        """
        record = await self._repo.get_file(document_id)
        site = None if record else await self._repo.get_site(document_id)
        if record is None and site is None:
            raise NotFoundError(f"Document '{document_id}' not found")

        report = DeletionReport(target_id=document_id, kind="file" if record else "site")
        errors: list[str] = []

        try:
            if record:
                report.chunks = await self._store.delete_by_parent(file_id=document_id)
            else:
                report.chunks = await self._store.delete_by_parent(site_id=document_id)
        except StorageError as exc:
            logger.error("Failed to delete chunks of {}: {}", document_id, exc)
            errors.append(f"chunks: {exc}")

        if record and record.path:
            try:
                await self._repo.backend.remove([record.path])
            except StorageError as exc:
                logger.error("Failed to remove blob '{}': {}", record.path, exc)
                report.blob_errors.append(str(exc))

        try:
            if record:
                report.files = await self._repo.delete_file(document_id)
            else:
                report.sites = await self._repo.delete_site(document_id)
        except StorageError as exc:
            logger.error("Failed to delete {} {}: {}", report.kind, document_id, exc)
            errors.append(f"{report.kind}: {exc}")

        if errors:
            raise StorageError(f"Deleting {report.kind} {document_id} failed: " + "; ".join(errors))
        logger.info("Deleted {} {} ({} chunks)", report.kind, document_id, report.chunks)
        return report
