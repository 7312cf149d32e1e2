"""Ingestion pipeline: file/page intake → extract → chunk → embed → persist.

File state machine (driven only from here):

    pending → processing → completed
                         ↘ failed

Uploads are validated, extracted, stored, and recorded as ``pending`` in the
caller's await. The chunk/embed/persist work then runs as a background task
tracked per document id; its outcome is recorded on the file, never raised
into the caller. Partial chunk writes of a failed attempt are left in place.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from recall.config import IngestCfg
from recall.db.backend import blob_key
from recall.db.chunk_store import ChunkStore
from recall.db.models import EmbeddedChunk, File, ProcessingStatus, Site, TextChunk
from recall.db.repository import Repository
from recall.errors import (
    BlobExistsError,
    NotFoundError,
    RecallError,
    StorageError,
    ValidationError,
)
from recall.ingest.chunker import SentenceChunker
from recall.ingest.embedding_client import EmbeddingClient
from recall.ingest.extract import clean_page_text, extract_text, validate_file


@dataclass
class UploadedFile:
    """Raw upload as received from a caller."""

    name: str
    data: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class IngestOutcome:
    """Per-file result of a multi-file upload."""

    name: str
    file: File | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PageOutcome:
    """Per-context result of saving one page into several contexts."""

    context_id: str
    site: Site | None = None
    chunk_count: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class _Tracker:
    statuses: dict[str, ProcessingStatus] = field(default_factory=dict)
    tasks: dict[str, asyncio.Task] = field(default_factory=dict)


class IngestionPipeline:
    """Turn uploads and captured pages into stored, embedded chunks."""

    def __init__(
        self,
        repo: Repository,
        store: ChunkStore,
        chunker: SentenceChunker,
        embedder: EmbeddingClient,
        config: IngestCfg | None = None,
        user_id: str = "local",
    ) -> None:
        self._repo = repo
        self._store = store
        self._chunker = chunker
        self._embedder = embedder
        self._config = config or IngestCfg()
        self._user_id = user_id
        self._tracker = _Tracker()
        self._semaphore = (
            asyncio.Semaphore(self._config.max_concurrent)
            if self._config.max_concurrent > 0
            else None
        )

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def ingest_file(self, upload: UploadedFile, context_id: str) -> File:
        """Accept one upload and start its background processing.

        Validation, extraction, and the blob collision check all happen
        before the file record exists.

        Returns:
            The new file record, in ``pending`` state.

        Raises:
            ValidationError: Unsupported type, oversize, or no extractable text.
            NotFoundError: Unknown context.
            BlobExistsError: A file with the same name is already in the context.
            StorageError: The file record could not be created.
        """
        content_type = validate_file(
            upload.name, upload.size, upload.content_type, self._config.max_file_size_mb
        )
        text = extract_text(upload.data, content_type)
        await self._repo.require_context(context_id)

        path = blob_key(self._user_id, context_id, upload.name)
        try:
            await self._repo.backend.upload(path, upload.data)
        except BlobExistsError as exc:
            raise BlobExistsError(f'File "{upload.name}" already exists in this context') from exc

        try:
            record = await self._repo.create_file(
                context_id=context_id,
                user_id=self._user_id,
                name=upload.name,
                size=upload.size,
                type=content_type,
                path=path,
            )
        except StorageError:
            await self._remove_blob(path)
            raise

        self._tracker.statuses[record.id] = ProcessingStatus.PENDING
        self._spawn(record, text)
        logger.info("Accepted '{}' ({} bytes) into context {}", upload.name, upload.size, context_id)
        return record

    async def ingest_files(
        self, uploads: Iterable[UploadedFile], context_id: str
    ) -> list[IngestOutcome]:
        """Accept uploads one after another; each outcome is independent."""
        outcomes: list[IngestOutcome] = []
        for upload in uploads:
            try:
                record = await self.ingest_file(upload, context_id)
            except RecallError as exc:
                logger.warning("Upload of '{}' rejected: {}", upload.name, exc)
                outcomes.append(IngestOutcome(name=upload.name, error=str(exc)))
            else:
                outcomes.append(IngestOutcome(name=upload.name, file=record))
        return outcomes

    async def process_file(self, record: File, text: str) -> File:
        """Run the state machine for one file and return its final record.

        Failures are recorded as ``failed`` with the error message; they are
        not raised.
        """
        await self._set_status(record.id, ProcessingStatus.PROCESSING)
        try:
            chunks = self._chunker.chunk(text)
            for chunk in chunks:
                chunk.metadata.update(
                    file_name=record.name, file_type=record.type, file_size=record.size
                )
            embedded = await self._embed(chunks)
            await self._store.save(embedded, file_id=record.id)
            await self._repo.set_file_content(record.id, text)
        except Exception as exc:
            logger.error("Processing failed for file {} ('{}'): {}", record.id, record.name, exc)
            return await self._set_status(record.id, ProcessingStatus.FAILED, str(exc)) or record

        logger.info("Processed '{}' into {} chunks", record.name, len(embedded))
        return await self._set_status(record.id, ProcessingStatus.COMPLETED) or record

    async def reprocess_file(self, file_id: str) -> File:
        """Re-extract a stored file from its blob and run the state machine again.

        With ``replace_on_reprocess`` the file's existing chunks are deleted
        first; otherwise new chunks are added beside them.

        Raises:
            NotFoundError: Unknown file or missing blob.
            ValidationError: The file is still being processed.
        """
        record = await self._repo.get_file(file_id)
        if record is None:
            raise NotFoundError(f"File '{file_id}' not found")
        if file_id in self._tracker.tasks:
            raise ValidationError(f"File '{record.name}' is still being processed")

        if not record.path:
            raise NotFoundError(f"File '{record.name}' has no stored blob")
        data = await self._repo.backend.download(record.path)
        text = extract_text(data, record.type)
        if self._config.replace_on_reprocess:
            removed = await self._store.delete_by_parent(file_id=file_id)
            logger.debug("Removed {} old chunks of file {}", removed, file_id)
        await self._set_status(file_id, ProcessingStatus.PENDING)
        return await self.process_file(record, text)

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def ingest_page(
        self,
        text: str,
        url: str,
        context_ids: Iterable[str],
        title: str = "",
    ) -> list[PageOutcome]:
        """Save a captured page into each of *context_ids*.

        The page is chunked and embedded once. For every context the site is
        fetched or created by url, its previous chunks are replaced, and the
        outcome is reported on its own.

        Raises:
            ValidationError: No page text, or no target context.
            EmbeddingError: Embedding failed (before anything is stored).
        """
        targets = list(dict.fromkeys(context_ids))
        if not targets:
            raise ValidationError("At least one context is required")
        chunks = self._chunker.chunk(clean_page_text(text))
        for chunk in chunks:
            chunk.metadata.update(title=title or url, url=url)
        embedded = await self._embed(chunks)

        outcomes: list[PageOutcome] = []
        for context_id in targets:
            try:
                site = await self._repo.get_or_create_site(context_id, url, title)
                await self._store.delete_by_parent(site_id=site.id)
                await self._store.save(embedded, site_id=site.id)
            except RecallError as exc:
                logger.error("Saving page {} into context {} failed: {}", url, context_id, exc)
                outcomes.append(PageOutcome(context_id=context_id, error=str(exc)))
            else:
                outcomes.append(
                    PageOutcome(context_id=context_id, site=site, chunk_count=len(embedded))
                )
        return outcomes

    # ------------------------------------------------------------------
    # Task tracking
    # ------------------------------------------------------------------

    def status(self, document_id: str) -> ProcessingStatus | None:
        """Status of a document still being processed here.

        Returns None once it reaches a terminal state; the repository holds
        the final status.
        """
        return self._tracker.statuses.get(document_id)

    @property
    def in_flight(self) -> list[str]:
        return list(self._tracker.tasks)

    async def wait_for(self, document_id: str | None = None) -> None:
        """Wait for one document's background task, or for all of them."""
        if document_id is not None:
            task = self._tracker.tasks.get(document_id)
            tasks = [task] if task else []
        else:
            tasks = list(self._tracker.tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _spawn(self, record: File, text: str) -> None:
        task = asyncio.create_task(self._run(record, text), name=f"ingest-{record.id}")
        self._tracker.tasks[record.id] = task
        task.add_done_callback(lambda _t, fid=record.id: self._tracker.tasks.pop(fid, None))

    async def _run(self, record: File, text: str) -> None:
        if self._semaphore is None:
            await self.process_file(record, text)
            return
        async with self._semaphore:
            await self.process_file(record, text)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _embed(self, chunks: list[TextChunk]) -> list[EmbeddedChunk]:
        vectors = await self._embedder.embed_batch([c.content for c in chunks])
        return [
            EmbeddedChunk(content=c.content, metadata=c.metadata, embedding=v)
            for c, v in zip(chunks, vectors)
        ]

    async def _set_status(
        self, file_id: str, status: ProcessingStatus, error: str | None = None
    ) -> File | None:
        if status.is_terminal:
            self._tracker.statuses.pop(file_id, None)
        else:
            self._tracker.statuses[file_id] = status
        try:
            updated = await self._repo.set_file_status(file_id, status, error)
        except StorageError as exc:
            logger.error("Could not record status '{}' for file {}: {}", status.value, file_id, exc)
            return None
        if updated is None:
            logger.warning("File {} no longer exists; status '{}' not persisted", file_id, status.value)
        return updated

    async def _remove_blob(self, path: str) -> None:
        try:
            await self._repo.backend.remove([path])
        except StorageError as exc:
            logger.error("Blob cleanup failed for '{}': {}", path, exc)
