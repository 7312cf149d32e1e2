"""Application facade: wires one LLM client and one storage backend into every component."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable, Sequence
from pathlib import Path

from recall.chat import ChatService
from recall.config import RecallConfig
from recall.contexts import ContextService, DeletionReport
from recall.db.backend import StorageBackend
from recall.db.chunk_store import ChunkStore
from recall.db.memory_backend import MemoryBackend
from recall.db.models import Context, File, Message
from recall.db.repository import Repository
from recall.db.sqlite_backend import SqliteBackend
from recall.ingest.chunker import SentenceChunker
from recall.ingest.embedding_client import EmbeddingClient
from recall.ingest.pipeline import IngestionPipeline, IngestOutcome, PageOutcome, UploadedFile
from recall.rag.llm_client import LLMClient
from recall.rag.orchestrator import ContextSummary, RAGOrchestrator, RAGResponse, StreamEvent
from recall.rag.streamer import CompletionStreamer


def build_backend(cfg: RecallConfig, base_dir: Path | None = None) -> StorageBackend:
    """Instantiate the storage variant named by ``storage.backend``.

    Relative sqlite and blob paths resolve against *base_dir* (default: CWD).
    """
    storage = cfg.storage
    if storage.backend == "memory":
        return MemoryBackend(public_url_base=storage.public_url_base or "memory://blobs")
    base = base_dir or Path.cwd()
    return SqliteBackend(
        db_path=base / storage.db_path,
        blob_dir=base / storage.blob_dir,
        public_url_base=storage.public_url_base,
    )


class Recall:
    """Everything a presentation layer needs, behind one object.

    Use ``Recall.from_config()`` and close it (or use ``async with``) when
    done; closing waits for background ingestion to settle.
    """

    def __init__(
        self,
        cfg: RecallConfig,
        llm: LLMClient,
        backend: StorageBackend,
    ) -> None:
        self.config = cfg
        self.llm = llm
        self.backend = backend
        self.repo = Repository(backend)
        self.store = ChunkStore(backend, dimensions=cfg.embedding.dimensions)
        self.embedder = EmbeddingClient(llm, cfg.embedding)
        self.chunker = SentenceChunker(cfg.chunker.chunk_size, cfg.chunker.overlap)
        self.streamer = CompletionStreamer(llm, cfg.generation)
        self.pipeline = IngestionPipeline(
            self.repo,
            self.store,
            self.chunker,
            self.embedder,
            cfg.ingest,
            user_id=cfg.storage.user_id,
        )
        self.orchestrator = RAGOrchestrator(self.embedder, self.store, self.streamer, cfg.retrieval)
        self.contexts = ContextService(self.repo, self.store, user_id=cfg.storage.user_id)
        self.chat = ChatService(self.repo, self.orchestrator, cfg.chat)

    @classmethod
    def from_config(
        cls,
        cfg: RecallConfig,
        llm: LLMClient | None = None,
        backend: StorageBackend | None = None,
    ) -> Recall:
        return cls(cfg, llm or LLMClient.from_config(cfg), backend or build_backend(cfg))

    async def __aenter__(self) -> Recall:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self.wait_for_ingestion()
        await self.backend.close()

    # ------------------------------------------------------------------
    # Contexts
    # ------------------------------------------------------------------

    async def create_context(self, name: str) -> Context:
        return await self.contexts.create_context(name)

    async def list_contexts(self) -> list[Context]:
        return await self.contexts.list_contexts()

    async def delete_context(self, context_id: str) -> DeletionReport:
        return await self.contexts.delete_context(context_id)

    async def delete_document(self, document_id: str) -> DeletionReport:
        return await self.contexts.delete_document(document_id)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest_file(
        self,
        name: str,
        data: bytes,
        context_id: str,
        content_type: str | None = None,
    ) -> File:
        return await self.pipeline.ingest_file(UploadedFile(name, data, content_type), context_id)

    async def ingest_files(
        self, uploads: Iterable[UploadedFile], context_id: str
    ) -> list[IngestOutcome]:
        return await self.pipeline.ingest_files(uploads, context_id)

    async def ingest_page(
        self, text: str, url: str, context_ids: Iterable[str], title: str = ""
    ) -> list[PageOutcome]:
        return await self.pipeline.ingest_page(text, url, context_ids, title)

    async def wait_for_ingestion(self, document_id: str | None = None) -> None:
        await self.pipeline.wait_for(document_id)

    def public_url(self, record: File) -> str | None:
        return self.backend.get_public_url(record.path) if record.path else None

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    def answer_query(
        self,
        query: str,
        context_id: str,
        history: Sequence[Message | dict] = (),
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        return self.orchestrator.stream_answer(query, context_id, history, cancel=cancel)

    async def answer(
        self, query: str, context_id: str, history: Sequence[Message | dict] = ()
    ) -> RAGResponse:
        return await self.orchestrator.answer(query, context_id, history)

    async def context_summary(self, query: str, context_id: str) -> ContextSummary:
        return await self.orchestrator.context_summary(query, context_id)

    def send_message(
        self, context_id: str, content: str, cancel: asyncio.Event | None = None
    ) -> AsyncIterator[StreamEvent]:
        return self.chat.send_message(context_id, content, cancel=cancel)
