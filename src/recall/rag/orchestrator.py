"""RAG orchestrator: one query-answer cycle over a context.

Flow: embed(query) → ChunkStore.search (over-fetched) → assemble → compose →
stream. Any failure on the retrieval path degrades to an ungrounded answer
with empty retrieval metadata; completion failures propagate.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field

from loguru import logger

from recall.config import RetrievalCfg
from recall.db.chunk_store import ChunkStore
from recall.db.models import Message, RetrievalResult
from recall.errors import ValidationError
from recall.ingest.embedding_client import EmbeddingClient
from recall.rag.assembler import AssemblerConfig, assemble
from recall.rag.prompts import build_messages, compose
from recall.rag.streamer import CompletionStreamer


@dataclass
class RAGContext:
    """Retrieval metadata surfaced alongside an answer."""

    chunks: list[RetrievalResult] = field(default_factory=list)
    total_relevant_chunks: int = 0
    average_similarity: float = 0.0

    @property
    def has_relevant_context(self) -> bool:
        return bool(self.chunks)

    @property
    def sources(self) -> list[str]:
        """Distinct source names of the selected chunks, in rank order."""
        names = (r.chunk.source_name for r in self.chunks)
        return list(dict.fromkeys(n for n in names if n))


@dataclass
class StreamEvent:
    """One streamed delta. Only the first event of a stream carries *context*."""

    delta: str
    context: RAGContext | None = None


@dataclass
class RAGResponse:
    answer: str
    context: RAGContext
    has_relevant_context: bool


@dataclass
class ContextSummary:
    total_chunks: int = 0
    relevant_chunks: int = 0
    sources: list[str] = field(default_factory=list)
    average_similarity: float = 0.0


def validate_query(query: str) -> None:
    """Raise ValidationError if *query* is empty or only whitespace."""
    if not query or not query.strip():
        raise ValidationError("Query must not be empty")


class RAGOrchestrator:
    """Compose embedding, search, budgeting, prompting, and streaming."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: ChunkStore,
        streamer: CompletionStreamer,
        config: RetrievalCfg | None = None,
    ) -> None:
        self._embedder = embedder
        self._store = store
        self._streamer = streamer
        self._config = config or RetrievalCfg()
        self._assembler_config = AssemblerConfig.from_retrieval(self._config)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def retrieve(self, query: str, context_id: str) -> RAGContext:
        """Run the retrieval path. Raises on any failure."""
        vector = await self._embedder.embed(query)
        if not vector:
            raise ValidationError("Failed to generate a valid query embedding")
        top_k = self._config.max_chunks * max(self._config.over_fetch, 1)
        results = await self._store.search(context_id, vector, top_k)
        assembled = assemble(results, self._assembler_config)
        return RAGContext(
            chunks=assembled.chunks,
            total_relevant_chunks=assembled.total_relevant_chunks,
            average_similarity=assembled.average_similarity,
        )

    async def _retrieve_or_empty(self, query: str, context_id: str) -> RAGContext:
        try:
            return await self.retrieve(query, context_id)
        except Exception as exc:
            logger.error(
                "Retrieval failed for context {}; answering without saved context: {}",
                context_id,
                exc,
            )
            return RAGContext()

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    async def stream_answer(
        self,
        query: str,
        context_id: str,
        history: Sequence[Message | dict] = (),
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield the answer as deltas; the first event carries the retrieval context.

        Raises:
            ValidationError: If *query* is blank.
            CompletionError: If the completion endpoint fails.
        """
        validate_query(query)

        context = await self._retrieve_or_empty(query, context_id)
        system_prompt = compose(context.chunks, context.has_relevant_context)
        messages = build_messages(system_prompt, history, query)

        pending: RAGContext | None = context
        async for delta in self._streamer.stream(messages, cancel=cancel):
            yield StreamEvent(delta=delta, context=pending)
            pending = None
        if pending is not None:
            yield StreamEvent(delta="", context=pending)

    async def answer(
        self,
        query: str,
        context_id: str,
        history: Sequence[Message | dict] = (),
    ) -> RAGResponse:
        """Return the full answer plus its retrieval metadata."""
        parts: list[str] = []
        context = RAGContext()
        async for event in self.stream_answer(query, context_id, history):
            if event.context is not None:
                context = event.context
            parts.append(event.delta)
        return RAGResponse(
            answer="".join(parts),
            context=context,
            has_relevant_context=context.has_relevant_context,
        )

    async def context_summary(self, query: str, context_id: str) -> ContextSummary:
        """Describe what a query would retrieve. Never raises."""
        try:
            vector = await self._embedder.embed(query)
            results = await self._store.search(
                context_id, vector, self._config.max_chunks * max(self._config.over_fetch, 1)
            )
        except Exception as exc:
            logger.error("Context summary failed for context {}: {}", context_id, exc)
            return ContextSummary()

        relevant = [r for r in results if r.similarity >= self._config.similarity_threshold]
        sources = list(dict.fromkeys(r.chunk.source_name for r in relevant if r.chunk.source_name))
        average = sum(r.similarity for r in relevant) / len(relevant) if relevant else 0.0
        return ContextSummary(
            total_chunks=len(results),
            relevant_chunks=len(relevant),
            sources=sources,
            average_similarity=average,
        )
