"""Persisted chat turns on top of the RAG orchestrator."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from loguru import logger

from recall.config import ChatCfg
from recall.db.models import Message
from recall.db.repository import Repository
from recall.errors import StorageError, StreamInProgressError
from recall.rag.orchestrator import RAGOrchestrator, StreamEvent, validate_query

# Persist the growing assistant message after roughly this many new characters.
_FLUSH_CHARS = 200


class ChatService:
    """Run one streamed question/answer turn per context at a time."""

    def __init__(
        self,
        repo: Repository,
        orchestrator: RAGOrchestrator,
        config: ChatCfg | None = None,
    ) -> None:
        self._repo = repo
        self._orchestrator = orchestrator
        self._config = config or ChatCfg()
        self._streaming: set[str] = set()

    def is_streaming(self, context_id: str) -> bool:
        return context_id in self._streaming

    async def history(self, context_id: str, page: int = 1, page_size: int = 50) -> list[Message]:
        return await self._repo.list_messages(context_id, page=page, page_size=page_size)

    async def send_message(
        self,
        context_id: str,
        content: str,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Persist a user message and stream the assistant's reply.

        The assistant message is created empty, updated as text arrives,
        and holds the full answer once the stream ends. If generation fails
        it is deleted and the error re-raised.

        Raises:
            ValidationError: *content* is blank; nothing is persisted.
            StreamInProgressError: Another turn is streaming in this context
                (raised on first iteration).
            CompletionError: The completion endpoint failed.
        """
        validate_query(content)
        if context_id in self._streaming:
            raise StreamInProgressError(f"A reply is already streaming in context {context_id}")
        self._streaming.add(context_id)
        try:
            await self._repo.require_context(context_id)
            history = await self._repo.latest_messages(context_id, self._config.history_limit)
            await self._repo.create_message(context_id, "user", content)
            assistant = await self._repo.create_message(context_id, "assistant", "")

            text = ""
            flushed = 0
            try:
                async for event in self._orchestrator.stream_answer(
                    content, context_id, history, cancel=cancel
                ):
                    text += event.delta
                    if len(text) - flushed >= _FLUSH_CHARS:
                        await self._repo.update_message(assistant.id, text)
                        flushed = len(text)
                    yield event
                await self._repo.update_message(assistant.id, text)
            except Exception:
                await self._discard(assistant.id)
                raise
        finally:
            self._streaming.discard(context_id)

    async def _discard(self, message_id: str) -> None:
        try:
            await self._repo.delete_message(message_id)
        except StorageError as exc:
            logger.warning("Could not delete incomplete assistant message {}: {}", message_id, exc)
