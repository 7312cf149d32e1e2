"""Completion streamer: incremental text from the chat-completion endpoint."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Protocol

from loguru import logger

from recall.config import GenerationCfg
from recall.errors import CompletionError


class CompletionProvider(Protocol):
    def stream_complete(
        self, messages: list[dict], *, temperature: float, max_tokens: int
    ) -> AsyncIterator[str]: ...


class CompletionStreamer:
    """Drive a provider in streaming mode and yield text deltas.

    Each call to ``stream()`` issues a fresh request; the returned iterator
    is single-pass. Joining every yielded delta gives the full answer.
    """

    def __init__(self, provider: CompletionProvider, config: GenerationCfg | None = None) -> None:
        self._provider = provider
        self._config = config or GenerationCfg()

    async def stream(
        self,
        messages: list[dict],
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        """Yield text deltas for *messages*.

        Args:
            messages: ``[{role, content}, ...]`` conversation.
            cancel: When set, the provider stream is closed and iteration ends.

        Raises:
            CompletionError: On any provider failure, before or mid-stream.
        """
        source = self._provider.stream_complete(
            messages,
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
        )
        try:
            async for delta in source:
                if cancel is not None and cancel.is_set():
                    logger.info("Completion stream cancelled by caller")
                    break
                yield delta
        except CompletionError:
            raise
        except Exception as exc:
            raise CompletionError(f"Completion request failed: {exc}") from exc
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()

    async def complete(self, messages: list[dict]) -> str:
        """Return the whole answer for *messages* as one string."""
        return "".join([delta async for delta in self.stream(messages)])
