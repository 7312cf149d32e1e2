"""Embedding client: paced batching plus a vector quality gate.

Batches are embedded in fixed-size groups. Requests inside a group run
concurrently; a short sleep separates groups. This is cooperative pacing
against provider rate limits, not flow control: latency grows with input
count.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Sequence
from typing import Any, Protocol

from loguru import logger

from recall.config import EmbeddingCfg
from recall.errors import EmbeddingError, InvalidEmbeddingError


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> Any: ...


class EmbeddingClient:
    """Embed texts through an ``LLMClient`` and reject malformed vectors."""

    def __init__(self, provider: EmbeddingProvider, config: EmbeddingCfg | None = None) -> None:
        self._provider = provider
        self._config = config or EmbeddingCfg()

    @property
    def dimensions(self) -> int:
        return self._config.dimensions

    async def embed(self, text: str) -> list[float]:
        """Embed one text and return a validated vector.

        Raises:
            EmbeddingError: The provider call failed.
            InvalidEmbeddingError: The returned vector failed the quality gate.
        """
        try:
            raw = await self._provider.embed(text)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc
        return self.validate(raw)

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts* in groups of ``batch_size``, preserving order.

        One invalid or failed item fails the whole batch.
        """
        size = self._config.batch_size
        vectors: list[list[float]] = []
        for start in range(0, len(texts), size):
            if start:
                await asyncio.sleep(self._config.batch_pause)
            group = texts[start : start + size]
            vectors.extend(await self._embed_group(group))
            logger.debug("Embedded {}/{} texts", len(vectors), len(texts))
        return vectors

    async def _embed_group(self, group: Sequence[str]) -> list[list[float]]:
        """Embed one group concurrently; the first failure cancels the rest."""
        tasks = [asyncio.ensure_future(self.embed(t)) for t in group]
        try:
            return await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def validate(self, raw: Any) -> list[float]:
        """Apply the quality gate to one provider vector.

        Accepts only a non-empty numeric array of exactly ``dimensions``
        finite components, each within ``max_component`` in magnitude.

        Raises:
            InvalidEmbeddingError: Naming the first failed check.
        """
        if not isinstance(raw, (list, tuple)) or not raw:
            raise InvalidEmbeddingError("Invalid embedding quality: expected a non-empty array")
        if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in raw):
            raise InvalidEmbeddingError("Invalid embedding quality: non-numeric component")
        if len(raw) != self._config.dimensions:
            raise InvalidEmbeddingError(
                f"Invalid embedding quality: expected {self._config.dimensions} "
                f"dimensions, got {len(raw)}"
            )
        ceiling = self._config.max_component
        for v in raw:
            if not math.isfinite(v):
                raise InvalidEmbeddingError("Invalid embedding quality: non-finite component")
            if abs(v) > ceiling:
                raise InvalidEmbeddingError(
                    f"Invalid embedding quality: component {v} exceeds magnitude {ceiling}"
                )
        return [float(v) for v in raw]
