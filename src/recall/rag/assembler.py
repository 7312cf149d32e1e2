"""Context budgeter: relevance threshold, result cap, character budget.

Pipeline:
  1. Drop results below ``similarity_threshold``.
  2. Sort the survivors by similarity, highest first, and cap at ``max_chunks``.
  3. Greedily add whole chunk contents while the running total fits the budget.
  4. If a chunk would overflow and more than ``min_truncate_chars`` remain,
     add a truncated copy ending in "..." and stop.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from recall.config import RetrievalCfg
from recall.db.models import RetrievalResult
from recall.rag.similarity import rank

_ELLIPSIS = "..."


@dataclass
class AssemblerConfig:
    similarity_threshold: float = 0.7
    max_chunks: int = 5
    max_context_chars: int = 4000
    min_truncate_chars: int = 200  # remaining space needed to include a truncated chunk

    @classmethod
    def from_retrieval(cls, cfg: RetrievalCfg) -> AssemblerConfig:
        return cls(
            similarity_threshold=cfg.similarity_threshold,
            max_chunks=cfg.max_chunks,
            max_context_chars=cfg.max_context_chars,
            min_truncate_chars=cfg.min_truncate_chars,
        )


@dataclass
class AssembledContext:
    """Selected results plus the stats surfaced to callers as retrieval metadata.

    Attributes:
        chunks: Selected results, best first; the last may hold a truncated copy.
        total_relevant_chunks: Results at or above the threshold, before the cap.
        average_similarity: Mean similarity of *chunks* (0 when empty).
    """

    chunks: list[RetrievalResult] = field(default_factory=list)
    total_relevant_chunks: int = 0
    average_similarity: float = 0.0

    @property
    def has_context(self) -> bool:
        return bool(self.chunks)

    @property
    def total_chars(self) -> int:
        return sum(len(r.chunk.content) for r in self.chunks)


def assemble(results: list[RetrievalResult], config: AssemblerConfig) -> AssembledContext:
    """Select the chunks that go into the prompt.

    Args:
        results: Ranked (or unranked) retrieval results.
        config: Threshold, cap, and budget.

    Returns:
        AssembledContext whose chunk contents total at most ``max_context_chars``.
    """
    relevant = rank(r for r in results if r.similarity >= config.similarity_threshold)
    candidates = relevant[: max(config.max_chunks, 0)]

    selected: list[RetrievalResult] = []
    used = 0
    for result in candidates:
        content = result.chunk.content
        if used + len(content) <= config.max_context_chars:
            selected.append(result)
            used += len(content)
            continue
        remaining = config.max_context_chars - used
        if remaining > max(config.min_truncate_chars, len(_ELLIPSIS)):
            truncated = content[: remaining - len(_ELLIPSIS)] + _ELLIPSIS
            selected.append(replace(result, chunk=replace(result.chunk, content=truncated)))
        break

    average = sum(r.similarity for r in selected) / len(selected) if selected else 0.0
    return AssembledContext(
        chunks=selected,
        total_relevant_chunks=len(relevant),
        average_similarity=average,
    )
