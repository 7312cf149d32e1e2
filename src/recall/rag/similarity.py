"""Cosine scoring and top-K ranking for retrieval."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from recall.db.models import RetrievalResult


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return dot(a, b) / (|a| * |b|), in [-1, 1].

    Mismatched lengths, empty vectors, and zero vectors score 0 rather than
    raising, so a ranking over mixed candidates is always total.
    """
    if len(a) != len(b) or not a:
        return 0.0
    dot = math.fsum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(math.fsum(x * x for x in a))
    norm_b = math.sqrt(math.fsum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    # float error can push |v|·|v| a hair past the dot product
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def rank(results: Iterable[RetrievalResult], top_k: int | None = None) -> list[RetrievalResult]:
    """Sort by similarity, best first; ties keep their input order."""
    ranked = sorted(results, key=lambda r: r.similarity, reverse=True)
    return ranked if top_k is None else ranked[: max(top_k, 0)]
