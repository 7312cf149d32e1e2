"""Tests for cosine scoring and ranking."""

from __future__ import annotations

import math

import pytest

from recall.db.models import Chunk, RetrievalResult
from recall.rag.similarity import cosine_similarity, rank


def _result(name, score):
    return RetrievalResult(Chunk(content=name, embedding=None), score)


@pytest.mark.parametrize("a,b,expected", [
    ([1.0, 0.0], [1.0, 0.0], 1.0),
    ([1.0, 0.0], [0.0, 1.0], 0.0),
    ([1.0, 0.0], [-1.0, 0.0], -1.0),
    ([3.0, 4.0], [6.0, 8.0], 1.0),
    ([1.0, 1.0], [1.0, 0.0], 1 / math.sqrt(2)),
])
def test_cosine_values(a, b, expected):
    assert cosine_similarity(a, b) == pytest.approx(expected)


@pytest.mark.parametrize("a,b", [
    ([1.0, 0.0], [1.0, 0.0, 0.0]),
    ([], []),
    ([0.0, 0.0], [1.0, 0.0]),
    ([1.0, 0.0], [0.0, 0.0]),
])
def test_cosine_degenerate_is_zero(a, b):
    assert cosine_similarity(a, b) == 0.0


def test_cosine_symmetric():
    a, b = [0.3, -0.2, 0.9], [0.1, 0.5, -0.4]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_cosine_bounded():
    v = [1e-3, 7.0, 123456.0]
    assert -1.0 <= cosine_similarity(v, v) <= 1.0


def test_rank_descending_and_stable():
    ranked = rank([_result("a", 0.5), _result("b", 0.9), _result("c", 0.5), _result("d", 0.1)])
    assert [r.chunk.content for r in ranked] == ["b", "a", "c", "d"]


def test_rank_top_k():
    ranked = rank([_result(str(i), i / 10) for i in range(10)], top_k=3)
    assert [r.similarity for r in ranked] == [0.9, 0.8, 0.7]


def test_rank_top_k_zero_or_negative():
    results = [_result("a", 0.5)]
    assert rank(results, top_k=0) == []
    assert rank(results, top_k=-1) == []
