"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio
import hashlib
import math
import re
from unittest.mock import patch

import pytest

from recall.app import Recall
from recall.config import RecallConfig
from recall.db.connection import Database
from recall.db.memory_backend import MemoryBackend
from recall.db.schema import initialize
from recall.db.sqlite_backend import SqliteBackend

DIMS = 8


def hash_vector(text: str, dims: int = DIMS) -> list[float]:
    """Deterministic unit vector derived from *text*."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = [(digest[i % len(digest)] / 255.0) * 2 - 1 for i in range(dims)]
    norm = math.sqrt(sum(v * v for v in raw)) or 1.0
    return [v / norm for v in raw]


class FakeLLM:
    """Stand-in for LLMClient: hashed embeddings and a canned streamed reply."""

    def __init__(
        self,
        dimensions: int = DIMS,
        reply: str = "Here is what your saved notes say.",
        vectors: dict[str, list[float]] | None = None,
    ) -> None:
        self.dimensions = dimensions
        self.reply = reply
        self.vectors = vectors or {}
        self.fail_embed = False
        self.fail_complete = False
        self.embed_calls: list[str] = []
        self.completions: list[list[dict]] = []

    def validate(self) -> None:
        pass

    async def embed(self, text: str) -> list[float]:
        self.embed_calls.append(text)
        if self.fail_embed:
            raise RuntimeError("embedding endpoint unavailable")
        if text in self.vectors:
            return list(self.vectors[text])
        return hash_vector(text, self.dimensions)

    async def stream_complete(self, messages, *, temperature=0.7, max_tokens=2000):
        self.completions.append(messages)
        if self.fail_complete:
            raise RuntimeError("completion endpoint unavailable")
        for piece in re.findall(r"\S+\s*", self.reply):
            await asyncio.sleep(0)
            yield piece


def make_config(**storage) -> RecallConfig:
    cfg = RecallConfig()
    cfg.embedding.dimensions = DIMS
    cfg.embedding.batch_pause = 0.0
    cfg.storage.backend = "memory"
    for key, value in storage.items():
        setattr(cfg.storage, key, value)
    return cfg


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".recall.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def memory_backend():
    return MemoryBackend()


@pytest.fixture
def sqlite_backend(tmp_path):
    backend = SqliteBackend(tmp_path / ".recall.db", tmp_path / "blobs")
    yield backend
    asyncio.run(backend.close())


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    """Each storage variant in turn."""
    if request.param == "memory":
        yield MemoryBackend()
        return
    backend = SqliteBackend(tmp_path / ".recall.db", tmp_path / "blobs")
    yield backend
    asyncio.run(backend.close())


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def llm_factory():
    """The FakeLLM class, for tests that need custom vectors or replies."""
    return FakeLLM


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def recall_app(config, fake_llm, memory_backend):
    """Fully wired facade over the memory backend and the fake LLM."""
    return Recall(config, fake_llm, memory_backend)


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Run CLI commands inside tmp_path with a project recall.yaml and the fake LLM.

    Yields the FakeLLM every command receives.
    """
    for var in (
        "RECALL_GENERATION_MODEL",
        "RECALL_EMBEDDING_MODEL",
        "RECALL_LOG_LEVEL",
        "RECALL_DB_PATH",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("recall.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.setattr("recall.cli.session.setup_logger", lambda *a, **kw: None)
    monkeypatch.setattr("recall.cli.session.console.width", 200)
    (tmp_path / "recall.yaml").write_text(
        f"embedding:\n  dimensions: {DIMS}\n  batch_pause: 0\n", encoding="utf-8"
    )
    llm = FakeLLM()
    with patch("recall.cli.session.LLMClient") as client_cls:
        client_cls.from_config.return_value = llm
        yield llm
