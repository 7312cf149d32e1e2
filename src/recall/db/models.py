"""Domain models for the recall storage layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum


class ProcessingStatus(str, Enum):
    """File ingestion state: pending → processing → completed | failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED)


@dataclass
class Context:
    id: str
    user_id: str
    name: str
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class File:
    id: str
    context_id: str
    user_id: str
    name: str
    size: int
    type: str
    path: str | None = None
    content: str | None = None
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    processing_error: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Site:
    id: str
    context_id: str
    url: str
    title: str = ""
    created_at: str | None = None


@dataclass
class TextChunk:
    """A chunker output: text span plus its position metadata."""

    content: str
    metadata: dict = field(default_factory=dict)


@dataclass
class EmbeddedChunk(TextChunk):
    embedding: list[float] = field(default_factory=list)


@dataclass
class Chunk:
    content: str
    embedding: list[float] | None
    file_id: str | None = None
    site_id: str | None = None
    metadata: str = field(default_factory=lambda: "{}")
    id: str | None = None  # set after insert; None for unsaved chunks
    created_at: str | None = None

    @property
    def metadata_dict(self) -> dict:
        try:
            value = json.loads(self.metadata or "{}")
        except (TypeError, json.JSONDecodeError):
            return {}
        return value if isinstance(value, dict) else {}

    @property
    def source_name(self) -> str | None:
        meta = self.metadata_dict
        return meta.get("file_name") or meta.get("title") or meta.get("url")


@dataclass
class Message:
    id: str
    context_id: str
    role: str  # user | assistant
    content: str
    created_at: str | None = None


@dataclass
class RetrievalResult:
    """A chunk paired with its cosine similarity to the query, in [-1, 1]."""

    chunk: Chunk
    similarity: float
