"""Recall ingest pipeline: chunker, embedding client, extraction, page capture."""

from recall.ingest.chunker import SentenceChunker, split_sentences
from recall.ingest.embedding_client import EmbeddingClient

__all__ = [
    "EmbeddingClient",
    "SentenceChunker",
    "split_sentences",
]
