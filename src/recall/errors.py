"""Typed failures raised across the recall core.

Validation errors are raised before any side effect. Provider errors name
their origin (embedding vs. completion). Storage errors are raised only for
the authoritative database path; blob cleanup failures are logged instead.
"""

from __future__ import annotations


class RecallError(Exception):
    """Base class for every error raised by recall."""


class ValidationError(RecallError, ValueError):
    """Input rejected before any side effect (file type, size, empty text)."""


class ProviderError(RecallError):
    """The embedding or completion endpoint failed or returned garbage."""


class EmbeddingError(ProviderError):
    """The embedding endpoint failed."""


class InvalidEmbeddingError(EmbeddingError):
    """A returned vector failed the quality gate (shape, finiteness, magnitude)."""


class CompletionError(ProviderError):
    """The chat-completion endpoint failed."""


class StorageError(RecallError):
    """An authoritative database operation failed."""


class BlobExistsError(StorageError):
    """A blob already exists at the requested key; uploads never overwrite."""


class NotFoundError(StorageError):
    """A referenced record does not exist."""


class StreamInProgressError(RecallError):
    """A chat turn is already streaming for this context."""
