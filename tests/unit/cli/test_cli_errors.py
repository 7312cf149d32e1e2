"""Tests for recall.cli.errors message helpers."""

from __future__ import annotations

import pytest

from recall.cli.errors import (
    describe_error,
    err_config,
    err_context_not_found,
    err_file_unreadable,
    err_no_api_key,
    err_no_input,
)
from recall.errors import (
    BlobExistsError,
    CompletionError,
    EmbeddingError,
    InvalidEmbeddingError,
    NotFoundError,
    StorageError,
    StreamInProgressError,
    ValidationError,
)
from recall.ingest.web import SsrfError


# ---------------------------------------------------------------------------
# Fixed messages
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "provider, env_var",
    [
        ("openai", "OPENAI_API_KEY"),
        ("anthropic", "ANTHROPIC_API_KEY"),
        ("groq", "GROQ_API_KEY"),
    ],
)
def test_err_no_api_key(provider: str, env_var: str) -> None:
    msg = err_no_api_key(provider)
    assert provider in msg
    assert f"export {env_var}=" in msg


def test_err_context_not_found_suggests_list() -> None:
    msg = err_context_not_found("Garden")
    assert "'Garden'" in msg
    assert "recall context list" in msg


def test_other_messages_are_actionable() -> None:
    assert "--file" in err_no_input()
    assert "bad yaml" in err_config("bad yaml")
    assert "notes.txt" in err_file_unreadable("notes.txt", "No such file")


# ---------------------------------------------------------------------------
# describe_error
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "exc, fragment",
    [
        (SsrfError("private address"), "publicly reachable"),
        (BlobExistsError('File "a.txt" already exists'), "recall remove"),
        (NotFoundError("Context 'x' not found"), "recall status"),
        (InvalidEmbeddingError("expected 8 dimensions"), "embedding.dimensions"),
        (EmbeddingError("timeout"), "Embedding failed"),
        (CompletionError("timeout"), "Completion failed"),
        (StreamInProgressError("busy"), "Wait for the current reply"),
        (StorageError("disk full"), "storage.db_path"),
        (RuntimeError("boom"), "Unexpected error"),
    ],
)
def test_describe_error(exc: Exception, fragment: str) -> None:
    msg = describe_error(exc)
    assert str(exc) in msg
    assert fragment in msg


def test_validation_error_is_plain() -> None:
    assert describe_error(ValidationError("Query must not be empty")) == (
        "[red]Error:[/] Query must not be empty"
    )
