"""Recall rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from recall.cli.errors import describe_error
    console.print(describe_error(exc))
    raise typer.Exit(1)
"""

from __future__ import annotations

from recall.errors import (
    BlobExistsError,
    CompletionError,
    EmbeddingError,
    InvalidEmbeddingError,
    NotFoundError,
    RecallError,
    StorageError,
    StreamInProgressError,
    ValidationError,
)
from recall.ingest.web import SsrfError


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_map = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_config(message: str) -> str:
    """Config file could not be loaded."""
    return f"[red]Error:[/] Invalid configuration.\n  {message}"


def err_context_not_found(ref: str) -> str:
    return (
        f"[red]Error:[/] Context '{ref}' not found.\n"
        "  Run:  recall context list  to see available contexts."
    )


def err_no_input() -> str:
    return (
        "[red]Error:[/] Nothing to ingest.\n"
        "  Use --file PATH (repeatable) and/or --url URL."
    )


def err_file_unreadable(path: str, reason: str) -> str:
    return f"[red]Error:[/] Cannot read '{path}': {reason}"


def describe_error(exc: Exception) -> str:
    """Map a recall failure to a message that tells the user what to do next."""
    if isinstance(exc, SsrfError):
        return f"[red]Error:[/] {exc}\n  Use a publicly reachable URL."
    if isinstance(exc, BlobExistsError):
        return (
            f"[red]Error:[/] {exc}\n"
            "  Rename the file, or remove the existing one first:  recall remove --document ID"
        )
    if isinstance(exc, NotFoundError):
        return f"[red]Error:[/] {exc}\n  Run:  recall status  to list contexts and documents."
    if isinstance(exc, ValidationError):
        return f"[red]Error:[/] {exc}"
    if isinstance(exc, InvalidEmbeddingError):
        return (
            f"[red]Error:[/] {exc}\n"
            "  Check embedding.model and embedding.dimensions in recall.yaml."
        )
    if isinstance(exc, EmbeddingError):
        return f"[red]Embedding failed:[/] {exc}\n  Check your API key and network, then retry."
    if isinstance(exc, CompletionError):
        return f"[red]Completion failed:[/] {exc}\n  Check your API key and network, then retry."
    if isinstance(exc, StreamInProgressError):
        return f"[yellow]Busy:[/] {exc}\n  Wait for the current reply to finish."
    if isinstance(exc, StorageError):
        return f"[red]Storage error:[/] {exc}\n  Check storage.db_path and storage.blob_dir."
    if isinstance(exc, RecallError):
        return f"[red]Error:[/] {exc}"
    return f"[red]Unexpected error:[/] {exc}"
