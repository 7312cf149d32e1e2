"""Shared CLI plumbing: config loading, client wiring, and async entry."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console

from recall.app import Recall
from recall.cli.errors import describe_error, err_config, err_context_not_found, err_no_api_key
from recall.config import ConfigError, RecallConfig, load_config
from recall.db.models import Context
from recall.errors import RecallError
from recall.logger import setup_logger
from recall.rag.llm_client import LLMClient

console = Console()

T = TypeVar("T")


def load_settings(db: Path | None = None) -> RecallConfig:
    """Load merged config, apply a --db override, and configure logging."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    if db is not None:
        cfg.storage.db_path = str(db)
    setup_logger(cfg.logging.level, cfg.logging.file)
    return cfg


def build_app(cfg: RecallConfig, require_keys: bool = False) -> Recall:
    """Construct the facade. With *require_keys*, exit early if API keys are missing."""
    llm = LLMClient.from_config(cfg)
    if require_keys:
        try:
            llm.validate()
        except EnvironmentError as exc:
            provider = str(exc).split("'")[1] if "'" in str(exc) else "openai"
            console.print(err_no_api_key(provider))
            raise typer.Exit(1)
    return Recall.from_config(cfg, llm=llm)


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Run *coro* to completion, printing recall errors as actionable messages."""
    try:
        return asyncio.run(coro)
    except RecallError as exc:
        console.print(describe_error(exc))
        raise typer.Exit(1)


async def resolve_context(app: Recall, ref: str) -> Context:
    """Find a context by id, or by exact name. Exits with a message if none matches."""
    context = await app.repo.get_context(ref)
    if context is not None:
        return context
    matches = [c for c in await app.list_contexts() if c.name == ref]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        console.print(
            f"[red]Error:[/] Several contexts are named '{ref}'.\n"
            "  Pass the context id instead (see:  recall context list)."
        )
        raise typer.Exit(1)
    console.print(err_context_not_found(ref))
    raise typer.Exit(1)
