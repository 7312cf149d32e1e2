"""recall status command.

Without --context: one row per context with document and chunk counts.
With --context: every file and page in that context with its processing state.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from recall.app import Recall
from recall.cli.session import build_app, console, load_settings, resolve_context, run
from recall.db.models import ProcessingStatus

_STATUS_STYLE = {
    ProcessingStatus.PENDING: "[dim]pending[/]",
    ProcessingStatus.PROCESSING: "[yellow]processing[/]",
    ProcessingStatus.COMPLETED: "[green]completed[/]",
    ProcessingStatus.FAILED: "[red]failed[/]",
}


def status_cmd(
    context: Annotated[
        str | None, typer.Option("--context", "-c", help="Show documents of one context.")
    ] = None,
    cleanup: Annotated[
        bool,
        typer.Option("--cleanup", help="Delete chunks with unusable vectors (needs --context)."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the recall database (overrides storage.db_path)."),
    ] = None,
) -> None:
    """Show contexts, documents, and ingestion status."""
    cfg = load_settings(db)
    app = build_app(cfg)
    lines = [
        f"Backend:   [bold]{cfg.storage.backend}[/]",
        f"Database:  {cfg.storage.db_path}",
        f"Embedding: {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Chat:      {cfg.generation.model}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Recall[/]", expand=False))
    if context is None:
        run(_overview(app))
    else:
        run(_context_detail(app, context, cleanup))


async def _overview(app: Recall) -> None:
    async with app:
        contexts = await app.list_contexts()
        if not contexts:
            console.print("[dim]No contexts yet.[/]\n  Run:  recall context create <name>")
            return
        table = Table(show_header=True, header_style="bold")
        table.add_column("Context", style="bold")
        table.add_column("ID", style="dim")
        table.add_column("Files", justify="right")
        table.add_column("Pages", justify="right")
        table.add_column("Chunks", justify="right")
        for c in contexts:
            files = await app.repo.list_files(c.id)
            sites = await app.repo.list_sites(c.id)
            chunks = await app.store.count_for_context(c.id)
            table.add_row(c.name, c.id, str(len(files)), str(len(sites)), f"{chunks:,}")
        console.print(table)


async def _context_detail(app: Recall, ref: str, cleanup: bool) -> None:
    async with app:
        target = await resolve_context(app, ref)
        files = await app.repo.list_files(target.id)
        sites = await app.repo.list_sites(target.id)
        chunks = await app.store.list_for_context(target.id)

        per_parent: dict[str, int] = {}
        invalid = 0
        for chunk in chunks:
            parent = chunk.file_id or chunk.site_id or ""
            per_parent[parent] = per_parent.get(parent, 0) + 1
            if chunk.embedding is None or len(chunk.embedding) != app.embedder.dimensions:
                invalid += 1

        table = Table(title=f"Context: {target.name}", show_header=True, header_style="bold")
        table.add_column("Kind", style="dim")
        table.add_column("Name")
        table.add_column("ID", style="dim")
        table.add_column("Status")
        table.add_column("Chunks", justify="right")
        for f in files:
            status = _STATUS_STYLE[f.processing_status]
            if f.processing_error:
                status += f" [dim]({f.processing_error})[/]"
            table.add_row("file", f.name, f.id, status, str(per_parent.get(f.id, 0)))
        for s in sites:
            table.add_row("page", s.title or s.url, s.id, "", str(per_parent.get(s.id, 0)))
        console.print(table)

        if invalid and cleanup:
            removed = await app.store.cleanup_invalid(target.id)
            console.print(f"[green]✓[/] Removed {removed} chunk(s) with unusable vectors.")
        elif invalid:
            console.print(
                f"[yellow]⚠ {invalid} chunk(s) have unusable vectors.[/]\n"
                "  Run:  recall status --context <ref> --cleanup"
            )
