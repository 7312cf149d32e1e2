"""recall remove — delete one saved file or page and its chunks."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from recall.cli.session import build_app, console, load_settings, run


def remove_cmd(
    document: Annotated[
        str, typer.Option("--document", "-d", help="File or page id (see: recall status).")
    ],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the recall database (overrides storage.db_path)."),
    ] = None,
) -> None:
    """Remove a document: its chunks, its stored blob, then its record."""
    if not yes and not typer.confirm(f"Remove document '{document}'?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    cfg = load_settings(db)

    async def _remove():
        async with build_app(cfg) as app:
            return await app.delete_document(document)

    report = run(_remove())
    console.print(f"[green]✓[/] Removed {report.kind} {document} ({report.chunks} chunks)")
    for err in report.blob_errors:
        console.print(f"  [yellow]⚠ Blob cleanup failed:[/] {err}")
