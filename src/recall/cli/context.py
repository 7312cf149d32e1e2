"""recall context CLI commands.

Commands:
  recall context create <name>   — create a knowledge context
  recall context list            — show contexts with document counts
  recall context delete <ref>    — delete a context and everything in it
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from recall.cli.session import build_app, console, load_settings, resolve_context, run

context_app = typer.Typer(
    name="context",
    help="Manage knowledge contexts (create, list, delete).",
    add_completion=False,
)

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the recall database (overrides storage.db_path)."),
]


@context_app.command("create")
def context_create_cmd(
    name: Annotated[str, typer.Argument(help="Display name for the new context.")],
    db: _DbOption = None,
) -> None:
    """Create a new context."""
    cfg = load_settings(db)

    async def _create():
        async with build_app(cfg) as app:
            return await app.create_context(name)

    context = run(_create())
    console.print(f"[green]✓[/] Created context [bold]{context.name}[/] ({context.id})")


@context_app.command("list")
def context_list_cmd(db: _DbOption = None) -> None:
    """List contexts and how many files and pages each holds."""
    cfg = load_settings(db)

    async def _list():
        async with build_app(cfg) as app:
            rows = []
            for c in await app.list_contexts():
                files = await app.repo.list_files(c.id)
                sites = await app.repo.list_sites(c.id)
                rows.append((c, len(files), len(sites)))
            return rows

    rows = run(_list())
    if not rows:
        console.print("[yellow]No contexts yet.[/]\n  Run:  recall context create <name>")
        raise typer.Exit(0)

    table = Table(title="Contexts", show_header=True, header_style="bold")
    table.add_column("Name", style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Files", justify="right")
    table.add_column("Pages", justify="right")
    table.add_column("Created", style="dim")
    for context, n_files, n_sites in rows:
        table.add_row(
            context.name, context.id, str(n_files), str(n_sites), (context.created_at or "")[:19]
        )
    console.print(table)


@context_app.command("delete")
def context_delete_cmd(
    ref: Annotated[str, typer.Argument(help="Context id or name.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: _DbOption = None,
) -> None:
    """Delete a context with all its files, pages, chunks, and messages."""
    cfg = load_settings(db)

    async def _delete():
        async with build_app(cfg) as app:
            context = await resolve_context(app, ref)
            if not yes and not typer.confirm(
                f"Delete context '{context.name}' and everything in it?", default=False
            ):
                return None
            return await app.delete_context(context.id)

    report = run(_delete())
    if report is None:
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    console.print(
        f"[green]✓[/] Deleted context: {report.files} file(s), {report.sites} page(s), "
        f"{report.chunks} chunk(s), {report.messages} message(s)"
    )
    for err in report.blob_errors:
        console.print(f"  [yellow]⚠ Blob cleanup failed:[/] {err}")
