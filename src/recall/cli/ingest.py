"""recall ingest — save files and web pages into a context.

Files (.txt / .pdf) are uploaded and processed in the background; the
command waits for every file to settle and reports its final status.
Pages are fetched with SSRF protection, then chunked and embedded once.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from recall.app import Recall
from recall.cli.errors import describe_error, err_file_unreadable, err_no_input
from recall.cli.session import build_app, console, load_settings, resolve_context, run
from recall.db.models import ProcessingStatus
from recall.errors import RecallError
from recall.ingest.pipeline import UploadedFile
from recall.ingest.web import fetch_page


def ingest_cmd(
    context: Annotated[
        str, typer.Option("--context", "-c", help="Target context id or name.")
    ],
    file: Annotated[
        list[Path] | None,
        typer.Option("--file", "-f", help="File to ingest (.txt or .pdf, repeatable)."),
    ] = None,
    url: Annotated[
        str | None, typer.Option("--url", help="Web page to capture into the context.")
    ] = None,
    title: Annotated[
        str, typer.Option("--title", help="Title for the captured page (default: page <title>).")
    ] = "",
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the recall database (overrides storage.db_path)."),
    ] = None,
) -> None:
    """Ingest files and/or a web page into a context."""
    paths = file or []
    if not paths and not url:
        console.print(err_no_input())
        raise typer.Exit(1)

    uploads: list[UploadedFile] = []
    for path in paths:
        try:
            uploads.append(UploadedFile(name=path.name, data=path.read_bytes()))
        except OSError as exc:
            console.print(err_file_unreadable(str(path), exc.strerror or str(exc)))
            raise typer.Exit(1)

    cfg = load_settings(db)
    failed = run(_ingest(build_app(cfg, require_keys=True), context, uploads, url, title))
    if failed:
        raise typer.Exit(1)


async def _ingest(
    app: Recall,
    ref: str,
    uploads: list[UploadedFile],
    url: str | None,
    title: str,
) -> int:
    failed = 0
    async with app:
        target = await resolve_context(app, ref)

        if uploads:
            outcomes = await app.ingest_files(uploads, target.id)
            accepted = [o for o in outcomes if o.ok]
            for outcome in outcomes:
                if not outcome.ok:
                    failed += 1
                    console.print(f"[red]✗[/] {outcome.name}: {outcome.error}")

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True,
                console=console,
            ) as prog:
                prog.add_task(f"Processing {len(accepted)} file(s)…", total=None)
                await app.wait_for_ingestion()

            for outcome in accepted:
                record = await app.repo.get_file(outcome.file.id)
                if record is None:
                    continue
                if record.processing_status is ProcessingStatus.COMPLETED:
                    console.print(f"[green]✓[/] {record.name}")
                else:
                    failed += 1
                    console.print(
                        f"[red]✗[/] {record.name}: {record.processing_error or 'processing failed'}"
                    )

        if url:
            failed += await _ingest_url(app, target.id, url, title)
    return failed


async def _ingest_url(app: Recall, context_id: str, url: str, title: str) -> int:
    try:
        page = await asyncio.to_thread(fetch_page, url)
        outcomes = await app.ingest_page(page.text, page.url, [context_id], title or page.title)
    except (RecallError, RuntimeError) as exc:
        console.print(describe_error(exc) if isinstance(exc, RecallError) else f"[red]Error:[/] {exc}")
        return 1

    failed = 0
    for outcome in outcomes:
        if outcome.ok:
            console.print(f"[green]✓[/] {url} ({outcome.chunk_count} chunks)")
        else:
            failed += 1
            console.print(f"[red]✗[/] {url}: {outcome.error}")
    return failed
