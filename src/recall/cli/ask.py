"""recall ask — stream a grounded answer from a context.

The retrieval summary ("grounded in N sources" / "no context used") is
printed before the first token of the answer.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from recall.app import Recall
from recall.cli.session import build_app, console, load_settings, resolve_context, run
from recall.rag.orchestrator import RAGContext


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question to ask.")],
    context: Annotated[
        str, typer.Option("--context", "-c", help="Context id or name to answer from.")
    ],
    chat: Annotated[
        bool,
        typer.Option("--chat", help="Persist the turn and include recent conversation history."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the recall database (overrides storage.db_path)."),
    ] = None,
) -> None:
    """Ask a question answered from the saved content of a context."""
    cfg = load_settings(db)
    run(_ask(build_app(cfg, require_keys=True), context, question, chat))


def describe_context(context: RAGContext) -> str:
    if not context.has_relevant_context:
        return "[dim]No saved context used for this answer.[/]"
    n = len(context.chunks)
    return (
        f"[dim]Grounded in {n} source{'s' if n != 1 else ''} "
        f"at {context.average_similarity * 100:.1f}% average relevance.[/]"
    )


async def _ask(app: Recall, ref: str, question: str, chat: bool) -> None:
    async with app:
        target = await resolve_context(app, ref)
        events = (
            app.send_message(target.id, question) if chat else app.answer_query(question, target.id)
        )
        sources: list[str] = []
        async for event in events:
            if event.context is not None:
                console.print(describe_context(event.context))
                sources = event.context.sources
            console.print(event.delta, end="", markup=False, highlight=False, soft_wrap=True)
        console.print()
        if sources:
            console.print("[dim]Sources: " + ", ".join(sources) + "[/]")
