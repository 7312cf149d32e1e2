"""Recall CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from recall.cli.ask import ask_cmd
from recall.cli.context import context_app
from recall.cli.ingest import ingest_cmd
from recall.cli.remove import remove_cmd
from recall.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("recall")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"recall {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="recall",
    help=(
        "Recall — chat with what you have saved.\n\n"
        "  recall ingest  Save files and pages into a context.\n"
        "  recall ask     Get an answer grounded in a context."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Recall — chat with what you have saved."""


app.add_typer(context_app, name="context")
app.command("ingest")(ingest_cmd)
app.command("ask")(ask_cmd)
app.command("remove")(remove_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Recall version."""
    typer.echo(f"recall {_installed_version()}")


if __name__ == "__main__":
    app()
