"""archfix CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from archfix.cli.evaluate import evaluate_cmd
from archfix.cli.index import index_cmd
from archfix.cli.run import run_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("archfix")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"archfix {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="archfix",
    help=(
        "archfix — repair hexagonal/DDD violations with validated model fixes.\n\n"
        "  archfix run       Detect and repair violations in a source tree.\n"
        "  archfix index     Index reference code/docs into the reference index.\n"
        "  archfix evaluate  Measure retrieval quality over test queries."
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
    """archfix — repair hexagonal/DDD violations with validated model fixes."""


app.command("run")(run_cmd)
app.command("index")(index_cmd)
app.command("evaluate")(evaluate_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed archfix version."""
    typer.echo(f"archfix {_installed_version()}")


if __name__ == "__main__":
    app()
