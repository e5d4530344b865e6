"""archfix index CLI command.

Chunks reference code/docs and stores them in the configured reference index.
Only useful with ``retrieval.provider: remote``: the in-memory index lives for
one process, so ``archfix run --context`` is the way to use it.

Usage:
  archfix index --source docs/ddd/ [--config archfix.yaml]
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from archfix.cli.errors import (
    err_config_invalid,
    err_retrieval_unavailable,
    err_source_not_found,
)
from archfix.config import ConfigError, load_config
from archfix.logger import configure_logger
from archfix.rag import build_service
from archfix.rag.processor import DocumentProcessor

console = Console()


def index_cmd(
    source: Annotated[
        Path,
        typer.Option("--source", "-s", help="Reference file or directory to index (required)."),
    ],
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Project config file (default: ./archfix.yaml)."),
    ] = None,
    recursive: Annotated[
        bool,
        typer.Option("--recursive/--no-recursive", help="Descend into subdirectories."),
    ] = True,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    ] = "WARNING",
) -> None:
    """Index reference documents for retrieval."""
    configure_logger(log_level)

    try:
        cfg = load_config(config_path=config)
    except ConfigError as exc:
        console.print(err_config_invalid(str(exc)))
        raise typer.Exit(1)

    if not source.exists():
        console.print(err_source_not_found(str(source)))
        raise typer.Exit(1)

    if cfg.retrieval.provider == "inmemory":
        console.print(
            "[yellow]⚠[/] retrieval.provider is 'inmemory': the index is discarded when "
            "this command exits.\n  Set retrieval.provider: remote to persist it."
        )

    service = build_service(cfg.retrieval)
    if not service.available():
        console.print(err_retrieval_unavailable())
        raise typer.Exit(1)

    processor = DocumentProcessor(service, cfg.chunking)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        prog.add_task(f"Indexing {source}…", total=None)
        indexed = processor.process_path(source, recursive=recursive)
    service.index.shutdown()

    console.print(f"  [green]✓[/] {indexed} file(s) indexed")
