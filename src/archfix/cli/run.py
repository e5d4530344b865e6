"""archfix run CLI command.

Detects and repairs architectural violations in a tree of Python files.

Usage:
  archfix run --source src/ --output refactored/ [--context docs/ddd/]

Flags:
  --source PATH       File or directory of *.py files to process (required)
  --output DIR        Output directory; outputs mirror the source tree as
                      <stem>_refactored.py (required)
  --config PATH       Project config file (default: ./archfix.yaml if present)
  --context PATH      Reference code/docs indexed for retrieval before the run
  --concurrency N     Files processed in parallel
  --max-attempts N    Model calls per chunk before the fallback
  --no-cache          Ignore and do not update the verdict cache
  --dry-run           List files and chunk counts without model calls
  --yes               Skip the overwrite prompt
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from archfix.chunking import detect_mode, split_with_config
from archfix.cli.errors import (
    err_config_invalid,
    err_context_not_found,
    err_no_api_key,
    err_no_sources,
    err_output_inside_source,
    err_output_path_unsafe,
    err_source_not_found,
    warn_fallbacks,
)
from archfix.config import ArchfixConfig, ConfigError, load_config, validate_config
from archfix.logger import configure_logger
from archfix.models import SourceUnit, UnitOutcome, UnitStatus
from archfix.output.writer import check_overwrite, output_path_for, validate_output_path, write_output
from archfix.pipeline import build_pipeline
from archfix.rag.llm_client import count_tokens, provider_of, validate_api_key
from archfix.rag.processor import find_files

console = Console()

_STATUS_STYLE: dict[UnitStatus, str] = {
    UnitStatus.OK: "[green]ok[/]",
    UnitStatus.VIOLATION: "[yellow]violation[/]",
    UnitStatus.ERROR: "[red]error[/]",
    UnitStatus.TIMED_OUT: "[red]timed out[/]",
}


def run_cmd(
    source: Annotated[
        Path,
        typer.Option("--source", "-s", help="File or directory of Python sources (required)."),
    ],
    output: Annotated[
        str,
        typer.Option("--output", "-o", help="Output directory for refactored files (required)."),
    ],
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Project config file (default: ./archfix.yaml)."),
    ] = None,
    context: Annotated[
        Path | None,
        typer.Option("--context", help="Reference code/docs to index for retrieval."),
    ] = None,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", "-j", min=1, help="Files processed in parallel."),
    ] = None,
    max_attempts: Annotated[
        int | None,
        typer.Option("--max-attempts", min=1, help="Model calls per chunk before the fallback."),
    ] = None,
    no_cache: Annotated[
        bool,
        typer.Option("--no-cache", help="Bypass the verdict cache."),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="List files and chunks without calling the model."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompts."),
    ] = False,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    ] = "WARNING",
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit logs as JSON lines."),
    ] = False,
) -> None:
    """Detect and repair architectural violations in Python sources."""
    configure_logger(log_level, json_logs)

    # ---- Config ----
    try:
        cfg = load_config(config_path=config)
        _apply_flags(cfg, context, concurrency, max_attempts, no_cache)
        validate_config(cfg)
    except ConfigError as exc:
        console.print(err_config_invalid(str(exc)))
        raise typer.Exit(1)

    # ---- Paths ----
    if not source.exists():
        console.print(err_source_not_found(str(source)))
        raise typer.Exit(1)
    try:
        output_dir = validate_output_path(output)
    except ValueError:
        console.print(err_output_path_unsafe(output))
        raise typer.Exit(1)
    root = source.resolve() if source.is_dir() else source.resolve().parent
    if source.is_dir() and output_dir.is_relative_to(root):
        console.print(err_output_inside_source(output, str(source)))
        raise typer.Exit(1)

    context_path = Path(cfg.retrieval.context_path) if cfg.retrieval.context_path else None
    if context_path is not None and not context_path.exists():
        console.print(err_context_not_found(str(context_path)))
        raise typer.Exit(1)

    units, unreadable = _load_units(source.resolve(), root)
    if not units and not unreadable:
        console.print(err_no_sources(str(source)))
        raise typer.Exit(0)
    console.print(f"[bold]→ {len(units)} file(s)[/] from {source}")

    # ---- Dry run ----
    if dry_run:
        _show_plan(units, cfg)
        console.print("\n[dim]Dry run — no model calls, nothing written.[/]")
        return

    # ---- API key validation ----
    try:
        validate_api_key(cfg.generation.model)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(cfg.generation.model)))
        raise typer.Exit(1)

    suffix = cfg.run.output_suffix
    targets = [output_path_for(u.id, output_dir, suffix) for u in units]
    if not check_overwrite(targets, yes=yes):
        console.print("  [dim]Cancelled.[/]")
        raise typer.Exit(0)

    def _sink(unit: SourceUnit, text: str) -> Path:
        path = output_path_for(unit.id, output_dir, suffix)
        write_output(path, text)
        return path

    pipeline = build_pipeline(cfg)
    try:
        # ---- Step 1/2: Reference context ----
        if context_path is not None:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True,
                console=console,
            ) as prog:
                prog.add_task("[1/2] Indexing reference context…", total=None)
                indexed = pipeline.index_context(context_path)
            console.print(f"  [dim]✓ Indexing — {indexed} reference file(s)[/]")
        else:
            console.print("  [dim]✓ Indexing — no reference context configured[/]")

        # ---- Step 2/2: Refactor ----
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task(f"[2/2] Refactoring with {cfg.generation.model}…", total=None)
            outcomes = pipeline.orchestrator.run_all(units, sink=_sink)
    finally:
        pipeline.close()

    outcomes = unreadable + outcomes
    _show_summary(outcomes)

    fallbacks = sum(o.verdict.fallback_count for o in outcomes if o.verdict is not None)
    if fallbacks:
        console.print(warn_fallbacks(fallbacks))

    if any(o.status in (UnitStatus.ERROR, UnitStatus.TIMED_OUT) for o in outcomes):
        raise typer.Exit(1)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _apply_flags(
    cfg: ArchfixConfig,
    context: Path | None,
    concurrency: int | None,
    max_attempts: int | None,
    no_cache: bool,
) -> None:
    """CLI flags are the highest-priority config layer."""
    if context is not None:
        cfg.retrieval.context_path = str(context)
    if concurrency is not None:
        cfg.run.concurrency = concurrency
    if max_attempts is not None:
        cfg.generation.max_attempts = max_attempts
    if no_cache:
        cfg.run.cache_enabled = False


def _load_units(source: Path, root: Path) -> tuple[list[SourceUnit], list[UnitOutcome]]:
    """Read every *.py file; unreadable files become error outcomes."""
    paths = find_files(source, (".py",)) if source.is_dir() else [source]
    units: list[SourceUnit] = []
    failed: list[UnitOutcome] = []
    for path in paths:
        try:
            units.append(SourceUnit.from_path(path, root))
        except (OSError, UnicodeDecodeError) as exc:
            unit_id = path.relative_to(root).as_posix()
            logger.error("Cannot read {}: {}", unit_id, exc)
            failed.append(UnitOutcome(unit_id, UnitStatus.ERROR, error=f"unreadable: {exc}"))
    return units, failed


def _show_plan(units: list[SourceUnit], cfg: ArchfixConfig) -> None:
    table = Table(box=None, padding=(0, 1))
    table.add_column("File")
    table.add_column("Mode", style="dim")
    table.add_column("Chunks", justify="right")
    table.add_column("Tokens", justify="right", style="dim")

    total_chunks = 0
    for unit in units:
        try:
            chunks = split_with_config(unit, cfg.chunking)
        except ConfigError as exc:
            console.print(err_config_invalid(str(exc)))
            raise typer.Exit(1)
        total_chunks += len(chunks)
        mode = detect_mode(unit.id) if cfg.chunking.mode == "auto" else cfg.chunking.mode
        tokens = count_tokens(cfg.generation.model, unit.text)
        table.add_row(unit.id, mode, str(len(chunks)), f"{tokens:,}")

    console.print(table)
    console.print(
        f"\n  {total_chunks} chunk(s); at most "
        f"{total_chunks * cfg.generation.max_attempts} model call(s)"
    )


def _show_summary(outcomes: list[UnitOutcome]) -> None:
    table = Table(box=None, padding=(0, 1))
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Merge", style="dim")
    table.add_column("Cache", style="dim")
    table.add_column("Output / error")

    for o in outcomes:
        merge = o.merge.status.value if o.merge is not None else ""
        detail = str(o.output_path) if o.output_path is not None else (o.error or "")
        table.add_row(o.unit_id, _STATUS_STYLE[o.status], merge, "hit" if o.cache_hit else "", detail)

    console.print()
    console.print(table)
    counts = {s: sum(1 for o in outcomes if o.status is s) for s in UnitStatus}
    console.print(
        f"\n  [green]✓[/] {counts[UnitStatus.OK]} clean, "
        f"{counts[UnitStatus.VIOLATION]} repaired, "
        f"{counts[UnitStatus.ERROR] + counts[UnitStatus.TIMED_OUT]} failed"
    )
