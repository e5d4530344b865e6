"""archfix evaluate CLI command.

Measures retrieval quality against a YAML file of test queries:

    queries:
      - query: "repository enforcing stock rules"
        keywords: [stock, repository]
      - query: "aggregate writing to the database"

Usage:
  archfix evaluate --queries eval.yaml [--context docs/ddd/] [--output rag-eval/]
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

import typer
import yaml
from rich.console import Console
from rich.table import Table

from archfix.cli.errors import (
    err_config_invalid,
    err_context_not_found,
    err_retrieval_unavailable,
    err_source_not_found,
)
from archfix.config import ConfigError, load_config
from archfix.logger import configure_logger
from archfix.rag import build_service
from archfix.rag.evaluator import RagEvaluator
from archfix.rag.processor import DocumentProcessor

console = Console()


def load_queries(path: Path) -> tuple[list[str], dict[str, list[str]]]:
    """Parse a queries file into (queries, expected keywords per query).

    Raises:
        ConfigError: If the file is not a list of query entries.
    """
    try:
        data: Any = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in '{path}': {exc}") from exc
    entries = data.get("queries") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ConfigError(f"'{path}' must contain a 'queries' list")

    queries: list[str] = []
    keywords: dict[str, list[str]] = {}
    for entry in entries:
        if isinstance(entry, str):
            queries.append(entry)
        elif isinstance(entry, dict) and entry.get("query"):
            q = str(entry["query"])
            queries.append(q)
            keywords[q] = [str(k) for k in entry.get("keywords") or []]
        else:
            raise ConfigError(f"Invalid query entry in '{path}': {entry!r}")
    return queries, keywords


def evaluate_cmd(
    queries: Annotated[
        Path,
        typer.Option("--queries", "-q", help="YAML file of test queries (required)."),
    ],
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Project config file (default: ./archfix.yaml)."),
    ] = None,
    context: Annotated[
        Path | None,
        typer.Option("--context", help="Reference code/docs to index before evaluating."),
    ] = None,
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Directory for the JSON report."),
    ] = Path("rag-eval"),
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    ] = "WARNING",
) -> None:
    """Evaluate retrieval quality over a set of test queries."""
    configure_logger(log_level)

    if not queries.exists():
        console.print(err_source_not_found(str(queries)))
        raise typer.Exit(1)
    try:
        cfg = load_config(config_path=config)
        query_list, expected = load_queries(queries)
    except ConfigError as exc:
        console.print(err_config_invalid(str(exc)))
        raise typer.Exit(1)

    context_path = context or (Path(cfg.retrieval.context_path) if cfg.retrieval.context_path else None)
    if context_path is not None and not context_path.exists():
        console.print(err_context_not_found(str(context_path)))
        raise typer.Exit(1)

    service = build_service(cfg.retrieval)
    if not service.available():
        console.print(err_retrieval_unavailable())
        raise typer.Exit(1)

    if context_path is not None:
        indexed = DocumentProcessor(service, cfg.chunking).process_path(context_path)
        console.print(f"  [dim]✓ Indexed {indexed} reference file(s)[/]")

    report = RagEvaluator(service, output_dir=output).evaluate_queries(query_list, expected)
    service.index.shutdown()

    table = Table(box=None, padding=(0, 1))
    table.add_column("Query")
    table.add_column("Hits", justify="right")
    table.add_column("Top score", justify="right")
    table.add_column("Keywords", justify="right")
    for r in report.get("query_results", []):
        table.add_row(r["query"], str(r["results_count"]), f"{r['top_score']:.3f}", str(r["keyword_hits"]))
    console.print(table)
    console.print(
        f"\n  avg top score {report.get('avg_top_score', 0.0):.3f} · "
        f"keyword hit rate {report.get('keyword_hit_rate', 0.0):.0%}"
    )
    if report.get("report_path"):
        console.print(f"  [green]✓[/] Report written to [bold]{report['report_path']}[/]")
