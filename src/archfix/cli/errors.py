"""archfix rich error messages with actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from archfix.cli.errors import err_no_api_key
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from archfix.rag.llm_client import _PROVIDER_ENV


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = _PROVIDER_ENV.get(provider.lower()) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-...\n"
        "  Or preview the run without model calls:  archfix run ... --dry-run"
    )


def err_config_invalid(message: str) -> str:
    """Configuration failed validation."""
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        "  Fix the value in archfix.yaml (or the flag you passed) and re-run."
    )


def err_source_not_found(source: str) -> str:
    """--source path does not exist."""
    return (
        f"[red]Error:[/] Source path not found: '{source}'\n"
        "  Pass an existing file or directory:  archfix run --source src/ --output out/"
    )


def err_no_sources(source: str) -> str:
    """No Python files under --source."""
    return (
        f"[yellow]No Python files found under[/] '{source}'.\n"
        "  archfix processes *.py files; hidden and __pycache__ directories are skipped."
    )


def err_output_path_unsafe(path: str) -> str:
    """--output path fails security validation."""
    return (
        f"[red]Error:[/] Output path is not allowed: '{path}'\n"
        "  Use a path within the current working directory."
    )


def err_output_inside_source(output: str, source: str) -> str:
    """--output would be scanned as part of --source on the next run."""
    return (
        f"[red]Error:[/] Output directory '{output}' is inside the source tree '{source}'.\n"
        "  Choose an output directory outside the sources, e.g.  --output refactored/"
    )


def err_context_not_found(path: str) -> str:
    """--context / retrieval.context_path does not exist."""
    return (
        f"[red]Error:[/] Reference context path not found: '{path}'\n"
        "  Point --context at a file or directory of reference code or docs."
    )


def err_retrieval_unavailable() -> str:
    """Indexing requested but the embedder or index cannot be reached."""
    return (
        "[red]Error:[/] Retrieval is unavailable (embedding key missing or index unreachable).\n"
        "  Check retrieval.embedding_model / retrieval.remote.url and the matching API key."
    )


def warn_fallbacks(count: int) -> str:
    """Some chunks ended in the exhausted fallback."""
    return (
        f"[yellow]⚠[/] {count} chunk(s) could not be validated and were kept as "
        "commented fallbacks.\n"
        "  Search the outputs for 'needs manual attention' and review them by hand."
    )
