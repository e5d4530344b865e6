"""archfix configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (ARCHFIX_GENERATION_MODEL, ARCHFIX_EMBEDDING_MODEL,
     ARCHFIX_VECTOR_API_KEY)
  3. Per-project archfix.yaml  (or an explicit --config path)
  4. Global ~/.archfix/config.yaml  (defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".archfix"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "archfix.yaml"

# Key names that look like credentials are forbidden in global config.
# Does NOT match legitimate keys like max_tokens or top_k.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["generation", "chunking", "retrieval", "merge", "run", "prompt"]
)

CHUNK_MODES: frozenset[str] = frozenset(["auto", "lines", "structure", "paragraph"])
VECTOR_PROVIDERS: frozenset[str] = frozenset(["inmemory", "remote"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class GenerationCfg:
    """Model call configuration (archfix.yaml: generation:).

    Attributes:
        model: LiteLLM model string used by the transformer.
        max_attempts: Upper bound on model calls per chunk.
        request_timeout: Per-call timeout in seconds.
        num_retries: LiteLLM-level retries inside one attempt. Zero keeps the
            attempt bound exact.
    """

    model: str = "openai/gpt-4o"
    max_attempts: int = 3
    request_timeout: float = 60.0
    max_tokens: int = 4_096
    temperature: float = 0.0
    num_retries: int = 0


@dataclass
class ChunkingCfg:
    """Chunker configuration (archfix.yaml: chunking:).

    ``max_size``/``overlap`` are lines for line and structure modes;
    ``paragraph_max_chars``/``paragraph_overlap`` are characters.
    """

    mode: str = "auto"
    max_size: int = 300
    overlap: int = 0
    paragraph_max_chars: int = 1_000
    paragraph_overlap: int = 200


@dataclass
class RemoteIndexCfg:
    """Remote vector service settings (archfix.yaml: retrieval.remote:)."""

    url: str = ""
    namespace: str = ""
    timeout: float = 30.0
    api_key: str = ""  # env only: ARCHFIX_VECTOR_API_KEY


@dataclass
class RetrievalCfg:
    """Reference retrieval configuration (archfix.yaml: retrieval:).

    Attributes:
        query_chars: Number of leading chunk characters used as the search query.
        context_path: File or directory of reference code indexed before a run.
        default_snippet: Context used when retrieval yields nothing.
    """

    enabled: bool = True
    provider: str = "inmemory"  # inmemory | remote
    embedding_model: str = "openai/text-embedding-3-small"
    top_k: int = 3
    min_score: float = 0.7
    query_chars: int = 500
    context_path: str | None = None
    default_snippet: str = ""
    index_processed: bool = False
    remote: RemoteIndexCfg = field(default_factory=RemoteIndexCfg)


@dataclass
class MergeCfg:
    """Structural merge rules (archfix.yaml: merge:)."""

    removal_list: list[str] = field(default_factory=lambda: ["direct_db_call"])
    domain_keywords: list[str] = field(
        default_factory=lambda: ["stock", "price", "quantity"]
    )


@dataclass
class RunCfg:
    """Orchestration settings (archfix.yaml: run:)."""

    concurrency: int = 4
    chunk_concurrency: int = 4
    shutdown_timeout: float = 60.0
    cache_enabled: bool = True
    cache_path: str = ".archfix-cache.db"
    output_suffix: str = "_refactored"


@dataclass
class PromptCfg:
    """Prompt policy (archfix.yaml: prompt:). Empty means the built-in policy."""

    base_policy: str = ""


@dataclass
class ArchfixConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    generation: GenerationCfg = field(default_factory=GenerationCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    merge: MergeCfg = field(default_factory=MergeCfg)
    run: RunCfg = field(default_factory=RunCfg)
    prompt: PromptCfg = field(default_factory=PromptCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name}."
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def validate_chunking(max_size: int, overlap: int) -> None:
    """Raise ConfigError unless ``0 <= overlap < max_size``."""
    if max_size < 1:
        raise ConfigError(f"chunk max_size must be >= 1 (got {max_size})")
    if overlap < 0:
        raise ConfigError(f"chunk overlap must be >= 0 (got {overlap})")
    if max_size <= overlap:
        raise ConfigError(
            f"chunk max_size ({max_size}) must be greater than overlap ({overlap})"
        )


def validate_config(cfg: ArchfixConfig) -> ArchfixConfig:
    """Fail fast on settings the pipeline cannot run with.

    Raises:
        ConfigError: On the first invalid value found.
    """
    c = cfg.chunking
    if c.mode not in CHUNK_MODES:
        raise ConfigError(
            f"chunking.mode '{c.mode}' is not one of: {', '.join(sorted(CHUNK_MODES))}"
        )
    validate_chunking(c.max_size, c.overlap)
    validate_chunking(c.paragraph_max_chars, c.paragraph_overlap)

    if cfg.generation.max_attempts < 1:
        raise ConfigError("generation.max_attempts must be >= 1")
    if cfg.generation.request_timeout <= 0:
        raise ConfigError("generation.request_timeout must be > 0")

    r = cfg.retrieval
    if r.provider not in VECTOR_PROVIDERS:
        raise ConfigError(
            f"retrieval.provider '{r.provider}' is not one of: "
            f"{', '.join(sorted(VECTOR_PROVIDERS))}"
        )
    if r.provider == "remote" and r.enabled and not r.remote.url:
        raise ConfigError("retrieval.remote.url is required when provider is 'remote'")
    if r.top_k < 1:
        raise ConfigError("retrieval.top_k must be >= 1")
    if r.query_chars < 1:
        raise ConfigError("retrieval.query_chars must be >= 1")

    if cfg.run.concurrency < 1 or cfg.run.chunk_concurrency < 1:
        raise ConfigError("run.concurrency and run.chunk_concurrency must be >= 1")
    if cfg.run.shutdown_timeout <= 0:
        raise ConfigError("run.shutdown_timeout must be > 0")
    return cfg


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _str_list(raw: Any, default: list[str]) -> list[str]:
    if raw is None:
        return list(default)
    if isinstance(raw, str):
        return [raw]
    return [str(item) for item in raw]


def _cfg_from_dict(data: dict[str, Any]) -> ArchfixConfig:
    """Build an *ArchfixConfig* from a merged raw YAML dict."""
    cfg = ArchfixConfig()

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            max_attempts=int(g.get("max_attempts", cfg.generation.max_attempts)),
            request_timeout=float(
                g.get("request_timeout", cfg.generation.request_timeout)
            ),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
            temperature=float(g.get("temperature", cfg.generation.temperature)),
            num_retries=int(g.get("num_retries", cfg.generation.num_retries)),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            mode=str(c.get("mode", cfg.chunking.mode)),
            max_size=int(c.get("max_size", cfg.chunking.max_size)),
            overlap=int(c.get("overlap", cfg.chunking.overlap)),
            paragraph_max_chars=int(
                c.get("paragraph_max_chars", cfg.chunking.paragraph_max_chars)
            ),
            paragraph_overlap=int(
                c.get("paragraph_overlap", cfg.chunking.paragraph_overlap)
            ),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        rem = r.get("remote") or {}
        cfg.retrieval = RetrievalCfg(
            enabled=bool(r.get("enabled", cfg.retrieval.enabled)),
            provider=str(r.get("provider", cfg.retrieval.provider)),
            embedding_model=str(
                r.get("embedding_model", cfg.retrieval.embedding_model)
            ),
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            min_score=float(r.get("min_score", cfg.retrieval.min_score)),
            query_chars=int(r.get("query_chars", cfg.retrieval.query_chars)),
            context_path=r.get("context_path") or cfg.retrieval.context_path,
            default_snippet=str(
                r.get("default_snippet", cfg.retrieval.default_snippet)
            ),
            index_processed=bool(
                r.get("index_processed", cfg.retrieval.index_processed)
            ),
            remote=RemoteIndexCfg(
                url=str(rem.get("url", "")),
                namespace=str(rem.get("namespace", "")),
                timeout=float(rem.get("timeout", 30.0)),
            ),
        )

    if "merge" in data:
        m = data["merge"] or {}
        cfg.merge = MergeCfg(
            removal_list=_str_list(m.get("removal_list"), cfg.merge.removal_list),
            domain_keywords=_str_list(
                m.get("domain_keywords"), cfg.merge.domain_keywords
            ),
        )

    if "run" in data:
        ru = data["run"] or {}
        cfg.run = RunCfg(
            concurrency=int(ru.get("concurrency", cfg.run.concurrency)),
            chunk_concurrency=int(
                ru.get("chunk_concurrency", cfg.run.chunk_concurrency)
            ),
            shutdown_timeout=float(
                ru.get("shutdown_timeout", cfg.run.shutdown_timeout)
            ),
            cache_enabled=bool(ru.get("cache_enabled", cfg.run.cache_enabled)),
            cache_path=str(ru.get("cache_path", cfg.run.cache_path)),
            output_suffix=str(ru.get("output_suffix", cfg.run.output_suffix)),
        )

    if "prompt" in data:
        p = data["prompt"] or {}
        cfg.prompt = PromptCfg(base_policy=str(p.get("base_policy", "")))

    return cfg


def _apply_env_overrides(cfg: ArchfixConfig) -> ArchfixConfig:
    """Apply ARCHFIX_* environment variable overrides."""
    if model := os.environ.get("ARCHFIX_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("ARCHFIX_EMBEDDING_MODEL"):
        cfg.retrieval.embedding_model = model
    if key := os.environ.get("ARCHFIX_VECTOR_API_KEY"):
        cfg.retrieval.remote.api_key = key
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    config_path: Path | None = None,
    global_config_path: Path | None = None,
) -> ArchfixConfig:
    """Load, validate and return a merged *ArchfixConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller (then re-validated with
    :func:`validate_config`).

    Args:
        project_dir: Directory to search for *archfix.yaml*. Defaults to CWD.
        config_path: Explicit project config file; takes precedence over
            *project_dir*. Must exist.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, the explicit
            config file is missing, or any value fails validation.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        project_cfg_path = config_path
    else:
        project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        try:
            raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in '{project_cfg_path}': {exc}") from exc
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    cfg = _apply_env_overrides(cfg)
    return validate_config(cfg)
