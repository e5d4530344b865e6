"""Tests for the layered config loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from archfix.config import (
    ArchfixConfig,
    ConfigError,
    _deep_merge,
    load_config,
    validate_chunking,
    validate_config,
)


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Defaults + layering
# ---------------------------------------------------------------------------


def test_defaults_when_no_files(tmp_path: Path) -> None:
    cfg = load_config(tmp_path, global_config_path=tmp_path / "missing.yaml")
    assert cfg.generation.max_attempts == 3
    assert cfg.chunking.max_size == 300
    assert cfg.retrieval.query_chars == 500
    assert cfg.run.cache_enabled is True


def test_project_overrides_global(tmp_path: Path) -> None:
    g = _write(tmp_path / "global.yaml", "generation:\n  model: openai/gpt-4o-mini\n  max_attempts: 5\n")
    _write(tmp_path / "archfix.yaml", "generation:\n  max_attempts: 2\n")
    cfg = load_config(tmp_path, global_config_path=g)
    assert cfg.generation.model == "openai/gpt-4o-mini"
    assert cfg.generation.max_attempts == 2


def test_explicit_config_path(tmp_path: Path) -> None:
    p = _write(tmp_path / "custom.yaml", "merge:\n  removal_list: [save_direct]\n  domain_keywords: stock\n")
    cfg = load_config(tmp_path, config_path=p, global_config_path=tmp_path / "x.yaml")
    assert cfg.merge.removal_list == ["save_direct"]
    assert cfg.merge.domain_keywords == ["stock"]


def test_explicit_config_path_missing_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path, config_path=tmp_path / "nope.yaml")


def test_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ARCHFIX_GENERATION_MODEL", "anthropic/claude-3-5-sonnet-20241022")
    monkeypatch.setenv("ARCHFIX_EMBEDDING_MODEL", "openai/text-embedding-3-large")
    monkeypatch.setenv("ARCHFIX_VECTOR_API_KEY", "pc-123")
    cfg = load_config(tmp_path)
    assert cfg.generation.model.startswith("anthropic/")
    assert cfg.retrieval.embedding_model == "openai/text-embedding-3-large"
    assert cfg.retrieval.remote.api_key == "pc-123"


def test_global_config_rejects_api_keys(tmp_path: Path) -> None:
    g = _write(tmp_path / "global.yaml", "retrieval:\n  remote:\n    api_key: secret\n")
    with pytest.raises(ConfigError, match="forbidden key"):
        load_config(tmp_path, global_config_path=g)


def test_unknown_section_warns(tmp_path: Path) -> None:
    _write(tmp_path / "archfix.yaml", "delivery:\n  output: x\n")
    with pytest.warns(UserWarning, match="delivery"):
        load_config(tmp_path)


def test_invalid_yaml_raises_config_error(tmp_path: Path) -> None:
    _write(tmp_path / "archfix.yaml", "generation: [unclosed\n")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(tmp_path)


def test_deep_merge_nested() -> None:
    merged = _deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}, "d": 4})
    assert merged == {"a": {"b": 1, "c": 3}, "d": 4}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("max_size,overlap", [(10, 10), (5, 8), (0, 0), (10, -1)])
def test_validate_chunking_rejects(max_size: int, overlap: int) -> None:
    with pytest.raises(ConfigError):
        validate_chunking(max_size, overlap)


def test_validate_chunking_accepts_zero_overlap() -> None:
    validate_chunking(1, 0)


def test_overlap_not_below_max_size_fails_fast(tmp_path: Path) -> None:
    _write(tmp_path / "archfix.yaml", "chunking:\n  max_size: 50\n  overlap: 50\n")
    with pytest.raises(ConfigError, match="greater than overlap"):
        load_config(tmp_path)


def test_validate_rejects_zero_attempts() -> None:
    cfg = ArchfixConfig()
    cfg.generation.max_attempts = 0
    with pytest.raises(ConfigError, match="max_attempts"):
        validate_config(cfg)


def test_validate_rejects_unknown_mode() -> None:
    cfg = ArchfixConfig()
    cfg.chunking.mode = "tokens"
    with pytest.raises(ConfigError, match="chunking.mode"):
        validate_config(cfg)


def test_validate_remote_requires_url() -> None:
    cfg = ArchfixConfig()
    cfg.retrieval.provider = "remote"
    with pytest.raises(ConfigError, match="remote.url"):
        validate_config(cfg)
