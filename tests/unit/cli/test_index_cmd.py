"""Tests for archfix index and archfix evaluate."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import FakeEmbedder
from archfix.cli.evaluate import load_queries
from archfix.cli.main import app
from archfix.config import ConfigError
from archfix.logger import configure_logger
from archfix.rag import build_service

runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    configure_logger()


@pytest.fixture
def refs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    ref = tmp_path / "ref"
    (ref / "nested").mkdir(parents=True)
    (ref / "ports.md").write_text("stock repository port owned by the domain", encoding="utf-8")
    (ref / "nested" / "adapter.py").write_text("class SqlStockRepository:\n    pass\n", encoding="utf-8")
    return ref


def _fake_embeddings(monkeypatch: pytest.MonkeyPatch, module: str, available: bool = True) -> None:
    monkeypatch.setattr(
        f"archfix.cli.{module}.build_service",
        lambda cfg: build_service(cfg, FakeEmbedder(available=available)),
    )


# ---------------------------------------------------------------------------
# index
# ---------------------------------------------------------------------------


def test_index_counts_files(refs: Path, monkeypatch):
    _fake_embeddings(monkeypatch, "index")
    result = runner.invoke(app, ["index", "--source", str(refs)])
    assert result.exit_code == 0, result.output
    assert "2 file(s) indexed" in result.output
    assert "inmemory" in result.output


def test_index_no_recursive(refs: Path, monkeypatch):
    _fake_embeddings(monkeypatch, "index")
    result = runner.invoke(app, ["index", "--source", str(refs), "--no-recursive"])
    assert "1 file(s) indexed" in result.output


def test_index_missing_source(refs: Path, monkeypatch):
    _fake_embeddings(monkeypatch, "index")
    result = runner.invoke(app, ["index", "--source", "nowhere"])
    assert result.exit_code == 1
    assert "Source path not found" in result.output


def test_index_retrieval_unavailable(refs: Path, monkeypatch):
    _fake_embeddings(monkeypatch, "index", available=False)
    result = runner.invoke(app, ["index", "--source", str(refs)])
    assert result.exit_code == 1
    assert "Retrieval is unavailable" in result.output


# ---------------------------------------------------------------------------
# evaluate
# ---------------------------------------------------------------------------


def test_load_queries_mixed_entries(tmp_path: Path):
    path = tmp_path / "q.yaml"
    path.write_text(
        "queries:\n  - plain query\n  - query: stock port\n    keywords: [stock, port]\n",
        encoding="utf-8",
    )
    queries, keywords = load_queries(path)
    assert queries == ["plain query", "stock port"]
    assert keywords == {"stock port": ["stock", "port"]}


@pytest.mark.parametrize("text", ["queries: nope\n", "queries:\n  - {keywords: [a]}\n", "queries: [unclosed\n"])
def test_load_queries_rejects_bad_files(tmp_path: Path, text: str):
    path = tmp_path / "q.yaml"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_queries(path)


def test_evaluate_writes_report(refs: Path, tmp_path: Path, monkeypatch):
    _fake_embeddings(monkeypatch, "evaluate")
    queries = tmp_path / "q.yaml"
    queries.write_text("queries:\n  - query: stock repository port\n    keywords: [domain]\n", encoding="utf-8")
    result = runner.invoke(
        app,
        ["evaluate", "--queries", str(queries), "--context", str(refs), "--output", str(tmp_path / "eval")],
    )
    assert result.exit_code == 0, result.output
    [report] = list((tmp_path / "eval").glob("rag_eval_*.json"))
    data = json.loads(report.read_text(encoding="utf-8"))
    assert data["total_queries"] == 1
    assert data["query_results"][0]["keyword_hits"] >= 1


def test_evaluate_missing_queries_file(refs: Path, monkeypatch):
    _fake_embeddings(monkeypatch, "evaluate")
    result = runner.invoke(app, ["evaluate", "--queries", "missing.yaml"])
    assert result.exit_code == 1
