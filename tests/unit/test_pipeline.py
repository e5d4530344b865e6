"""Tests for wiring the pipeline from config."""

from __future__ import annotations

from pathlib import Path

from conftest import FakeEmbedder, FakeTransformer, verdict_json
from archfix.config import ArchfixConfig
from archfix.models import SourceUnit, UnitStatus
from archfix.pipeline import build_pipeline
from archfix.rag.index import InMemoryReferenceIndex
from archfix.refactor.transformer import LiteLLMTransformer


def test_build_pipeline_applies_config(tmp_path: Path):
    cfg = ArchfixConfig()
    cfg.generation.max_attempts = 5
    cfg.merge.removal_list = ["save_direct"]
    cfg.run.concurrency = 7
    pipeline = build_pipeline(cfg, embedder=FakeEmbedder(), cache_path=tmp_path / "c.db")
    orch = pipeline.orchestrator
    assert isinstance(orch.loop.transformer, LiteLLMTransformer)
    assert orch.loop.transformer.model == cfg.generation.model
    assert orch.loop.max_attempts == 5
    assert orch.merger.strategy.removal_list == ["save_direct"]
    assert orch.concurrency == 7
    assert isinstance(pipeline.rag.index, InMemoryReferenceIndex)
    pipeline.close()


def test_disabled_cache_in_config(tmp_path: Path):
    cfg = ArchfixConfig()
    cfg.run.cache_enabled = False
    pipeline = build_pipeline(cfg, embedder=FakeEmbedder(), cache_path=tmp_path / "c.db")
    assert pipeline.cache.enabled is False
    pipeline.close()


def test_index_context_then_run(tmp_path: Path):
    ref = tmp_path / "ref"
    ref.mkdir()
    (ref / "port.py").write_text("class StockPort:\n    def save(self, item): ...\n", encoding="utf-8")

    transformer = FakeTransformer([verdict_json(False, "ok")])
    pipeline = build_pipeline(
        ArchfixConfig(), transformer=transformer, embedder=FakeEmbedder(), cache_path=tmp_path / "c.db"
    )
    try:
        assert pipeline.index_context(ref) == 1
        unit = SourceUnit.from_text("svc.py", "class StockPort:\n    def save(self, item): ...\n")
        [outcome] = pipeline.orchestrator.run_all([unit])
    finally:
        pipeline.close()

    assert outcome.status is UnitStatus.OK
    prompt = transformer.calls[0][1]["content"]
    assert "# === Reference Code Snippets ===" in prompt
    assert "port.py (Chunk 1 of 1)" in prompt


def test_index_context_without_retrieval(tmp_path: Path):
    pipeline = build_pipeline(
        ArchfixConfig(), embedder=FakeEmbedder(available=False), cache_path=tmp_path / "c.db"
    )
    assert pipeline.index_context(tmp_path) == 0
    pipeline.close()
