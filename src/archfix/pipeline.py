"""Wire the pipeline components from an :class:`ArchfixConfig`.

Collaborators that talk to the outside world (transformer, embedder) can be
injected; by default they are the LiteLLM-backed implementations.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from archfix.config import ArchfixConfig
from archfix.db.cache import ContentCache
from archfix.rag import build_service
from archfix.rag.assembler import AssemblerConfig, ContextAssembler
from archfix.rag.embeddings import EmbeddingProvider
from archfix.rag.processor import DocumentProcessor
from archfix.rag.service import RagService
from archfix.refactor.merger import MergeStrategy, StructuralMerger
from archfix.refactor.orchestrator import Orchestrator
from archfix.refactor.parser import PythonParser
from archfix.refactor.transformer import LiteLLMTransformer, Transformer
from archfix.refactor.validation import ValidationLoop


@dataclass
class Pipeline:
    orchestrator: Orchestrator
    rag: RagService
    cache: ContentCache

    def index_context(self, path: Path) -> int:
        """Index reference code/docs at *path*; returns files indexed."""
        if not self.rag.available():
            logger.warning("Retrieval unavailable; reference context at {} not indexed", path)
            return 0
        return DocumentProcessor(self.rag, self.orchestrator.chunking).process_path(path)

    def close(self) -> None:
        self.cache.close()
        self.rag.index.shutdown()


def build_pipeline(
    cfg: ArchfixConfig,
    *,
    transformer: Transformer | None = None,
    embedder: EmbeddingProvider | None = None,
    cache_path: Path | None = None,
) -> Pipeline:
    g = cfg.generation
    transformer = transformer or LiteLLMTransformer(
        model=g.model,
        timeout=g.request_timeout,
        max_tokens=g.max_tokens,
        temperature=g.temperature,
        num_retries=g.num_retries,
    )
    parser = PythonParser()
    rag = build_service(cfg.retrieval, embedder)
    assembler = ContextAssembler(
        rag,
        AssemblerConfig(
            top_k=cfg.retrieval.top_k,
            query_chars=cfg.retrieval.query_chars,
            default_snippet=cfg.retrieval.default_snippet,
        ),
    )
    loop = ValidationLoop(
        transformer,
        parser,
        base_policy=cfg.prompt.base_policy,
        max_attempts=g.max_attempts,
    )
    merger = StructuralMerger(
        MergeStrategy(
            removal_list=list(cfg.merge.removal_list),
            domain_keywords=list(cfg.merge.domain_keywords),
        ),
        parser,
    )
    cache = ContentCache(cache_path or Path(cfg.run.cache_path), enabled=cfg.run.cache_enabled)
    orchestrator = Orchestrator(
        loop=loop,
        assembler=assembler,
        merger=merger,
        cache=cache,
        chunking=cfg.chunking,
        top_k=cfg.retrieval.top_k,
        max_attempts=g.max_attempts,
        concurrency=cfg.run.concurrency,
        chunk_concurrency=cfg.run.chunk_concurrency,
        shutdown_timeout=cfg.run.shutdown_timeout,
        rag=rag,
        index_processed=cfg.retrieval.index_processed,
    )
    return Pipeline(orchestrator=orchestrator, rag=rag, cache=cache)
