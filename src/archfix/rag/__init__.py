"""archfix retrieval: embeddings, reference index, context assembly."""

from __future__ import annotations

from loguru import logger

from archfix.config import RetrievalCfg
from archfix.rag.embeddings import EmbeddingProvider, LiteLLMEmbeddingProvider
from archfix.rag.index import InMemoryReferenceIndex, ReferenceIndex, SearchHit
from archfix.rag.remote import RemoteReferenceIndex
from archfix.rag.service import RagService


def build_index(cfg: RetrievalCfg) -> ReferenceIndex:
    """Reference index for the configured provider."""
    if cfg.provider == "remote":
        return RemoteReferenceIndex(
            cfg.remote.url,
            api_key=cfg.remote.api_key,
            namespace=cfg.remote.namespace,
            timeout=cfg.remote.timeout,
        )
    return InMemoryReferenceIndex()


def build_service(cfg: RetrievalCfg, embedder: EmbeddingProvider | None = None) -> RagService:
    """Wire a RagService from config; the embedder defaults to LiteLLM."""
    embedder = embedder or LiteLLMEmbeddingProvider(cfg.embedding_model)
    logger.debug("Retrieval provider={} model={}", cfg.provider, cfg.embedding_model)
    return RagService(
        build_index(cfg),
        embedder,
        max_results=cfg.top_k,
        min_score=cfg.min_score,
        enabled=cfg.enabled,
    )


__all__ = [
    "EmbeddingProvider",
    "InMemoryReferenceIndex",
    "LiteLLMEmbeddingProvider",
    "RagService",
    "ReferenceIndex",
    "RemoteReferenceIndex",
    "SearchHit",
    "build_index",
    "build_service",
]
