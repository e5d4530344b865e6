"""Embedding providers.

Providers never raise from ``embed``/``embed_batch``: a failed call is logged
and yields an empty vector, which callers treat as "no retrieval".
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from loguru import logger

from archfix.rag import llm_client


@runtime_checkable
class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> list[float]: ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]: ...

    @property
    def dimension(self) -> int | None: ...

    def available(self) -> bool: ...


class LiteLLMEmbeddingProvider:
    """Embeddings through LiteLLM, batched.

    Attributes:
        model: LiteLLM embedding model string (provider/model format).
        batch_size: Maximum texts per embedding request.
    """

    def __init__(self, model: str, batch_size: int = 20, num_retries: int = 3) -> None:
        self.model = model
        self.batch_size = max(1, batch_size)
        self.num_retries = num_retries
        self._dimension: int | None = None

    @property
    def dimension(self) -> int | None:
        """Vector length, known after the first successful call."""
        return self._dimension

    def available(self) -> bool:
        try:
            llm_client.validate_api_key(self.model)
        except EnvironmentError:
            return False
        return True

    def embed(self, text: str) -> list[float]:
        if not text.strip():
            return []
        vectors = self.embed_batch([text])
        return vectors[0] if vectors else []

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in batches; a failed batch yields empty vectors."""
        out: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            try:
                vectors = llm_client.embed_batch(
                    self.model, batch, num_retries=self.num_retries
                )
            except Exception as exc:
                logger.warning("Embedding batch of {} failed: {}", len(batch), exc)
                vectors = [[] for _ in batch]
            for vec in vectors:
                if vec and self._dimension is None:
                    self._dimension = len(vec)
            out.extend(vectors)
        return out
