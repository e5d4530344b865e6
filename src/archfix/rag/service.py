"""Retrieval service: embeds queries and documents and talks to the index.

The service holds explicit references to its embedding provider and its
reference index, both passed in by the caller. Every operation degrades to a
logged no-op (empty / False / 0) when retrieval is disabled or either
collaborator is unavailable.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from archfix.models import ReferenceSnippet
from archfix.rag.embeddings import EmbeddingProvider
from archfix.rag.index import ReferenceIndex, SearchHit

_CONTEXT_HEADER = "RELEVANT CONTEXT:"
_CONTEXT_FOOTER = "Use the above context to inform your response when applicable."


def format_hits(hits: list[SearchHit]) -> str:
    """Render hits as labelled ``# --- title ---`` blocks separated by blank lines."""
    blocks: list[str] = []
    for hit in hits:
        title = str(hit.metadata.get("title", "Untitled Document"))
        content = str(hit.metadata.get("content", ""))
        if content:
            blocks.append(f"# --- {title} ---\n{content}")
    return "\n\n".join(blocks).strip()


class RagService:
    """Facade over an :class:`EmbeddingProvider` and a :class:`ReferenceIndex`.

    Attributes:
        max_results: Default number of hits requested from the index.
        min_score: Hits scoring below this are dropped.
    """

    def __init__(
        self,
        index: ReferenceIndex,
        embedder: EmbeddingProvider,
        *,
        max_results: int = 5,
        min_score: float = 0.7,
        enabled: bool = True,
    ) -> None:
        self.index = index
        self.embedder = embedder
        self.max_results = max_results
        self.min_score = min_score
        self.enabled = enabled
        if enabled and not self.available():
            logger.warning("Retrieval is enabled but the embedder or index is unavailable")

    def available(self) -> bool:
        return self.enabled and self.embedder.available() and self.index.available()

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def retrieve(self, query: str, top_k: int | None = None) -> list[SearchHit]:
        """Hits for *query* at or above ``min_score``, best-first."""
        if not self.available() or not query.strip():
            return []
        try:
            vector = self.embedder.embed(query)
        except Exception as exc:
            logger.warning("Query embedding failed: {}", exc)
            return []
        if not vector:
            logger.debug("Empty query embedding; no retrieval")
            return []
        hits = self.index.search(vector, top_k or self.max_results)
        return [h for h in hits if h.score >= self.min_score]

    def enhance_prompt(self, prompt: str, query: str) -> str:
        """Append a RELEVANT CONTEXT section to *prompt*, or return it unchanged."""
        context = format_hits(self.retrieve(query))
        if not context:
            return prompt
        sep = "" if prompt.endswith("\n\n") else ("\n" if prompt.endswith("\n") else "\n\n")
        return f"{prompt}{sep}{_CONTEXT_HEADER}\n{context}\n\n{_CONTEXT_FOOTER}"

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def index_document(
        self,
        document_id: str,
        title: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        if not self.available():
            logger.debug("Retrieval unavailable; skipping index of {}", document_id)
            return False
        try:
            vector = self.embedder.embed(content)
        except Exception as exc:
            logger.warning("Embedding failed for {}: {}", title, exc)
            return False
        if not vector:
            logger.warning("No embedding for document {}", title)
            return False
        payload: dict[str, Any] = {"title": title, "content": content}
        payload.update(metadata or {})
        ok = self.index.upsert(document_id, vector, payload)
        if ok:
            logger.debug("Indexed reference {}", title)
        else:
            logger.warning("Failed to index reference {}", title)
        return ok

    def index_code_snippets(self, snippets: dict[str, str], language: str = "python") -> int:
        """Index ``{name: code}`` snippets as ``snippet_<name>``; returns the count stored."""
        if not self.available():
            return 0
        stored = sum(
            1
            for name, code in snippets.items()
            if self.index_document(
                f"snippet_{name}",
                name,
                code,
                {"type": "code_snippet", "language": language},
            )
        )
        logger.info("Indexed {}/{} code snippets", stored, len(snippets))
        return stored

    def delete_document(self, document_id: str) -> bool:
        if not self.available():
            return False
        return self.index.delete(document_id)

    def get_document(self, document_id: str) -> ReferenceSnippet | None:
        if not self.available():
            return None
        return self.index.get_by_id(document_id)
