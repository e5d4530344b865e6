"""Reference index: embedded snippets with nearest-neighbour search.

Every public operation on :class:`ReferenceIndex` is guarded: when the
backend is unavailable it is a logged no-op, and backend exceptions are
caught, logged and converted into empty / failure results. Concrete
backends implement the ``_do_*`` hooks only.
"""

from __future__ import annotations

import math
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from loguru import logger

from archfix.models import ReferenceSnippet


@dataclass
class SearchHit:
    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


def cosine_similarity(a: list[float] | tuple[float, ...], b: list[float] | tuple[float, ...]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector has zero norm.

    Vectors of different lengths are compared over the shorter prefix.
    """
    n = min(len(a), len(b))
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for i in range(n):
        dot += a[i] * b[i]
        norm_a += a[i] * a[i]
        norm_b += b[i] * b[i]
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


class ReferenceIndex(ABC):
    """Guarded facade over a vector backend."""

    def available(self) -> bool:
        try:
            return self._do_available()
        except Exception as exc:
            logger.warning("{} availability check failed: {}", type(self).__name__, exc)
            return False

    def upsert(self, snippet_id: str, embedding: list[float], metadata: dict[str, Any] | None = None) -> bool:
        if not self.available():
            logger.debug("Reference index unavailable; skipping upsert of {}", snippet_id)
            return False
        if not embedding:
            logger.warning("Refusing to index {} with an empty embedding", snippet_id)
            return False
        try:
            return self._do_upsert(snippet_id, list(embedding), dict(metadata or {}))
        except Exception as exc:
            logger.error("Upsert of {} failed: {}", snippet_id, exc)
            return False

    def search(self, query: list[float], top_k: int) -> list[SearchHit]:
        """Best-first hits for *query*; empty when unavailable or on error."""
        if not self.available() or not query or top_k < 1:
            return []
        try:
            return self._do_search(list(query), top_k)
        except Exception as exc:
            logger.error("Reference search failed: {}", exc)
            return []

    def get_by_id(self, snippet_id: str) -> ReferenceSnippet | None:
        if not self.available():
            return None
        try:
            return self._do_get(snippet_id)
        except Exception as exc:
            logger.error("Fetch of {} failed: {}", snippet_id, exc)
            return None

    def delete(self, snippet_id: str) -> bool:
        if not self.available():
            return False
        try:
            return self._do_delete(snippet_id)
        except Exception as exc:
            logger.error("Delete of {} failed: {}", snippet_id, exc)
            return False

    def shutdown(self) -> None:
        """Release backend resources. Idempotent."""

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _do_available(self) -> bool: ...

    @abstractmethod
    def _do_upsert(self, snippet_id: str, embedding: list[float], metadata: dict[str, Any]) -> bool: ...

    @abstractmethod
    def _do_search(self, query: list[float], top_k: int) -> list[SearchHit]: ...

    @abstractmethod
    def _do_get(self, snippet_id: str) -> ReferenceSnippet | None: ...

    @abstractmethod
    def _do_delete(self, snippet_id: str) -> bool: ...


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class _ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class InMemoryReferenceIndex(ReferenceIndex):
    """Exact linear-scan cosine search over snippets held in memory.

    Ties are broken by insertion order. Re-upserting an id replaces its
    vector but keeps its original position.
    """

    def __init__(self) -> None:
        self._snippets: dict[str, ReferenceSnippet] = {}
        self._lock = _ReadWriteLock()

    def _do_available(self) -> bool:
        return True

    def _do_upsert(self, snippet_id: str, embedding: list[float], metadata: dict[str, Any]) -> bool:
        snippet = ReferenceSnippet(
            id=snippet_id,
            text=str(metadata.get("content", "")),
            embedding=tuple(float(x) for x in embedding),
            metadata=metadata,
        )
        with self._lock.write():
            self._snippets[snippet_id] = snippet
        return True

    def _do_search(self, query: list[float], top_k: int) -> list[SearchHit]:
        with self._lock.read():
            snippets = list(self._snippets.values())
        mismatched = sorted({len(s.embedding) for s in snippets} - {len(query)})
        if mismatched:
            # scores over truncated vectors are not comparable across calls
            logger.warning(
                "Embedding dimension mismatch (query {} vs stored {}); comparing truncated vectors",
                len(query),
                ", ".join(str(n) for n in mismatched),
            )
        scored = [
            SearchHit(id=s.id, score=cosine_similarity(query, s.embedding), metadata=dict(s.metadata))
            for s in snippets
        ]
        # sorted() is stable, so equal scores keep insertion order
        scored = sorted(scored, key=lambda h: h.score, reverse=True)
        return scored[:top_k]

    def _do_get(self, snippet_id: str) -> ReferenceSnippet | None:
        with self._lock.read():
            return self._snippets.get(snippet_id)

    def _do_delete(self, snippet_id: str) -> bool:
        with self._lock.write():
            return self._snippets.pop(snippet_id, None) is not None

    # ------------------------------------------------------------------
    # Extras
    # ------------------------------------------------------------------

    def bulk_upsert(self, items: list[tuple[str, list[float], dict[str, Any]]]) -> int:
        """Upsert several snippets; returns how many were stored."""
        return sum(1 for sid, vec, meta in items if self.upsert(sid, vec, meta))

    def count(self) -> int:
        with self._lock.read():
            return len(self._snippets)

    def clear(self) -> None:
        with self._lock.write():
            self._snippets.clear()

    def shutdown(self) -> None:
        self.clear()
