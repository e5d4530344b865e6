"""Retrieval quality evaluation.

Two measurements:

* ``evaluate_queries``: for each test query, how many hits came back, the
  top score, how many expected keywords appear in retrieved content, and the
  embedding / search latency.
* ``evaluate_embedding_quality``: mean pairwise cosine similarity of stored
  snippets within each named group (related documents should score high).

Reports can be written as ``rag_eval_<timestamp>.json``.
"""

from __future__ import annotations

import json
import time
from datetime import datetime
from itertools import combinations
from pathlib import Path
from typing import Any

from loguru import logger

from archfix.rag.index import cosine_similarity
from archfix.rag.service import RagService

_EXCERPT_CHARS = 200


class RagEvaluator:
    def __init__(self, service: RagService, output_dir: Path | None = None) -> None:
        self.service = service
        self.output_dir = output_dir

    # ------------------------------------------------------------------
    # Query evaluation
    # ------------------------------------------------------------------

    def evaluate_query(self, query: str, expected_keywords: list[str] | None = None) -> dict[str, Any]:
        keywords = [k.lower() for k in (expected_keywords or [])]
        result: dict[str, Any] = {"query": query, "expected_keywords": list(expected_keywords or [])}

        started = time.perf_counter()
        vector = self.service.embedder.embed(query)
        embedded = time.perf_counter()
        hits = self.service.index.search(vector, self.service.max_results) if vector else []
        searched = time.perf_counter()

        formatted: list[dict[str, Any]] = []
        total_hits = 0
        for hit in hits:
            content = str(hit.metadata.get("content", ""))
            lowered = content.lower()
            kw_hits = sum(1 for k in keywords if k in lowered)
            total_hits += kw_hits
            formatted.append(
                {
                    "id": hit.id,
                    "score": hit.score,
                    "title": hit.metadata.get("title", "Untitled"),
                    "content_excerpt": content if len(content) <= _EXCERPT_CHARS else content[:_EXCERPT_CHARS] + "...",
                    "keyword_hits": kw_hits,
                }
            )

        top_score = hits[0].score if hits else 0.0
        result.update(
            {
                "embedding_time_ms": round((embedded - started) * 1000, 3),
                "search_time_ms": round((searched - embedded) * 1000, 3),
                "total_time_ms": round((searched - started) * 1000, 3),
                "results_count": len(hits),
                "top_score": top_score,
                "keyword_hits": total_hits,
                "results": formatted,
            }
        )
        return result

    def evaluate_queries(
        self,
        queries: list[str],
        expected_keywords: dict[str, list[str]] | None = None,
        save: bool = True,
    ) -> dict[str, Any]:
        """Evaluate every query and aggregate; writes a report when configured."""
        if not self.service.available():
            logger.error("Cannot evaluate retrieval: embedder or index unavailable")
            return {}

        expected = expected_keywords or {}
        per_query = [self.evaluate_query(q, expected.get(q)) for q in queries]
        total = len(per_query)

        report: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "total_queries": total,
            "avg_top_score": sum(r["top_score"] for r in per_query) / total if total else 0.0,
            "avg_keyword_hits": sum(r["keyword_hits"] for r in per_query) / total if total else 0.0,
            "keyword_hit_rate": sum(1 for r in per_query if r["keyword_hits"] > 0) / total if total else 0.0,
            "query_results": per_query,
        }
        if save:
            report["report_path"] = str(self.save(report)) if self.output_dir else None
        return report

    # ------------------------------------------------------------------
    # Embedding quality
    # ------------------------------------------------------------------

    def evaluate_embedding_quality(self, groups: dict[str, list[str]]) -> dict[str, Any]:
        """Mean pairwise similarity of stored snippets per group of ids."""
        group_results: list[dict[str, Any]] = []
        for name, ids in groups.items():
            vectors = []
            for sid in ids:
                snippet = self.service.index.get_by_id(sid)
                if snippet is not None and snippet.embedding:
                    vectors.append(snippet.embedding)
            sims = [cosine_similarity(a, b) for a, b in combinations(vectors, 2)]
            group_results.append(
                {
                    "group_name": name,
                    "document_count": len(ids),
                    "retrieved_documents": len(vectors),
                    "similarity_pairs": len(sims),
                    "avg_intra_group_similarity": sum(sims) / len(sims) if sims else 0.0,
                }
            )

        n = len(group_results)
        return {
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "embedding_dimension": self.service.embedder.dimension,
            "avg_intra_group_similarity": (
                sum(g["avg_intra_group_similarity"] for g in group_results) / n if n else 0.0
            ),
            "group_results": group_results,
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, report: dict[str, Any]) -> Path:
        if self.output_dir is None:
            raise ValueError("RagEvaluator has no output_dir to save to")
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"rag_eval_{datetime.now():%Y%m%d_%H%M%S}.json"
        path.write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")
        logger.info("Saved retrieval evaluation to {}", path)
        return path
