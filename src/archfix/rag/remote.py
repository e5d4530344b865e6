"""Reference index backed by a remote JSON-over-HTTP vector service.

Speaks the Pinecone-style data-plane API:

  POST /describe_index_stats   availability probe
  POST /vectors/upsert         {vectors: [{id, values, metadata}], namespace}
  POST /query                  {vector, topK, namespace, includeMetadata}
  POST /vectors/fetch          {ids, namespace} → {vectors: {id: {values, metadata}}}
  POST /vectors/delete         {ids, namespace}

The API key is read from ARCHFIX_VECTOR_API_KEY (never from config files) and
sent as the ``Api-Key`` header.
"""

from __future__ import annotations

import json
import threading
import urllib.error
import urllib.request
from typing import Any

from loguru import logger

from archfix.models import ReferenceSnippet
from archfix.rag.index import ReferenceIndex, SearchHit

_USER_AGENT = "archfix/0.1 (reference-index)"


class RemoteIndexError(RuntimeError):
    """Raised internally for non-2xx responses or unreachable services."""


class RemoteReferenceIndex(ReferenceIndex):
    def __init__(self, url: str, api_key: str = "", namespace: str = "", timeout: float = 30.0) -> None:
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.namespace = namespace
        self.timeout = timeout
        self._available: bool | None = None
        self._probe_lock = threading.Lock()

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        body = json.dumps(payload).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": _USER_AGENT,
        }
        if self.api_key:
            headers["Api-Key"] = self.api_key
        request = urllib.request.Request(
            f"{self.url}{path}", data=body, headers=headers, method="POST"
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            raise RemoteIndexError(f"{path} returned HTTP {exc.code}") from exc
        except urllib.error.URLError as exc:
            raise RemoteIndexError(f"{path} failed: {exc.reason}") from exc
        if not raw:
            return {}
        return json.loads(raw.decode("utf-8"))

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    def _do_available(self) -> bool:
        with self._probe_lock:
            if self._available is None:
                try:
                    self._post("/describe_index_stats", {})
                    self._available = True
                    logger.info("Remote reference index reachable at {}", self.url)
                except (RemoteIndexError, ValueError) as exc:
                    logger.warning("Remote reference index unavailable: {}", exc)
                    self._available = False
            return self._available

    def _do_upsert(self, snippet_id: str, embedding: list[float], metadata: dict[str, Any]) -> bool:
        result = self._post(
            "/vectors/upsert",
            {
                "vectors": [{"id": snippet_id, "values": embedding, "metadata": metadata}],
                "namespace": self.namespace,
            },
        )
        return int(result.get("upsertedCount", 1)) > 0

    def _do_search(self, query: list[float], top_k: int) -> list[SearchHit]:
        result = self._post(
            "/query",
            {
                "vector": query,
                "topK": top_k,
                "namespace": self.namespace,
                "includeMetadata": True,
            },
        )
        hits = [
            SearchHit(
                id=str(m.get("id", "")),
                score=float(m.get("score", 0.0)),
                metadata=dict(m.get("metadata") or {}),
            )
            for m in result.get("matches", [])
        ]
        return sorted(hits, key=lambda h: h.score, reverse=True)[:top_k]

    def _do_get(self, snippet_id: str) -> ReferenceSnippet | None:
        result = self._post("/vectors/fetch", {"ids": [snippet_id], "namespace": self.namespace})
        vec = (result.get("vectors") or {}).get(snippet_id)
        if not vec:
            return None
        metadata = dict(vec.get("metadata") or {})
        return ReferenceSnippet(
            id=snippet_id,
            text=str(metadata.get("content", "")),
            embedding=tuple(float(x) for x in vec.get("values", [])),
            metadata=metadata,
        )

    def _do_delete(self, snippet_id: str) -> bool:
        self._post("/vectors/delete", {"ids": [snippet_id], "namespace": self.namespace})
        return True

    def shutdown(self) -> None:
        self._available = None
