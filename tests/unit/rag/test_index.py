"""Tests for cosine similarity and the in-memory reference index."""

from __future__ import annotations

import math
import threading

import pytest
from loguru import logger

from archfix.rag.index import InMemoryReferenceIndex, ReferenceIndex, cosine_similarity


# ------------------------------------------------------------------
# cosine_similarity
# ------------------------------------------------------------------


def test_cosine_identical_vectors_is_one():
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_cosine_orthogonal_is_zero():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_cosine_opposite_is_minus_one():
    assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)


def test_cosine_zero_norm_is_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_cosine_length_mismatch_compares_prefix():
    assert cosine_similarity([1.0, 0.0, 5.0], [1.0, 0.0]) == pytest.approx(1.0)


# ------------------------------------------------------------------
# InMemoryReferenceIndex
# ------------------------------------------------------------------


@pytest.fixture
def index():
    idx = InMemoryReferenceIndex()
    idx.upsert("east", [1.0, 0.0], {"title": "east", "content": "E"})
    idx.upsert("north", [0.0, 1.0], {"title": "north", "content": "N"})
    idx.upsert("northeast", [1.0, 1.0], {"title": "ne", "content": "NE"})
    return idx


def test_search_is_best_first_and_bounded(index):
    hits = index.search([1.0, 0.1], top_k=2)
    assert [h.id for h in hits] == ["east", "northeast"]
    assert hits[0].score >= hits[1].score
    assert hits[0].score == pytest.approx(1.0 / math.sqrt(1.01))


def test_search_ties_keep_insertion_order():
    idx = InMemoryReferenceIndex()
    idx.upsert("first", [1.0, 0.0], {})
    idx.upsert("second", [2.0, 0.0], {})
    assert [h.id for h in idx.search([1.0, 0.0], top_k=2)] == ["first", "second"]


def test_search_rejects_empty_query_and_bad_top_k(index):
    assert index.search([], top_k=3) == []
    assert index.search([1.0, 0.0], top_k=0) == []


def test_upsert_replaces_existing(index):
    index.upsert("east", [0.0, 1.0], {"content": "moved"})
    assert index.count() == 3
    assert index.get_by_id("east").text == "moved"


def test_upsert_rejects_empty_embedding(index):
    assert index.upsert("blank", [], {}) is False
    assert index.get_by_id("blank") is None


def test_get_and_delete(index):
    snippet = index.get_by_id("north")
    assert snippet.embedding == (0.0, 1.0)
    assert snippet.metadata["title"] == "north"
    assert index.delete("north") is True
    assert index.delete("north") is False
    assert index.get_by_id("north") is None


def test_bulk_upsert_and_clear():
    idx = InMemoryReferenceIndex()
    stored = idx.bulk_upsert([("a", [1.0], {}), ("b", [], {}), ("c", [2.0], {})])
    assert stored == 2
    idx.shutdown()
    assert idx.count() == 0


def test_concurrent_upserts_and_searches():
    idx = InMemoryReferenceIndex()

    def writer(n):
        for i in range(50):
            idx.upsert(f"{n}-{i}", [float(i + 1), 1.0], {})

    def reader():
        for _ in range(50):
            idx.search([1.0, 1.0], top_k=5)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    threads += [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert idx.count() == 200


# ------------------------------------------------------------------
# Guarded facade
# ------------------------------------------------------------------


class _BrokenIndex(ReferenceIndex):
    def __init__(self, up: bool = True) -> None:
        self.up = up

    def _do_available(self):
        return self.up

    def _do_upsert(self, snippet_id, embedding, metadata):
        raise RuntimeError("write failed")

    def _do_search(self, query, top_k):
        raise RuntimeError("search failed")

    def _do_get(self, snippet_id):
        raise RuntimeError("get failed")

    def _do_delete(self, snippet_id):
        raise RuntimeError("delete failed")


def test_backend_errors_become_empty_results():
    idx = _BrokenIndex()
    assert idx.upsert("x", [1.0], {}) is False
    assert idx.search([1.0], 3) == []
    assert idx.get_by_id("x") is None
    assert idx.delete("x") is False


def test_unavailable_backend_is_a_noop():
    idx = _BrokenIndex(up=False)
    assert idx.available() is False
    assert idx.search([1.0], 3) == []
    assert idx.upsert("x", [1.0], {}) is False


@pytest.fixture
def logged_warnings():
    records: list = []
    sink_id = logger.add(lambda m: records.append(m.record["message"]), level="WARNING")
    yield records
    logger.remove(sink_id)


def test_dimension_mismatch_warns_once_per_search(logged_warnings):
    idx = InMemoryReferenceIndex()
    for i in range(5):
        idx.upsert(f"s{i}", [1.0, float(i), 0.0], {"content": str(i)})
    hits = idx.search([1.0, 0.0], top_k=5)
    assert len(hits) == 5
    mismatch = [w for w in logged_warnings if "dimension mismatch" in w]
    assert len(mismatch) == 1
    assert "query 2 vs stored 3" in mismatch[0]


def test_matching_dimensions_do_not_warn(logged_warnings):
    idx = InMemoryReferenceIndex()
    idx.upsert("a", [1.0, 0.0], {})
    idx.search([1.0, 0.0], top_k=1)
    assert logged_warnings == []
