"""Tests for folding chunk verdicts into a file verdict."""

from __future__ import annotations

import ast

from archfix.models import ChunkVerdict, SourceUnit
from archfix.refactor.aggregator import aggregate, split_fix_blocks

UNIT = SourceUnit.from_text("inventory.py", "x = 1\n")


def test_all_clean_gives_empty_fix():
    verdict = aggregate(UNIT, [ChunkVerdict(1, False, "ok", ""), ChunkVerdict(2, False, "ok", "")])
    assert verdict.violation is False
    assert verdict.fix == ""
    assert verdict.reason == "Chunk 1 => no violation\nChunk 2 => no violation"


def test_markers_follow_chunk_order_even_when_out_of_order():
    verdicts = [
        ChunkVerdict(3, True, "db call", "def c():\n    pass"),
        ChunkVerdict(1, False, "ok", ""),
        ChunkVerdict(2, True, "rule in repo", "def b():\n    pass"),
    ]
    verdict = aggregate(UNIT, verdicts)
    assert verdict.violation is True
    assert [c.index for c in verdict.chunks] == [1, 2, 3]
    assert verdict.fix == (
        "# --- chunk 1 => no violation\n"
        "# --- fix for chunk 2 ---\n"
        "def b():\n    pass\n"
        "# --- fix for chunk 3 ---\n"
        "def c():\n    pass"
    )
    assert verdict.reason.splitlines() == [
        "Chunk 1 => no violation",
        "Chunk 2 => rule in repo",
        "Chunk 3 => db call",
    ]


def test_violation_with_empty_fix_keeps_marker():
    verdict = aggregate(UNIT, [ChunkVerdict(1, True, "needs port", "")])
    assert verdict.fix == "# --- fix for chunk 1 ---"
    assert split_fix_blocks(verdict.fix) == []


def test_split_fix_blocks_returns_fix_bodies_only():
    verdict = aggregate(
        UNIT,
        [
            ChunkVerdict(1, True, "a", "def a():\n    return 1"),
            ChunkVerdict(2, False, "ok", ""),
            ChunkVerdict(4, True, "b", "def b():\n    return 2\n"),
        ],
    )
    assert split_fix_blocks(verdict.fix) == [
        (1, "def a():\n    return 1"),
        (4, "def b():\n    return 2"),
    ]


def test_file_verdict_round_trips_through_dict():
    verdict = aggregate(UNIT, [ChunkVerdict(1, True, "r", "x = 2", attempts=3, fallback=True)])
    again = type(verdict).from_dict(verdict.to_dict())
    assert again == verdict
    assert again.fallback_count == 1


def test_member_level_fixes_are_dedented_under_their_markers():
    verdict = aggregate(
        UNIT,
        [
            ChunkVerdict(2, True, "a", "    def save(self, item):\n        self.repo.save(item)\n"),
            ChunkVerdict(3, True, "b", "    def load(self, sku):\n        return self.repo.get(sku)"),
        ],
    )
    assert verdict.fix == (
        "# --- fix for chunk 2 ---\n"
        "def save(self, item):\n    self.repo.save(item)\n"
        "# --- fix for chunk 3 ---\n"
        "def load(self, sku):\n    return self.repo.get(sku)"
    )
    ast.parse(verdict.fix)
