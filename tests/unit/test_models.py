"""Tests for shared domain models."""

from __future__ import annotations

import hashlib
from pathlib import Path

from archfix.models import ChunkVerdict, FileVerdict, SourceUnit, content_hash


def test_content_hash_is_sha256():
    assert content_hash(b"abc") == hashlib.sha256(b"abc").hexdigest()


def test_from_path_uses_relative_posix_id(tmp_path: Path):
    f = tmp_path / "pkg" / "item.py"
    f.parent.mkdir()
    f.write_bytes(b"x = 1\r\n")
    unit = SourceUnit.from_path(f, tmp_path)
    assert unit.id == "pkg/item.py"
    # hash covers the exact bytes, line endings included
    assert unit.hash == content_hash(b"x = 1\r\n")
    assert unit.path == f


def test_from_text_and_from_path_agree(tmp_path: Path):
    f = tmp_path / "a.py"
    f.write_text("y = 2\n", encoding="utf-8")
    assert SourceUnit.from_path(f, tmp_path).hash == SourceUnit.from_text("a.py", "y = 2\n").hash


def test_fallback_count():
    verdict = FileVerdict(
        "a.py",
        [ChunkVerdict(1, True, "r", "", fallback=True), ChunkVerdict(2, False, "ok", "")],
        True,
        "",
        "",
    )
    assert verdict.fallback_count == 1


def test_chunk_verdict_from_dict_defaults():
    v = ChunkVerdict.from_dict({"index": 4, "violation": False})
    assert (v.reason, v.fix, v.attempts, v.fallback) == ("", "", 1, False)
