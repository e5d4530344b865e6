"""Tests for line-window chunking and the split() entry point."""

from __future__ import annotations

import pytest

from archfix.chunking import LineChunker, detect_mode, split, split_with_config
from archfix.config import ChunkingCfg, ConfigError
from archfix.models import SourceUnit


def _unit(n_lines: int, name: str = "data.cfg") -> SourceUnit:
    return SourceUnit.from_text(name, "\n".join(f"line {i}" for i in range(1, n_lines + 1)))


# ------------------------------------------------------------------
# LineChunker
# ------------------------------------------------------------------


def test_windows_without_overlap():
    chunks = LineChunker(max_size=4, overlap=0).chunk(_unit(10))
    assert [c.text.splitlines()[0] for c in chunks] == ["line 1", "line 5", "line 9"]
    assert chunks[-1].text == "line 9\nline 10"


def test_windows_with_overlap_advance_by_step():
    chunks = LineChunker(max_size=4, overlap=1).chunk(_unit(10))
    # step = 3: windows start at lines 1, 4, 7
    assert [c.text.splitlines()[0] for c in chunks] == ["line 1", "line 4", "line 7"]
    assert chunks[0].text.splitlines()[-1] == chunks[1].text.splitlines()[0]


def test_indices_are_one_based_and_sequential():
    chunks = LineChunker(max_size=3, overlap=0).chunk(_unit(9))
    assert [c.index for c in chunks] == [1, 2, 3]
    assert all(c.unit_id == "data.cfg" for c in chunks)
    assert all(c.label == "window" for c in chunks)


def test_empty_input_returns_empty_list():
    assert LineChunker(max_size=3).chunk(SourceUnit.from_text("e.cfg", "")) == []


def test_max_size_not_above_overlap_raises():
    with pytest.raises(ConfigError):
        LineChunker(max_size=3, overlap=3)


def test_chunking_is_deterministic():
    unit = _unit(57)
    assert LineChunker(max_size=7, overlap=2).chunk(unit) == LineChunker(max_size=7, overlap=2).chunk(unit)


# ------------------------------------------------------------------
# split()
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "name,mode",
    [("a/b.py", "structure"), ("README.md", "paragraph"), ("notes.txt", "paragraph"), ("x.java", "lines")],
)
def test_detect_mode_by_extension(name, mode):
    assert detect_mode(name) == mode


def test_split_rejects_unknown_mode():
    with pytest.raises(ConfigError, match="Unknown chunking mode"):
        split(_unit(3), 10, 0, "tokens")


def test_split_rejects_overlap_equal_to_max_size():
    with pytest.raises(ConfigError):
        split(_unit(3), 5, 5, "lines")


def test_split_auto_uses_line_mode_for_unknown_extension():
    chunks = split(_unit(5), 2, 0, "auto")
    assert len(chunks) == 3
    assert chunks[0].label == "window"


def test_split_with_config_uses_paragraph_sizes_for_markdown():
    unit = SourceUnit.from_text("doc.md", "alpha\n\nbeta\n\ngamma")
    cfg = ChunkingCfg(paragraph_max_chars=12, paragraph_overlap=0)
    chunks = split_with_config(unit, cfg)
    assert [c.label for c in chunks] == ["paragraph"] * len(chunks)
    assert len(chunks) == 2
