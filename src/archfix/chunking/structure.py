"""Structure-aware chunker for Python source.

Boundaries come from lightweight regex matching, not a parser, so this works
on files that do not parse:

  1. Header region (module docstring, imports, constants) before the first
     top-level ``class``/``def``: one ``header`` chunk.
  2. Each top-level declaration (with its decorators): one chunk if it fits
     in ``max_size`` lines (``type-body`` for classes, ``member`` for
     functions).
  3. An oversized class: its preamble as ``type-header``, then one ``member``
     chunk per method. Oversized members, oversized functions and classes
     without detectable methods fall back to line windows.
  4. No declarations at all: line windows over the whole file, overlap 0.
"""

from __future__ import annotations

import re

from archfix.chunking.base import BaseChunker
from archfix.models import Chunk, SourceUnit

_TOP_LEVEL_RE = re.compile(r"^(?:async\s+def|def|class)\s+\w+")
_CLASS_RE = re.compile(r"^class\s+\w+")
_MEMBER_RE = re.compile(r"^(?P<indent>[ \t]+)(?:async\s+def|def)\s+\w+")


def _attach_decorators(lines: list[str], start: int, indent: str, floor: int) -> int:
    """Move *start* up over decorator lines at *indent* (never above *floor*)."""
    while start - 1 >= floor:
        prev = lines[start - 1]
        if prev.startswith(indent + "@") and not prev[len(indent):].startswith((" ", "\t")):
            start -= 1
        else:
            break
    return start


def _declaration_starts(lines: list[str]) -> list[int]:
    starts: list[int] = []
    for i, line in enumerate(lines):
        if _TOP_LEVEL_RE.match(line):
            floor = starts[-1] + 1 if starts else 0
            starts.append(_attach_decorators(lines, i, "", floor))
    return starts


def _member_starts(lines: list[str], begin: int, end: int) -> list[int]:
    """Start lines of methods directly inside the class spanning [begin, end)."""
    indent: str | None = None
    starts: list[int] = []
    for i in range(begin + 1, end):
        m = _MEMBER_RE.match(lines[i])
        if not m:
            continue
        if indent is None:
            indent = m.group("indent")
        if m.group("indent") != indent:
            continue
        floor = starts[-1] + 1 if starts else begin + 1
        starts.append(_attach_decorators(lines, i, indent, floor))
    return starts


class StructureChunker(BaseChunker):
    """Chunks Python source along class / def boundaries."""

    def chunk(self, unit: SourceUnit) -> list[Chunk]:
        lines = unit.text.splitlines()
        if not unit.text.strip():
            return []

        starts = _declaration_starts(lines)
        if not starts:
            windows = self._line_windows(lines, self.max_size, 0)
            return self._make_chunks(unit.id, [(w, "window") for w in windows])

        parts: list[tuple[str, str | None]] = []

        header = lines[: starts[0]]
        if "\n".join(header).strip():
            parts.extend(self._fit_or_window(header, "header"))

        bounds = starts + [len(lines)]
        for begin, end in zip(bounds, bounds[1:]):
            parts.extend(self._declaration_parts(lines, begin, end))

        return self._make_chunks(unit.id, parts)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fit_or_window(self, lines: list[str], label: str) -> list[tuple[str, str | None]]:
        text = "\n".join(lines)
        if not text.strip():
            return []
        if len(lines) <= self.max_size:
            return [(text, label)]
        return [(w, "window") for w in self._line_windows(lines, self.max_size, self.overlap)]

    def _declaration_parts(self, lines: list[str], begin: int, end: int) -> list[tuple[str, str | None]]:
        decl = lines[begin:end]
        keyword_line = next(
            (i for i in range(begin, end) if _TOP_LEVEL_RE.match(lines[i])), begin
        )
        is_class = bool(_CLASS_RE.match(lines[keyword_line]))

        if len(decl) <= self.max_size:
            return self._fit_or_window(decl, "type-body" if is_class else "member")
        if not is_class:
            return self._fit_or_window(decl, "member")

        members = _member_starts(lines, keyword_line, end)
        if not members:
            return self._fit_or_window(decl, "type-body")

        parts = self._fit_or_window(lines[begin : members[0]], "type-header")
        member_bounds = members + [end]
        for m_begin, m_end in zip(member_bounds, member_bounds[1:]):
            parts.extend(self._fit_or_window(lines[m_begin:m_end], "member"))
        return parts
