"""Fold per-chunk verdicts into one file-level verdict, in chunk order."""

from __future__ import annotations

import re
import textwrap

from archfix.models import ChunkVerdict, FileVerdict, SourceUnit

FIX_MARKER = "# --- fix for chunk {index} ---"
CLEAN_MARKER = "# --- chunk {index} => no violation"

# Group 1: index of a "fix for chunk" marker. Group 2: index of a clean marker.
MARKER_RE = re.compile(r"^# --- (?:fix for chunk (\d+) ---|chunk (\d+) => no violation)[ \t]*$", re.MULTILINE)


def aggregate(unit: SourceUnit, verdicts: list[ChunkVerdict]) -> FileVerdict:
    """Build the FileVerdict for *unit*.

    Verdicts may arrive in completion order; they are sorted by chunk index
    first. Each fix is dedented so that member-level fixes sit at column 0
    under their column-0 marker. When no chunk is violating, the aggregated
    fix is empty.
    """
    ordered = sorted(verdicts, key=lambda v: v.index)
    violation = any(v.violation for v in ordered)

    reasons: list[str] = []
    fixes: list[str] = []
    for v in ordered:
        if v.violation:
            reasons.append(f"Chunk {v.index} => {v.reason}")
            fixes.append(FIX_MARKER.format(index=v.index))
            if v.fix.strip():
                fixes.append(textwrap.dedent(v.fix).rstrip())
        else:
            reasons.append(f"Chunk {v.index} => no violation")
            fixes.append(CLEAN_MARKER.format(index=v.index))

    return FileVerdict(
        unit_id=unit.id,
        chunks=ordered,
        violation=violation,
        reason="\n".join(reasons),
        fix="\n".join(fixes) if violation else "",
    )


def split_fix_blocks(fix: str) -> list[tuple[int, str]]:
    """Split an aggregated fix into ``(chunk_index, block_text)`` pairs.

    Only blocks under a "fix for chunk" marker are returned; empty blocks are
    dropped.
    """
    blocks: list[tuple[int, str]] = []
    matches = list(MARKER_RE.finditer(fix))
    for i, m in enumerate(matches):
        if m.group(1) is None:
            continue
        end = matches[i + 1].start() if i + 1 < len(matches) else len(fix)
        body = fix[m.end() : end].strip("\n")
        if body.strip():
            blocks.append((int(m.group(1)), body))
    return blocks
