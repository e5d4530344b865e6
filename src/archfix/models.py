"""Domain models shared across the archfix pipeline."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


def content_hash(data: bytes) -> str:
    """SHA-256 hex digest of the exact source bytes."""
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class SourceUnit:
    """One source file. ``id`` is the path key relative to the source root."""

    id: str
    text: str
    hash: str
    path: Path | None = None

    @classmethod
    def from_text(cls, unit_id: str, text: str, path: Path | None = None) -> SourceUnit:
        return cls(id=unit_id, text=text, hash=content_hash(text.encode("utf-8")), path=path)

    @classmethod
    def from_path(cls, path: Path, root: Path | None = None) -> SourceUnit:
        data = path.read_bytes()
        unit_id = path.relative_to(root).as_posix() if root is not None else path.name
        return cls(
            id=unit_id,
            text=data.decode("utf-8"),
            hash=content_hash(data),
            path=path,
        )


@dataclass(frozen=True)
class Chunk:
    unit_id: str
    index: int  # 1-based, emission order
    text: str
    label: str | None = None  # header | type-body | type-header | member | window | paragraph


@dataclass(frozen=True)
class ReferenceSnippet:
    id: str
    text: str
    embedding: tuple[float, ...]
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Verdicts
# ---------------------------------------------------------------------------


class AttemptOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    MALFORMED = "malformed"


@dataclass
class Verdict:
    """The model's judgment for one piece of code."""

    violation: bool
    reason: str
    fix: str


@dataclass
class GenerationAttempt:
    chunk_index: int
    attempt: int
    raw: str | None
    verdict: Verdict | None
    outcome: AttemptOutcome


@dataclass
class ChunkVerdict:
    """Terminal validation result for one chunk.

    Attributes:
        fallback: True when the attempt budget ran out and the verdict is the
            deterministic placeholder rather than a validated model answer.
    """

    index: int
    violation: bool
    reason: str
    fix: str
    attempts: int = 1
    fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "violation": self.violation,
            "reason": self.reason,
            "fix": self.fix,
            "attempts": self.attempts,
            "fallback": self.fallback,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChunkVerdict:
        return cls(
            index=int(data["index"]),
            violation=bool(data["violation"]),
            reason=str(data.get("reason", "")),
            fix=str(data.get("fix", "")),
            attempts=int(data.get("attempts", 1)),
            fallback=bool(data.get("fallback", False)),
        )


@dataclass
class FileVerdict:
    unit_id: str
    chunks: list[ChunkVerdict]
    violation: bool
    reason: str
    fix: str

    @property
    def fallback_count(self) -> int:
        return sum(1 for c in self.chunks if c.fallback)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "chunks": [c.to_dict() for c in self.chunks],
            "violation": self.violation,
            "reason": self.reason,
            "fix": self.fix,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileVerdict:
        return cls(
            unit_id=str(data["unit_id"]),
            chunks=[ChunkVerdict.from_dict(c) for c in data.get("chunks", [])],
            violation=bool(data["violation"]),
            reason=str(data.get("reason", "")),
            fix=str(data.get("fix", "")),
        )


# ---------------------------------------------------------------------------
# Merge + run outcomes
# ---------------------------------------------------------------------------


class MergeStatus(str, Enum):
    MERGED = "merged"
    PARTIALLY_MERGED = "partially_merged"
    UNMERGED = "unmerged"
    FAILED = "failed"


@dataclass
class MergeResult:
    status: MergeStatus
    unmerged_fragments: list[str] = field(default_factory=list)
    detail: str = ""


class UnitStatus(str, Enum):
    OK = "ok"
    VIOLATION = "violation"
    ERROR = "error"
    TIMED_OUT = "timed_out"


@dataclass
class UnitOutcome:
    """Per-file result of a run, including failures."""

    unit_id: str
    status: UnitStatus
    verdict: FileVerdict | None = None
    merge: MergeResult | None = None
    output_path: Path | None = None
    cache_hit: bool = False
    error: str | None = None
    final_text: str | None = None
