"""Base chunker interface for all archfix chunking modes."""

from __future__ import annotations

from abc import ABC, abstractmethod

from archfix.config import validate_chunking
from archfix.models import Chunk, SourceUnit


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``chunk()`` and may use ``_line_windows()`` and
    ``_make_chunks()`` for the line-window path.

    Raises:
        ConfigError: From the constructor when ``max_size <= overlap``.
    """

    def __init__(self, max_size: int = 300, overlap: int = 0) -> None:
        validate_chunking(max_size, overlap)
        self.max_size = max_size
        self.overlap = overlap

    @abstractmethod
    def chunk(self, unit: SourceUnit) -> list[Chunk]:
        """Split *unit* into ordered Chunks with 1-based sequential ``index``."""

    @staticmethod
    def _line_windows(lines: list[str], size: int, overlap: int) -> list[str]:
        """Windows of *size* lines advancing by ``size - overlap``.

        The last window may be shorter. Whitespace-only windows are omitted.
        """
        if not lines:
            return []
        step = size - overlap
        windows: list[str] = []
        pos = 0
        while pos < len(lines):
            end = min(pos + size, len(lines))
            text = "\n".join(lines[pos:end])
            if text.strip():
                windows.append(text)
            if end >= len(lines):
                break
            pos += step
        return windows

    @staticmethod
    def _make_chunks(unit_id: str, parts: list[tuple[str, str | None]]) -> list[Chunk]:
        """Convert ``(text, label)`` pairs into sequentially indexed Chunks."""
        return [
            Chunk(unit_id=unit_id, index=i, text=text, label=label)
            for i, (text, label) in enumerate(parts, start=1)
        ]
