"""archfix chunking: line-window, structure-aware and paragraph-window modes."""

from __future__ import annotations

from pathlib import PurePosixPath

from archfix.chunking.base import BaseChunker
from archfix.chunking.lines import LineChunker
from archfix.chunking.paragraph import ParagraphChunker
from archfix.chunking.structure import StructureChunker
from archfix.config import CHUNK_MODES, ChunkingCfg, ConfigError
from archfix.models import Chunk, SourceUnit

_MODE_BY_SUFFIX: dict[str, str] = {
    ".py": "structure",
    ".pyi": "structure",
    ".md": "paragraph",
    ".markdown": "paragraph",
    ".txt": "paragraph",
    ".rst": "paragraph",
}

_CHUNKERS: dict[str, type[BaseChunker]] = {
    "lines": LineChunker,
    "structure": StructureChunker,
    "paragraph": ParagraphChunker,
}


def detect_mode(name: str) -> str:
    """Chunking mode for a file name: structure, paragraph, or lines."""
    return _MODE_BY_SUFFIX.get(PurePosixPath(name).suffix.lower(), "lines")


def split(unit: SourceUnit, max_size: int, overlap: int, mode: str = "auto") -> list[Chunk]:
    """Split *unit* into ordered, bounded chunks.

    ``max_size``/``overlap`` are lines for ``lines``/``structure`` and
    characters for ``paragraph``.

    Raises:
        ConfigError: On an unknown mode or ``max_size <= overlap``.
    """
    if mode not in CHUNK_MODES:
        raise ConfigError(f"Unknown chunking mode '{mode}'")
    if mode == "auto":
        mode = detect_mode(unit.id)
    return _CHUNKERS[mode](max_size=max_size, overlap=overlap).chunk(unit)


def split_with_config(unit: SourceUnit, cfg: ChunkingCfg) -> list[Chunk]:
    """Split *unit* using the sizes configured for its resolved mode."""
    mode = detect_mode(unit.id) if cfg.mode == "auto" else cfg.mode
    if mode == "paragraph":
        return split(unit, cfg.paragraph_max_chars, cfg.paragraph_overlap, mode)
    return split(unit, cfg.max_size, cfg.overlap, mode)


__all__ = [
    "BaseChunker",
    "LineChunker",
    "ParagraphChunker",
    "StructureChunker",
    "detect_mode",
    "split",
    "split_with_config",
]
