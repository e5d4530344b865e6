"""Reference document processor: chunk files and index each chunk.

Chunk ids are deterministic (``doc_<uuid5(title#i)>``) so re-processing the
same document overwrites its previous chunks instead of duplicating them.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any

from loguru import logger

from archfix.chunking import split
from archfix.config import ChunkingCfg
from archfix.models import SourceUnit
from archfix.rag.service import RagService

_CONTENT_TYPES: dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".md": "markdown",
    ".markdown": "markdown",
    ".txt": "text",
    ".text": "text",
    ".rst": "text",
    ".xml": "markup",
    ".html": "markup",
    ".json": "data",
    ".yaml": "data",
    ".yml": "data",
    ".toml": "config",
    ".ini": "config",
    ".cfg": "config",
}

_MODE_BY_TYPE: dict[str, str] = {
    "python": "structure",
    "markdown": "paragraph",
    "text": "paragraph",
}

DEFAULT_EXTENSIONS: tuple[str, ...] = (".py", ".md", ".txt", ".rst")


def detect_content_type(name: str) -> str:
    return _CONTENT_TYPES.get(Path(name).suffix.lower(), "unknown")


def chunk_id(title: str, index: int) -> str:
    return "doc_" + str(uuid.uuid5(uuid.NAMESPACE_URL, f"{title}#{index}"))


class DocumentProcessor:
    def __init__(self, service: RagService, chunking: ChunkingCfg | None = None) -> None:
        self.service = service
        self.chunking = chunking or ChunkingCfg()

    def _split(self, title: str, content: str, content_type: str) -> list[str]:
        mode = _MODE_BY_TYPE.get(content_type, "lines")
        unit = SourceUnit.from_text(title, content)
        if mode == "paragraph":
            chunks = split(unit, self.chunking.paragraph_max_chars, self.chunking.paragraph_overlap, mode)
        else:
            chunks = split(unit, self.chunking.max_size, self.chunking.overlap, mode)
        return [c.text for c in chunks]

    def process_document(
        self,
        title: str,
        content: str,
        content_type: str = "text",
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Chunk *content* and index every chunk. True only if all were stored."""
        if not content.strip() or not self.service.available():
            return False

        parts = self._split(title, content, content_type)
        base: dict[str, Any] = dict(metadata or {})
        base.update({"content_type": content_type, "chunk_count": len(parts)})

        all_ok = True
        for i, text in enumerate(parts, start=1):
            chunk_meta = dict(base, chunk_index=i, is_chunk=True)
            ok = self.service.index_document(
                chunk_id(title, i),
                f"{title} (Chunk {i} of {len(parts)})",
                text,
                chunk_meta,
            )
            if not ok:
                all_ok = False
                logger.warning("Failed to index chunk {} of {}", i, title)
        if all_ok:
            logger.info("Indexed {} ({} chunks)", title, len(parts))
        return all_ok

    def process_file(self, path: Path, metadata: dict[str, Any] | None = None) -> bool:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read reference file {}: {}", path, exc)
            return False
        meta = dict(metadata or {})
        meta.setdefault("path", str(path))
        return self.process_document(path.name, content, detect_content_type(path.name), meta)

    def process_directory(
        self,
        directory: Path,
        extensions: tuple[str, ...] | list[str] = DEFAULT_EXTENSIONS,
        recursive: bool = True,
    ) -> int:
        """Index every matching file under *directory*; returns files fully indexed."""
        return sum(
            1
            for path in find_files(directory, extensions, recursive)
            if self.process_file(path, {"source": "directory_scan"})
        )

    def process_path(self, path: Path, recursive: bool = True) -> int:
        """Index a single file or a whole directory."""
        if path.is_dir():
            return self.process_directory(path, recursive=recursive)
        return 1 if self.process_file(path) else 0


def find_files(
    directory: Path,
    extensions: tuple[str, ...] | list[str] = (),
    recursive: bool = True,
) -> list[Path]:
    """Sorted files under *directory*, skipping hidden and ``__pycache__`` dirs."""
    pattern = "**/*" if recursive else "*"
    found: list[Path] = []
    for path in sorted(directory.glob(pattern)):
        if not path.is_file():
            continue
        rel_parts = path.relative_to(directory).parts
        if any(p.startswith(".") or p == "__pycache__" for p in rel_parts[:-1]):
            continue
        if rel_parts[-1].startswith("."):
            continue
        if extensions and path.suffix.lower() not in extensions:
            continue
        found.append(path)
    return found
