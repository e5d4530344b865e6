"""Paragraph-window chunker for prose (reference docs, READMEs).

Paragraphs are blank-line delimited. They accumulate until the next one would
push the chunk past ``max_size`` characters; the new chunk is then seeded with
the last ``overlap`` characters of the previous one. A single paragraph longer
than ``max_size`` is emitted whole.
"""

from __future__ import annotations

import re

from archfix.chunking.base import BaseChunker
from archfix.models import Chunk, SourceUnit

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")


class ParagraphChunker(BaseChunker):
    def __init__(self, max_size: int = 1_000, overlap: int = 200) -> None:
        super().__init__(max_size=max_size, overlap=overlap)

    def chunk(self, unit: SourceUnit) -> list[Chunk]:
        if not unit.text.strip():
            return []

        parts: list[str] = []
        current = ""
        for paragraph in _PARAGRAPH_SPLIT.split(unit.text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue
            if current and len(current) + len(paragraph) + 2 > self.max_size:
                parts.append(current)
                seed = current[-self.overlap:] if self.overlap else ""
                current = f"{seed}\n\n{paragraph}" if seed else paragraph
            else:
                current = f"{current}\n\n{paragraph}" if current else paragraph

        if current:
            parts.append(current)

        return self._make_chunks(unit.id, [(p, "paragraph") for p in parts])
