"""Line-window chunker: fixed windows of lines with overlap."""

from __future__ import annotations

from archfix.chunking.base import BaseChunker
from archfix.models import Chunk, SourceUnit


class LineChunker(BaseChunker):
    """Chunks any text into windows of ``max_size`` lines.

    Consecutive windows share ``overlap`` lines; ``overlap=0`` gives
    disjoint windows.
    """

    def chunk(self, unit: SourceUnit) -> list[Chunk]:
        windows = self._line_windows(unit.text.splitlines(), self.max_size, self.overlap)
        return self._make_chunks(unit.id, [(w, "window") for w in windows])
