"""Context assembler: chunk → prompt-ready reference context.

The query is the first ``query_chars`` characters of the chunk text. Hits
below the service's score threshold are dropped; survivors are rendered as
labelled blocks. Never raises: every failure path returns the configured
default snippet, which is usually empty.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from archfix.models import Chunk
from archfix.rag.service import RagService, format_hits


@dataclass
class AssemblerConfig:
    """Configuration for the context assembler.

    Attributes:
        top_k: Default number of reference hits per chunk.
        query_chars: Leading characters of the chunk used as the search query.
        query_preface: Optional fixed text prepended to every query.
        default_snippet: Context returned when retrieval yields nothing.
    """

    top_k: int = 3
    query_chars: int = 500
    query_preface: str = ""
    default_snippet: str = ""


class ContextAssembler:
    def __init__(self, service: RagService | None, config: AssemblerConfig | None = None) -> None:
        self.service = service
        self.config = config or AssemblerConfig()

    def query_for(self, chunk: Chunk) -> str:
        query = chunk.text[: self.config.query_chars]
        if self.config.query_preface:
            query = f"{self.config.query_preface}\n{query}"
        return query

    def assemble(self, chunk: Chunk, top_k: int | None = None) -> str:
        """Reference context for *chunk*; possibly empty, never raises."""
        if self.service is None or not self.service.available():
            return self.config.default_snippet
        try:
            hits = self.service.retrieve(self.query_for(chunk), top_k or self.config.top_k)
        except Exception as exc:
            logger.warning("Context retrieval failed for chunk {}: {}", chunk.index, exc)
            return self.config.default_snippet
        context = format_hits(hits)
        logger.debug("Chunk {} of {}: {} reference hits", chunk.index, chunk.unit_id, len(hits))
        return context or self.config.default_snippet
