"""Transformer: the external generative model behind the validation loop.

``generate`` returns ``None`` when the model is unavailable (API error,
timeout, empty reply). It never raises; the validation loop turns ``None``
into a corrective turn.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from loguru import logger

from archfix.rag import llm_client


class Transformer(Protocol):
    def generate(self, messages: list[dict]) -> str | None: ...


@dataclass
class LiteLLMTransformer:
    """Chat completion through LiteLLM with a per-call timeout."""

    model: str
    timeout: float = 60.0
    max_tokens: int = 4_096
    temperature: float = 0.0
    num_retries: int = 0

    def generate(self, messages: list[dict]) -> str | None:
        try:
            content = llm_client.complete(
                self.model,
                messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                num_retries=self.num_retries,
                timeout=self.timeout,
            )
        except Exception as exc:
            logger.warning("Model call to {} failed: {}", self.model, exc)
            return None
        if not content.strip():
            logger.debug("Model {} returned an empty reply", self.model)
            return None
        return content
