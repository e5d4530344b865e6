"""Bounded generate → validate → correct loop for one chunk.

States::

    DRAFTING → AWAITING_MODEL → VALIDATING → ACCEPTED
                     ↑               │
                     └─ CORRECTING ←─┘ (attempt < max)  → EXHAUSTED

A reply is accepted when it is one JSON verdict object and, if it reports a
violation with a non-empty fix, the fix parses. Anything else appends
corrective feedback and tries again. After ``max_attempts`` model calls the
loop ends in EXHAUSTED with a deterministic placeholder verdict that wraps
the original chunk in a comment, so the output stays parseable.
"""

from __future__ import annotations

import json
import threading
from enum import Enum

from loguru import logger

from archfix.config import ConfigError
from archfix.models import AttemptOutcome, Chunk, ChunkVerdict, GenerationAttempt, Verdict
from archfix.refactor import prompts
from archfix.refactor.parser import ParseError, StructuralParser
from archfix.refactor.transformer import Transformer

EXHAUSTED_REASON = "max attempts reached"
FALLBACK_HEADER = "# fallback refactor, snippet unparseable, needs manual attention"


class LoopState(str, Enum):
    DRAFTING = "drafting"
    AWAITING_MODEL = "awaiting_model"
    VALIDATING = "validating"
    ACCEPTED = "accepted"
    CORRECTING = "correcting"
    EXHAUSTED = "exhausted"


# ------------------------------------------------------------------
# Verdict parsing
# ------------------------------------------------------------------


def parse_verdict(raw: str | None) -> Verdict | None:
    """Extract one verdict object from *raw*; None if absent or malformed.

    The object is taken from the first ``{`` to the last ``}`` so prose or
    code fences around it are tolerated. ``suggestedFix`` is accepted as an
    alias for ``fix``.
    """
    if not raw:
        return None
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(raw[start : end + 1])
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    violation = data.get("violation")
    reason = data.get("reason")
    fix = data.get("fix", data.get("suggestedFix"))
    if not isinstance(violation, bool) or not isinstance(reason, str) or not isinstance(fix, str):
        return None
    return Verdict(violation=violation, reason=reason, fix=fix)


def comment_block(header: str, text: str) -> str:
    """*text* as a ``#``-comment block under *header*."""
    body = [f"# {line}" if line else "#" for line in text.splitlines()]
    return "\n".join([header, *body])


def fallback_verdict(chunk: Chunk, attempts: int) -> ChunkVerdict:
    return ChunkVerdict(
        index=chunk.index,
        violation=True,
        reason=EXHAUSTED_REASON,
        fix=comment_block(FALLBACK_HEADER, chunk.text),
        attempts=attempts,
        fallback=True,
    )


# ------------------------------------------------------------------
# Loop
# ------------------------------------------------------------------


class ValidationLoop:
    """Drives the model conversation for single chunks.

    Chunks are independent: one instance may run many chunks concurrently
    because all conversation state lives in :meth:`run`'s locals.
    """

    def __init__(
        self,
        transformer: Transformer,
        parser: StructuralParser,
        *,
        base_policy: str = "",
        max_attempts: int = 3,
    ) -> None:
        if max_attempts < 1:
            raise ConfigError("max_attempts must be >= 1")
        self.transformer = transformer
        self.parser = parser
        self.base_policy = base_policy
        self.max_attempts = max_attempts

    def initial_messages(self, chunk: Chunk, context: str) -> list[dict]:
        return [
            {"role": "system", "content": prompts.SYSTEM_PROMPT},
            {
                "role": "user",
                "content": prompts.build_user_prompt(self.base_policy, context, chunk.text),
            },
        ]

    def run(
        self,
        chunk: Chunk,
        context: str = "",
        max_attempts: int | None = None,
        history: list[GenerationAttempt] | None = None,
        cancel: threading.Event | None = None,
    ) -> ChunkVerdict:
        """Run the loop for *chunk*; at most ``max_attempts`` model calls.

        Args:
            history: Optional list that receives every GenerationAttempt.
            cancel: When set, no further model call is made and the
                fallback verdict is returned at once.
        """
        limit = max_attempts if max_attempts is not None else self.max_attempts
        if limit < 1:
            raise ConfigError("max_attempts must be >= 1")

        messages = self.initial_messages(chunk, context)
        attempt = 1
        state = LoopState.DRAFTING

        while True:
            if cancel is not None and cancel.is_set():
                logger.debug("{} chunk {}: cancelled before attempt {}", chunk.unit_id, chunk.index, attempt)
                return fallback_verdict(chunk, attempt - 1)

            # DRAFTING → AWAITING_MODEL
            state = LoopState.AWAITING_MODEL
            raw = self.transformer.generate(list(messages))

            # AWAITING_MODEL → VALIDATING | CORRECTING
            verdict = parse_verdict(raw)
            if verdict is None:
                feedback = prompts.UNAVAILABLE_FEEDBACK if raw is None else prompts.MALFORMED_FEEDBACK
                outcome = AttemptOutcome.MALFORMED
            else:
                state = LoopState.VALIDATING
                feedback, outcome = self._validate(verdict)

            if history is not None:
                history.append(GenerationAttempt(chunk.index, attempt, raw, verdict, outcome))
            logger.debug(
                "{} chunk {} attempt {}/{}: {}", chunk.unit_id, chunk.index, attempt, limit, outcome.value
            )

            if verdict is not None and outcome is AttemptOutcome.ACCEPTED:
                state = LoopState.ACCEPTED
                return ChunkVerdict(
                    index=chunk.index,
                    violation=verdict.violation,
                    reason=verdict.reason,
                    fix=verdict.fix if verdict.violation else "",
                    attempts=attempt,
                )

            # CORRECTING → DRAFTING | EXHAUSTED
            state = LoopState.CORRECTING
            if attempt >= limit:
                state = LoopState.EXHAUSTED
                logger.warning(
                    "{} chunk {}: no valid verdict after {} attempts; using fallback",
                    chunk.unit_id,
                    chunk.index,
                    attempt,
                )
                return fallback_verdict(chunk, attempt)

            if raw is not None:
                messages.append({"role": "assistant", "content": raw})
            messages.append({"role": "user", "content": feedback})
            attempt += 1
            state = LoopState.DRAFTING

    def _validate(self, verdict: Verdict) -> tuple[str, AttemptOutcome]:
        if not verdict.violation or not verdict.fix.strip():
            return "", AttemptOutcome.ACCEPTED
        try:
            self.parser.parse(verdict.fix)
        except ParseError as exc:
            return prompts.parse_error_feedback(exc.describe()), AttemptOutcome.REJECTED
        return "", AttemptOutcome.ACCEPTED
