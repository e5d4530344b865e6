"""Prompt text for the refactoring conversation."""

from __future__ import annotations

SYSTEM_PROMPT = (
    "You are an advanced hexagonal-architecture and DDD refactoring agent. "
    "Follow instructions strictly."
)

DEFAULT_BASE_POLICY = """\
Review the Python code chunk below for hexagonal architecture / DDD violations:
- domain objects performing persistence or I/O directly
- repositories or adapters enforcing domain rules
- application services leaking infrastructure details into the domain

Respond with exactly one JSON object and nothing else:
{"violation": true|false, "reason": "<short explanation>", "fix": "<replacement code or empty>"}

If there is a violation, "fix" must be complete, directly parseable Python that
replaces the chunk: ASCII only, no comments, no markdown fences.
If there is no violation, set "fix" to an empty string."""

CONTEXT_HEADER = "# === Reference Code Snippets ==="
CHUNK_HEADER = "# === Code Chunk ==="

MALFORMED_FEEDBACK = (
    "Your previous reply was not usable. Return exactly one well-formed JSON "
    'object with the keys "violation" (boolean), "reason" (string) and "fix" '
    "(string), and nothing else."
)

UNAVAILABLE_FEEDBACK = (
    "No reply was received. Return exactly one well-formed JSON object with the "
    'keys "violation", "reason" and "fix".'
)


def parse_error_feedback(detail: str) -> str:
    return (
        f"The code in \"fix\" does not parse: {detail}. Return the same JSON object "
        "with a corrected \"fix\" that is ASCII-only, comment-free and directly "
        "parseable Python."
    )


def build_user_prompt(base_policy: str, context: str, chunk_text: str) -> str:
    """Base policy, then the reference context (if any), then the chunk."""
    parts = [base_policy or DEFAULT_BASE_POLICY]
    if context:
        parts.append(f"{CONTEXT_HEADER}\n{context}")
    parts.append(f"{CHUNK_HEADER}\n{chunk_text}")
    return "\n\n".join(parts)
