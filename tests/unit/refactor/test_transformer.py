"""Tests for the LiteLLM-backed transformer."""

from __future__ import annotations

from unittest.mock import patch

from archfix.refactor.transformer import LiteLLMTransformer

COMPLETE = "archfix.refactor.transformer.llm_client.complete"


def test_generate_returns_content():
    with patch(COMPLETE, return_value='{"violation": false}') as m:
        out = LiteLLMTransformer("openai/gpt-4o", timeout=12).generate([{"role": "user", "content": "x"}])
    assert out == '{"violation": false}'
    assert m.call_args.kwargs["timeout"] == 12


def test_generate_returns_none_on_error():
    with patch(COMPLETE, side_effect=TimeoutError("slow")):
        assert LiteLLMTransformer("openai/gpt-4o").generate([]) is None


def test_generate_returns_none_on_blank_reply():
    with patch(COMPLETE, return_value="  \n"):
        assert LiteLLMTransformer("openai/gpt-4o").generate([]) is None
