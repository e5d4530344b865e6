"""Tests for the LiteLLM client wrapper."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from archfix.rag.llm_client import (
    complete,
    count_tokens,
    embed,
    embed_batch,
    provider_of,
    validate_api_key,
)


# ------------------------------------------------------------------
# validate_api_key
# ------------------------------------------------------------------


def test_validate_api_key_raises_if_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("openai/gpt-4o")


def test_validate_api_key_passes_if_set(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    validate_api_key("openai/gpt-4o")


def test_validate_api_key_anthropic(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="ANTHROPIC_API_KEY"):
        validate_api_key("anthropic/claude-3-5-sonnet-20241022")


def test_validate_api_key_ollama_no_key_required():
    validate_api_key("ollama/codellama")


def test_validate_api_key_unlisted_provider_uses_upper_env(monkeypatch):
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="DEEPSEEK_API_KEY"):
        validate_api_key("deepseek/deepseek-coder")


def test_provider_of_bare_name_is_openai():
    assert provider_of("gpt-4o") == "openai"
    assert provider_of("Anthropic/claude") == "anthropic"


# ------------------------------------------------------------------
# complete()
# ------------------------------------------------------------------


def test_complete_returns_content():
    mock_response = MagicMock()
    mock_response.choices[0].message.content = '{"violation": false}'

    with patch("archfix.rag.llm_client.litellm.completion", return_value=mock_response):
        result = complete("openai/gpt-4o", [{"role": "user", "content": "Hi"}])

    assert result == '{"violation": false}'


def test_complete_returns_empty_string_on_none_content():
    mock_response = MagicMock()
    mock_response.choices[0].message.content = None

    with patch("archfix.rag.llm_client.litellm.completion", return_value=mock_response):
        assert complete("openai/gpt-4o", []) == ""


def test_complete_passes_params_to_litellm():
    mock_response = MagicMock()
    mock_response.choices[0].message.content = "ok"

    with patch("archfix.rag.llm_client.litellm.completion", return_value=mock_response) as m:
        complete("openai/gpt-4o", [], max_tokens=512, temperature=0.2, timeout=30)

    kwargs = m.call_args.kwargs
    assert kwargs["max_tokens"] == 512
    assert kwargs["temperature"] == 0.2
    assert kwargs["timeout"] == 30
    assert kwargs["num_retries"] == 0


def test_complete_propagates_errors():
    with patch("archfix.rag.llm_client.litellm.completion", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            complete("openai/gpt-4o", [])


# ------------------------------------------------------------------
# embed() / embed_batch()
# ------------------------------------------------------------------


def test_embed_batch_preserves_input_order():
    response = MagicMock()
    response.data = [
        {"index": 1, "embedding": [0.0, 1.0]},
        {"index": 0, "embedding": [1.0, 0.0]},
    ]
    with patch("archfix.rag.llm_client.litellm.embedding", return_value=response):
        vectors = embed_batch("openai/text-embedding-3-small", ["a", "b"])
    assert vectors == [[1.0, 0.0], [0.0, 1.0]]


def test_embed_single_text():
    response = MagicMock()
    response.data = [{"index": 0, "embedding": [0.5, 0.5]}]
    with patch("archfix.rag.llm_client.litellm.embedding", return_value=response) as m:
        assert embed("openai/text-embedding-3-small", "hello") == [0.5, 0.5]
    assert m.call_args.kwargs["input"] == ["hello"]


# ------------------------------------------------------------------
# count_tokens()
# ------------------------------------------------------------------


def test_count_tokens_uses_litellm():
    with patch("archfix.rag.llm_client.litellm.token_counter", return_value=42):
        assert count_tokens("openai/gpt-4o", "some text") == 42


def test_count_tokens_falls_back_to_char_estimate():
    with patch("archfix.rag.llm_client.litellm.token_counter", side_effect=ValueError("unknown")):
        assert count_tokens("custom/model", "x" * 40) == 10
