"""Tests for the LiteLLM client wrapper."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from recall.config import RecallConfig
from recall.rag.llm_client import LLMClient, validate_api_key


def _part(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


async def _stream(*parts):
    for part in parts:
        yield part


async def _collect(agen):
    return [item async for item in agen]


# ------------------------------------------------------------------
# validate_api_key
# ------------------------------------------------------------------


def test_validate_api_key_raises_if_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("openai/gpt-4o-mini")


def test_validate_api_key_passes_if_set(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    validate_api_key("openai/gpt-4o-mini")  # should not raise


def test_validate_api_key_anthropic(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="ANTHROPIC_API_KEY"):
        validate_api_key("anthropic/claude-3-5-haiku-20241022")


def test_validate_api_key_ollama_no_key_required():
    validate_api_key("ollama/llama3")


def test_validate_api_key_bare_model_treated_as_openai(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError):
        validate_api_key("text-embedding-3-small")


def test_client_validate_checks_both_models(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    client = LLMClient("openai/text-embedding-3-small", "anthropic/claude-3-5-haiku-20241022")
    with pytest.raises(EnvironmentError, match="ANTHROPIC_API_KEY"):
        client.validate()


def test_from_config():
    cfg = RecallConfig()
    cfg.embedding.model = "ollama/nomic-embed-text"
    cfg.embedding.dimensions = 768
    cfg.generation.model = "ollama/llama3"
    client = LLMClient.from_config(cfg)
    assert client.embedding_model == "ollama/nomic-embed-text"
    assert client.generation_model == "ollama/llama3"
    assert client.dimensions == 768


# ------------------------------------------------------------------
# embed()
# ------------------------------------------------------------------


def test_embed_returns_vector():
    mock_response = MagicMock()
    mock_response.data = [{"embedding": [0.1, 0.2, 0.3]}]

    with patch("recall.rag.llm_client.litellm.aembedding", new=AsyncMock(return_value=mock_response)):
        result = asyncio.run(LLMClient().embed("hello"))

    assert result == [0.1, 0.2, 0.3]


def test_embed_passes_params():
    mock_response = MagicMock()
    mock_response.data = [{"embedding": [0.0]}]
    mock_e = AsyncMock(return_value=mock_response)

    with patch("recall.rag.llm_client.litellm.aembedding", new=mock_e):
        asyncio.run(LLMClient("openai/text-embedding-3-small", dimensions=256, num_retries=2).embed("test text"))

    kwargs = mock_e.call_args.kwargs
    assert kwargs["model"] == "openai/text-embedding-3-small"
    assert kwargs["input"] == ["test text"]
    assert kwargs["dimensions"] == 256
    assert kwargs["num_retries"] == 2


def test_embed_omits_dimensions_when_unset():
    mock_response = MagicMock()
    mock_response.data = [{"embedding": [0.0]}]
    mock_e = AsyncMock(return_value=mock_response)

    with patch("recall.rag.llm_client.litellm.aembedding", new=mock_e):
        asyncio.run(LLMClient(dimensions=None).embed("x"))

    assert "dimensions" not in mock_e.call_args.kwargs


def test_embed_errors_propagate():
    with patch(
        "recall.rag.llm_client.litellm.aembedding",
        new=AsyncMock(side_effect=RuntimeError("401 Unauthorized")),
    ):
        with pytest.raises(RuntimeError, match="401"):
            asyncio.run(LLMClient().embed("x"))


# ------------------------------------------------------------------
# stream_complete()
# ------------------------------------------------------------------


def test_stream_complete_yields_non_empty_deltas():
    stream = _stream(_part(None), _part("Hel"), _part(""), _part("lo"), SimpleNamespace(choices=[]))
    mock_c = AsyncMock(return_value=stream)

    with patch("recall.rag.llm_client.litellm.acompletion", new=mock_c):
        client = LLMClient(generation_model="openai/gpt-4o-mini")
        deltas = asyncio.run(_collect(client.stream_complete([{"role": "user", "content": "Hi"}])))

    assert deltas == ["Hel", "lo"]


def test_stream_complete_passes_params():
    mock_c = AsyncMock(return_value=_stream(_part("ok")))
    messages = [{"role": "user", "content": "test"}]

    with patch("recall.rag.llm_client.litellm.acompletion", new=mock_c):
        client = LLMClient(generation_model="openai/gpt-4o-mini", num_retries=1)
        asyncio.run(_collect(client.stream_complete(messages, temperature=0.2, max_tokens=64)))

    kwargs = mock_c.call_args.kwargs
    assert kwargs["model"] == "openai/gpt-4o-mini"
    assert kwargs["messages"] == messages
    assert kwargs["stream"] is True
    assert kwargs["temperature"] == 0.2
    assert kwargs["max_tokens"] == 64
    assert kwargs["num_retries"] == 1
