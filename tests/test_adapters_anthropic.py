"""Tests for promptbench.adapters.anthropic_adapter - Anthropic messages adapter.

Uses unittest.mock to stand in for the AsyncAnthropic client.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import pytest

from promptbench.adapters.anthropic_adapter import DEFAULT_MAX_TOKENS, AnthropicAdapter
from promptbench.adapters.base import CompletionRequest, ProviderError, ProviderMessage

API_KEY = "sk-ant-test-0123456789"


def _mock_client() -> MagicMock:
    client = MagicMock()
    client.__aenter__.return_value = client
    return client


def _text_block(text: str) -> MagicMock:
    block = MagicMock()
    block.type = "text"
    block.text = text
    return block


def _mock_response(blocks=None, usage=True, stop_reason="end_turn") -> MagicMock:
    response = MagicMock()
    response.content = blocks if blocks is not None else [_text_block("Bonjour")]
    response.stop_reason = stop_reason
    response.usage = MagicMock(input_tokens=20, output_tokens=7) if usage else None
    return response


def _request(messages=None, **overrides) -> CompletionRequest:
    return CompletionRequest(
        messages=messages or [ProviderMessage(role="user", content="Say hi in French")],
        model="claude-3-haiku-20240307",
        api_key=API_KEY,
        **overrides,
    )


def _status_error(cls, status: int, message: str):
    request = httpx.Request("GET", "https://api.anthropic.com/v1/models")
    return cls(message, response=httpx.Response(status, request=request), body=None)


class TestAnthropicMessages:
    """Test system extraction and role mapping."""

    def test_extract_system(self) -> None:
        adapter = AnthropicAdapter()
        system, remaining = adapter._extract_system(
            [
                ProviderMessage(role="system", content="Be brief."),
                ProviderMessage(role="user", content="Hi"),
            ]
        )
        assert system == "Be brief."
        assert [m.content for m in remaining] == ["Hi"]

    def test_extract_system_none(self) -> None:
        system, remaining = AnthropicAdapter()._extract_system([ProviderMessage(role="user", content="Hi")])
        assert system is None
        assert len(remaining) == 1

    def test_convert_roles(self) -> None:
        result = AnthropicAdapter()._convert_messages(
            [ProviderMessage(role="user", content="a"), ProviderMessage(role="assistant", content="b")]
        )
        assert result == [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}]

    def test_client_has_retries_disabled(self) -> None:
        with patch("promptbench.adapters.anthropic_adapter.AsyncAnthropic") as client_cls:
            AnthropicAdapter()._make_client(API_KEY, None)
        client_cls.assert_called_once_with(api_key=API_KEY, max_retries=0)


class TestAnthropicComplete:
    """Test completion normalization."""

    @pytest.mark.asyncio
    async def test_complete_success(self) -> None:
        adapter = AnthropicAdapter()
        client = _mock_client()
        client.messages.create = AsyncMock(return_value=_mock_response())

        with patch.object(adapter, "_make_client", return_value=client):
            result = await adapter.complete(
                _request(
                    messages=[
                        ProviderMessage(role="system", content="Be brief."),
                        ProviderMessage(role="user", content="Say hi in French"),
                    ]
                )
            )

        assert result.output == "Bonjour"
        assert (result.input_tokens, result.output_tokens, result.total_tokens) == (20, 7, 27)
        assert result.tokens_estimated is False
        assert result.finish_reason == "end_turn"
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "Be brief."
        assert kwargs["max_tokens"] == DEFAULT_MAX_TOKENS
        assert kwargs["messages"] == [{"role": "user", "content": "Say hi in French"}]
        assert "temperature" not in kwargs

    @pytest.mark.asyncio
    async def test_explicit_max_tokens_and_temperature(self) -> None:
        adapter = AnthropicAdapter()
        client = _mock_client()
        client.messages.create = AsyncMock(return_value=_mock_response())

        with patch.object(adapter, "_make_client", return_value=client):
            await adapter.complete(_request(max_tokens=64, temperature=0.0))

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["max_tokens"] == 64
        assert kwargs["temperature"] == 0.0
        assert "system" not in kwargs

    @pytest.mark.asyncio
    async def test_text_blocks_joined_and_others_skipped(self) -> None:
        adapter = AnthropicAdapter()
        client = _mock_client()
        other = MagicMock()
        other.type = "tool_use"
        client.messages.create = AsyncMock(
            return_value=_mock_response(blocks=[_text_block("one"), other, _text_block("two")])
        )

        with patch.object(adapter, "_make_client", return_value=client):
            result = await adapter.complete(_request())

        assert result.output == "one\ntwo"

    @pytest.mark.asyncio
    async def test_missing_usage(self) -> None:
        adapter = AnthropicAdapter()
        client = _mock_client()
        client.messages.create = AsyncMock(return_value=_mock_response(usage=False))

        with patch.object(adapter, "_make_client", return_value=client):
            result = await adapter.complete(_request())

        assert result.input_tokens is None
        assert result.total_tokens is None
        assert result.tokens_estimated is True

    @pytest.mark.asyncio
    async def test_error_is_redacted(self) -> None:
        adapter = AnthropicAdapter()
        client = _mock_client()
        client.messages.create = AsyncMock(
            side_effect=_status_error(anthropic.AuthenticationError, 401, f"invalid x-api-key {API_KEY}")
        )

        with patch.object(adapter, "_make_client", return_value=client):
            with pytest.raises(ProviderError) as exc_info:
                await adapter.complete(_request())

        assert API_KEY not in str(exc_info.value)
        assert exc_info.value.__cause__ is None


class TestAnthropicTestConnection:
    """Test credential checks."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        adapter = AnthropicAdapter()
        client = _mock_client()
        client.models.list = AsyncMock(return_value=MagicMock(data=[]))

        with patch.object(adapter, "_make_client", return_value=client):
            result = await adapter.test_connection(API_KEY)

        assert result.success is True
        client.models.list.assert_awaited_once_with(limit=1)

    @pytest.mark.asyncio
    async def test_invalid_key(self) -> None:
        adapter = AnthropicAdapter()
        client = _mock_client()
        client.models.list = AsyncMock(
            side_effect=_status_error(anthropic.AuthenticationError, 401, "invalid x-api-key")
        )

        with patch.object(adapter, "_make_client", return_value=client):
            result = await adapter.test_connection(API_KEY)

        assert result.success is False
        assert result.message == "Invalid API key"

    @pytest.mark.asyncio
    async def test_other_status(self) -> None:
        adapter = AnthropicAdapter()
        client = _mock_client()
        client.models.list = AsyncMock(
            side_effect=_status_error(anthropic.RateLimitError, 429, "slow down")
        )

        with patch.object(adapter, "_make_client", return_value=client):
            result = await adapter.test_connection(API_KEY)

        assert result.success is False
        assert result.message == "Connection test failed: slow down"


class TestAnthropicModelDiscovery:
    """Test model listing."""

    @pytest.mark.asyncio
    async def test_sorted_by_generation(self) -> None:
        adapter = AnthropicAdapter()
        client = _mock_client()
        ids = ["claude-3-haiku-20240307", "claude-sonnet-4-20250514", "claude-3-5-sonnet-20241022"]
        client.models.list = AsyncMock(
            return_value=MagicMock(data=[MagicMock(id=i, type="model") for i in ids])
        )

        with patch.object(adapter, "_make_client", return_value=client):
            models = await adapter.fetch_available_models(API_KEY)

        assert models == [
            "claude-sonnet-4-20250514",
            "claude-3-5-sonnet-20241022",
            "claude-3-haiku-20240307",
        ]

    @pytest.mark.asyncio
    async def test_failure_falls_back(self) -> None:
        adapter = AnthropicAdapter()
        client = _mock_client()
        client.models.list = AsyncMock(side_effect=RuntimeError("down"))

        with patch.object(adapter, "_make_client", return_value=client):
            models = await adapter.fetch_available_models(API_KEY)

        assert models == list(AnthropicAdapter.supported_models)
