"""Tests for promptbench.adapters.local_adapter - OpenAI-compatible local servers."""

from __future__ import annotations

import json

import httpx
import pytest

from promptbench.adapters.base import CompletionRequest, ProviderError, ProviderMessage
from promptbench.adapters.local_adapter import BASE_URL_REQUIRED, LocalAdapter

BASE_URL = "http://localhost:11434"
API_KEY = "local-secret-abcdef"

CHAT_OK = {
    "choices": [{"message": {"role": "assistant", "content": "Hi there"}, "finish_reason": "stop"}],
    "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7},
}


def _adapter(handler) -> LocalAdapter:
    return LocalAdapter(transport=httpx.MockTransport(handler))


def _request(base_url: str | None = BASE_URL, api_key: str = API_KEY) -> CompletionRequest:
    return CompletionRequest(
        messages=[ProviderMessage(role="user", content="Hello")],
        model="llama3",
        api_key=api_key,
        base_url=base_url,
    )


class TestLocalComplete:
    """Test chat completions against local servers."""

    @pytest.mark.asyncio
    async def test_requires_base_url(self) -> None:
        with pytest.raises(ProviderError, match=BASE_URL_REQUIRED):
            await LocalAdapter().complete(_request(base_url=None))

    @pytest.mark.asyncio
    async def test_success_on_root_path(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=CHAT_OK)

        result = await _adapter(handler).complete(_request())

        assert result.output == "Hi there"
        assert (result.input_tokens, result.output_tokens, result.total_tokens) == (5, 2, 7)
        assert result.tokens_estimated is False
        assert seen[0].url.path == "/chat/completions"
        assert seen[0].headers["Authorization"] == f"Bearer {API_KEY}"
        body = json.loads(seen[0].content)
        assert body["model"] == "llama3"
        assert body["stream"] is False

    @pytest.mark.asyncio
    async def test_falls_back_to_v1_on_404(self) -> None:
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path == "/chat/completions":
                return httpx.Response(404)
            return httpx.Response(200, json=CHAT_OK)

        result = await _adapter(handler).complete(_request())

        assert result.output == "Hi there"
        assert paths == ["/chat/completions", "/v1/chat/completions"]

    @pytest.mark.asyncio
    async def test_no_auth_header_without_key(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=CHAT_OK)

        await _adapter(handler).complete(_request(api_key=""))
        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_zero_usage_is_estimated(self) -> None:
        payload = {**CHAT_OK, "usage": {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}}
        result = await _adapter(lambda r: httpx.Response(200, json=payload)).complete(_request())
        assert result.tokens_estimated is True

    @pytest.mark.asyncio
    async def test_missing_finish_reason_defaults_to_stop(self) -> None:
        payload = {"choices": [{"message": {"content": "ok"}}]}
        result = await _adapter(lambda r: httpx.Response(200, json=payload)).complete(_request())
        assert result.finish_reason == "stop"
        assert result.input_tokens is None
        assert result.tokens_estimated is True

    @pytest.mark.asyncio
    async def test_http_error_is_redacted(self) -> None:
        adapter = _adapter(lambda r: httpx.Response(500, text=f"bad token {API_KEY}"))
        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete(_request())
        message = str(exc_info.value)
        assert message.startswith("HTTP 500: ")
        assert API_KEY not in message

    @pytest.mark.asyncio
    async def test_no_choices(self) -> None:
        adapter = _adapter(lambda r: httpx.Response(200, json={"choices": []}))
        with pytest.raises(ProviderError, match="No response choices returned"):
            await adapter.complete(_request())

    @pytest.mark.asyncio
    async def test_malformed_choice(self) -> None:
        adapter = _adapter(lambda r: httpx.Response(200, json={"choices": [{"text": "x"}]}))
        with pytest.raises(ProviderError, match="Malformed chat completion response"):
            await adapter.complete(_request())


class TestLocalTestConnection:
    """Test reachability checks."""

    @pytest.mark.asyncio
    async def test_requires_base_url(self) -> None:
        result = await LocalAdapter().test_connection(API_KEY)
        assert result.success is False
        assert result.message == BASE_URL_REQUIRED

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        result = await _adapter(lambda r: httpx.Response(200, json={"data": []})).test_connection(
            API_KEY, BASE_URL
        )
        assert result.success is True

    @pytest.mark.asyncio
    async def test_v1_fallback_success(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/models":
                return httpx.Response(200, json={"data": []})
            return httpx.Response(404)

        result = await _adapter(handler).test_connection(API_KEY, BASE_URL)
        assert result.success is True
        assert result.message == "Connection successful"

    @pytest.mark.asyncio
    async def test_both_paths_fail(self) -> None:
        result = await _adapter(lambda r: httpx.Response(404)).test_connection(API_KEY, BASE_URL)
        assert result.success is False
        assert result.message == "Connection failed: HTTP 404"

    @pytest.mark.asyncio
    async def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        result = await _adapter(handler).test_connection(API_KEY, BASE_URL)
        assert result.success is False
        assert result.message == "Connection error: connection refused"


class TestLocalModelDiscovery:
    """Test model listing."""

    @pytest.mark.asyncio
    async def test_without_base_url_returns_static(self) -> None:
        assert await LocalAdapter().fetch_available_models(API_KEY) == list(LocalAdapter.supported_models)

    @pytest.mark.asyncio
    async def test_openai_style_listing(self) -> None:
        payload = {"data": [{"id": "mistral"}, {"id": "llama3:8b"}]}
        models = await _adapter(lambda r: httpx.Response(200, json=payload)).fetch_available_models(
            API_KEY, BASE_URL
        )
        assert models == ["llama3:8b", "mistral"]

    @pytest.mark.asyncio
    async def test_ollama_tags_fallback(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/tags":
                return httpx.Response(200, json={"models": [{"name": "phi:latest"}]})
            return httpx.Response(404)

        models = await _adapter(handler).fetch_available_models(API_KEY, BASE_URL)
        assert models == ["phi:latest"]

    @pytest.mark.asyncio
    async def test_everything_fails(self) -> None:
        models = await _adapter(lambda r: httpx.Response(500)).fetch_available_models(API_KEY, BASE_URL)
        assert models == list(LocalAdapter.supported_models)
