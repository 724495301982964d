"""Tests for promptbench.adapters.google_adapter - Gemini REST adapter.

HTTP traffic is served by httpx.MockTransport, so no network is used.
"""

from __future__ import annotations

import json

import httpx
import pytest

from promptbench.adapters.base import CompletionRequest, ProviderError, ProviderMessage
from promptbench.adapters.google_adapter import GoogleAdapter

API_KEY = "AIza-test-0123456789"

GENERATE_OK = {
    "candidates": [
        {"content": {"parts": [{"text": "Paris"}], "role": "model"}, "finishReason": "STOP"}
    ],
    "usageMetadata": {"promptTokenCount": 8, "candidatesTokenCount": 1, "totalTokenCount": 9},
}


def _adapter(handler) -> GoogleAdapter:
    return GoogleAdapter(transport=httpx.MockTransport(handler))


def _request(messages=None, **overrides) -> CompletionRequest:
    return CompletionRequest(
        messages=messages or [ProviderMessage(role="user", content="Capital of France?")],
        model="gemini-1.5-pro",
        api_key=API_KEY,
        **overrides,
    )


class TestGoogleBody:
    """Test request body construction."""

    def test_system_and_roles(self) -> None:
        body = GoogleAdapter()._build_body(
            _request(
                messages=[
                    ProviderMessage(role="system", content="Be terse."),
                    ProviderMessage(role="user", content="Hi"),
                    ProviderMessage(role="assistant", content="Hello"),
                ],
                max_tokens=50,
                temperature=0.5,
            )
        )
        assert body["systemInstruction"] == {"parts": [{"text": "Be terse."}]}
        assert [c["role"] for c in body["contents"]] == ["user", "model"]
        assert body["generationConfig"] == {"maxOutputTokens": 50, "temperature": 0.5}

    def test_no_system(self) -> None:
        body = GoogleAdapter()._build_body(_request())
        assert "systemInstruction" not in body
        assert body["generationConfig"] == {}


class TestGoogleComplete:
    """Test generateContent calls."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=GENERATE_OK)

        result = await _adapter(handler).complete(_request())

        assert result.output == "Paris"
        assert (result.input_tokens, result.output_tokens, result.total_tokens) == (8, 1, 9)
        assert result.tokens_estimated is False
        assert result.finish_reason == "STOP"
        request = seen[0]
        assert request.method == "POST"
        assert "gemini-1.5-pro" in str(request.url)
        assert "generateContent" in str(request.url)
        assert request.headers["x-goog-api-key"] == API_KEY
        assert API_KEY not in str(request.url)
        assert json.loads(request.content)["contents"][0]["parts"] == [{"text": "Capital of France?"}]

    @pytest.mark.asyncio
    async def test_missing_usage(self) -> None:
        payload = {"candidates": GENERATE_OK["candidates"]}
        result = await _adapter(lambda r: httpx.Response(200, json=payload)).complete(_request())
        assert result.input_tokens is None
        assert result.tokens_estimated is True

    @pytest.mark.asyncio
    async def test_no_candidates(self) -> None:
        adapter = _adapter(lambda r: httpx.Response(200, json={"candidates": []}))
        with pytest.raises(ProviderError, match="No response candidates returned"):
            await adapter.complete(_request())

    @pytest.mark.asyncio
    async def test_malformed_candidate(self) -> None:
        adapter = _adapter(lambda r: httpx.Response(200, json={"candidates": ["oops"]}))
        with pytest.raises(ProviderError, match="Malformed generateContent response"):
            await adapter.complete(_request())

    @pytest.mark.asyncio
    async def test_malformed_usage_metadata(self) -> None:
        payload = {"candidates": GENERATE_OK["candidates"], "usageMetadata": "oops"}
        adapter = _adapter(lambda r: httpx.Response(200, json=payload))
        with pytest.raises(ProviderError, match="Malformed generateContent response"):
            await adapter.complete(_request())

    @pytest.mark.asyncio
    async def test_error_envelope_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": f"API key not valid: {API_KEY}"}})

        with pytest.raises(ProviderError) as exc_info:
            await _adapter(handler).complete(_request())

        assert "API key not valid" in str(exc_info.value)
        assert API_KEY not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_error_without_envelope(self) -> None:
        adapter = _adapter(lambda r: httpx.Response(503, text="unavailable"))
        with pytest.raises(ProviderError, match="HTTP 503"):
            await adapter.complete(_request())

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        with pytest.raises(ProviderError, match="connection refused"):
            await _adapter(handler).complete(_request())


class TestGoogleTestConnection:
    """Test credential checks."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        result = await _adapter(lambda r: httpx.Response(200, json={"models": []})).test_connection(API_KEY)
        assert result.success is True
        assert result.message == "Connection successful"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_invalid_key(self, status: int) -> None:
        result = await _adapter(lambda r: httpx.Response(status)).test_connection(API_KEY)
        assert result.success is False
        assert result.message == "Invalid API key"

    @pytest.mark.asyncio
    async def test_other_failure(self) -> None:
        adapter = _adapter(lambda r: httpx.Response(500, json={"error": {"message": "backend"}}))
        result = await adapter.test_connection(API_KEY)
        assert result.success is False
        assert result.message == "Connection failed: backend"

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route")

        result = await _adapter(handler).test_connection(API_KEY)
        assert result.success is False
        assert result.message == "Connection error: no route"


class TestGoogleModelDiscovery:
    """Test model listing."""

    @pytest.mark.asyncio
    async def test_filters_and_sorts(self) -> None:
        payload = {
            "models": [
                {"name": "models/gemini-1.5-flash", "supportedGenerationMethods": ["generateContent"]},
                {"name": "models/embedding-001", "supportedGenerationMethods": ["embedContent"]},
                {"name": "models/gemini-2.0-flash-exp", "supportedGenerationMethods": ["generateContent"]},
                {"name": "models/gemini-1.5-pro", "supportedGenerationMethods": ["generateContent"]},
                {"name": "models/gemini-1.5-pro-vision", "supportedGenerationMethods": []},
            ]
        }
        models = await _adapter(lambda r: httpx.Response(200, json=payload)).fetch_available_models(API_KEY)
        assert models == ["gemini-2.0-flash-exp", "gemini-1.5-pro", "gemini-1.5-flash"]

    @pytest.mark.asyncio
    async def test_http_failure_falls_back(self) -> None:
        models = await _adapter(lambda r: httpx.Response(500)).fetch_available_models(API_KEY)
        assert models == list(GoogleAdapter.supported_models)

    @pytest.mark.asyncio
    async def test_empty_list_falls_back(self) -> None:
        models = await _adapter(lambda r: httpx.Response(200, json={"models": []})).fetch_available_models(API_KEY)
        assert models == list(GoogleAdapter.supported_models)
