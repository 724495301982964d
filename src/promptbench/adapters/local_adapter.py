"""Local / OpenAI-compatible adapter (Ollama, LM Studio, vLLM, proxies).

Requires a base URL. Servers disagree on whether the API lives at the root
or under /v1, so completion and connection checks try the root path first
and fall back to the /v1 path once on a 404-style miss.
"""

from __future__ import annotations

import time
from typing import Any

import httpx

from promptbench.adapters.base import (
    BaseAdapter,
    CompletionRequest,
    CompletionResponse,
    ConnectionTestResult,
    ProviderError,
    describe_error,
    elapsed_ms,
)
from promptbench.credentials.codec import redact

BASE_URL_REQUIRED = "Base URL is required for local/custom endpoints"


class LocalAdapter(BaseAdapter):
    """Adapter for locally hosted or self-managed OpenAI-compatible servers."""

    name = "local"
    display_name = "Local/OpenAI-Compatible"
    default_model = "default"
    supported_models = (
        "default",
        "llama2",
        "llama3",
        "mistral",
        "mixtral",
        "codellama",
        "phi",
        "gemma",
    )

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout)
        self._transport = transport

    def _make_client(self, api_key: str, base_url: str) -> httpx.AsyncClient:
        headers: dict[str, str] = {}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        kwargs: dict[str, Any] = {"base_url": base_url.rstrip("/"), "headers": headers}
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """POST /chat/completions, retrying once on /v1/chat/completions after a 404.

        Raises:
            ProviderError: With a redacted message on any failure.
        """
        if not request.base_url:
            raise ProviderError(BASE_URL_REQUIRED)

        body: dict[str, Any] = {
            "model": request.model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "stream": False,
        }
        if request.max_tokens:
            body["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            body["temperature"] = request.temperature

        try:
            async with self._make_client(request.api_key, request.base_url) as client:
                response = await client.post("/chat/completions", json=body)
                if response.status_code == 404:
                    response = await client.post("/v1/chat/completions", json=body)
            if not response.is_success:
                raise ProviderError(f"HTTP {response.status_code}: {response.text}")
            data = response.json()
        except Exception as exc:
            # from None: the chained transport exception may echo the key
            raise ProviderError(redact(describe_error(exc), request.api_key)) from None

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ProviderError("No response choices returned")

        try:
            choice = choices[0]
            output = choice["message"]["content"] or ""
            finish_reason = choice.get("finish_reason") or "stop"
        except (KeyError, TypeError, IndexError):
            raise ProviderError("Malformed chat completion response") from None

        # Local servers often omit usage or report zeros.
        usage = data.get("usage") or {}
        has_usage = bool(usage.get("prompt_tokens") or usage.get("completion_tokens"))

        return CompletionResponse(
            output=output,
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
            total_tokens=usage.get("total_tokens"),
            tokens_estimated=not has_usage,
            finish_reason=finish_reason,
        )

    async def test_connection(
        self, api_key: str, base_url: str | None = None
    ) -> ConnectionTestResult:
        """GET /models, falling back to /v1/models."""
        if not base_url:
            return ConnectionTestResult(success=False, message=BASE_URL_REQUIRED)

        start = time.perf_counter()
        try:
            async with self._make_client(api_key, base_url) as client:
                response = await client.get("/models")
                latency_ms = elapsed_ms(start, time.perf_counter())
                if not response.is_success:
                    try:
                        v1_response = await client.get("/v1/models")
                    except httpx.HTTPError:
                        v1_response = None
                    if v1_response is not None and v1_response.is_success:
                        return ConnectionTestResult(
                            success=True,
                            message="Connection successful",
                            latency_ms=elapsed_ms(start, time.perf_counter()),
                        )
                    return ConnectionTestResult(
                        success=False,
                        message=f"Connection failed: HTTP {response.status_code}",
                        latency_ms=latency_ms,
                    )
        except Exception as exc:
            return ConnectionTestResult(
                success=False,
                message=redact(f"Connection error: {describe_error(exc)}", api_key),
            )

        return ConnectionTestResult(
            success=True, message="Connection successful", latency_ms=latency_ms
        )

    async def fetch_available_models(
        self, api_key: str, base_url: str | None = None
    ) -> list[str]:
        """GET /models, falling back to Ollama's /api/tags."""
        if not base_url:
            return self.get_supported_models()

        try:
            async with self._make_client(api_key, base_url) as client:
                response = await client.get("/models")
                if response.is_success:
                    models = sorted(m["id"] for m in response.json().get("data") or [])
                else:
                    tags = await client.get("/api/tags")
                    if not tags.is_success:
                        return self._fallback_models(f"HTTP {tags.status_code}")
                    models = [m["name"] for m in tags.json().get("models") or []]
        except Exception as exc:
            return self._fallback_models(redact(describe_error(exc), api_key))

        return models or self.get_supported_models()
