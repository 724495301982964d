"""Google Gemini adapter for the promptbench execution pipeline.

Talks to the Generative Language REST API (v1beta) over httpx. The key is
sent in the x-goog-api-key header so it never appears in request URLs.
"""

from __future__ import annotations

import re
import time
from typing import Any

import httpx

from promptbench.adapters.base import (
    BaseAdapter,
    CompletionRequest,
    CompletionResponse,
    ConnectionTestResult,
    ProviderError,
    ProviderMessage,
    describe_error,
    elapsed_ms,
)
from promptbench.credentials.codec import redact

GOOGLE_API_URL = "https://generativelanguage.googleapis.com/v1beta"

_VERSION_SCORES: tuple[tuple[tuple[str, ...], int], ...] = (
    (("2.0", "2-"), 200),
    (("1.5", "1-5"), 150),
    (("1.0", "1-0"), 100),
)


def _version_score(model_id: str) -> int:
    for markers, score in _VERSION_SCORES:
        if any(marker in model_id for marker in markers):
            return score
    return 50


def _error_message(response: httpx.Response) -> str:
    """Pull error.message out of a Gemini error envelope."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return f"HTTP {response.status_code}"


class GoogleAdapter(BaseAdapter):
    """Adapter for Google Gemini generateContent."""

    name = "google"
    display_name = "Google Gemini"
    default_model = "gemini-1.5-pro"
    supported_models = (
        "gemini-1.5-pro",
        "gemini-1.5-flash",
        "gemini-1.5-flash-8b",
        "gemini-2.0-flash-exp",
    )

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout)
        self._transport = transport

    def _make_client(self, api_key: str, base_url: str | None) -> httpx.AsyncClient:
        kwargs: dict[str, Any] = {
            "base_url": (base_url or GOOGLE_API_URL).rstrip("/"),
            "headers": {"x-goog-api-key": api_key},
        }
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    def _convert_messages(
        self, messages: list[ProviderMessage]
    ) -> tuple[dict[str, Any] | None, list[dict[str, Any]]]:
        """Split messages into (systemInstruction, contents).

        Gemini calls the assistant role 'model' and takes system text in a
        separate systemInstruction field.
        """
        system_instruction: dict[str, Any] | None = None
        contents: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "system":
                system_instruction = {"parts": [{"text": msg.content}]}
            else:
                contents.append(
                    {
                        "role": "model" if msg.role == "assistant" else "user",
                        "parts": [{"text": msg.content}],
                    }
                )
        return system_instruction, contents

    def _build_body(self, request: CompletionRequest) -> dict[str, Any]:
        system_instruction, contents = self._convert_messages(request.messages)
        body: dict[str, Any] = {"contents": contents}
        if system_instruction is not None:
            body["systemInstruction"] = system_instruction

        generation_config: dict[str, Any] = {}
        if request.max_tokens:
            generation_config["maxOutputTokens"] = request.max_tokens
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        body["generationConfig"] = generation_config
        return body

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """POST models/{model}:generateContent.

        Raises:
            ProviderError: With a redacted message on any failure.
        """
        body = self._build_body(request)
        try:
            async with self._make_client(request.api_key, request.base_url) as client:
                response = await client.post(
                    f"/models/{request.model}:generateContent", json=body
                )
            if not response.is_success:
                raise ProviderError(_error_message(response))
            data = response.json()
        except Exception as exc:
            # from None: the chained transport exception may echo the key
            raise ProviderError(redact(describe_error(exc), request.api_key)) from None

        candidates = data.get("candidates") if isinstance(data, dict) else None
        if not candidates:
            raise ProviderError("No response candidates returned")

        try:
            candidate = candidates[0]
            parts = (candidate.get("content") or {}).get("parts") or []
            output = parts[0].get("text", "") if parts else ""
            usage = data.get("usageMetadata")
            response_fields = {
                "input_tokens": usage.get("promptTokenCount") if usage else None,
                "output_tokens": usage.get("candidatesTokenCount") if usage else None,
                "total_tokens": usage.get("totalTokenCount") if usage else None,
                "finish_reason": candidate.get("finishReason"),
            }
        except (AttributeError, TypeError, IndexError):
            raise ProviderError("Malformed generateContent response") from None

        return CompletionResponse(
            output=output or "",
            tokens_estimated=not usage,
            **response_fields,
        )

    async def _list_models(self, api_key: str, base_url: str | None) -> httpx.Response:
        async with self._make_client(api_key, base_url) as client:
            return await client.get("/models")

    async def test_connection(
        self, api_key: str, base_url: str | None = None
    ) -> ConnectionTestResult:
        """List models as an authenticated check."""
        start = time.perf_counter()
        try:
            response = await self._list_models(api_key, base_url)
        except Exception as exc:
            return ConnectionTestResult(
                success=False,
                message=redact(f"Connection error: {describe_error(exc)}", api_key),
            )

        latency_ms = elapsed_ms(start, time.perf_counter())
        if response.status_code in (401, 403):
            return ConnectionTestResult(
                success=False, message="Invalid API key", latency_ms=latency_ms
            )
        if not response.is_success:
            return ConnectionTestResult(
                success=False,
                message=redact(f"Connection failed: {_error_message(response)}", api_key),
                latency_ms=latency_ms,
            )
        return ConnectionTestResult(
            success=True, message="Connection successful", latency_ms=latency_ms
        )

    async def fetch_available_models(
        self, api_key: str, base_url: str | None = None
    ) -> list[str]:
        """List Gemini models that support generateContent, newest first."""
        try:
            response = await self._list_models(api_key, base_url)
            if not response.is_success:
                return self._fallback_models(f"HTTP {response.status_code}")
            models = [
                re.sub(r"^models/", "", model["name"])
                for model in response.json().get("models", [])
                if "generateContent" in (model.get("supportedGenerationMethods") or [])
                and "gemini" in model.get("name", "")
            ]
        except Exception as exc:
            return self._fallback_models(redact(describe_error(exc), api_key))

        models.sort(key=lambda m: (-_version_score(m), "pro" not in m, m))
        return models or self.get_supported_models()
