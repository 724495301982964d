"""Anthropic adapter for the promptbench execution pipeline.

Converts ProviderMessages to Anthropic messages format and normalizes the
response into a CompletionResponse.
"""

from __future__ import annotations

import time
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

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

DEFAULT_MAX_TOKENS = 4096


def _generation_score(model_id: str) -> int:
    """Rank model ids by generation, then tier. Presentation only."""
    if "opus-4" in model_id or "sonnet-4" in model_id:
        return 100
    if "3-5" in model_id or "3.5" in model_id:
        return 90
    if "opus" in model_id:
        return 80
    if "sonnet" in model_id:
        return 70
    if "haiku" in model_id:
        return 60
    return 50


class AnthropicAdapter(BaseAdapter):
    """Adapter for the Anthropic messages API."""

    name = "anthropic"
    display_name = "Anthropic"
    default_model = "claude-sonnet-4-20250514"
    supported_models = (
        "claude-sonnet-4-20250514",
        "claude-opus-4-20250514",
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    )

    def _make_client(self, api_key: str, base_url: str | None) -> AsyncAnthropic:
        """Build a short-lived client bound to one decrypted key."""
        kwargs: dict[str, Any] = {"api_key": api_key, "max_retries": 0}
        if base_url:
            kwargs["base_url"] = base_url
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        return AsyncAnthropic(**kwargs)

    def _extract_system(
        self, messages: list[ProviderMessage]
    ) -> tuple[str | None, list[ProviderMessage]]:
        """Extract the system message from the message list.

        Anthropic uses a separate 'system' parameter instead of a system
        message in the messages array. If several are present the last wins.

        Returns:
            Tuple of (system_prompt or None, remaining messages in order).
        """
        system_prompt: str | None = None
        remaining: list[ProviderMessage] = []
        for msg in messages:
            if msg.role == "system":
                system_prompt = msg.content
            else:
                remaining.append(msg)
        return system_prompt, remaining

    def _convert_messages(self, messages: list[ProviderMessage]) -> list[dict[str, Any]]:
        """Convert non-system ProviderMessages to Anthropic format."""
        return [
            {"role": "assistant" if msg.role == "assistant" else "user", "content": msg.content}
            for msg in messages
        ]

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send one message request to the Anthropic API.

        Raises:
            ProviderError: With a redacted message on any failure.
        """
        system_prompt, remaining = self._extract_system(request.messages)

        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": self._convert_messages(remaining),
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
        }

        if system_prompt:
            kwargs["system"] = system_prompt

        if request.temperature is not None:
            kwargs["temperature"] = request.temperature

        try:
            async with self._make_client(request.api_key, request.base_url) as client:
                response = await client.messages.create(**kwargs)
        except Exception as exc:
            # from None: the chained vendor exception may echo the key
            raise ProviderError(redact(describe_error(exc), request.api_key)) from None

        content_parts = [
            block.text for block in (response.content or []) if block.type == "text"
        ]
        usage = getattr(response, "usage", None)

        input_tokens = usage.input_tokens if usage is not None else None
        output_tokens = usage.output_tokens if usage is not None else None

        return CompletionResponse(
            output="\n".join(content_parts),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=(
                input_tokens + output_tokens if usage is not None else None
            ),
            tokens_estimated=usage is None,
            finish_reason=response.stop_reason,
        )

    async def test_connection(
        self, api_key: str, base_url: str | None = None
    ) -> ConnectionTestResult:
        """List a single model as a free authenticated check."""
        start = time.perf_counter()
        try:
            async with self._make_client(api_key, base_url) as client:
                await client.models.list(limit=1)
        except anthropic.AuthenticationError:
            return ConnectionTestResult(
                success=False,
                message="Invalid API key",
                latency_ms=elapsed_ms(start, time.perf_counter()),
            )
        except anthropic.APIStatusError as exc:
            return ConnectionTestResult(
                success=False,
                message=redact(f"Connection test failed: {describe_error(exc)}", api_key),
                latency_ms=elapsed_ms(start, time.perf_counter()),
            )
        except Exception as exc:
            return ConnectionTestResult(
                success=False,
                message=redact(f"Connection error: {describe_error(exc)}", api_key),
            )

        return ConnectionTestResult(
            success=True,
            message="Connection successful",
            latency_ms=elapsed_ms(start, time.perf_counter()),
        )

    async def fetch_available_models(
        self, api_key: str, base_url: str | None = None
    ) -> list[str]:
        """List models, newest generation and highest tier first."""
        try:
            async with self._make_client(api_key, base_url) as client:
                page = await client.models.list(limit=100)
        except Exception as exc:
            return self._fallback_models(redact(describe_error(exc), api_key))

        models = [model.id for model in page.data if model.type == "model"]
        models.sort(key=lambda m: (-_generation_score(m), m))
        return models or self.get_supported_models()
