"""OpenAI adapter for the promptbench execution pipeline.

Converts ProviderMessages to OpenAI chat completion format and normalizes
the response into a CompletionResponse. A fresh AsyncOpenAI client is built
per call with the caller's decrypted key and closed when the call ends.
"""

from __future__ import annotations

import time
from typing import Any

import openai
from openai import AsyncOpenAI

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

OPENAI_API_URL = "https://api.openai.com/v1"

# Discovery sort order: newer families first.
_FAMILY_ORDER: tuple[str, ...] = ("o3", "o1", "gpt-4o", "gpt-4", "gpt-3.5", "chatgpt")


def _family_rank(model_id: str) -> int:
    lowered = model_id.lower()
    for index, prefix in enumerate(_FAMILY_ORDER):
        if lowered.startswith(prefix):
            return index
    return len(_FAMILY_ORDER)


def _is_chat_model(model_id: str) -> bool:
    lowered = model_id.lower()
    if not lowered.startswith(("gpt-", "o1", "o3", "chatgpt-")):
        return False
    return not any(tag in lowered for tag in ("instruct", "realtime", "audio"))


class OpenAIAdapter(BaseAdapter):
    """Adapter for the OpenAI chat completion API."""

    name = "openai"
    display_name = "OpenAI"
    default_model = "gpt-4o"
    supported_models = (
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
        "o1",
        "o1-mini",
    )
    default_base_url = OPENAI_API_URL

    def _make_client(self, api_key: str, base_url: str | None) -> AsyncOpenAI:
        """Build a short-lived client bound to one decrypted key.

        Retries are disabled; a failed call is reported, not repeated.
        """
        kwargs: dict[str, Any] = {
            "api_key": api_key,
            "base_url": base_url or self.default_base_url,
            "max_retries": 0,
        }
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        return AsyncOpenAI(**kwargs)

    def _convert_messages(self, messages: list[ProviderMessage]) -> list[dict[str, Any]]:
        """Convert ProviderMessages to OpenAI chat format.

        OpenAI accepts system/user/assistant roles inline, so this is a
        straight mapping.
        """
        return [{"role": msg.role, "content": msg.content} for msg in messages]

    def _filter_models(self, model_ids: list[str]) -> list[str]:
        chat_models = [m for m in model_ids if _is_chat_model(m)]
        return sorted(chat_models, key=lambda m: (_family_rank(m), m))

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send one chat completion to the OpenAI API.

        Args:
            request: Messages, model, key and generation parameters.

        Returns:
            CompletionResponse with output text and usage (None when absent).

        Raises:
            ProviderError: With a redacted message on any failure.
        """
        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": self._convert_messages(request.messages),
        }

        if request.max_tokens:
            kwargs["max_tokens"] = request.max_tokens

        if request.temperature is not None:
            kwargs["temperature"] = request.temperature

        try:
            async with self._make_client(request.api_key, request.base_url) as client:
                response = await client.chat.completions.create(**kwargs)
        except Exception as exc:
            # from None: the chained vendor exception may echo the key
            raise ProviderError(redact(describe_error(exc), request.api_key)) from None

        if not response.choices:
            raise ProviderError("No response choices returned")

        choice = response.choices[0]
        usage = response.usage

        return CompletionResponse(
            output=choice.message.content or "",
            input_tokens=usage.prompt_tokens if usage is not None else None,
            output_tokens=usage.completion_tokens if usage is not None else None,
            total_tokens=usage.total_tokens if usage is not None else None,
            tokens_estimated=usage is None,
            finish_reason=choice.finish_reason,
        )

    async def test_connection(
        self, api_key: str, base_url: str | None = None
    ) -> ConnectionTestResult:
        """List models as a lightweight authenticated check."""
        start = time.perf_counter()
        try:
            async with self._make_client(api_key, base_url) as client:
                await client.models.list()
        except openai.AuthenticationError:
            return ConnectionTestResult(
                success=False,
                message="Invalid API key",
                latency_ms=elapsed_ms(start, time.perf_counter()),
            )
        except openai.APIStatusError as exc:
            return ConnectionTestResult(
                success=False,
                message=redact(f"Connection failed: {describe_error(exc)}", api_key),
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
        """List chat-capable models, newest families first."""
        try:
            async with self._make_client(api_key, base_url) as client:
                page = await client.models.list()
        except Exception as exc:
            return self._fallback_models(redact(describe_error(exc), api_key))

        models = self._filter_models([model.id for model in page.data])
        return models or self.get_supported_models()


class DeepSeekAdapter(OpenAIAdapter):
    """Adapter for DeepSeek's OpenAI-compatible API."""

    name = "deepseek"
    display_name = "DeepSeek"
    default_model = "deepseek-chat"
    supported_models = ("deepseek-chat", "deepseek-reasoner")
    default_base_url = "https://api.deepseek.com/v1"

    def _filter_models(self, model_ids: list[str]) -> list[str]:
        return sorted(m for m in model_ids if m.startswith("deepseek"))
