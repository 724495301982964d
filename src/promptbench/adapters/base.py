"""BaseAdapter ABC and the request/response dataclasses shared by all providers.

Every provider adapter (OpenAI, Anthropic, Google, DeepSeek, local) subclasses
BaseAdapter and implements complete() and test_connection(). The orchestrator
only ever talks to providers through this interface.

These are plain dataclasses (not Pydantic) to avoid overhead in the
hot path of adapter calls.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised by complete() when the vendor call fails.

    The message has already been redacted against the request's API key.
    """


@dataclass
class ProviderMessage:
    """A single chat message. Roles: system, user, assistant."""

    role: str
    content: str


@dataclass
class CompletionRequest:
    """Parameters for one chat-style completion call."""

    messages: list[ProviderMessage]
    model: str
    api_key: str
    max_tokens: int | None = None
    temperature: float | None = None
    base_url: str | None = None

    def __repr__(self) -> str:
        # Keep the key out of reprs, tracebacks and log records.
        return (
            f"CompletionRequest(model={self.model!r}, "
            f"messages={len(self.messages)}, base_url={self.base_url!r})"
        )


@dataclass
class CompletionResponse:
    """Normalized result of one completion call.

    Token counts are None when the vendor omitted usage metadata; in that
    case tokens_estimated is True and the caller back-fills the counts.
    """

    output: str
    input_tokens: int | None
    output_tokens: int | None
    total_tokens: int | None
    tokens_estimated: bool
    finish_reason: str | None = None


@dataclass
class ConnectionTestResult:
    """Outcome of a credential check against a provider."""

    success: bool
    message: str
    latency_ms: int | None = None


def elapsed_ms(start: float, end: float) -> int:
    """Convert two perf_counter readings to whole milliseconds."""
    return int(round((end - start) * 1000))


def describe_error(exc: BaseException) -> str:
    """Best human-readable message for an SDK or transport exception."""
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or type(exc).__name__


class BaseAdapter(ABC):
    """Abstract base class for all provider adapters.

    Subclasses set the class attributes and implement complete() and
    test_connection(). fetch_available_models() defaults to the static
    list; vendors with a discovery endpoint override it.
    """

    name: ClassVar[str] = ""
    display_name: ClassVar[str] = ""
    default_model: ClassVar[str] = ""
    supported_models: ClassVar[tuple[str, ...]] = ()

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Execute one completion.

        Raises:
            ProviderError: On a non-success status or a malformed/empty body.
        """
        ...

    @abstractmethod
    async def test_connection(
        self, api_key: str, base_url: str | None = None
    ) -> ConnectionTestResult:
        """Validate a credential with the cheapest authenticated call.

        Never raises; failures resolve to success=False.
        """
        ...

    async def fetch_available_models(
        self, api_key: str, base_url: str | None = None
    ) -> list[str]:
        """Return model ids usable with this provider. Static by default."""
        return self.get_supported_models()

    def get_default_model(self) -> str:
        return self.default_model

    def get_supported_models(self) -> list[str]:
        return list(self.supported_models)

    def provider_name(self) -> str:
        """Return the registry name for this adapter.

        Falls back to the class name for adapters that leave `name` unset.
        """
        return self.name or type(self).__name__

    def _fallback_models(self, reason: str) -> list[str]:
        logger.debug(
            "Model discovery for %s fell back to static list: %s",
            self.provider_name(),
            reason,
        )
        return self.get_supported_models()

