"""promptbench adapters - provider adapter abstraction layer.

Re-exports the BaseAdapter ABC, the request/response dataclasses, the
adapter registry, and the concrete adapter implementations.
"""

from promptbench.adapters.anthropic_adapter import AnthropicAdapter
from promptbench.adapters.base import (
    BaseAdapter,
    CompletionRequest,
    CompletionResponse,
    ConnectionTestResult,
    ProviderError,
    ProviderMessage,
)
from promptbench.adapters.google_adapter import GoogleAdapter
from promptbench.adapters.local_adapter import LocalAdapter
from promptbench.adapters.openai_adapter import DeepSeekAdapter, OpenAIAdapter
from promptbench.adapters.registry import (
    AdapterRegistry,
    UnknownProviderError,
    build_default_registry,
    load_adapter,
)

__all__ = [
    "AdapterRegistry",
    "AnthropicAdapter",
    "BaseAdapter",
    "CompletionRequest",
    "CompletionResponse",
    "ConnectionTestResult",
    "DeepSeekAdapter",
    "GoogleAdapter",
    "LocalAdapter",
    "OpenAIAdapter",
    "ProviderError",
    "ProviderMessage",
    "UnknownProviderError",
    "build_default_registry",
    "load_adapter",
]
