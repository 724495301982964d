"""Adapter registry for resolving provider names to adapter instances.

The registry is an explicit value built once at process start and passed to
whatever needs it. Builtin providers are registered by
build_default_registry(); custom adapters can be added by instance or by
dotted path (e.g., "my.module.MyAdapter").
"""

from __future__ import annotations

import importlib
from collections.abc import Iterable

from promptbench.adapters.anthropic_adapter import AnthropicAdapter
from promptbench.adapters.base import BaseAdapter
from promptbench.adapters.google_adapter import GoogleAdapter
from promptbench.adapters.local_adapter import LocalAdapter
from promptbench.adapters.openai_adapter import DeepSeekAdapter, OpenAIAdapter

BUILTIN_ADAPTERS: tuple[type[BaseAdapter], ...] = (
    OpenAIAdapter,
    AnthropicAdapter,
    GoogleAdapter,
    DeepSeekAdapter,
    LocalAdapter,
)


class UnknownProviderError(KeyError):
    """Raised when no adapter is registered under the requested name."""

    def __init__(self, name: str, available: Iterable[str] = ()) -> None:
        self.name = name
        listed = ", ".join(sorted(available)) or "none"
        super().__init__(f"Unsupported provider: {name} (available: {listed})")

    def __str__(self) -> str:
        return str(self.args[0])


class AdapterRegistry:
    """Name -> adapter instance mapping, one instance per provider."""

    def __init__(self) -> None:
        self._adapters: dict[str, BaseAdapter] = {}

    def register(self, adapter: BaseAdapter, name: str | None = None) -> None:
        """Register an adapter instance. A later registration replaces an earlier one."""
        self._adapters[name or adapter.provider_name()] = adapter

    def get(self, name: str) -> BaseAdapter:
        """Return the adapter registered under name.

        Raises:
            UnknownProviderError: If nothing is registered under name.
        """
        try:
            return self._adapters[name]
        except KeyError:
            raise UnknownProviderError(name, self._adapters) from None

    def names(self) -> list[str]:
        return list(self._adapters)

    def all(self) -> list[BaseAdapter]:
        return list(self._adapters.values())

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


def load_adapter(dotted_path: str, timeout: float | None = None) -> BaseAdapter:
    """Import a custom adapter class by dotted path and return an instance.

    Args:
        dotted_path: Fully-qualified class path, e.g. 'my.module.MyAdapter'.
        timeout: Per-call timeout handed to the adapter constructor.

    Raises:
        ValueError: If the path has no module part.
        ImportError: If the module or class cannot be found.
        TypeError: If the resolved class is not a subclass of BaseAdapter.
    """
    module_path, _, class_name = dotted_path.rpartition(".")
    if not module_path or not class_name:
        raise ValueError(
            f"Invalid adapter path '{dotted_path}'. "
            f"Expected format: 'module.path.ClassName'."
        )

    module = importlib.import_module(module_path)

    try:
        cls = getattr(module, class_name)
    except AttributeError:
        raise ImportError(
            f"Module '{module_path}' has no attribute '{class_name}'."
        ) from None

    if not isinstance(cls, type) or not issubclass(cls, BaseAdapter):
        raise TypeError(
            f"'{dotted_path}' is not a subclass of BaseAdapter. "
            f"Custom adapters must inherit from promptbench.adapters.base.BaseAdapter."
        )

    return cls(timeout=timeout)


def build_default_registry(
    timeout: float | None = None,
    custom_adapters: Iterable[str] = (),
) -> AdapterRegistry:
    """Build a registry holding every builtin adapter plus any custom ones.

    Custom adapters are registered after the builtins, so a custom adapter
    whose name matches a builtin replaces it.
    """
    registry = AdapterRegistry()
    for adapter_cls in BUILTIN_ADAPTERS:
        registry.register(adapter_cls(timeout=timeout))
    for dotted_path in custom_adapters:
        registry.register(load_adapter(dotted_path, timeout=timeout))
    return registry
