"""Process wiring: builds the store, codec, registry and services once."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from promptbench.adapters.registry import AdapterRegistry, build_default_registry
from promptbench.credentials.codec import SecretCodec
from promptbench.credentials.service import KeyService
from promptbench.execution.rate_limit import RateLimiter
from promptbench.execution.runner import TestRunner
from promptbench.models.config import ProjectConfig, find_project_root, load_project_config
from promptbench.storage.json_store import JsonStore


@dataclass
class AppContext:
    """Everything a command needs, built from one ProjectConfig."""

    project_root: Path
    config: ProjectConfig
    store: JsonStore
    codec: SecretCodec
    registry: AdapterRegistry
    rate_limiter: RateLimiter
    runner: TestRunner
    keys: KeyService

    @classmethod
    def create(
        cls,
        project_root: Path | None = None,
        config: ProjectConfig | None = None,
        registry: AdapterRegistry | None = None,
    ) -> AppContext:
        """Build the context, failing fast on a bad encryption key.

        Raises:
            EncryptionConfigError: If the key variable is missing or malformed,
                or the codec round-trip self-test fails.
        """
        root = project_root or find_project_root()
        cfg = config or load_project_config(root)

        codec = SecretCodec.from_env(cfg.encryption_key_env)
        codec.validate_setup()

        store = JsonStore(root, cfg.storage_dir)
        if registry is None:
            registry = build_default_registry(
                timeout=cfg.request_timeout_seconds,
                custom_adapters=cfg.custom_adapters,
            )
        rate_limiter = RateLimiter(
            store,
            max_per_minute=cfg.max_runs_per_minute,
            retention=timedelta(minutes=cfg.rate_window_retention_minutes),
        )
        return cls(
            project_root=root,
            config=cfg,
            store=store,
            codec=codec,
            registry=registry,
            rate_limiter=rate_limiter,
            runner=TestRunner(store, registry, codec, rate_limiter),
            keys=KeyService(store, codec, registry),
        )
