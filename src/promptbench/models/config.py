"""Project configuration model for promptbench.

Captures promptbench.yaml fields with sensible defaults for storage,
rate limiting, provider timeouts and custom adapters. The encryption key
itself is never read from this file, only the name of the environment
variable that holds it.
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field

CONFIG_FILENAME = "promptbench.yaml"
DEFAULT_STORAGE_DIR = ".promptbench"


class ProjectConfig(BaseModel):
    """Project-level configuration loaded from promptbench.yaml."""

    model_config = {"extra": "forbid"}

    storage_dir: str = DEFAULT_STORAGE_DIR
    default_user: str = "local"
    max_runs_per_minute: int = Field(default=10, ge=1, le=1000)
    rate_window_retention_minutes: int = Field(default=5, ge=1)
    request_timeout_seconds: float | None = Field(default=None, gt=0)
    encryption_key_env: str = "APP_ENCRYPTION_KEY"
    custom_adapters: list[str] = Field(default_factory=list)


def find_project_root(start: Path | None = None) -> Path:
    """Walk up from start (default: cwd) looking for promptbench.yaml or .promptbench/.

    Args:
        start: Starting path (file or directory). Defaults to cwd.

    Returns:
        Path to the directory containing promptbench.yaml or .promptbench/,
        or cwd if neither is found.
    """
    current = (start or Path.cwd()).resolve()
    if current.is_file():
        current = current.parent
    while current != current.parent:
        if (current / CONFIG_FILENAME).exists() or (current / DEFAULT_STORAGE_DIR).exists():
            return current
        current = current.parent
    return Path.cwd()


def load_project_config(project_root: Path | None = None) -> ProjectConfig:
    """Load ProjectConfig from promptbench.yaml. Returns defaults if not found.

    Raises:
        pydantic.ValidationError: If the file contains unknown or invalid fields.
    """
    if project_root is None:
        project_root = find_project_root()
    config_path = project_root / CONFIG_FILENAME
    if not config_path.exists():
        return ProjectConfig()

    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if raw is None:
        return ProjectConfig()
    return ProjectConfig.model_validate(raw)
