"""promptbench data models - re-exports all public model classes."""

from promptbench.models.config import ProjectConfig
from promptbench.models.records import (
    InvalidTransitionError,
    ModelSelection,
    RateWindow,
    RunRecord,
    RunResult,
    RunStatus,
    StoredCredential,
    TestDefinition,
    TestDefinitionFile,
)

__all__ = [
    "InvalidTransitionError",
    "ModelSelection",
    "ProjectConfig",
    "RateWindow",
    "RunRecord",
    "RunResult",
    "RunStatus",
    "StoredCredential",
    "TestDefinition",
    "TestDefinitionFile",
]
