"""Persisted entities and transient results for promptbench.

Tests, stored credentials, run records and rate windows are Pydantic
models so the store can round-trip them through JSON without loss.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from promptbench.credentials.codec import EncryptedSecret


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Short random identifier, e.g. 'run_3f9c0a1b2d4e'."""
    return f"{prefix}_{uuid4().hex[:12]}"


class InvalidTransitionError(Exception):
    """Raised when a run record is moved along a transition it does not allow."""

    def __init__(self, current: RunStatus, target: RunStatus) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move run from {current.value} to {target.value}")


class ModelSelection(BaseModel):
    """One (provider, model, stored key) target for a run."""

    model_config = {"extra": "forbid", "frozen": True}

    provider: str
    model: str
    api_key_id: str

    @classmethod
    def parse(cls, value: str) -> ModelSelection:
        """Parse 'provider:model:key-id'.

        The model part may itself contain colons (e.g. 'llama3:8b').

        Raises:
            ValueError: If any of the three parts is missing.
        """
        provider, _, rest = value.partition(":")
        model, _, api_key_id = rest.rpartition(":")
        if not provider or not model or not api_key_id:
            raise ValueError(
                f"Invalid model selection '{value}'. Expected 'provider:model:key-id'."
            )
        return cls(provider=provider, model=model, api_key_id=api_key_id)

    def label(self) -> str:
        return f"{self.provider}/{self.model}"


class StoredCredential(BaseModel):
    """An encrypted provider API key owned by one user.

    Only the ciphertext, IV, tag and last four characters are stored; the
    plaintext key exists only for the duration of a single provider call.
    """

    model_config = {"extra": "forbid"}

    id: str = Field(default_factory=lambda: new_id("key"))
    user_id: str
    provider: str
    label: str = Field(default="", max_length=100)
    ciphertext: str
    iv: str
    auth_tag: str
    last_four: str
    base_url: str | None = None
    is_active: bool = True
    last_tested_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    def secret(self) -> EncryptedSecret:
        return EncryptedSecret(ciphertext=self.ciphertext, iv=self.iv, auth_tag=self.auth_tag)


class TestDefinition(BaseModel):
    """A stored prompt template with default variables and validation rules."""

    __test__ = False  # not a pytest test class

    model_config = {"extra": "forbid"}

    id: str = Field(default_factory=lambda: new_id("test"))
    user_id: str
    name: str
    description: str = ""
    prompt_template: str
    default_variables: dict[str, str] = Field(default_factory=dict)
    expected_contains: str | None = None
    json_schema: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("json_schema", mode="before")
    @classmethod
    def _schema_to_text(cls, value: Any) -> Any:
        """Accept a schema given as a mapping (e.g. from YAML) and store it as JSON text."""
        if isinstance(value, dict):
            return json.dumps(value)
        return value


class TestDefinitionFile(BaseModel):
    """YAML contract for a test definition file (`promptbench tests add`)."""

    __test__ = False

    model_config = {"extra": "forbid"}

    name: str
    description: str = ""
    prompt: str
    variables: dict[str, str] = Field(default_factory=dict)
    expected_contains: str | None = None
    json_schema: str | dict[str, Any] | None = None

    def to_definition(self, user_id: str) -> TestDefinition:
        return TestDefinition(
            user_id=user_id,
            name=self.name,
            description=self.description,
            prompt_template=self.prompt,
            default_variables=self.variables,
            expected_contains=self.expected_contains,
            json_schema=self.json_schema,
        )


class RunStatus(str, Enum):
    """Lifecycle state of a run record."""

    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"
    dry_run = "dry_run"


ALLOWED_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.pending: frozenset({RunStatus.running, RunStatus.dry_run, RunStatus.failed}),
    RunStatus.running: frozenset({RunStatus.completed, RunStatus.failed}),
    RunStatus.completed: frozenset(),
    RunStatus.failed: frozenset(),
    RunStatus.dry_run: frozenset(),
}


class RunRecord(BaseModel):
    """One executed (or dry-run estimated) attempt of a prompt against one model."""

    model_config = {"extra": "forbid"}

    id: str = Field(default_factory=lambda: new_id("run"))
    user_id: str
    test_id: str | None = None
    api_key_id: str
    provider: str
    model: str
    prompt: str
    variables: dict[str, str] = Field(default_factory=dict)
    status: RunStatus = RunStatus.pending
    output: str | None = None
    error_message: str | None = None
    latency_ms: int | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    tokens_estimated: bool = False
    estimated_cost: float | None = None
    cost_estimated: bool = False
    passed: bool | None = None
    validation_notes: str | None = None
    batch_id: str | None = None
    batch_index: int | None = None
    is_dry_run: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.status]

    def transition(self, target: RunStatus, **changes: Any) -> None:
        """Move to target status and apply field changes in place.

        Entering a terminal status stamps completed_at.

        Raises:
            InvalidTransitionError: If target is not reachable from the current status.
        """
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.status, target)
        for name, value in changes.items():
            setattr(self, name, value)
        self.status = target
        if self.is_terminal:
            self.completed_at = utcnow()


class RateWindow(BaseModel):
    """Attempt counter for one user within one UTC minute."""

    model_config = {"extra": "forbid"}

    user_id: str
    window_key: str
    count: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class RunResult(BaseModel):
    """Per-attempt outcome returned to callers.

    id is "" when the attempt never produced a stored record (missing or
    inactive credential).
    """

    id: str
    status: RunStatus
    provider: str
    model: str
    output: str | None = None
    error_message: str | None = None
    latency_ms: int | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    estimated_cost: float | None = None
    passed: bool | None = None
    validation_notes: str | None = None

    @classmethod
    def from_record(cls, record: RunRecord) -> RunResult:
        return cls(
            id=record.id,
            status=record.status,
            provider=record.provider,
            model=record.model,
            output=record.output,
            error_message=record.error_message,
            latency_ms=record.latency_ms,
            input_tokens=record.input_tokens,
            output_tokens=record.output_tokens,
            estimated_cost=record.estimated_cost,
            passed=record.passed,
            validation_notes=record.validation_notes,
        )
