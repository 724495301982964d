"""Evaluation package: pass/fail validation of run output."""

from __future__ import annotations

from promptbench.evaluation.validation import (
    ValidationOutcome,
    extract_json,
    validate_contains,
    validate_json_schema,
    validate_output,
)

__all__ = [
    "ValidationOutcome",
    "extract_json",
    "validate_contains",
    "validate_json_schema",
    "validate_output",
]
