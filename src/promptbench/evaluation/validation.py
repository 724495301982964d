"""Pass/fail checks applied to a completed run's output.

Two rules are supported: a required substring and a JSON Schema. A failing
rule (including unparseable output or a malformed schema) is reported as a
failing ValidationOutcome, never raised, since the completion itself has
already succeeded.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

import jsonschema
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for
from referencing.exceptions import Unresolvable

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_BRACED_SPAN = re.compile(r"(\{[\s\S]*\})")

CONTAINS_PREVIEW_LENGTH = 50


@dataclass(frozen=True)
class ValidationOutcome:
    """Combined verdict of every configured rule, with human-readable notes."""

    passed: bool
    notes: str


def validate_contains(output: str, expected_contains: str) -> ValidationOutcome:
    """Check that expected_contains appears verbatim in output."""
    if expected_contains in output:
        return ValidationOutcome(passed=True, notes="Output contains expected string")

    preview = expected_contains[:CONTAINS_PREVIEW_LENGTH]
    if len(expected_contains) > CONTAINS_PREVIEW_LENGTH:
        preview += "..."
    return ValidationOutcome(passed=False, notes=f'Output does not contain: "{preview}"')


def extract_json(output: str) -> Any:
    """Parse the JSON payload of a model response.

    Tries a fenced code block first, then the outermost {...} span, and
    falls back to the whole output when neither parses.

    Raises:
        json.JSONDecodeError: If nothing parses.
    """
    match = _FENCED_BLOCK.search(output) or _BRACED_SPAN.search(output)
    if match:
        try:
            return json.loads(match.group(1).strip())
        except json.JSONDecodeError:
            return json.loads(output)
    return json.loads(output)


def _error_path(error: jsonschema.ValidationError) -> str:
    return "".join(f"/{part}" for part in error.absolute_path)


def validate_json_schema(output: str, schema: str | dict[str, Any]) -> ValidationOutcome:
    """Validate the JSON found in output against a JSON Schema.

    The validator class follows the schema's $schema keyword (latest draft
    when absent). All violations are reported, not just the first.
    """
    try:
        instance = extract_json(output)
        schema_doc = json.loads(schema) if isinstance(schema, str) else schema
        validator_cls = validator_for(schema_doc)
        validator_cls.check_schema(schema_doc)
        errors = sorted(
            validator_cls(schema_doc).iter_errors(instance),
            key=lambda e: list(e.absolute_path),
        )
    except (ValueError, TypeError, RecursionError, SchemaError, Unresolvable) as exc:
        message = exc.message if isinstance(exc, SchemaError) else str(exc)
        return ValidationOutcome(passed=False, notes=f"JSON validation error: {message}")

    if not errors:
        return ValidationOutcome(passed=True, notes="Output matches JSON schema")

    details = "; ".join(f"{_error_path(e)} {e.message}" for e in errors)
    return ValidationOutcome(passed=False, notes=f"Schema validation failed: {details}")


def validate_output(
    output: str,
    expected_contains: str | None = None,
    json_schema: str | dict[str, Any] | None = None,
) -> ValidationOutcome | None:
    """Run every configured rule against output.

    Returns:
        None when no rules are configured; otherwise an outcome that passes
        only if every rule passes, with per-rule notes joined by '; '.
    """
    if not expected_contains and not json_schema:
        return None

    outcomes: list[ValidationOutcome] = []
    if expected_contains:
        outcomes.append(validate_contains(output, expected_contains))
    if json_schema:
        outcomes.append(validate_json_schema(output, json_schema))

    return ValidationOutcome(
        passed=all(o.passed for o in outcomes),
        notes="; ".join(o.notes for o in outcomes),
    )
