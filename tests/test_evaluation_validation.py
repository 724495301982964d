"""Tests for promptbench.evaluation.validation - substring and JSON Schema checks."""

from __future__ import annotations

import json

import pytest

from promptbench.evaluation.validation import (
    extract_json,
    validate_contains,
    validate_json_schema,
    validate_output,
)

PERSON_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "age": {"type": "integer"},
    },
    "required": ["name", "age"],
}


class TestValidateContains:
    """Test the expected-substring rule."""

    def test_pass(self) -> None:
        outcome = validate_contains("The capital is Paris.", "Paris")
        assert outcome.passed is True
        assert outcome.notes == "Output contains expected string"

    def test_fail_is_case_sensitive(self) -> None:
        outcome = validate_contains("the capital is paris.", "Paris")
        assert outcome.passed is False
        assert outcome.notes == 'Output does not contain: "Paris"'

    def test_long_expectation_is_truncated_in_notes(self) -> None:
        expected = "x" * 80
        outcome = validate_contains("nothing here", expected)
        assert outcome.notes == f'Output does not contain: "{"x" * 50}..."'


class TestExtractJson:
    """Test JSON extraction from model output."""

    def test_fenced_block(self) -> None:
        output = 'Here you go:\n```json\n{"a": 1}\n```\nThanks'
        assert extract_json(output) == {"a": 1}

    def test_unlabelled_fence(self) -> None:
        assert extract_json('```\n{"a": 2}\n```') == {"a": 2}

    def test_braced_span_in_prose(self) -> None:
        assert extract_json('Sure! {"a": 3} Hope that helps.') == {"a": 3}

    def test_whole_output(self) -> None:
        assert extract_json("[1, 2, 3]") == [1, 2, 3]

    def test_nothing_parses(self) -> None:
        with pytest.raises(json.JSONDecodeError):
            extract_json("no json at all")


class TestValidateJsonSchema:
    """Test the JSON Schema rule."""

    def test_valid_output(self) -> None:
        outcome = validate_json_schema('{"name": "Ada", "age": 36}', PERSON_SCHEMA)
        assert outcome.passed is True
        assert outcome.notes == "Output matches JSON schema"

    def test_schema_as_text(self) -> None:
        outcome = validate_json_schema('{"name": "Ada", "age": 36}', json.dumps(PERSON_SCHEMA))
        assert outcome.passed is True

    def test_all_violations_reported_with_paths(self) -> None:
        outcome = validate_json_schema('{"name": 5, "age": "old"}', PERSON_SCHEMA)
        assert outcome.passed is False
        assert outcome.notes.startswith("Schema validation failed: ")
        assert "/age " in outcome.notes
        assert "/name " in outcome.notes
        assert outcome.notes.index("/age") < outcome.notes.index("/name")

    def test_missing_required_property(self) -> None:
        outcome = validate_json_schema('{"name": "Ada"}', PERSON_SCHEMA)
        assert outcome.passed is False
        assert "'age' is a required property" in outcome.notes

    def test_unparseable_output(self) -> None:
        outcome = validate_json_schema("definitely not json", PERSON_SCHEMA)
        assert outcome.passed is False
        assert outcome.notes.startswith("JSON validation error: ")

    def test_invalid_schema_text(self) -> None:
        outcome = validate_json_schema('{"a": 1}', "{not a schema")
        assert outcome.passed is False
        assert outcome.notes.startswith("JSON validation error: ")

    def test_malformed_schema(self) -> None:
        outcome = validate_json_schema('{"a": 1}', {"type": "not-a-type"})
        assert outcome.passed is False
        assert outcome.notes.startswith("JSON validation error: ")

    def test_unresolvable_ref(self) -> None:
        outcome = validate_json_schema('{"a": 1}', {"$ref": "#/definitions/missing"})
        assert outcome.passed is False
        assert outcome.notes.startswith("JSON validation error: ")

    def test_unresolvable_ref_in_schema_text(self) -> None:
        outcome = validate_output('{"a": 1}', json_schema='{"$ref": "#/definitions/missing"}')
        assert outcome is not None
        assert outcome.passed is False
        assert outcome.notes.startswith("JSON validation error: ")

    def test_deeply_nested_output(self) -> None:
        output = "[" * 100000 + "]" * 100000
        outcome = validate_json_schema(output, {"type": "array"})
        assert outcome.passed is False
        assert outcome.notes.startswith("JSON validation error: ")


class TestValidateOutput:
    """Test combining rules."""

    def test_no_rules(self) -> None:
        assert validate_output("anything") is None

    def test_empty_rules_count_as_absent(self) -> None:
        assert validate_output("anything", expected_contains="", json_schema="") is None

    def test_both_pass(self) -> None:
        outcome = validate_output('{"name": "Ada", "age": 36}', "Ada", PERSON_SCHEMA)
        assert outcome is not None
        assert outcome.passed is True
        assert outcome.notes == "Output contains expected string; Output matches JSON schema"

    def test_one_fails(self) -> None:
        outcome = validate_output('{"name": "Ada", "age": 36}', "Grace", PERSON_SCHEMA)
        assert outcome is not None
        assert outcome.passed is False
        assert outcome.notes.startswith('Output does not contain: "Grace"; ')
