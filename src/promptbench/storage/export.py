"""Run export (JSON and CSV) and side-by-side comparison grouping."""

from __future__ import annotations

import json
from collections.abc import Iterable

from promptbench.models.records import RunRecord, RunStatus, TestDefinition

ADHOC_TEST_NAME = "Ad-hoc"

CSV_HEADERS: tuple[str, ...] = (
    "ID",
    "Test Name",
    "Provider",
    "Model",
    "Status",
    "Passed",
    "Latency (ms)",
    "Input Tokens",
    "Output Tokens",
    "Est. Cost ($)",
    "Prompt",
    "Output",
    "Error",
    "Created At",
)

COMPARABLE_STATUSES = frozenset({RunStatus.completed, RunStatus.failed})


def _test_names(tests: Iterable[TestDefinition]) -> dict[str, str]:
    return {test.id: test.name for test in tests}


def _quoted(value: str | None) -> str:
    return '"' + (value or "").replace('"', '""') + '"'


def _plain(value: str) -> str:
    """Quote a short field only when it would break the row."""
    if any(ch in value for ch in ',"\n\r'):
        return _quoted(value)
    return value


def _optional(value: int | None) -> str:
    return "" if value is None else str(value)


def _passed_label(passed: bool | None) -> str:
    if passed is None:
        return ""
    return "Yes" if passed else "No"


def export_runs_json(runs: Iterable[RunRecord], tests: Iterable[TestDefinition]) -> str:
    """Full-fidelity JSON array of runs, each with its test's name added."""
    names = _test_names(tests)
    payload = []
    for run in runs:
        data = run.model_dump(mode="json")
        data["test_name"] = names.get(run.test_id) if run.test_id else None
        payload.append(data)
    return json.dumps(payload, indent=2, ensure_ascii=False)


def export_runs_csv(runs: Iterable[RunRecord], tests: Iterable[TestDefinition]) -> str:
    """CSV with one row per run.

    Prompt, Output and Error are always quoted with inner quotes doubled;
    cost is printed with six decimals.
    """
    names = _test_names(tests)
    lines = [",".join(CSV_HEADERS)]
    for run in runs:
        test_name = names.get(run.test_id, "") if run.test_id else ADHOC_TEST_NAME
        row = [
            _plain(run.id),
            _plain(test_name or ADHOC_TEST_NAME),
            _plain(run.provider),
            _plain(run.model),
            run.status.value,
            _passed_label(run.passed),
            _optional(run.latency_ms),
            _optional(run.input_tokens),
            _optional(run.output_tokens),
            "" if run.estimated_cost is None else f"{run.estimated_cost:.6f}",
            _quoted(run.prompt),
            _quoted(run.output),
            _quoted(run.error_message),
            run.created_at.isoformat(),
        ]
        lines.append(",".join(row))
    return "\n".join(lines)


def group_runs_for_comparison(
    runs: Iterable[RunRecord], runs_per_model: int = 5
) -> dict[str, list[RunRecord]]:
    """Group finished runs by 'provider/model', newest first, at most runs_per_model each."""
    ordered = sorted(
        (r for r in runs if r.status in COMPARABLE_STATUSES),
        key=lambda r: r.created_at,
        reverse=True,
    )
    grouped: dict[str, list[RunRecord]] = {}
    for run in ordered:
        bucket = grouped.setdefault(f"{run.provider}/{run.model}", [])
        if len(bucket) < runs_per_model:
            bucket.append(run)
    return grouped
