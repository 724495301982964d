"""JSON file storage layer for promptbench.

Stores tests, encrypted credentials and run records as one JSON file per
entity under .promptbench/, and rate-limit windows in a single file.
Uses atomic writes (write .tmp, then replace) to prevent partial files.
"""

from __future__ import annotations

import json
import os
import re
import threading
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel

from promptbench.models.config import DEFAULT_STORAGE_DIR
from promptbench.models.records import RateWindow, RunRecord, StoredCredential, TestDefinition

ModelT = TypeVar("ModelT", bound=BaseModel)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")

# Rate-window increments are serialized across every JsonStore in the process.
_RATE_LOCK = threading.Lock()


def _atomic_write(path: Path, content: str) -> None:
    tmp_path = path.with_name(f"{path.name}.tmp")
    tmp_path.write_text(content, encoding="utf-8")
    os.replace(tmp_path, path)


class JsonStore:
    """Persist promptbench entities as JSON files.

    File layout:
        .promptbench/
            tests/{test-id}.json
            credentials/{key-id}.json
            runs/{run-id}.json
            rate_windows.json

    Every read is scoped by user id. Rate-window increments hold a
    process-wide lock, so the counter is exact for a single process only.
    """

    def __init__(self, project_root: Path, storage_dir: str | None = None) -> None:
        self.root_dir = project_root / (storage_dir or DEFAULT_STORAGE_DIR)
        self.tests_dir = self.root_dir / "tests"
        self.credentials_dir = self.root_dir / "credentials"
        self.runs_dir = self.root_dir / "runs"
        self.rate_windows_path = self.root_dir / "rate_windows.json"

    def ensure_dirs(self) -> None:
        """Create the tests/, credentials/ and runs/ directories."""
        for directory in (self.tests_dir, self.credentials_dir, self.runs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    # -- generic helpers --

    def _path_for(self, directory: Path, entity_id: str) -> Path | None:
        if not _SAFE_ID.match(entity_id):
            return None
        return directory / f"{entity_id}.json"

    def _write(self, directory: Path, entity_id: str, model: BaseModel) -> None:
        path = self._path_for(directory, entity_id)
        if path is None:
            raise ValueError(f"Invalid identifier: {entity_id!r}")
        self.ensure_dirs()
        _atomic_write(path, model.model_dump_json(indent=2))

    def _read(self, directory: Path, entity_id: str, model_cls: type[ModelT]) -> ModelT | None:
        path = self._path_for(directory, entity_id)
        if path is None or not path.exists():
            return None
        return model_cls.model_validate_json(path.read_text(encoding="utf-8"))

    def _read_all(self, directory: Path, model_cls: type[ModelT]) -> list[ModelT]:
        if not directory.exists():
            return []
        return [
            model_cls.model_validate_json(path.read_text(encoding="utf-8"))
            for path in sorted(directory.glob("*.json"))
        ]

    def _delete(self, directory: Path, entity_id: str) -> bool:
        path = self._path_for(directory, entity_id)
        if path is None or not path.exists():
            return False
        path.unlink()
        return True

    # -- tests --

    def save_test(self, test: TestDefinition) -> str:
        self._write(self.tests_dir, test.id, test)
        return test.id

    def get_test(self, test_id: str, user_id: str) -> TestDefinition | None:
        test = self._read(self.tests_dir, test_id, TestDefinition)
        if test is None or test.user_id != user_id:
            return None
        return test

    def list_tests(self, user_id: str) -> list[TestDefinition]:
        tests = [t for t in self._read_all(self.tests_dir, TestDefinition) if t.user_id == user_id]
        return sorted(tests, key=lambda t: t.created_at, reverse=True)

    def delete_test(self, test_id: str, user_id: str) -> bool:
        if self.get_test(test_id, user_id) is None:
            return False
        return self._delete(self.tests_dir, test_id)

    # -- credentials --

    def save_credential(self, credential: StoredCredential) -> str:
        self._write(self.credentials_dir, credential.id, credential)
        return credential.id

    def get_credential(self, key_id: str, user_id: str) -> StoredCredential | None:
        credential = self._read(self.credentials_dir, key_id, StoredCredential)
        if credential is None or credential.user_id != user_id:
            return None
        return credential

    def get_active_credentials(
        self, key_ids: Iterable[str], user_id: str
    ) -> dict[str, StoredCredential]:
        """Bulk lookup of the caller's active credentials, keyed by id."""
        found: dict[str, StoredCredential] = {}
        for key_id in set(key_ids):
            credential = self.get_credential(key_id, user_id)
            if credential is not None and credential.is_active:
                found[key_id] = credential
        return found

    def list_credentials(self, user_id: str) -> list[StoredCredential]:
        credentials = [
            c
            for c in self._read_all(self.credentials_dir, StoredCredential)
            if c.user_id == user_id
        ]
        return sorted(credentials, key=lambda c: c.created_at, reverse=True)

    def delete_credential(self, key_id: str, user_id: str) -> bool:
        if self.get_credential(key_id, user_id) is None:
            return False
        return self._delete(self.credentials_dir, key_id)

    # -- runs --

    def insert_run(self, record: RunRecord) -> str:
        """Persist a new run record.

        Raises:
            FileExistsError: If a run with the same id is already stored.
        """
        path = self._path_for(self.runs_dir, record.id)
        if path is not None and path.exists():
            raise FileExistsError(f"Run {record.id} already exists")
        self._write(self.runs_dir, record.id, record)
        return record.id

    def update_run(self, record: RunRecord) -> None:
        """Overwrite an existing run record.

        Raises:
            FileNotFoundError: If the run was never inserted.
        """
        path = self._path_for(self.runs_dir, record.id)
        if path is None or not path.exists():
            raise FileNotFoundError(f"Run {record.id} not found")
        self._write(self.runs_dir, record.id, record)

    def get_run(self, run_id: str, user_id: str) -> RunRecord | None:
        record = self._read(self.runs_dir, run_id, RunRecord)
        if record is None or record.user_id != user_id:
            return None
        return record

    def list_runs(
        self,
        user_id: str,
        test_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[RunRecord]:
        """List the caller's runs newest first, optionally for one test."""
        runs = [
            r
            for r in self._read_all(self.runs_dir, RunRecord)
            if r.user_id == user_id and (test_id is None or r.test_id == test_id)
        ]
        runs.sort(key=lambda r: (r.created_at, r.batch_index or 0), reverse=True)
        end = None if limit is None else offset + limit
        return runs[offset:end]

    def delete_run(self, run_id: str, user_id: str) -> bool:
        if self.get_run(run_id, user_id) is None:
            return False
        return self._delete(self.runs_dir, run_id)

    # -- rate windows --

    def _load_rate_windows(self) -> dict[str, RateWindow]:
        if not self.rate_windows_path.exists():
            return {}
        raw = json.loads(self.rate_windows_path.read_text(encoding="utf-8"))
        return {key: RateWindow.model_validate(value) for key, value in raw.items()}

    def _save_rate_windows(self, windows: dict[str, RateWindow]) -> None:
        self.root_dir.mkdir(parents=True, exist_ok=True)
        data = {key: window.model_dump(mode="json") for key, window in windows.items()}
        _atomic_write(self.rate_windows_path, json.dumps(data, indent=2, ensure_ascii=False))

    def increment_rate_window(self, user_id: str, window_key: str) -> int:
        """Increment (creating if absent) the counter for (user, window); return the new count."""
        key = f"{user_id}|{window_key}"
        with _RATE_LOCK:
            windows = self._load_rate_windows()
            window = windows.get(key) or RateWindow(user_id=user_id, window_key=window_key)
            window.count += 1
            windows[key] = window
            self._save_rate_windows(windows)
        return window.count

    def delete_rate_windows_before(self, cutoff: datetime) -> int:
        """Delete windows created before cutoff; return how many were removed."""
        with _RATE_LOCK:
            windows = self._load_rate_windows()
            kept = {k: w for k, w in windows.items() if w.created_at >= cutoff}
            removed = len(windows) - len(kept)
            if removed:
                self._save_rate_windows(kept)
        return removed
