"""Persistence protocol used by the runner, rate limiter and key service.

Every read is scoped by user id; an entity owned by another user is
indistinguishable from a missing one.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol, runtime_checkable

from promptbench.models.records import RunRecord, StoredCredential, TestDefinition


@runtime_checkable
class Store(Protocol):
    """Owner of tests, credentials, runs and rate-limit windows.

    increment_rate_window must be an atomic increment-or-create: concurrent
    calls for the same (user, window) must never under-count.
    """

    # -- tests --

    def save_test(self, test: TestDefinition) -> str: ...

    def get_test(self, test_id: str, user_id: str) -> TestDefinition | None: ...

    def list_tests(self, user_id: str) -> list[TestDefinition]: ...

    def delete_test(self, test_id: str, user_id: str) -> bool: ...

    # -- credentials --

    def save_credential(self, credential: StoredCredential) -> str: ...

    def get_credential(self, key_id: str, user_id: str) -> StoredCredential | None: ...

    def get_active_credentials(
        self, key_ids: Iterable[str], user_id: str
    ) -> dict[str, StoredCredential]: ...

    def list_credentials(self, user_id: str) -> list[StoredCredential]: ...

    def delete_credential(self, key_id: str, user_id: str) -> bool: ...

    # -- runs --

    def insert_run(self, record: RunRecord) -> str: ...

    def update_run(self, record: RunRecord) -> None: ...

    def get_run(self, run_id: str, user_id: str) -> RunRecord | None: ...

    def list_runs(
        self,
        user_id: str,
        test_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[RunRecord]: ...

    def delete_run(self, run_id: str, user_id: str) -> bool: ...

    # -- rate windows --

    def increment_rate_window(self, user_id: str, window_key: str) -> int: ...

    def delete_rate_windows_before(self, cutoff: datetime) -> int: ...
