"""promptbench storage - persistence protocol, JSON store and export."""

from promptbench.storage.base import Store
from promptbench.storage.export import (
    export_runs_csv,
    export_runs_json,
    group_runs_for_comparison,
)
from promptbench.storage.json_store import JsonStore

__all__ = [
    "JsonStore",
    "Store",
    "export_runs_csv",
    "export_runs_json",
    "group_runs_for_comparison",
]
