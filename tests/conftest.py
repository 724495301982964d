"""Shared fixtures: a deterministic codec and a store rooted in tmp_path."""

from __future__ import annotations

from pathlib import Path

import pytest

from promptbench.credentials.codec import SecretCodec
from promptbench.storage.json_store import JsonStore

TEST_KEY_HEX = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"


@pytest.fixture
def codec() -> SecretCodec:
    return SecretCodec.from_hex(TEST_KEY_HEX)


@pytest.fixture
def store(tmp_path: Path) -> JsonStore:
    return JsonStore(tmp_path)
