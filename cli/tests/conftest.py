"""Shared fixtures for CLI tests.

Storage is never contacted: commands that need a database get a
``MagicMock`` client through ``drift_engine.state.get_client``, and the
ledger and executor classes are patched where a test needs to control
their results.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

OBSERVED = {
    "collections": {
        "users": {"fields": {"email": {"type": "String", "required": True}}},
    }
}

DECLARED = {
    "collections": {
        "users": {
            "fields": {
                "email": {"type": "String", "required": True},
                "phone": {"type": "String", "required": True},
            },
            "indexes": [{"key": {"phone": 1}, "unique": True, "sparse": True}],
        },
    }
}


@pytest.fixture()
def snapshot_files(tmp_path: Path) -> tuple[Path, Path]:
    """Write the observed and declared snapshots used by ``generate`` tests."""
    observed = tmp_path / "observed.json"
    declared = tmp_path / "declared.json"
    observed.write_text(json.dumps(OBSERVED), encoding="utf-8")
    declared.write_text(json.dumps(DECLARED), encoding="utf-8")
    return observed, declared


@pytest.fixture()
def migrations_dir(tmp_path: Path) -> Path:
    return tmp_path / "migrations"


@pytest.fixture()
def mock_client():
    client = MagicMock(name="MongoClient")
    with patch("drift_engine.state.get_client", return_value=client):
        yield client


@pytest.fixture()
def mock_ledger(mock_client):
    with patch("drift_engine.state.MigrationLedger") as ledger_cls:
        yield ledger_cls.return_value


@pytest.fixture()
def mock_executor(mock_ledger):
    with patch("drift_engine.executor.MigrationExecutor") as executor_cls:
        yield executor_cls.return_value
