"""Tests for the docdrift CLI commands.

Uses typer.testing.CliRunner to invoke each command.  Snapshot diffing and
script generation run for real against files in ``tmp_path``; the database
client, ledger and executor are mocked.
"""

from __future__ import annotations

import json
from pathlib import Path

from pymongo.errors import ServerSelectionTimeoutError
from typer.testing import CliRunner

from drift_cli.app import app
from drift_engine.errors import (
    LedgerConflictError,
    MigrationExecutionError,
    MigrationTargetError,
    MigrationValidationError,
)
from drift_engine.models.migration import (
    BatchResult,
    MigrationDirection,
    MigrationOutcome,
    MigrationRecord,
    MigrationScript,
    MigrationState,
    MigrationStatus,
)

runner = CliRunner()


def _json_line(raw: str) -> dict:
    """Return the JSON object emitted with ``--json``."""
    for line in raw.splitlines():
        if line.startswith("{"):
            return json.loads(line)
    raise ValueError(f"No JSON found in output: {raw[:200]!r}")


def _committed(filename: str, direction: MigrationDirection = MigrationDirection.UP) -> MigrationOutcome:
    return MigrationOutcome(
        filename=filename,
        direction=direction,
        state=MigrationState.COMMITTED,
        execution_time_ms=3.2,
        used_transaction=True,
    )


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


class TestGenerate:
    def test_writes_script(self, snapshot_files, migrations_dir: Path):
        observed, declared = snapshot_files
        result = runner.invoke(
            app,
            [
                "--migrations-dir",
                str(migrations_dir),
                "generate",
                "--observed",
                str(observed),
                "--declared",
                str(declared),
                "--name",
                "add phone",
                "--no-record",
            ],
        )
        assert result.exit_code == 0, result.output
        scripts = list(migrations_dir.glob("*_add_phone.py"))
        assert len(scripts) == 1
        source = scripts[0].read_text(encoding="utf-8")
        assert "{'$set': {'phone': ''}}" in source
        assert "Migration written to" in result.output

    def test_no_changes_exits_zero(self, snapshot_files, migrations_dir: Path):
        observed, _ = snapshot_files
        result = runner.invoke(
            app,
            ["--migrations-dir", str(migrations_dir), "generate", "--observed", str(observed), "--declared", str(observed)],
        )
        assert result.exit_code == 0
        assert "No changes detected" in result.output
        assert not migrations_dir.exists()

    def test_malformed_snapshot_exits_one(self, snapshot_files, tmp_path: Path, migrations_dir: Path):
        observed, _ = snapshot_files
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"models": []}), encoding="utf-8")
        result = runner.invoke(
            app,
            ["--migrations-dir", str(migrations_dir), "generate", "--observed", str(observed), "--declared", str(bad)],
        )
        assert result.exit_code == 1
        assert "Error generating migration" in result.output

    def test_records_in_ledger(self, snapshot_files, migrations_dir: Path, mock_client, mock_ledger):
        observed, declared = snapshot_files
        result = runner.invoke(
            app,
            ["--migrations-dir", str(migrations_dir), "generate", "--observed", str(observed), "--declared", str(declared)],
        )
        assert result.exit_code == 0, result.output
        mock_ledger.initialize.assert_called_once()
        filename, from_hash, to_hash, up_commands, down_commands = mock_ledger.create_record.call_args.args
        assert filename.endswith("_auto_migration")
        assert from_hash != to_hash
        assert any("$set" in cmd for cmd in up_commands)
        assert down_commands
        mock_client.close.assert_called_once()

    def test_ledger_failure_removes_script(self, snapshot_files, migrations_dir: Path, mock_client, mock_ledger):
        mock_ledger.initialize.side_effect = ServerSelectionTimeoutError("localhost:27017: connection refused")
        observed, declared = snapshot_files
        result = runner.invoke(
            app,
            ["--migrations-dir", str(migrations_dir), "generate", "--observed", str(observed), "--declared", str(declared)],
        )
        assert result.exit_code == 1
        assert "connection refused" in result.output
        assert list(migrations_dir.glob("*.py")) == []
        mock_client.close.assert_called_once()

    def test_ledger_conflict_removes_script(self, snapshot_files, migrations_dir: Path, mock_ledger):
        mock_ledger.create_record.side_effect = LedgerConflictError("already recorded")
        observed, declared = snapshot_files
        result = runner.invoke(
            app,
            ["--migrations-dir", str(migrations_dir), "generate", "--observed", str(observed), "--declared", str(declared)],
        )
        assert result.exit_code == 1
        assert list(migrations_dir.glob("*.py")) == []

    def test_json_output(self, snapshot_files, migrations_dir: Path):
        observed, declared = snapshot_files
        result = runner.invoke(
            app,
            [
                "--json",
                "--migrations-dir",
                str(migrations_dir),
                "generate",
                "--observed",
                str(observed),
                "--declared",
                str(declared),
                "--no-record",
            ],
        )
        assert result.exit_code == 0, result.output
        payload = _json_line(result.stdout)
        assert payload["changes"] is True
        assert payload["metadata"]["fields"]["added"] == ["phone"]

    def test_missing_file_is_usage_error(self, tmp_path: Path):
        result = runner.invoke(
            app,
            ["generate", "--observed", str(tmp_path / "nope.json"), "--declared", str(tmp_path / "nope.json")],
        )
        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# migrate up / down
# ---------------------------------------------------------------------------


class TestMigrateUp:
    def test_success(self, migrations_dir: Path, mock_client, mock_ledger, mock_executor):
        mock_executor.apply.return_value = BatchResult(
            direction=MigrationDirection.UP,
            outcomes=[_committed("20240101_000000_first"), _committed("20240102_000000_second")],
        )
        result = runner.invoke(app, ["--migrations-dir", str(migrations_dir), "migrate", "up"])
        assert result.exit_code == 0, result.output
        mock_ledger.initialize.assert_called_once()
        mock_executor.apply.assert_called_once_with(target=None, dry_run=False)
        assert "2 migration(s) up succeeded" in result.output
        mock_client.close.assert_called_once()

    def test_target_and_dry_run(self, migrations_dir: Path, mock_ledger, mock_executor):
        mock_executor.apply.return_value = BatchResult(direction=MigrationDirection.UP, dry_run=True)
        result = runner.invoke(
            app,
            ["--migrations-dir", str(migrations_dir), "migrate", "up", "--target", "20240101_000000_first", "--dry-run"],
        )
        assert result.exit_code == 0, result.output
        mock_executor.apply.assert_called_once_with(target="20240101_000000_first", dry_run=True)
        mock_ledger.initialize.assert_not_called()

    def test_partial_failure_reports_progress(self, migrations_dir: Path, mock_executor):
        mock_executor.apply.side_effect = MigrationExecutionError(
            "up failed",
            filename="20240103_000000_third",
            succeeded=2,
            remedy="Run `docdrift migrate down --target 20240101_000000_first`",
        )
        result = runner.invoke(app, ["--json", "--migrations-dir", str(migrations_dir), "migrate", "up"])
        assert result.exit_code == 1
        assert "2" in result.output
        assert "migrate down --target" in result.output
        payload = _json_line(result.stdout)
        assert payload["succeeded"] == 2
        assert payload["failed"] == "20240103_000000_third"

    def test_validation_failure(self, migrations_dir: Path, mock_executor):
        mock_executor.apply.side_effect = MigrationValidationError(
            "invalid", {"20240101_000000_first": ["missing 'down' function"]}
        )
        result = runner.invoke(app, ["--migrations-dir", str(migrations_dir), "migrate", "up"])
        assert result.exit_code == 1
        assert "no migrations were run" in result.output
        assert "missing 'down' function" in result.output

    def test_unknown_target(self, migrations_dir: Path, mock_executor):
        mock_executor.apply.side_effect = MigrationTargetError("Unknown migration target: x")
        result = runner.invoke(app, ["--migrations-dir", str(migrations_dir), "migrate", "up", "-t", "x"])
        assert result.exit_code == 1
        assert "Unknown migration target" in result.output


class TestMigrateDown:
    def test_rollback(self, migrations_dir: Path, mock_executor):
        mock_executor.rollback.return_value = BatchResult(
            direction=MigrationDirection.DOWN,
            outcomes=[_committed("20240102_000000_second", MigrationDirection.DOWN)],
        )
        result = runner.invoke(app, ["--json", "--migrations-dir", str(migrations_dir), "migrate", "down"])
        assert result.exit_code == 0, result.output
        mock_executor.rollback.assert_called_once_with(target=None, dry_run=False)
        payload = _json_line(result.stdout)
        assert payload["direction"] == "down"
        assert payload["migrations"] == ["20240102_000000_second"]

    def test_nothing_to_roll_back(self, migrations_dir: Path, mock_executor):
        mock_executor.rollback.return_value = BatchResult(direction=MigrationDirection.DOWN)
        result = runner.invoke(app, ["--migrations-dir", str(migrations_dir), "migrate", "down"])
        assert result.exit_code == 0
        assert "No migrations to run" in result.output

    def test_connection_error(self, migrations_dir: Path, mock_client, mock_executor):
        mock_executor.rollback.side_effect = RuntimeError("server selection timed out")
        result = runner.invoke(app, ["--migrations-dir", str(migrations_dir), "migrate", "down"])
        assert result.exit_code == 1
        assert "server selection timed out" in result.output
        mock_client.close.assert_called_once()


# ---------------------------------------------------------------------------
# migrate status
# ---------------------------------------------------------------------------


class TestMigrateStatus:
    def test_lists_applied_and_pending(self, tmp_path: Path, migrations_dir: Path, mock_executor):
        mock_executor.status.return_value = MigrationStatus(
            applied=[
                MigrationRecord(
                    filename="20240101_000000_first",
                    created_at="2024-01-01T00:00:00Z",
                    is_applied=True,
                    applied_at="2024-01-02T00:00:00Z",
                    execution_time_ms=4.0,
                )
            ],
            pending=[
                MigrationScript(
                    filename="20240102_000000_second",
                    path=tmp_path / "20240102_000000_second.py",
                    timestamp="20240102_000000",
                    name="second",
                )
            ],
        )
        result = runner.invoke(app, ["--json", "--migrations-dir", str(migrations_dir), "migrate", "status"])
        assert result.exit_code == 0, result.output
        payload = _json_line(result.stdout)
        assert payload == {"applied": ["20240101_000000_first"], "pending": ["20240102_000000_second"]}
        assert "1 applied, 1 pending" in result.output

    def test_status_error(self, migrations_dir: Path, mock_executor):
        mock_executor.status.side_effect = RuntimeError("boom")
        result = runner.invoke(app, ["--migrations-dir", str(migrations_dir), "migrate", "status"])
        assert result.exit_code == 1
        assert "Error reading migration status" in result.output
