"""Tests for drift_cli.display -- Rich output formatting.

Output is captured through a Console writing to a StringIO buffer rather
than stderr, with colour and highlighting off so that assertions match
plain text.
"""

from __future__ import annotations

import io
from datetime import UTC, datetime
from pathlib import Path

from rich.console import Console

from drift_cli.display import (
    _SAFETY_COLOURS,
    _coloured,
    display_batch_result,
    display_diff_summary,
    display_status,
    display_validation_errors,
    display_warnings,
)
from drift_engine.diff import diff_snapshots
from drift_engine.models.migration import (
    BatchResult,
    MigrationDirection,
    MigrationOutcome,
    MigrationRecord,
    MigrationScript,
    MigrationState,
    MigrationStatus,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _capture_console() -> tuple[Console, io.StringIO]:
    buf = io.StringIO()
    console = Console(file=buf, no_color=True, highlight=False, width=160)
    return console, buf


# ---------------------------------------------------------------------------
# Colours
# ---------------------------------------------------------------------------


class TestColoured:
    def test_known_value(self):
        assert _coloured("safe", _SAFETY_COLOURS) == "[green]safe[/green]"

    def test_unknown_value_is_white(self):
        assert _coloured("other", _SAFETY_COLOURS) == "[white]other[/white]"


# ---------------------------------------------------------------------------
# Diff summary
# ---------------------------------------------------------------------------


class TestDisplayDiffSummary:
    def test_lists_commands_and_warnings(self):
        observed = {"collections": {"users": {"fields": {}}, "legacy": {"fields": {}}}}
        declared = {"collections": {"users": {"fields": {"phone": {"type": "String", "required": True}}}}}
        console, buf = _capture_console()
        display_diff_summary(console, diff_snapshots(observed, declared))
        output = buf.getvalue()
        assert "Schema Diff" in output
        assert "drop_collection (manual)" in output
        assert "dangerous" in output
        assert "set_field" in output
        assert "WARNING:" in output

    def test_no_warnings_prints_nothing(self):
        console, buf = _capture_console()
        display_warnings(console, [])
        assert buf.getvalue() == ""


# ---------------------------------------------------------------------------
# Batches and status
# ---------------------------------------------------------------------------


class TestDisplayBatchResult:
    def test_results_table(self):
        result = BatchResult(
            direction=MigrationDirection.UP,
            outcomes=[
                MigrationOutcome(
                    filename="20240101_000000_first",
                    direction=MigrationDirection.UP,
                    state=MigrationState.COMMITTED,
                    execution_time_ms=12.34,
                    used_transaction=False,
                )
            ],
        )
        console, buf = _capture_console()
        display_batch_result(console, result)
        output = buf.getvalue()
        assert "Migration Results" in output
        assert "COMMITTED" in output
        assert "12.3ms" in output
        assert "1 migration(s) up succeeded" in output

    def test_dry_run_plan(self):
        result = BatchResult(
            direction=MigrationDirection.DOWN,
            dry_run=True,
            outcomes=[
                MigrationOutcome(
                    filename="20240101_000000_first",
                    direction=MigrationDirection.DOWN,
                    state=MigrationState.PENDING,
                )
            ],
        )
        console, buf = _capture_console()
        display_batch_result(console, result)
        output = buf.getvalue()
        assert "Migration Plan (dry run)" in output
        assert "succeeded" not in output

    def test_empty_batch(self):
        console, buf = _capture_console()
        display_batch_result(console, BatchResult(direction=MigrationDirection.UP))
        assert "No migrations to run" in buf.getvalue()


class TestDisplayStatus:
    def test_applied_and_pending(self, tmp_path: Path):
        status = MigrationStatus(
            applied=[
                MigrationRecord(
                    filename="20240101_000000_first",
                    created_at=datetime(2024, 1, 1, tzinfo=UTC),
                    is_applied=True,
                    applied_at=datetime(2024, 1, 2, tzinfo=UTC),
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
        console, buf = _capture_console()
        display_status(console, status)
        output = buf.getvalue()
        assert "2024-01-02T00:00:00+00:00" in output
        assert "pending" in output
        assert "1 applied, 1 pending" in output

    def test_nothing_found(self):
        console, buf = _capture_console()
        display_status(console, MigrationStatus())
        assert "No migrations found" in buf.getvalue()


class TestDisplayValidationErrors:
    def test_one_line_per_problem(self):
        console, buf = _capture_console()
        display_validation_errors(console, {"20240101_000000_first": ["missing 'up' function", "missing 'down' function"]})
        lines = [line for line in buf.getvalue().splitlines() if line.startswith("INVALID")]
        assert len(lines) == 2
