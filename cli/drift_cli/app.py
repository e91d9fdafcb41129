"""docdrift CLI application -- Typer-based developer interface.

Provides ``generate`` (diff two snapshot files and write a migration script)
and ``migrate up|down|status``.  Human-readable output goes to *stderr* via
Rich; ``--json`` writes machine-readable results to *stdout* so that
pipelines can compose cleanly.

Exit codes: 0 on success (including "no changes"), 1 on any error.  A failed
batch still reports how many migrations succeeded before exiting 1.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from rich.console import Console

from drift_cli.display import (
    display_batch_result,
    display_diff_summary,
    display_status,
    display_validation_errors,
)

if TYPE_CHECKING:
    from drift_engine.config import Settings
    from drift_engine.models.diff import DiffResult
    from drift_engine.models.migration import MigrationDirection

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="docdrift",
    help="docdrift - schema drift detection and migrations for document stores",
    no_args_is_help=True,
)
console = Console(stderr=True)

migrate_app = typer.Typer(
    name="migrate",
    help="Apply, roll back, and inspect migrations.",
    no_args_is_help=True,
)
app.add_typer(migrate_app, name="migrate")

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_migrations_dir: Path | None = None


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout in addition to human-readable output.",
    ),
    migrations_dir: Path | None = typer.Option(
        None,
        "--migrations-dir",
        help="Directory holding migration scripts (overrides DOCDRIFT_MIGRATIONS_DIR).",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _migrations_dir  # noqa: PLW0603
    _json_output = json_mode
    _migrations_dir = migrations_dir


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings() -> Settings:
    from drift_engine.config import load_settings
    from drift_engine.telemetry import configure_logging

    overrides: dict[str, Any] = {}
    if _migrations_dir is not None:
        overrides["migrations_dir"] = _migrations_dir
    settings = load_settings(**overrides)
    configure_logging(settings)
    return settings


def _emit_json(payload: dict[str, Any]) -> None:
    if _json_output:
        sys.stdout.write(json.dumps(payload, sort_keys=True, default=str) + "\n")


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


@app.command()
def generate(
    observed: Path = typer.Option(
        ...,
        "--observed",
        help="Snapshot JSON sampled from the live database.",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    declared: Path = typer.Option(
        ...,
        "--declared",
        help="Snapshot JSON extracted from the model declarations.",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    name: str = typer.Option(
        "auto_migration",
        "--name",
        "-n",
        help="Slug for the migration filename.",
    ),
    out: Path | None = typer.Option(
        None,
        "--out",
        "-o",
        help="Directory to write the script into. Defaults to the migrations directory.",
    ),
    record: bool = typer.Option(
        True,
        "--record/--no-record",
        help="Record the generated migration in the ledger.",
    ),
) -> None:
    """Diff two snapshots and write a migration script."""
    from drift_engine.diff import diff_snapshots
    from drift_engine.generator import write_script
    from drift_engine.snapshot import load_snapshot_file

    try:
        settings = _load_settings()
        result = diff_snapshots(
            load_snapshot_file(observed),
            load_snapshot_file(declared),
            settings=settings,
        )

        if not result.has_changes:
            console.print("[green]No changes detected. Nothing to generate.[/green]")
            _emit_json({"changes": False, "from_hash": result.from_hash, "to_hash": result.to_hash})
            raise typer.Exit(code=0)

        display_diff_summary(console, result)
        path = write_script(out or settings.migrations_dir, name, result)

        if record:
            try:
                _record_migration(settings, path.stem, result)
            except Exception:
                # An unrecorded script would later run as a stray pending migration.
                path.unlink(missing_ok=True)
                raise

        console.print(f"\nMigration written to [bold]{path}[/bold]")
        _emit_json(
            {
                "changes": True,
                "path": str(path),
                "from_hash": result.from_hash,
                "to_hash": result.to_hash,
                "warnings": result.warnings,
                "metadata": result.metadata.model_dump(mode="json"),
            }
        )
        raise typer.Exit(code=0)

    except typer.Exit:
        raise
    except Exception as exc:
        console.print(f"[red]Error generating migration: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def _record_migration(settings: Settings, filename: str, result: DiffResult) -> None:
    from drift_engine.state import MigrationLedger, get_client, get_database

    client = get_client(settings)
    try:
        ledger = MigrationLedger(get_database(client, settings), settings)
        ledger.initialize()
        ledger.create_record(
            filename,
            result.from_hash,
            result.to_hash,
            [cmd.command for cmd in result.up],
            [cmd.command for cmd in result.down],
        )
    finally:
        client.close()


# ---------------------------------------------------------------------------
# migrate
# ---------------------------------------------------------------------------


@migrate_app.command("up")
def migrate_up(
    target: str | None = typer.Option(
        None,
        "--target",
        "-t",
        help="Apply pending migrations up to and including this filename.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Validate and show what would run without touching the database.",
    ),
) -> None:
    """Apply pending migrations in timestamp order."""
    from drift_engine.models.migration import MigrationDirection

    _run_batch(MigrationDirection.UP, target, dry_run)


@migrate_app.command("down")
def migrate_down(
    target: str | None = typer.Option(
        None,
        "--target",
        "-t",
        help="Roll back every migration applied after this filename.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Validate and show what would run without touching the database.",
    ),
) -> None:
    """Roll back the last migration, or everything after --target."""
    from drift_engine.models.migration import MigrationDirection

    _run_batch(MigrationDirection.DOWN, target, dry_run)


@migrate_app.command("status")
def migrate_status() -> None:
    """Show applied and pending migrations."""
    from drift_engine.executor import MigrationExecutor
    from drift_engine.state import MigrationLedger, get_client, get_database

    try:
        settings = _load_settings()
        client = get_client(settings)
        try:
            database = get_database(client, settings)
            ledger = MigrationLedger(database, settings)
            status = MigrationExecutor(client, database, ledger, settings).status()
        finally:
            client.close()
    except Exception as exc:
        console.print(f"[red]Error reading migration status: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    display_status(console, status)
    _emit_json(
        {
            "applied": [r.filename for r in status.applied],
            "pending": [s.filename for s in status.pending],
        }
    )
    raise typer.Exit(code=0)


def _run_batch(direction: MigrationDirection, target: str | None, dry_run: bool) -> None:
    from drift_engine.errors import MigrationExecutionError, MigrationValidationError
    from drift_engine.executor import MigrationExecutor
    from drift_engine.models.migration import MigrationDirection
    from drift_engine.state import MigrationLedger, get_client, get_database

    verb = "apply" if direction == MigrationDirection.UP else "roll back"
    try:
        settings = _load_settings()
        client = get_client(settings)
        try:
            database = get_database(client, settings)
            ledger = MigrationLedger(database, settings)
            if not dry_run:
                ledger.initialize()
            executor = MigrationExecutor(client, database, ledger, settings)
            if direction == MigrationDirection.UP:
                result = executor.apply(target=target, dry_run=dry_run)
            else:
                result = executor.rollback(target=target, dry_run=dry_run)
        finally:
            client.close()

    except MigrationValidationError as exc:
        console.print("[red]Validation failed; no migrations were run.[/red]")
        display_validation_errors(console, exc.errors)
        raise typer.Exit(code=1) from exc
    except MigrationExecutionError as exc:
        console.print(f"[red]Failed to {verb} {exc.filename}: {exc}[/red]")
        console.print(f"[bold]{exc.succeeded}[/bold] migration(s) succeeded before the failure.")
        if exc.remedy:
            console.print(f"[yellow]{exc.remedy}[/yellow]")
        _emit_json({"succeeded": exc.succeeded, "failed": exc.filename, "remedy": exc.remedy})
        raise typer.Exit(code=1) from exc
    except Exception as exc:
        console.print(f"[red]Failed to {verb} migrations: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    display_batch_result(console, result)
    _emit_json(
        {
            "direction": result.direction.value,
            "dry_run": result.dry_run,
            "succeeded": result.succeeded,
            "migrations": [o.filename for o in result.outcomes],
        }
    )
    raise typer.Exit(code=0)

