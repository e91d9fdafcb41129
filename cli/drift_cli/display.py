"""Rich output formatting for the docdrift CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from drift_engine.models.diff import DiffResult
    from drift_engine.models.migration import BatchResult, MigrationStatus


# ---------------------------------------------------------------------------
# Colour mappings
# ---------------------------------------------------------------------------

_SAFETY_COLOURS: dict[str, str] = {
    "safe": "green",
    "warning": "yellow",
    "dangerous": "red bold",
}

_STATE_COLOURS: dict[str, str] = {
    "COMMITTED": "green",
    "FAILED": "red",
    "FAILED_RETRYING": "yellow",
    "APPLYING": "cyan",
    "PENDING": "dim",
}


def _coloured(value: str, colours: dict[str, str]) -> str:
    colour = colours.get(value, "white")
    return f"[{colour}]{value}[/{colour}]"


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


def display_diff_summary(console: Console, diff: DiffResult) -> None:
    """Render the forward commands of a diff with their safety levels.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    diff:
        The diff to summarise.
    """
    meta = diff.metadata
    header_lines = [
        f"[bold]From:[/bold]        {diff.from_hash[:12] or '(none)'}",
        f"[bold]To:[/bold]          {diff.to_hash[:12] or '(none)'}",
        f"[bold]Collections:[/bold] +{len(meta.collections.added)} -{len(meta.collections.removed)} "
        f"~{len(meta.collections.modified)}",
        f"[bold]Fields:[/bold]      +{len(meta.fields.added)} -{len(meta.fields.removed)} "
        f"~{len(meta.fields.modified)} renamed {len(meta.fields.renamed)}",
        f"[bold]Indexes:[/bold]     +{len(meta.indexes.added)} -{len(meta.indexes.removed)}",
    ]
    console.print(Panel("\n".join(header_lines), title="Schema Diff", border_style="blue"))

    table = Table(title="Up Commands", show_lines=False, pad_edge=True, expand=False)
    table.add_column("#", style="dim", width=4, justify="right")
    table.add_column("Collection", style="bold")
    table.add_column("Operation")
    table.add_column("Safety")
    table.add_column("Description")

    for idx, cmd in enumerate(diff.up, start=1):
        operation = cmd.operation.value
        if cmd.options.manual:
            operation += " [dim](manual)[/dim]"
        table.add_row(
            str(idx),
            cmd.collection,
            operation,
            _coloured(cmd.safety_level.value, _SAFETY_COLOURS),
            cmd.description,
        )
    console.print(table)

    display_warnings(console, diff.warnings)


def display_warnings(console: Console, warnings: list[str]) -> None:
    if not warnings:
        return
    console.print()
    for warning in warnings:
        console.print(f"[yellow]WARNING:[/yellow] {warning}")


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------


def display_batch_result(console: Console, result: BatchResult) -> None:
    """Render the outcome of an apply or rollback batch."""
    display_warnings(console, result.warnings)

    if not result.outcomes:
        console.print("[dim]No migrations to run.[/dim]")
        return

    title = "Migration Plan (dry run)" if result.dry_run else "Migration Results"
    table = Table(title=title, show_lines=False, pad_edge=True, expand=False)
    table.add_column("Migration", style="bold")
    table.add_column("Direction")
    table.add_column("State")
    table.add_column("Duration", justify="right")
    table.add_column("Transaction", justify="center")

    for outcome in result.outcomes:
        table.add_row(
            outcome.filename,
            outcome.direction.value,
            _coloured(outcome.state.value, _STATE_COLOURS),
            f"{outcome.execution_time_ms:.1f}ms" if not result.dry_run else "-",
            "yes" if outcome.used_transaction else "no",
        )
    console.print(table)

    if not result.dry_run:
        console.print(f"\n[bold]{result.succeeded}[/bold] migration(s) {result.direction.value} succeeded")


def display_status(console: Console, status: MigrationStatus) -> None:
    """Render applied and pending migrations."""
    table = Table(title="Migration Status", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Migration", style="bold")
    table.add_column("State")
    table.add_column("Applied At")
    table.add_column("Duration", justify="right")

    for record in status.applied:
        table.add_row(
            record.filename,
            "[green]applied[/green]",
            record.applied_at.isoformat(timespec="seconds") if record.applied_at else "-",
            f"{record.execution_time_ms:.1f}ms" if record.execution_time_ms is not None else "-",
        )
    for script in status.pending:
        table.add_row(script.filename, "[dim]pending[/dim]", "-", "-")

    if not status.applied and not status.pending:
        console.print("[dim]No migrations found.[/dim]")
        return

    console.print(table)
    console.print(f"\n{len(status.applied)} applied, {len(status.pending)} pending")


def display_validation_errors(console: Console, errors: dict[str, list[str]]) -> None:
    for filename, problems in sorted(errors.items()):
        for problem in problems:
            console.print(f"[red]INVALID[/red] {filename}: {problem}")
