"""Render a :class:`DiffResult` into a migration script on disk.

The script is an ordinary Python module with ``up(db, session=None)`` and
``down(db, session=None)``.  Each command is preceded by a comment holding
its description and safety level.  Manual and review commands render as
comments, so a function may contain nothing executable; it then gets a
``pass`` body.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

from drift_engine.generator.naming import migration_filename
from drift_engine.models.diff import DiffResult, MigrationCommand

logger = logging.getLogger(__name__)

_INDENT = "    "


def _docstring_text(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"""', '\\"\\"\\"')


def _render_body(commands: list[MigrationCommand]) -> list[str]:
    lines: list[str] = []
    for cmd in commands:
        description = " ".join(cmd.description.splitlines())
        lines.append(f"{_INDENT}# {description} [{cmd.safety_level.value}]")
        lines.extend(f"{_INDENT}{line}" for line in cmd.command.splitlines())
    if not any(cmd.is_executable for cmd in commands):
        lines.append(f"{_INDENT}pass")
    return lines


def render_script(name: str, diff: DiffResult, generated_at: datetime | None = None) -> str:
    """Return the source of a migration script for *diff*."""
    generated_at = generated_at or datetime.now(UTC)

    header = [
        '"""' + _docstring_text(name),
        "",
        f"Generated by docdrift at {generated_at.isoformat()}.",
        f"From snapshot: {diff.from_hash or '-'}",
        f"To snapshot:   {diff.to_hash or '-'}",
    ]
    if diff.warnings:
        header.append("")
        header.append("Warnings:")
        header.extend(f"- {_docstring_text(warning)}" for warning in diff.warnings)
    header.append('"""')

    lines = [
        *header,
        "",
        "import datetime  # noqa: F401",
        "",
        "",
        "def up(db, session=None):",
        *_render_body(diff.up),
        "",
        "",
        "def down(db, session=None):",
        *_render_body(diff.down),
        "",
    ]
    return "\n".join(lines)


def write_script(
    directory: Path,
    name: str,
    diff: DiffResult,
    now: datetime | None = None,
) -> Path:
    """Write the migration script for *diff* into *directory*.

    Returns the path of the new file.  An existing file is never
    overwritten.
    """
    now = now or datetime.now(UTC)
    stem = migration_filename(name, now)
    path = directory / f"{stem}.py"
    if path.exists():
        raise FileExistsError(f"Migration file already exists: {path}")

    directory.mkdir(parents=True, exist_ok=True)
    path.write_text(render_script(name, diff, generated_at=now), encoding="utf-8")
    logger.info("Wrote migration %s (%d up, %d down)", path, len(diff.up), len(diff.down))
    return path
