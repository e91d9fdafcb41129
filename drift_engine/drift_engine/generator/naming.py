"""Migration filename conventions.

A migration file is named ``YYYYMMDD_HHMMSS_<slug>.py``.  The timestamp
prefix is UTC and sorts lexicographically in application order.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

MIGRATION_FILENAME_RE = re.compile(r"^(?P<timestamp>\d{8}_\d{6})_(?P<name>[a-z0-9_]+)$")

_UNSAFE_CHARS_RE = re.compile(r"[^a-z0-9_]")
_REPEATED_UNDERSCORE_RE = re.compile(r"_+")


def generate_timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now(UTC)).strftime(TIMESTAMP_FORMAT)


def sanitize_migration_name(name: str) -> str:
    """Reduce *name* to a lowercase ``[a-z0-9_]`` slug.

    Raises ``ValueError`` when nothing usable is left.
    """
    slug = _UNSAFE_CHARS_RE.sub("_", name.strip().lower())
    slug = _REPEATED_UNDERSCORE_RE.sub("_", slug).strip("_")
    if not slug:
        raise ValueError(f"Migration name {name!r} contains no usable characters")
    return slug


def migration_filename(name: str, now: datetime | None = None) -> str:
    """Return the filename stem for a new migration, e.g. ``20240825_143022_add_phone``."""
    return f"{generate_timestamp(now)}_{sanitize_migration_name(name)}"


def parse_migration_timestamp(filename: str) -> datetime | None:
    """Return the UTC creation time encoded in *filename*, or None if it has none."""
    stem = filename[:-3] if filename.endswith(".py") else filename
    match = MIGRATION_FILENAME_RE.match(stem)
    if match is None:
        return None
    return datetime.strptime(match.group("timestamp"), TIMESTAMP_FORMAT).replace(tzinfo=UTC)
