"""Migration script naming and rendering."""

from drift_engine.generator.naming import (
    generate_timestamp,
    migration_filename,
    parse_migration_timestamp,
    sanitize_migration_name,
)
from drift_engine.generator.script_writer import render_script, write_script

__all__ = [
    "generate_timestamp",
    "migration_filename",
    "parse_migration_timestamp",
    "render_script",
    "sanitize_migration_name",
    "write_script",
]
