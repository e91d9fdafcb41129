"""Migration script discovery and transactional execution."""

from drift_engine.executor.base import MigrationModule
from drift_engine.executor.loader import discover_scripts, inspect_script, load_script, validate_script
from drift_engine.executor.transactional import MigrationExecutor, is_transaction_capability_error

__all__ = [
    "MigrationExecutor",
    "MigrationModule",
    "discover_scripts",
    "inspect_script",
    "is_transaction_capability_error",
    "load_script",
    "validate_script",
]
