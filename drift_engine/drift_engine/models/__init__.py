"""Domain models for the docdrift engine."""

from drift_engine.models.diff import (
    CategoryChanges,
    ChangeCounts,
    CommandOperation,
    CommandOptions,
    DiffResult,
    FieldChanges,
    MigrationCommand,
    RenamedField,
    SafetyLevel,
)
from drift_engine.models.migration import (
    BatchResult,
    MigrationDirection,
    MigrationOutcome,
    MigrationRecord,
    MigrationScript,
    MigrationState,
    MigrationStatus,
    ValidationReport,
)
from drift_engine.models.snapshot import (
    MANAGED_FIELDS,
    CollectionStructure,
    FieldDefinition,
    IndexDefinition,
    IndexField,
    NormalizedSnapshot,
    Snapshot,
)

__all__ = [
    "MANAGED_FIELDS",
    "BatchResult",
    "CategoryChanges",
    "ChangeCounts",
    "CollectionStructure",
    "CommandOperation",
    "CommandOptions",
    "DiffResult",
    "FieldChanges",
    "FieldDefinition",
    "IndexDefinition",
    "IndexField",
    "MigrationCommand",
    "MigrationDirection",
    "MigrationOutcome",
    "MigrationRecord",
    "MigrationScript",
    "MigrationState",
    "MigrationStatus",
    "NormalizedSnapshot",
    "RenamedField",
    "SafetyLevel",
    "Snapshot",
    "ValidationReport",
]
