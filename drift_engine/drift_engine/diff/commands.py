"""Builders for typed migration commands and session annotation.

Builders produce commands with default options.  :func:`annotate_commands`
then decides, per operation, whether a command joins the migration's
transaction, runs outside it, or must be executed by hand.
"""

from __future__ import annotations

from typing import Any

from drift_engine.models.diff import CommandOperation, CommandOptions, MigrationCommand, SafetyLevel

# Operations that run inside the migration's session/transaction.
SESSION_OPERATIONS: frozenset[CommandOperation] = frozenset(
    {
        CommandOperation.CREATE_COLLECTION,
        CommandOperation.SET_FIELD,
        CommandOperation.UNSET_FIELD,
        CommandOperation.RENAME_FIELD,
    }
)

# Administrative operations that cannot run inside a multi-document
# transaction and are never executed by the batch.
MANUAL_OPERATIONS: frozenset[CommandOperation] = frozenset(
    {
        CommandOperation.DROP_COLLECTION,
        CommandOperation.DROP_INDEX,
    }
)


def create_collection(collection: str, description: str = "") -> MigrationCommand:
    return MigrationCommand(
        operation=CommandOperation.CREATE_COLLECTION,
        collection=collection,
        description=description or f"Create collection '{collection}'",
        safety_level=SafetyLevel.SAFE,
    )


def drop_collection(collection: str, description: str = "") -> MigrationCommand:
    return MigrationCommand(
        operation=CommandOperation.DROP_COLLECTION,
        collection=collection,
        description=description or f"Drop collection '{collection}'",
        safety_level=SafetyLevel.DANGEROUS,
        metadata={"collection_name": collection},
    )


def set_field(
    collection: str,
    field: str,
    value: Any,
    *,
    description: str,
    safety_level: SafetyLevel = SafetyLevel.SAFE,
    metadata: dict[str, Any] | None = None,
) -> MigrationCommand:
    return MigrationCommand(
        operation=CommandOperation.SET_FIELD,
        collection=collection,
        arguments={"field": field, "value": value},
        description=description,
        safety_level=safety_level,
        metadata=metadata or {},
    )


def unset_field(
    collection: str,
    field: str,
    *,
    description: str,
    safety_level: SafetyLevel = SafetyLevel.WARNING,
    metadata: dict[str, Any] | None = None,
) -> MigrationCommand:
    return MigrationCommand(
        operation=CommandOperation.UNSET_FIELD,
        collection=collection,
        arguments={"field": field},
        description=description,
        safety_level=safety_level,
        metadata=metadata or {},
    )


def rename_field(
    collection: str,
    from_path: str,
    to_path: str,
    *,
    confidence: float,
    reason: str = "field_renamed",
) -> MigrationCommand:
    return MigrationCommand(
        operation=CommandOperation.RENAME_FIELD,
        collection=collection,
        arguments={"from_path": from_path, "to_path": to_path},
        description=f"Rename field '{from_path}' to '{to_path}' in collection '{collection}'",
        safety_level=SafetyLevel.SAFE,
        metadata={"from_path": from_path, "to_path": to_path, "confidence": confidence, "reason": reason},
    )


def create_index(
    collection: str,
    keys: list[list[Any]],
    index_options: dict[str, Any],
    *,
    description: str,
    metadata: dict[str, Any] | None = None,
) -> MigrationCommand:
    return MigrationCommand(
        operation=CommandOperation.CREATE_INDEX,
        collection=collection,
        arguments={"keys": keys, "index_options": index_options},
        description=description,
        safety_level=SafetyLevel.SAFE,
        metadata=metadata or {},
    )


def drop_index(
    collection: str,
    name: str,
    *,
    description: str = "",
    metadata: dict[str, Any] | None = None,
) -> MigrationCommand:
    return MigrationCommand(
        operation=CommandOperation.DROP_INDEX,
        collection=collection,
        arguments={"name": name},
        description=description or f"Drop index '{name}' from collection '{collection}'",
        safety_level=SafetyLevel.WARNING,
        metadata=metadata or {},
    )


def modify_validator(
    collection: str,
    validator: dict[str, Any] | None,
    *,
    description: str,
) -> MigrationCommand:
    return MigrationCommand(
        operation=CommandOperation.MODIFY_VALIDATOR,
        collection=collection,
        arguments={"validator": validator or {}},
        description=description,
        safety_level=SafetyLevel.WARNING,
    )


def review(collection: str, note: str, *, description: str, metadata: dict[str, Any] | None = None) -> MigrationCommand:
    return MigrationCommand(
        operation=CommandOperation.REVIEW,
        collection=collection,
        arguments={"note": note},
        description=description,
        safety_level=SafetyLevel.WARNING,
        metadata=metadata or {},
    )


def annotate_command(command: MigrationCommand) -> MigrationCommand:
    """Return *command* with execution options set for its operation."""
    options = CommandOptions(
        session=command.operation in SESSION_OPERATIONS,
        manual=command.operation in MANUAL_OPERATIONS,
    )
    return command.model_copy(update={"options": options})


def annotate_commands(commands: list[MigrationCommand]) -> list[MigrationCommand]:
    return [annotate_command(cmd) for cmd in commands]
