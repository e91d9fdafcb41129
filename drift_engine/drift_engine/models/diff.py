"""Diff models for comparing an observed snapshot against a declared one.

A :class:`DiffResult` carries two ordered command lists: ``up`` moves the
observed store toward the declared structure and ``down`` is its structural
inverse.  Commands are typed values; the pymongo statement written into a
migration script is rendered from those values on demand, so session
handling is a field (``options.session``) rather than text spliced into a
statement.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field


class SafetyLevel(str, Enum):
    """How risky a command is to run against live data."""

    SAFE = "safe"
    WARNING = "warning"
    DANGEROUS = "dangerous"


class CommandOperation(str, Enum):
    """Storage operation a migration command performs."""

    CREATE_COLLECTION = "create_collection"
    DROP_COLLECTION = "drop_collection"
    SET_FIELD = "set_field"
    UNSET_FIELD = "unset_field"
    RENAME_FIELD = "rename_field"
    CREATE_INDEX = "create_index"
    DROP_INDEX = "drop_index"
    MODIFY_VALIDATOR = "modify_validator"
    REVIEW = "review"


class CommandOptions(BaseModel):
    """Execution options attached to a command."""

    session: bool = Field(
        default=False,
        description="Run inside the migration's session/transaction.",
    )
    manual: bool = Field(
        default=False,
        description="Never executed by the batch; rendered as an instruction to run by hand.",
    )


class MigrationCommand(BaseModel):
    """A single typed storage operation plus its safety classification."""

    operation: CommandOperation
    collection: str = Field(..., min_length=1, description="Target collection name.")
    arguments: dict[str, Any] = Field(
        default_factory=dict,
        description="Operation arguments: 'field'/'value', 'from_path'/'to_path', 'keys'/'index_options', ...",
    )
    options: CommandOptions = Field(default_factory=CommandOptions)
    description: str = Field(default="", description="Human-readable summary of the command.")
    safety_level: SafetyLevel = SafetyLevel.SAFE
    metadata: dict[str, Any] = Field(default_factory=dict)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def command(self) -> str:
        """The pymongo statement for this command as written into a migration script."""
        return render_command(self)

    @property
    def is_executable(self) -> bool:
        """True when the command runs as part of a migration batch."""
        return not self.options.manual and self.operation != CommandOperation.REVIEW


class RenamedField(BaseModel):
    """A removed/added field pair recognised as one renamed field."""

    collection: str
    from_path: str
    to_path: str
    confidence: float = Field(..., ge=0.0, le=1.0)


class CategoryChanges(BaseModel):
    """Names added, removed, or modified within one change category."""

    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)


class FieldChanges(CategoryChanges):
    renamed: list[RenamedField] = Field(default_factory=list)


class ChangeCounts(BaseModel):
    """Per-category change summary used for reporting."""

    collections: CategoryChanges = Field(default_factory=CategoryChanges)
    fields: FieldChanges = Field(default_factory=FieldChanges)
    indexes: CategoryChanges = Field(default_factory=CategoryChanges)
    validators: CategoryChanges = Field(default_factory=CategoryChanges)

    @property
    def total(self) -> int:
        return (
            len(self.collections.added)
            + len(self.collections.removed)
            + len(self.fields.added)
            + len(self.fields.removed)
            + len(self.fields.modified)
            + len(self.fields.renamed)
            + len(self.indexes.added)
            + len(self.indexes.removed)
            + len(self.validators.added)
            + len(self.validators.removed)
            + len(self.validators.modified)
        )


class DiffResult(BaseModel):
    """Bidirectional, safety-classified change set between two snapshots."""

    up: list[MigrationCommand] = Field(default_factory=list)
    down: list[MigrationCommand] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    metadata: ChangeCounts = Field(default_factory=ChangeCounts)
    from_hash: str = Field(default="", description="Hash of the observed snapshot.")
    to_hash: str = Field(default="", description="Hash of the declared snapshot.")

    @property
    def has_changes(self) -> bool:
        return bool(self.up or self.down)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _collection_ref(name: str) -> str:
    return f"db[{name!r}]"


def _session_suffix(cmd: MigrationCommand) -> str:
    return ", session=session" if cmd.options.session else ""


def _manual(statement: str, reason: str) -> str:
    return f"# WARNING: execute manually, outside the migration batch: {statement}\n# {reason}"


def render_command(cmd: MigrationCommand) -> str:
    """Render *cmd* as a Python statement against a pymongo ``Database`` named ``db``."""
    args = cmd.arguments
    coll = _collection_ref(cmd.collection)
    session = _session_suffix(cmd)
    op = cmd.operation

    if op == CommandOperation.CREATE_COLLECTION:
        return f"db.create_collection({cmd.collection!r}{session})"

    if op == CommandOperation.DROP_COLLECTION:
        statement = f"{coll}.drop()"
        if cmd.options.manual:
            return _manual(statement, "Dropping a collection is irreversible and cannot run within a transaction.")
        return statement

    if op == CommandOperation.SET_FIELD:
        update = {"$set": {args["field"]: args.get("value")}}
        return f"{coll}.update_many({{}}, {update!r}{session})"

    if op == CommandOperation.UNSET_FIELD:
        update = {"$unset": {args["field"]: ""}}
        return f"{coll}.update_many({{}}, {update!r}{session})"

    if op == CommandOperation.RENAME_FIELD:
        update = {"$rename": {args["from_path"]: args["to_path"]}}
        return f"{coll}.update_many({{}}, {update!r}{session})"

    if op == CommandOperation.CREATE_INDEX:
        keys = [(name, direction) for name, direction in args["keys"]]
        options = "".join(f", {k}={v!r}" for k, v in sorted(args.get("index_options", {}).items()))
        return f"{coll}.create_index({keys!r}{options}{session})"

    if op == CommandOperation.DROP_INDEX:
        statement = f"{coll}.drop_index({args['name']!r})"
        if cmd.options.manual:
            return _manual(statement, "Index drops cannot run within a transaction.")
        return statement

    if op == CommandOperation.MODIFY_VALIDATOR:
        validator = args.get("validator") or {}
        return f"db.command('collMod', {cmd.collection!r}, validator={validator!r}{session})"

    # REVIEW: non-executable note for a human.
    return f"# REVIEW: {args.get('note', cmd.description)}"
