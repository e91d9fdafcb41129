"""Field-level diff for a collection present in both snapshots.

Both field trees are flattened to dot-paths first.  Paths only in the
declared snapshot are added to every document, paths only in the observed
snapshot are unset, and pairs that look like the same field under a new name
become a single ``$rename``.  For paths on both sides only a genuine type
change produces commands; nullability, requiredness, defaults, and enums
are enforced by the mapping layer and need no stored-data change.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from drift_engine.diff import commands
from drift_engine.diff.renames import DEFAULT_RENAME_THRESHOLD, infer_renames
from drift_engine.models.diff import MigrationCommand, RenamedField, SafetyLevel
from drift_engine.models.snapshot import MIXED_TYPE, FieldDefinition
from drift_engine.snapshot.flatten import DEFAULT_MAX_DEPTH, flatten_fields, has_related_path
from drift_engine.snapshot.normalizer import canonical_json

logger = logging.getLogger(__name__)

# Timestamps maintained by the mapping layer; type differences are expected.
AUTO_GENERATED_FIELDS: frozenset[str] = frozenset({"createdAt", "updatedAt"})


@dataclass
class FieldDiff:
    up: list[MigrationCommand] = field(default_factory=list)
    down: list[MigrationCommand] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    renamed: list[RenamedField] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.up or self.down)


@dataclass
class FieldComparison:
    changes: list[str] = field(default_factory=list)
    type_changed: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.changes)


def synthesize_default(definition: FieldDefinition) -> tuple[Any, bool]:
    """Value written into existing documents for a newly declared field.

    Returns ``(value, generated)``.  An explicit default always wins.  A
    non-nullable required field without one gets a zero value for its type
    and ``generated`` is True; anything else gets ``None``.
    """
    if definition.has_default:
        return definition.default, False
    if definition.nullable or not definition.required:
        return None, False

    zero_values: dict[str, Any] = {
        "String": "",
        "Number": 0,
        "Boolean": False,
        "Array": [],
        "Object": {},
    }
    if definition.type == "Date":
        return datetime.now(UTC), True
    return zero_values.get(definition.type), True


def compare_fields(observed: FieldDefinition, declared: FieldDefinition, path: str) -> FieldComparison:
    """List attribute differences and flag a significant type change."""
    result = FieldComparison()

    if observed.type != MIXED_TYPE and observed.type != declared.type:
        result.changes.append(f"type: {observed.type} -> {declared.type}")
        leaf = path.rsplit(".", 1)[-1]
        if declared.type != MIXED_TYPE and leaf not in AUTO_GENERATED_FIELDS:
            result.type_changed = True

    if observed.nullable != declared.nullable:
        result.changes.append(f"nullable: {observed.nullable} -> {declared.nullable}")

    if observed.required != declared.required:
        result.changes.append(f"required: {observed.required} -> {declared.required}")

    observed_default = canonical_json(observed.default) if observed.has_default else None
    declared_default = canonical_json(declared.default) if declared.has_default else None
    if observed_default != declared_default:
        result.changes.append(f"default: {observed_default} -> {declared_default}")

    observed_enum = sorted(observed.enum) if observed.enum is not None else None
    declared_enum = sorted(declared.enum) if declared.enum is not None else None
    if observed_enum != declared_enum:
        result.changes.append(f"enum: {observed_enum} -> {declared_enum}")

    return result


def diff_fields(
    collection: str,
    observed_fields: dict[str, FieldDefinition],
    declared_fields: dict[str, FieldDefinition],
    *,
    observed_is_empty: bool = False,
    rename_threshold: float = DEFAULT_RENAME_THRESHOLD,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> FieldDiff:
    """Diff the fields of one collection (observed -> declared)."""
    result = FieldDiff()
    if observed_is_empty:
        return result

    observed = flatten_fields(observed_fields, max_depth)
    declared = flatten_fields(declared_fields, max_depth)
    observed_paths = set(observed)
    declared_paths = set(declared)

    added = {
        p: declared[p]
        for p in sorted(declared_paths - observed_paths)
        if not has_related_path(p, observed_paths)
    }
    removed = {
        p: observed[p]
        for p in sorted(observed_paths - declared_paths)
        if not has_related_path(p, declared_paths)
    }

    for match in infer_renames(removed, added, rename_threshold):
        del removed[match.from_path]
        del added[match.to_path]
        result.up.append(
            commands.rename_field(collection, match.from_path, match.to_path, confidence=match.confidence)
        )
        result.down.append(
            commands.rename_field(
                collection,
                match.to_path,
                match.from_path,
                confidence=match.confidence,
                reason="rollback_field_renamed",
            )
        )
        result.renamed.append(
            RenamedField(
                collection=collection,
                from_path=match.from_path,
                to_path=match.to_path,
                confidence=match.confidence,
            )
        )
        logger.debug(
            "Inferred rename %s.%s -> %s (confidence %.2f)",
            collection,
            match.from_path,
            match.to_path,
            match.confidence,
        )

    for path, definition in added.items():
        _add_field(result, collection, path, definition)

    for path, definition in removed.items():
        _remove_field(result, collection, path, definition)

    for path in sorted(observed_paths & declared_paths):
        comparison = compare_fields(observed[path], declared[path], path)
        if not comparison.changed:
            continue
        result.modified.append(path)
        if comparison.type_changed:
            _review_type_change(result, collection, path, observed[path], declared[path], comparison)

    return result


def _add_field(result: FieldDiff, collection: str, path: str, definition: FieldDefinition) -> None:
    value, generated = synthesize_default(definition)

    description = f"Add field '{path}' to collection '{collection}'"
    if definition.has_default:
        description += " with default value"
    elif generated:
        description += " with generated default (required field)"
        result.warnings.append(
            f"Field '{path}' in '{collection}' is required but has no default. "
            f"Using type-based default: {json.dumps(value, default=str)}"
        )

    result.up.append(
        commands.set_field(
            collection,
            path,
            value,
            description=description,
            safety_level=SafetyLevel.SAFE,
            metadata={
                "field_path": path,
                "field_definition": definition.model_dump(mode="json"),
                "migration_value": value,
                "generated_default": generated,
                "reason": "new_field",
            },
        )
    )
    result.down.append(
        commands.unset_field(
            collection,
            path,
            description=f"Remove field '{path}' from collection '{collection}'",
            metadata={"field_path": path, "reason": "rollback_new_field"},
        )
    )
    result.added.append(path)


def _remove_field(result: FieldDiff, collection: str, path: str, definition: FieldDefinition) -> None:
    result.up.append(
        commands.unset_field(
            collection,
            path,
            description=f"Remove field '{path}' from collection '{collection}' (no longer declared)",
            metadata={"field_path": path, "reason": "field_removed_from_model"},
        )
    )
    result.down.append(
        commands.set_field(
            collection,
            path,
            None,
            description=f"Restore field '{path}' to collection '{collection}'",
            safety_level=SafetyLevel.SAFE,
            metadata={
                "field_path": path,
                "field_definition": definition.model_dump(mode="json"),
                "reason": "restore_removed_field",
            },
        )
    )
    result.warnings.append(
        f"Field '{path}' exists in '{collection}' but is not declared. It will be removed."
    )
    result.removed.append(path)


def _review_type_change(
    result: FieldDiff,
    collection: str,
    path: str,
    observed: FieldDefinition,
    declared: FieldDefinition,
    comparison: FieldComparison,
) -> None:
    result.warnings.append(
        f"Type change for '{path}' in '{collection}': {observed.type} -> {declared.type}. "
        "Review whether stored data needs migrating."
    )
    result.up.append(
        commands.review(
            collection,
            f"type change for '{path}': {observed.type} -> {declared.type}",
            description=f"Field '{path}' type changed; review data compatibility",
            metadata={
                "field_path": path,
                "changes": comparison.changes,
                "from_field": observed.model_dump(mode="json"),
                "to_field": declared.model_dump(mode="json"),
                "reason": "significant_type_change",
            },
        )
    )
    result.down.append(
        commands.review(
            collection,
            f"revert type change for '{path}': {declared.type} -> {observed.type}",
            description=f"Revert type change for field '{path}'",
            metadata={
                "field_path": path,
                "field_definition": observed.model_dump(mode="json"),
                "reason": "revert_significant_change",
            },
        )
    )
