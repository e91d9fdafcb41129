"""Structural diff between an observed and a declared snapshot.

The declared snapshot is the source of truth; the observed snapshot is the
baseline.  The diff runs per collection (collection presence, fields,
indexes, validator) and aggregates the results into a single
:class:`DiffResult` whose ``up`` list moves the store to the declared
structure and whose ``down`` list undoes it.

``down`` is assembled from per-change groups in reverse order, so rolling
back undoes the most recent structural step first while each group keeps its
own internal order (a collection is recreated before its indexes).

The function is pure: it neither reads nor writes storage, so independent
snapshot pairs can be diffed concurrently.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from drift_engine.config import Settings
from drift_engine.diff import commands
from drift_engine.diff.fields import diff_fields
from drift_engine.diff.indexes import build_create_index, derive_index_name, diff_indexes
from drift_engine.diff.renames import DEFAULT_RENAME_THRESHOLD
from drift_engine.models.diff import ChangeCounts, DiffResult, MigrationCommand
from drift_engine.models.snapshot import CollectionStructure, NormalizedSnapshot, Snapshot
from drift_engine.snapshot.flatten import DEFAULT_MAX_DEPTH
from drift_engine.snapshot.normalizer import canonical_json, compute_snapshot_hash, normalize_snapshot

logger = logging.getLogger(__name__)

SnapshotInput = Snapshot | NormalizedSnapshot | Mapping[str, Any]


class _Accumulator:
    """Collects up commands and down groups while the diff runs."""

    def __init__(self) -> None:
        self.up: list[MigrationCommand] = []
        self.down_groups: list[list[MigrationCommand]] = []
        self.warnings: list[str] = []
        self.metadata = ChangeCounts()

    def add(self, up: list[MigrationCommand], down: list[MigrationCommand]) -> None:
        self.up.extend(up)
        if down:
            self.down_groups.append(down)

    def down(self) -> list[MigrationCommand]:
        return [cmd for group in reversed(self.down_groups) for cmd in group]


def diff_snapshots(
    observed: SnapshotInput,
    declared: SnapshotInput,
    *,
    settings: Settings | None = None,
    rename_threshold: float | None = None,
    max_depth: int | None = None,
) -> DiffResult:
    """Compute the migration from *observed* to *declared*.

    Parameters
    ----------
    observed:
        Snapshot sampled from live storage (the baseline).
    declared:
        Snapshot produced from the model declarations (the target).
    settings:
        Supplies ``rename_confidence_threshold`` and ``max_field_depth``
        when the explicit keyword arguments are not given.
    rename_threshold:
        Minimum (exclusive) confidence for a removed/added pair to be
        treated as a rename.
    max_depth:
        Depth to which nested object fields are flattened.

    Returns
    -------
    DiffResult
        Annotated ``up``/``down`` command lists, warnings, per-category
        change metadata, and the hashes of both snapshots.

    Raises
    ------
    MalformedSnapshotError
        If either input is not a structurally valid snapshot.
    """
    if rename_threshold is None:
        rename_threshold = settings.rename_confidence_threshold if settings else DEFAULT_RENAME_THRESHOLD
    if max_depth is None:
        max_depth = settings.max_field_depth if settings else DEFAULT_MAX_DEPTH

    before = normalize_snapshot(observed)
    after = normalize_snapshot(declared)
    acc = _Accumulator()

    before_names = set(before.collections)
    after_names = set(after.collections)

    for name in sorted(after_names - before_names):
        _add_collection(acc, name, after.collections[name])

    for name in sorted(before_names - after_names):
        _remove_collection(acc, name, before.collections[name])

    for name in sorted(before_names & after_names):
        _diff_collection(
            acc,
            name,
            before.collections[name],
            after.collections[name],
            rename_threshold=rename_threshold,
            max_depth=max_depth,
        )

    result = DiffResult(
        up=commands.annotate_commands(acc.up),
        down=commands.annotate_commands(acc.down()),
        warnings=acc.warnings,
        metadata=acc.metadata,
        from_hash=compute_snapshot_hash(before),
        to_hash=compute_snapshot_hash(after),
    )

    if result.has_changes:
        logger.info(
            "Diff %s -> %s: %d up, %d down, %d warnings",
            result.from_hash[:12],
            result.to_hash[:12],
            len(result.up),
            len(result.down),
            len(result.warnings),
        )
    else:
        logger.info("No structural changes between %s and %s", result.from_hash[:12], result.to_hash[:12])
    return result


def _add_collection(acc: _Accumulator, name: str, structure: CollectionStructure) -> None:
    up = [commands.create_collection(name)]
    down: list[MigrationCommand] = []

    for index in structure.indexes:
        up.append(build_create_index(name, index))
        index_name = derive_index_name(index)
        down.append(commands.drop_index(name, index_name, metadata={"index_name": index_name}))
        acc.metadata.indexes.added.append(f"{name}.{index_name}")

    if structure.validator:
        up.append(
            commands.modify_validator(
                name,
                structure.validator,
                description=f"Apply schema validator to collection '{name}'",
            )
        )
        acc.metadata.validators.added.append(name)

    down.append(
        commands.drop_collection(
            name,
            description=f"Drop collection '{name}' (rollback of creation)",
        )
    )
    acc.add(up, down)
    acc.metadata.collections.added.append(name)
    acc.warnings.append(
        f"Collection '{name}' will be created. Rolling back drops it, which must be done manually."
    )


def _remove_collection(acc: _Accumulator, name: str, structure: CollectionStructure) -> None:
    up = [
        commands.drop_collection(
            name,
            description=f"Drop collection '{name}' (no longer declared)",
        )
    ]
    down = [commands.create_collection(name, description=f"Recreate collection '{name}'")]
    for index in structure.indexes:
        down.append(build_create_index(name, index, description=f"Recreate index '{derive_index_name(index)}'"))
    if structure.validator:
        down.append(
            commands.modify_validator(
                name,
                structure.validator,
                description=f"Restore schema validator on collection '{name}'",
            )
        )

    acc.add(up, down)
    acc.metadata.collections.removed.append(name)
    acc.warnings.append(
        f"Collection '{name}' exists in storage but is not declared. "
        "Dropping it deletes all of its documents and must be done manually."
    )


def _diff_collection(
    acc: _Accumulator,
    name: str,
    observed: CollectionStructure,
    declared: CollectionStructure,
    *,
    rename_threshold: float,
    max_depth: int,
) -> None:
    fields = diff_fields(
        name,
        observed.fields,
        declared.fields,
        observed_is_empty=observed.is_empty,
        rename_threshold=rename_threshold,
        max_depth=max_depth,
    )
    acc.add(fields.up, fields.down)
    acc.warnings.extend(fields.warnings)
    acc.metadata.fields.added.extend(fields.added)
    acc.metadata.fields.removed.extend(fields.removed)
    acc.metadata.fields.modified.extend(fields.modified)
    acc.metadata.fields.renamed.extend(fields.renamed)

    indexes = diff_indexes(name, observed.indexes, declared.indexes)
    acc.add(indexes.up, indexes.down)
    acc.warnings.extend(indexes.warnings)
    acc.metadata.indexes.added.extend(indexes.added)
    acc.metadata.indexes.removed.extend(indexes.removed)

    validator_changed = _diff_validator(acc, name, observed, declared)

    if fields.changed or fields.modified or indexes.changed or validator_changed:
        acc.metadata.collections.modified.append(name)


def _diff_validator(
    acc: _Accumulator,
    name: str,
    observed: CollectionStructure,
    declared: CollectionStructure,
) -> bool:
    if canonical_json(observed.validator or {}) == canonical_json(declared.validator or {}):
        return False

    acc.add(
        [
            commands.modify_validator(
                name,
                declared.validator,
                description=f"Update schema validator on collection '{name}'",
            )
        ],
        [
            commands.modify_validator(
                name,
                observed.validator,
                description=f"Restore previous schema validator on collection '{name}'",
            )
        ],
    )
    if not observed.validator:
        acc.metadata.validators.added.append(name)
    elif not declared.validator:
        acc.metadata.validators.removed.append(name)
    else:
        acc.metadata.validators.modified.append(name)
    acc.warnings.append(
        f"Schema validator on '{name}' changes. Existing documents are not revalidated; "
        "writes that violate the new validator will be rejected."
    )
    return True
