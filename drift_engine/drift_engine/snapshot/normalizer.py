"""Deterministic snapshot normalisation and content hashing.

The canonical form of a snapshot is produced by:

1. Sorting collections by name.
2. Dropping managed fields (``_id``, ``__v``) and sorting fields by name,
   recursively through ``nested_fields``.
3. Normalising index defaults and sorting indexes by their canonical
   serialisation.
4. Omitting ``hash`` and ``created_at``.

The content hash is the SHA-256 hex digest of the canonical form serialised
as compact JSON with sorted keys.  Insertion order of collections, fields or
indexes therefore never affects the hash, while any structural change does.
All functions here are pure.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from drift_engine.errors import MalformedSnapshotError
from drift_engine.models.snapshot import (
    MANAGED_FIELDS,
    CollectionStructure,
    FieldDefinition,
    IndexDefinition,
    NormalizedSnapshot,
    Snapshot,
)

logger = logging.getLogger(__name__)


def canonical_json(value: Any) -> str:
    """Serialise *value* deterministically (sorted keys, no whitespace)."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_snapshot(payload: Mapping[str, Any] | Snapshot) -> Snapshot:
    """Validate a raw snapshot mapping.

    Raises
    ------
    MalformedSnapshotError
        If required structural keys are missing or values have the wrong
        type.  Values are never coerced into shape.
    """
    if isinstance(payload, Snapshot):
        return payload
    if not isinstance(payload, Mapping):
        raise MalformedSnapshotError(f"Snapshot must be a mapping, got {type(payload).__name__}")
    if "collections" not in payload:
        raise MalformedSnapshotError("Snapshot is missing required key 'collections'")

    try:
        return Snapshot.model_validate(payload)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise MalformedSnapshotError(f"Malformed snapshot: {problems}") from exc


def load_snapshot_file(path: Path) -> Snapshot:
    """Read and validate a snapshot JSON file."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise MalformedSnapshotError(f"Snapshot file {path} is not valid JSON: {exc}") from exc
    return load_snapshot(payload)


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------


def index_sort_key(index: IndexDefinition) -> str:
    return canonical_json(index.model_dump(mode="json"))


def _is_managed_index(index: IndexDefinition) -> bool:
    # The driver always reports the implicit ``_id_`` index.
    return index.name == "_id_" or all(f.name in MANAGED_FIELDS for f in index.fields)


def _normalize_fields(fields: dict[str, FieldDefinition]) -> dict[str, FieldDefinition]:
    normalized: dict[str, FieldDefinition] = {}
    for name in sorted(fields):
        if name in MANAGED_FIELDS:
            continue
        definition = fields[name]
        if definition.nested_fields is not None:
            definition = definition.model_copy(
                update={"nested_fields": _normalize_fields(definition.nested_fields)}
            )
        normalized[name] = definition
    return normalized


def _normalize_collection(collection: CollectionStructure) -> CollectionStructure:
    return CollectionStructure(
        fields=_normalize_fields(collection.fields),
        indexes=sorted(
            (index for index in collection.indexes if not _is_managed_index(index)),
            key=index_sort_key,
        ),
        is_empty=collection.is_empty,
        validator=collection.validator,
    )


def normalize_snapshot(snapshot: Snapshot | NormalizedSnapshot | Mapping[str, Any]) -> NormalizedSnapshot:
    """Return the canonical form of *snapshot*.

    Idempotent: normalising an already-normalised snapshot is a no-op.
    """
    if not isinstance(snapshot, NormalizedSnapshot):
        snapshot = load_snapshot(snapshot)
    return NormalizedSnapshot(
        version=snapshot.version,
        collections={
            name: _normalize_collection(snapshot.collections[name]) for name in sorted(snapshot.collections)
        },
    )


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def compute_snapshot_hash(snapshot: Snapshot | NormalizedSnapshot | Mapping[str, Any]) -> str:
    """Return the SHA-256 content digest of *snapshot*'s canonical form."""
    normalized = snapshot if isinstance(snapshot, NormalizedSnapshot) else normalize_snapshot(snapshot)
    serialized = canonical_json(normalized.model_dump(mode="json"))
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def verify_snapshot(snapshot: Snapshot) -> bool:
    """Return True if ``snapshot.hash`` matches its content.

    A mismatch means the snapshot was corrupted or edited after sealing.
    """
    computed = compute_snapshot_hash(snapshot)
    if computed != snapshot.hash:
        logger.debug("Snapshot hash mismatch: stored=%s computed=%s", snapshot.hash[:12], computed[:12])
        return False
    return True


def seal_snapshot(snapshot: Snapshot) -> Snapshot:
    """Return a copy of *snapshot* with ``hash`` set to its content digest."""
    return snapshot.model_copy(update={"hash": compute_snapshot_hash(snapshot)})
