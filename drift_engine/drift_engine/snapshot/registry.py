"""Snapshot producers.

The engine never inspects user model classes itself.  Anything that can
describe the store's structure implements :class:`SnapshotExtractor`;
declared structures are collected in an explicit :class:`ModelRegistry`
instance rather than module-level state, so independent extraction runs do
not see each other's registrations.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from drift_engine.errors import MalformedSnapshotError
from drift_engine.models.snapshot import CollectionStructure, FieldDefinition, IndexDefinition, Snapshot
from drift_engine.snapshot.normalizer import load_snapshot_file, seal_snapshot, verify_snapshot

logger = logging.getLogger(__name__)


class SnapshotExtractor(Protocol):
    """Structural interface for anything that produces a snapshot."""

    def extract(self) -> Snapshot:
        """Return a sealed snapshot of the structure this extractor describes."""
        ...


class ModelRegistry:
    """Declared collection structures, registered explicitly by the caller.

    Parameters
    ----------
    version:
        Snapshot format version stamped onto extracted snapshots.
    """

    def __init__(self, version: int = 1) -> None:
        self._version = version
        self._collections: dict[str, CollectionStructure] = {}

    def register(
        self,
        collection: str,
        fields: Mapping[str, FieldDefinition | Mapping[str, Any]],
        indexes: Sequence[IndexDefinition | Mapping[str, Any]] = (),
        validator: dict[str, Any] | None = None,
    ) -> CollectionStructure:
        """Declare the structure of *collection*.

        Raises
        ------
        ValueError
            If the collection is already registered.
        MalformedSnapshotError
            If a field or index declaration is invalid.
        """
        if collection in self._collections:
            raise ValueError(f"Collection '{collection}' is already registered")
        try:
            structure = CollectionStructure.model_validate(
                {"fields": dict(fields), "indexes": list(indexes), "validator": validator}
            )
        except ValidationError as exc:
            raise MalformedSnapshotError(f"Invalid declaration for collection '{collection}': {exc}") from exc
        self._collections[collection] = structure
        return structure

    def unregister(self, collection: str) -> None:
        self._collections.pop(collection, None)

    def names(self) -> list[str]:
        return sorted(self._collections)

    def __contains__(self, collection: object) -> bool:
        return collection in self._collections

    def __len__(self) -> int:
        return len(self._collections)

    def extract(self) -> Snapshot:
        """Build a sealed snapshot from the registered declarations."""
        snapshot = Snapshot(version=self._version, collections=dict(self._collections))
        return seal_snapshot(snapshot)


class FileSnapshotExtractor:
    """Read a snapshot written to disk by an external extractor or sampler."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def extract(self) -> Snapshot:
        snapshot = load_snapshot_file(self._path)
        if snapshot.hash and not verify_snapshot(snapshot):
            logger.warning(
                "Snapshot %s hash does not match its content; it may have been edited by hand",
                self._path,
            )
        return seal_snapshot(snapshot)
