"""Snapshot canonicalisation, hashing, and producers."""

from drift_engine.snapshot.flatten import flatten_fields
from drift_engine.snapshot.normalizer import (
    canonical_json,
    compute_snapshot_hash,
    load_snapshot,
    load_snapshot_file,
    normalize_snapshot,
    seal_snapshot,
    verify_snapshot,
)
from drift_engine.snapshot.registry import FileSnapshotExtractor, ModelRegistry, SnapshotExtractor

__all__ = [
    "FileSnapshotExtractor",
    "ModelRegistry",
    "SnapshotExtractor",
    "canonical_json",
    "compute_snapshot_hash",
    "flatten_fields",
    "load_snapshot",
    "load_snapshot_file",
    "normalize_snapshot",
    "seal_snapshot",
    "verify_snapshot",
]
