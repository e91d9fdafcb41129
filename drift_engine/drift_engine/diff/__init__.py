"""Structural diff engine: snapshots in, safety-classified migration commands out."""

from drift_engine.diff.engine import diff_snapshots
from drift_engine.diff.fields import compare_fields, diff_fields, synthesize_default
from drift_engine.diff.indexes import derive_index_name, diff_indexes, index_signature
from drift_engine.diff.renames import infer_renames, rename_confidence

__all__ = [
    "compare_fields",
    "derive_index_name",
    "diff_fields",
    "diff_indexes",
    "diff_snapshots",
    "index_signature",
    "infer_renames",
    "rename_confidence",
    "synthesize_default",
]
