"""Rename inference between removed and added field paths.

A removed path and an added path are scored on five independent signals,
each contributing its weight when the two definitions agree:

==========  ======
signal      weight
==========  ======
type        0.4
nullable    0.2
required    0.2
default     0.1
enum set    0.1
==========  ======

Matching is greedy and one-to-one.  Removed paths are visited in sorted
order; each takes the highest-scoring added path not yet matched, provided
the score is strictly above the threshold.  Equal scores resolve to the
lexicographically first added path so results never depend on input order.
"""

from __future__ import annotations

from dataclasses import dataclass

from drift_engine.models.snapshot import FieldDefinition
from drift_engine.snapshot.normalizer import canonical_json

DEFAULT_RENAME_THRESHOLD = 0.7

RENAME_WEIGHTS: dict[str, float] = {
    "type": 0.4,
    "nullable": 0.2,
    "required": 0.2,
    "default": 0.1,
    "enum": 0.1,
}


@dataclass(frozen=True)
class RenameMatch:
    from_path: str
    to_path: str
    confidence: float


def _default_key(definition: FieldDefinition) -> str:
    return canonical_json([definition.has_default, definition.default])


def rename_confidence(removed: FieldDefinition, added: FieldDefinition) -> float:
    """Similarity of two field definitions in ``[0, 1]``."""
    score = 0.0
    if removed.type == added.type:
        score += RENAME_WEIGHTS["type"]
    if removed.nullable == added.nullable:
        score += RENAME_WEIGHTS["nullable"]
    if removed.required == added.required:
        score += RENAME_WEIGHTS["required"]
    if _default_key(removed) == _default_key(added):
        score += RENAME_WEIGHTS["default"]
    if set(removed.enum or ()) == set(added.enum or ()):
        score += RENAME_WEIGHTS["enum"]
    return round(score, 4)


def infer_renames(
    removed: dict[str, FieldDefinition],
    added: dict[str, FieldDefinition],
    threshold: float = DEFAULT_RENAME_THRESHOLD,
) -> list[RenameMatch]:
    """Pair removed paths with added paths that look like the same field."""
    matches: list[RenameMatch] = []
    taken: set[str] = set()

    for from_path in sorted(removed):
        best: RenameMatch | None = None
        for to_path in sorted(added):
            if to_path in taken:
                continue
            confidence = rename_confidence(removed[from_path], added[to_path])
            if confidence <= threshold:
                continue
            if best is None or confidence > best.confidence:
                best = RenameMatch(from_path, to_path, confidence)
        if best is not None:
            taken.add(best.to_path)
            matches.append(best)

    return matches
