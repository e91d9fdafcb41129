"""Flatten nested field trees into dot-delimited paths.

Object fields that declare ``nested_fields`` are replaced by their children,
so both snapshots reduce to leaf paths such as ``profile.bio``.  Nesting
deeper than ``max_depth`` levels is not expanded: the field at the depth
limit stands in for its whole subtree.
"""

from __future__ import annotations

from drift_engine.models.snapshot import MANAGED_FIELDS, FieldDefinition

DEFAULT_MAX_DEPTH = 3


def flatten_fields(
    fields: dict[str, FieldDefinition],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> dict[str, FieldDefinition]:
    """Return ``{dot_path: definition}`` for every leaf field, sorted by path.

    Managed fields (``_id``, ``__v``) are dropped at every level.
    """
    flat: dict[str, FieldDefinition] = {}
    _flatten_into(flat, fields, prefix="", depth=1, max_depth=max_depth)
    return dict(sorted(flat.items()))


def _flatten_into(
    out: dict[str, FieldDefinition],
    fields: dict[str, FieldDefinition],
    prefix: str,
    depth: int,
    max_depth: int,
) -> None:
    for name, definition in fields.items():
        if name in MANAGED_FIELDS:
            continue
        path = f"{prefix}.{name}" if prefix else name
        if definition.nested_fields and depth < max_depth:
            _flatten_into(out, definition.nested_fields, path, depth + 1, max_depth)
        else:
            out[path] = definition


def has_related_path(path: str, others: set[str]) -> bool:
    """True when *others* holds an ancestor or descendant of *path*.

    Used to avoid unsetting a parent object whose children are still
    declared, or setting a parent over children that already exist.
    """
    for other in others:
        if other.startswith(path + ".") or path.startswith(other + "."):
            return True
    return False
