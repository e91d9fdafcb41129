"""Index comparison by canonical signature.

Two indexes are the same when their keys, directions, and behavioural options
(``unique``, ``sparse``, TTL, partial filter, text) match.  Names and
collation do not take part: a live index named ``email_1`` and a declared
unnamed index on ``email`` are the same index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from drift_engine.diff import commands
from drift_engine.models.diff import MigrationCommand
from drift_engine.models.snapshot import IndexDefinition
from drift_engine.snapshot.normalizer import canonical_json

logger = logging.getLogger(__name__)


@dataclass
class IndexDiff:
    up: list[MigrationCommand] = field(default_factory=list)
    down: list[MigrationCommand] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.up or self.down)


def index_signature(index: IndexDefinition) -> str:
    """Stable serialisation of the index's identity."""
    return canonical_json(
        {
            "fields": [{"field": f.name, "direction": f.direction} for f in index.fields],
            "unique": index.unique,
            "sparse": index.sparse,
            "ttl_seconds": index.ttl_seconds,
            "partial_filter_expression": index.partial_filter_expression,
            "text": index.text,
        }
    )


def derive_index_name(index: IndexDefinition) -> str:
    """Return the index's name, deriving one when none is declared.

    Field names are joined with ``_``; non-ascending keys carry their
    direction (``created_-1``).  TTL, text, and unique indexes get a
    ``_ttl`` / ``_text`` / ``_unique`` suffix, in that order of precedence.
    """
    if index.name:
        return index.name

    parts: list[str] = []
    for key in index.fields:
        if key.direction == 1 or key.direction == "text":
            parts.append(key.name)
        else:
            parts.append(f"{key.name}_{key.direction}")
    base = "_".join(parts)

    if index.is_ttl:
        return f"{base}_ttl"
    if index.text:
        return f"{base}_text"
    if index.unique:
        return f"{base}_unique"
    return base


def index_options(index: IndexDefinition) -> dict[str, Any]:
    """Keyword options for ``Collection.create_index``."""
    options: dict[str, Any] = {"name": derive_index_name(index)}
    if index.unique:
        options["unique"] = True
    if index.sparse:
        options["sparse"] = True
    if index.partial_filter_expression:
        options["partialFilterExpression"] = index.partial_filter_expression
    if index.ttl_seconds is not None:
        options["expireAfterSeconds"] = index.ttl_seconds
    if index.collation:
        options["collation"] = index.collation
    return options


def _describe_keys(index: IndexDefinition) -> str:
    return ", ".join(f"{f.name}: {f.direction}" for f in index.fields)


def build_create_index(collection: str, index: IndexDefinition, description: str = "") -> MigrationCommand:
    if not description:
        description = f"Create index on {_describe_keys(index)} for collection '{collection}'"
        if index.is_ttl:
            description += f" (TTL: {index.ttl_seconds}s)"
    return commands.create_index(
        collection,
        keys=[[f.name, f.direction] for f in index.fields],
        index_options=index_options(index),
        description=description,
        metadata={
            "index": index.model_dump(mode="json"),
            "index_type": "ttl" if index.is_ttl else "regular",
        },
    )


def diff_indexes(
    collection: str,
    observed: list[IndexDefinition],
    declared: list[IndexDefinition],
) -> IndexDiff:
    """Compare index lists by canonical signature.

    Declared-only indexes are created (``safe``); observed-only indexes are
    dropped (``warning``), with an extra warning for TTL indexes since
    dropping one changes document expiry.
    """
    result = IndexDiff()

    observed_by_sig = {index_signature(i): i for i in observed}
    declared_by_sig = {index_signature(i): i for i in declared}

    for signature in sorted(declared_by_sig.keys() - observed_by_sig.keys()):
        index = declared_by_sig[signature]
        name = derive_index_name(index)
        result.up.append(build_create_index(collection, index))
        result.down.append(
            commands.drop_index(
                collection,
                name,
                metadata={"index_name": name, "index": index.model_dump(mode="json")},
            )
        )
        result.added.append(f"{collection}.{name}")

    for signature in sorted(observed_by_sig.keys() - declared_by_sig.keys()):
        index = observed_by_sig[signature]
        name = derive_index_name(index)
        description = f"Drop index '{name}' from collection '{collection}'"
        if index.is_ttl:
            description += " (TTL index)"
            result.warnings.append(
                f"TTL index '{name}' on '{collection}' will be dropped; documents will no longer expire."
            )
        result.up.append(
            commands.drop_index(
                collection,
                name,
                description=description,
                metadata={
                    "index_name": name,
                    "index": index.model_dump(mode="json"),
                    "index_type": "ttl" if index.is_ttl else "regular",
                },
            )
        )
        result.down.append(
            build_create_index(
                collection,
                index,
                description=f"Recreate index '{name}' on collection '{collection}'",
            )
        )
        result.removed.append(f"{collection}.{name}")

    if result.changed:
        logger.debug(
            "Index diff for %s: %d added, %d removed",
            collection,
            len(result.added),
            len(result.removed),
        )
    return result
