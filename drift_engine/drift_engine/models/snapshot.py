"""Snapshot models describing the structure of a document store.

A snapshot is a point-in-time description of collections, their fields and
their indexes.  Snapshots come from two independent producers -- the declared
model definitions and sampling of live documents -- and are compared by the
diff engine.  ``hash`` is a content digest over the normalised form and
``created_at`` is recorded for inspection only; neither participates in the
digest itself.

Input payloads may use the camelCase keys emitted by the extractors
(``nestedFields``, ``isEmpty``, ``expireAfterSeconds`` ...); models accept
both spellings and always serialise with the snake_case field names.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    model_validator,
)

# Fields owned by the storage/mapping layer; they never take part in a diff.
MANAGED_FIELDS: frozenset[str] = frozenset({"_id", "__v"})

# Known type tags.  Extractors may emit others; unknown tags compare by name.
FIELD_TYPES: tuple[str, ...] = (
    "String",
    "Number",
    "Boolean",
    "Date",
    "Array",
    "Object",
    "ObjectId",
    "Decimal128",
    "Buffer",
    "Map",
    "Mixed",
)

MIXED_TYPE = "Mixed"


class FieldDefinition(BaseModel):
    """Structural description of a single field."""

    model_config = ConfigDict(populate_by_name=True)

    type: StrictStr = Field(..., min_length=1, description="Type tag, e.g. 'String' or 'Number'.")
    nullable: StrictBool = Field(
        default=True,
        description="Whether the field may hold null.  Defaults to ``not required`` when omitted.",
    )
    required: StrictBool = Field(default=False, description="Whether every document carries the field.")
    default: Any = Field(default=None, description="Declared default value, if any.")
    has_default: StrictBool = Field(
        default=False,
        description="True when ``default`` was explicitly provided (a null default counts).",
    )
    enum: list[str] | None = Field(default=None, description="Allowed values for string fields.")
    nested_fields: dict[str, FieldDefinition] | None = Field(
        default=None,
        validation_alias=AliasChoices("nested_fields", "nestedFields"),
        description="Child fields of an ``Object`` field, keyed by name.",
    )

    @model_validator(mode="before")
    @classmethod
    def _fill_implicit_flags(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        if "default" in data and "has_default" not in data:
            data["has_default"] = True
        if "nullable" not in data:
            data["nullable"] = data.get("required") is not True
        return data


class IndexField(BaseModel):
    """One key of an index specification."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("name", "field"),
        description="Dot-path of the indexed field.",
    )
    direction: StrictInt | StrictStr = Field(
        default=1,
        description="1 / -1 for ordered keys, or a special kind such as 'text' or '2dsphere'.",
    )


class IndexDefinition(BaseModel):
    """An index specification with defaults normalised (missing booleans are False)."""

    model_config = ConfigDict(populate_by_name=True)

    fields: list[IndexField] = Field(..., min_length=1, description="Ordered index keys.")
    unique: StrictBool = False
    sparse: StrictBool = False
    partial_filter_expression: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("partial_filter_expression", "partialFilterExpression"),
    )
    ttl_seconds: StrictInt | None = Field(
        default=None,
        validation_alias=AliasChoices("ttl_seconds", "ttlSeconds", "expireAfterSeconds"),
        description="TTL expiry in seconds; set only for TTL indexes.",
    )
    collation: dict[str, Any] | None = None
    text: StrictBool = False
    name: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_key_formats(cls, data: Any) -> Any:
        """Accept the driver's ``key`` mapping and shorthand field lists."""
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        if "fields" not in data and isinstance(data.get("key"), Mapping):
            data["fields"] = data.pop("key")
        fields = data.get("fields")
        if isinstance(fields, Mapping):
            data["fields"] = [{"name": k, "direction": v} for k, v in fields.items()]
        elif isinstance(fields, list):
            data["fields"] = [{"name": f, "direction": 1} if isinstance(f, str) else f for f in fields]
        for flag in ("unique", "sparse", "text"):
            if data.get(flag) is None:
                data.pop(flag, None)
        if any(isinstance(f, Mapping) and f.get("direction") == "text" for f in data.get("fields") or []):
            data.setdefault("text", True)
        return data

    @property
    def is_ttl(self) -> bool:
        return self.ttl_seconds is not None

    @property
    def key(self) -> dict[str, int | str]:
        """Return the index keys as the driver expects them."""
        return {f.name: f.direction for f in self.fields}


class CollectionStructure(BaseModel):
    """Fields and indexes of one collection."""

    model_config = ConfigDict(populate_by_name=True)

    fields: dict[str, FieldDefinition] = Field(..., description="Field definitions keyed by path.")
    indexes: list[IndexDefinition] = Field(default_factory=list)
    is_empty: StrictBool = Field(
        default=False,
        validation_alias=AliasChoices("is_empty", "isEmpty"),
        description="True when sampling found no documents; field diffing is skipped.",
    )
    validator: dict[str, Any] | None = Field(
        default=None,
        description="Collection-level schema constraint document, e.g. ``{'$jsonSchema': ...}``.",
    )


class Snapshot(BaseModel):
    """Point-in-time structural description of a set of collections."""

    model_config = ConfigDict(populate_by_name=True)

    version: StrictInt = Field(default=1, ge=1, description="Schema version of the snapshot format.")
    hash: str = Field(
        default="",
        description="SHA-256 digest of the normalised snapshot; empty until sealed.",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        validation_alias=AliasChoices("created_at", "createdAt"),
        description="Creation time (not part of the digest).",
    )
    collections: dict[str, CollectionStructure] = Field(
        ...,
        description="Collection structures keyed by collection name.",
    )


class NormalizedSnapshot(BaseModel):
    """Canonical form of a snapshot: sorted, managed fields removed, no hash or timestamp."""

    version: int
    collections: dict[str, CollectionStructure]
