"""Migration ledger stored in the target database.

The ledger lives next to the data it describes so that "migration ran" and
"ledger updated" can commit in a single multi-document transaction.  Two
collections are used:

* ``<prefix>.migrations``: one document per migration, unique on
  ``filename``, with secondary indexes on ``from_hash``, ``to_hash`` and
  ``created_at``.
* ``<prefix>.config``: process-wide flags such as ``initialized``.

Records are created when a migration is generated and updated when it is
applied or rolled back.  They are never deleted.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from pymongo import ASCENDING, DESCENDING
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from drift_engine.config import Settings
from drift_engine.errors import LedgerConflictError
from drift_engine.generator.naming import parse_migration_timestamp
from drift_engine.models.migration import MigrationRecord

logger = logging.getLogger(__name__)

# (index name, key spec, options)
_LEDGER_INDEXES: tuple[tuple[str, list[tuple[str, int]], dict[str, Any]], ...] = (
    ("filename_unique", [("filename", ASCENDING)], {"unique": True}),
    ("from_hash_1", [("from_hash", ASCENDING)], {}),
    ("to_hash_1", [("to_hash", ASCENDING)], {}),
    ("created_at_-1", [("created_at", DESCENDING)], {}),
)


def _to_record(document: dict[str, Any]) -> MigrationRecord:
    document = {k: v for k, v in document.items() if k != "_id"}
    return MigrationRecord.model_validate(document)


class MigrationLedger:
    """Durable record of generated and applied migrations.

    Parameters
    ----------
    database:
        The pymongo ``Database`` holding both the application data and the
        ledger collections.
    settings:
        Supplies the ledger collection prefix.
    """

    def __init__(self, database: Database, settings: Settings | None = None) -> None:
        self._database = database
        self._settings = settings or Settings()
        self._migrations_name = self._settings.migrations_collection
        self._config_name = self._settings.config_collection

    @property
    def migrations(self) -> Collection:
        return self._database[self._migrations_name]

    @property
    def config(self) -> Collection:
        return self._database[self._config_name]

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Create the ledger collections and indexes if they are missing.

        Safe to call repeatedly; a second call changes nothing.
        """
        existing = set(self._database.list_collection_names())
        for name in (self._migrations_name, self._config_name):
            if name not in existing:
                self._database.create_collection(name)
                logger.info("Created ledger collection %s", name)

        present = set(self.migrations.index_information())
        for index_name, keys, options in _LEDGER_INDEXES:
            if index_name not in present:
                self.migrations.create_index(keys, name=index_name, **options)
                logger.debug("Created ledger index %s", index_name)

        if not self.get_flag("initialized"):
            self.set_flag("initialized", True)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def create_record(
        self,
        filename: str,
        from_hash: str,
        to_hash: str,
        up_commands: list[str],
        down_commands: list[str],
    ) -> MigrationRecord:
        """Insert a record for a newly generated migration.

        Raises
        ------
        LedgerConflictError
            If a record with the same filename already exists.
        """
        record = MigrationRecord(
            filename=filename,
            from_hash=from_hash,
            to_hash=to_hash,
            up_commands=up_commands,
            down_commands=down_commands,
            created_at=parse_migration_timestamp(filename) or datetime.now(UTC),
        )
        try:
            self.migrations.insert_one(record.model_dump(mode="python"))
        except DuplicateKeyError as exc:
            raise LedgerConflictError(f"A migration named {filename!r} is already recorded") from exc
        logger.info("Recorded migration %s (%s -> %s)", filename, from_hash[:12], to_hash[:12])
        return record

    def set_applied(
        self,
        filename: str,
        is_applied: bool,
        execution_time_ms: float,
        session: ClientSession | None = None,
    ) -> None:
        """Mark *filename* applied or reverted, creating its record if needed.

        When *session* is given the write joins the caller's transaction.
        """
        self.migrations.update_one(
            {"filename": filename},
            {
                "$set": {
                    "is_applied": is_applied,
                    "applied_at": datetime.now(UTC) if is_applied else None,
                    "execution_time_ms": max(execution_time_ms, 0.0),
                },
                "$setOnInsert": {
                    "filename": filename,
                    "from_hash": "",
                    "to_hash": "",
                    "up_commands": [],
                    "down_commands": [],
                    "created_at": parse_migration_timestamp(filename) or datetime.now(UTC),
                },
            },
            upsert=True,
            session=session,
        )

    def get_record(self, filename: str) -> MigrationRecord | None:
        document = self.migrations.find_one({"filename": filename})
        return _to_record(document) if document else None

    def list_applied(self) -> list[MigrationRecord]:
        """Applied records, oldest application first."""
        cursor = self.migrations.find({"is_applied": True}).sort(
            [("applied_at", ASCENDING), ("filename", ASCENDING)]
        )
        return [_to_record(doc) for doc in cursor]

    def list_all(self) -> list[MigrationRecord]:
        """All records, newest first."""
        cursor = self.migrations.find({}).sort([("created_at", DESCENDING), ("filename", DESCENDING)])
        return [_to_record(doc) for doc in cursor]

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    def get_flag(self, key: str) -> Any:
        document = self.config.find_one({"key": key})
        return document["value"] if document else None

    def set_flag(self, key: str, value: Any) -> None:
        self.config.update_one(
            {"key": key},
            {"$set": {"value": value, "updated_at": datetime.now(UTC)}},
            upsert=True,
        )
