"""Shared fixtures: an in-memory stand-in for a pymongo client.

The fakes implement only the calls the ledger and executor make.  Sessions
record every operation that ran with them, and transactions restore the
pre-transaction documents when the ``with`` block raises, so tests can
assert atomicity.  ``FakeClient.transaction_errors`` queues exceptions
raised by ``start_transaction`` to simulate deployments without
multi-document transaction support.
"""

from __future__ import annotations

import copy
import itertools
from pathlib import Path
from typing import Any

import pytest
from pymongo.errors import DuplicateKeyError

from drift_engine.config import Settings
from drift_engine.state.ledger import MigrationLedger

_ids = itertools.count(1)


def _get_path(doc: dict[str, Any], path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def _set_path(doc: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def _unset_path(doc: dict[str, Any], path: str) -> Any:
    parts = path.split(".")
    current: Any = doc
    for part in parts[:-1]:
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    if isinstance(current, dict):
        return current.pop(parts[-1], None)
    return None


def _matches(doc: dict[str, Any], query: dict[str, Any]) -> bool:
    return all(_get_path(doc, key) == value for key, value in query.items())


class FakeCursor:
    def __init__(self, docs: list[dict[str, Any]]) -> None:
        self._docs = docs

    def sort(self, keys: list[tuple[str, int]]) -> FakeCursor:
        docs = list(self._docs)
        for key, direction in reversed(keys):
            docs.sort(key=lambda d: (_get_path(d, key) is not None, _get_path(d, key)), reverse=direction < 0)
        return FakeCursor(docs)

    def __iter__(self):
        return iter(copy.deepcopy(self._docs))


class FakeCollection:
    def __init__(self, name: str, database: FakeDatabase) -> None:
        self.name = name
        self.database = database
        self.docs: list[dict[str, Any]] = []
        self.indexes: dict[str, dict[str, Any]] = {}

    def _record(self, operation: str, session: Any) -> None:
        self.database.operations.append((self.name, operation, session))
        if session is not None:
            session.operations.append((self.name, operation))

    def _check_unique(self, doc: dict[str, Any], ignore: dict[str, Any] | None = None) -> None:
        for info in self.indexes.values():
            if not info.get("unique"):
                continue
            fields = [k for k, _ in info["key"]]
            values = [_get_path(doc, f) for f in fields]
            for other in self.docs:
                if other is ignore:
                    continue
                if [_get_path(other, f) for f in fields] == values:
                    raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name}", 11000)

    # -- writes --------------------------------------------------------

    def insert_one(self, document: dict[str, Any], session: Any = None) -> None:
        self._record("insert_one", session)
        doc = copy.deepcopy(document)
        doc.setdefault("_id", next(_ids))
        self._check_unique(doc)
        self.docs.append(doc)

    def _apply_update(self, doc: dict[str, Any], update: dict[str, Any]) -> None:
        for path, value in update.get("$set", {}).items():
            _set_path(doc, path, copy.deepcopy(value))
        for path in update.get("$unset", {}):
            _unset_path(doc, path)
        for source, target in update.get("$rename", {}).items():
            if _get_path(doc, source) is not None or source in doc:
                _set_path(doc, target, _unset_path(doc, source))

    def update_one(
        self,
        query: dict[str, Any],
        update: dict[str, Any],
        upsert: bool = False,
        session: Any = None,
    ) -> None:
        self._record("update_one", session)
        for doc in self.docs:
            if _matches(doc, query):
                self._apply_update(doc, update)
                return
        if upsert:
            doc = copy.deepcopy(query)
            for path, value in update.get("$setOnInsert", {}).items():
                _set_path(doc, path, copy.deepcopy(value))
            self._apply_update(doc, update)
            self.insert_one(doc)

    def update_many(self, query: dict[str, Any], update: dict[str, Any], session: Any = None) -> None:
        self._record("update_many", session)
        for doc in self.docs:
            if _matches(doc, query):
                self._apply_update(doc, update)

    def create_index(self, keys: Any, name: str | None = None, session: Any = None, **options: Any) -> str:
        self._record("create_index", session)
        if isinstance(keys, str):
            keys = [(keys, 1)]
        key = [tuple(k) for k in keys]
        name = name or "_".join(f"{f}_{d}" for f, d in key)
        self.indexes[name] = {"key": key, **options}
        return name

    def drop_index(self, name: str, session: Any = None) -> None:
        self._record("drop_index", session)
        self.indexes.pop(name, None)

    def drop(self, session: Any = None) -> None:
        self._record("drop", session)
        self.database.collections.pop(self.name, None)

    # -- reads ---------------------------------------------------------

    def find_one(self, query: dict[str, Any] | None = None, session: Any = None) -> dict[str, Any] | None:
        for doc in self.docs:
            if _matches(doc, query or {}):
                return copy.deepcopy(doc)
        return None

    def find(self, query: dict[str, Any] | None = None, session: Any = None) -> FakeCursor:
        return FakeCursor([d for d in self.docs if _matches(d, query or {})])

    def count_documents(self, query: dict[str, Any], session: Any = None) -> int:
        return sum(1 for d in self.docs if _matches(d, query))

    def index_information(self) -> dict[str, dict[str, Any]]:
        return {"_id_": {"key": [("_id", 1)]}, **copy.deepcopy(self.indexes)}


class FakeDatabase:
    def __init__(self, name: str = "app") -> None:
        self.name = name
        self.collections: dict[str, FakeCollection] = {}
        self.operations: list[tuple[str, str, Any]] = []

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name, self)
        return self.collections[name]

    def list_collection_names(self, session: Any = None) -> list[str]:
        return sorted(self.collections)

    def create_collection(self, name: str, session: Any = None) -> FakeCollection:
        self.operations.append((name, "create_collection", session))
        return self[name]

    def command(self, *args: Any, session: Any = None, **kwargs: Any) -> dict[str, Any]:
        self.operations.append((args[1] if len(args) > 1 else "", f"command:{args[0]}", session))
        return {"ok": 1}

    # Transaction support: snapshot and restore every collection.
    def _dump(self) -> dict[str, tuple[list[dict[str, Any]], dict[str, dict[str, Any]]]]:
        return {name: (copy.deepcopy(c.docs), copy.deepcopy(c.indexes)) for name, c in self.collections.items()}

    def _restore(self, state: dict[str, tuple[list[dict[str, Any]], dict[str, dict[str, Any]]]]) -> None:
        self.collections = {}
        for name, (docs, indexes) in state.items():
            collection = self[name]
            collection.docs = docs
            collection.indexes = indexes


class FakeTransaction:
    def __init__(self, session: FakeSession) -> None:
        self._session = session

    def __enter__(self) -> FakeTransaction:
        self._state = self._session.client.database._dump()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self._session.committed = True
        else:
            self._session.client.database._restore(self._state)
            self._session.aborted = True
        return False


class FakeSession:
    def __init__(self, client: FakeClient) -> None:
        self.client = client
        self.operations: list[tuple[str, str]] = []
        self.committed = False
        self.aborted = False
        self.ended = False

    def __enter__(self) -> FakeSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.ended = True
        return False

    def start_transaction(self) -> FakeTransaction:
        if self.client.transaction_errors:
            raise self.client.transaction_errors.pop(0)
        return FakeTransaction(self)


class FakeClient:
    def __init__(self, database: FakeDatabase | None = None) -> None:
        self.database = database or FakeDatabase()
        self.sessions: list[FakeSession] = []
        self.transaction_errors: list[Exception] = []
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.database

    def start_session(self) -> FakeSession:
        session = FakeSession(self)
        self.sessions.append(session)
        return session

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture()
def fake_db(fake_client: FakeClient) -> FakeDatabase:
    return fake_client.database


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(migrations_dir=tmp_path / "migrations", fallback_settle_seconds=0.0)


@pytest.fixture()
def ledger(fake_db: FakeDatabase, settings: Settings) -> MigrationLedger:
    ledger = MigrationLedger(fake_db, settings)  # type: ignore[arg-type]
    ledger.initialize()
    return ledger


@pytest.fixture()
def write_migration(settings: Settings):
    """Return a helper that writes a migration script into the migrations dir."""

    def _write(filename: str, up_body: str = "pass", down_body: str = "pass", extra: str = "") -> Path:
        settings.migrations_dir.mkdir(parents=True, exist_ok=True)
        path = settings.migrations_dir / f"{filename}.py"
        source = (
            f"{extra}\n\n"
            f"def up(db, session=None):\n    {up_body}\n\n\n"
            f"def down(db, session=None):\n    {down_body}\n"
        )
        path.write_text(source, encoding="utf-8")
        return path

    return _write
