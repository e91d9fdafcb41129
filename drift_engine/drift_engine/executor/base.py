"""Interface every migration script module satisfies.

A migration is a plain Python module exposing ``up`` and ``down``.  Both take
the target ``Database`` and an optional ``ClientSession``; when a session is
passed every data operation must use it so the executor can commit the
script and its ledger update atomically.
"""

from __future__ import annotations

from typing import Protocol

from pymongo.client_session import ClientSession
from pymongo.database import Database


class MigrationModule(Protocol):
    """Structural interface for loaded migration scripts.

    Modules are not required to declare anything; they only need functions
    with matching signatures (duck typing).
    """

    def up(self, db: Database, session: ClientSession | None = None) -> None:
        """Move the store forward to the migration's target structure."""
        ...

    def down(self, db: Database, session: ClientSession | None = None) -> None:
        """Undo :meth:`up`."""
        ...
