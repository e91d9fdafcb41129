"""Persistent state: the MongoDB client and the migration ledger."""

from drift_engine.state.database import get_client, get_database
from drift_engine.state.ledger import MigrationLedger

__all__ = ["MigrationLedger", "get_client", "get_database"]
