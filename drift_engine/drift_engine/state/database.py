"""MongoDB client construction.

The client is created lazily from :class:`~drift_engine.config.Settings`
and never logs the connection URI, which may carry credentials.
"""

from __future__ import annotations

import logging

from pymongo import MongoClient
from pymongo.database import Database

from drift_engine.config import Settings

logger = logging.getLogger(__name__)


def get_client(settings: Settings) -> MongoClient:
    """Create a ``MongoClient`` for ``settings.mongo_uri``.

    ``tz_aware`` is enabled so timestamps read back from the ledger compare
    cleanly with the timezone-aware values the engine writes.
    """
    client: MongoClient = MongoClient(
        settings.mongo_uri.get_secret_value(),
        serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
        tz_aware=True,
    )
    logger.info("Created MongoDB client for database %s", settings.database_name)
    return client


def get_database(client: MongoClient, settings: Settings) -> Database:
    return client[settings.database_name]
