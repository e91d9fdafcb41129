"""Log formatting for the engine and CLI.

Set ``DOCDRIFT_STRUCTURED_LOGGING=true`` to emit each record as a single-line
JSON object that log aggregators can index without regex parsing::

    {
        "timestamp": "2025-05-15T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "drift_engine.executor.transactional",
        "message": "Migration 20240825_143022_add_phone -> COMMITTED",
        "migration": "20240825_143022_add_phone",  // with extra={"migration": ...}
        "exc_info": "Traceback ..."  // present only on exceptions
    }

Otherwise records are written as plain text through ``logging.basicConfig``.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import UTC, datetime
from typing import Any

from drift_engine.config import Settings

_TEXT_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Render *record* as a single JSON line."""
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Structured migration context passed via ``extra={"migration": ...}``.
        migration = getattr(record, "migration", None)
        if migration is not None:
            payload["migration"] = migration

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(settings: Settings) -> None:
    """Install root handlers according to *settings*.

    Replaces any handlers already attached to the root logger so that
    repeated calls (e.g. one per CLI invocation in tests) do not duplicate
    output.
    """
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level)

    if not settings.structured_logging:
        logging.basicConfig(level=level, format=_TEXT_FORMAT, stream=sys.stderr, force=True)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter())
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
