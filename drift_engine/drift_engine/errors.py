"""Exception taxonomy for the docdrift engine.

Validation errors are raised before any side effect.  Execution errors are
raised after the ledger has recorded whatever succeeded, and carry enough
context for the caller to report partial progress and the next command to
run.
"""

from __future__ import annotations


class DriftEngineError(Exception):
    """Base class for all engine errors."""


class MalformedSnapshotError(DriftEngineError):
    """A snapshot is missing required structural keys or has invalid values.

    Fatal and never retried; the engine does not coerce malformed input.
    """


class MigrationValidationError(DriftEngineError):
    """One or more migration scripts failed structural validation.

    Raised before any migration in the batch runs.
    """

    def __init__(self, message: str, errors: dict[str, list[str]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or {}


class TransactionCapabilityError(DriftEngineError):
    """The storage deployment does not support multi-document transactions.

    Recovered locally by retrying the migration without a session.
    """


class MigrationExecutionError(DriftEngineError):
    """A migration's forward or backward logic failed while being applied.

    Migrations committed earlier in the batch stay committed.
    """

    def __init__(self, message: str, *, filename: str, succeeded: int, remedy: str = "") -> None:
        super().__init__(message)
        self.filename = filename
        self.succeeded = succeeded
        self.remedy = remedy


class LedgerConflictError(DriftEngineError):
    """A ledger record with the same filename already exists."""


class MigrationTargetError(DriftEngineError):
    """A ``--target`` filename does not match any known migration."""
