"""Migration models: ledger records, discovered scripts and execution outcomes.

``MigrationRecord`` is the only long-lived entity.  It is created when a
migration is generated and mutated at most twice afterwards (on apply and on
rollback); records are never deleted.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class MigrationDirection(str, Enum):
    UP = "up"
    DOWN = "down"


class MigrationState(str, Enum):
    """Lifecycle of one migration inside an executor batch."""

    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    APPLYING = "APPLYING"
    COMMITTED = "COMMITTED"
    FAILED_RETRYING = "FAILED_RETRYING"
    FAILED = "FAILED"


class MigrationRecord(BaseModel):
    """Ledger entry for a generated (and possibly applied) migration."""

    filename: str = Field(..., min_length=1, description="Unique migration filename (without extension).")
    from_hash: str = Field(default="", description="Hash of the observed snapshot the migration starts from.")
    to_hash: str = Field(default="", description="Hash of the declared snapshot the migration moves to.")
    up_commands: list[str] = Field(default_factory=list)
    down_commands: list[str] = Field(default_factory=list)
    created_at: datetime
    is_applied: bool = False
    applied_at: datetime | None = None
    execution_time_ms: float | None = Field(default=None, ge=0.0)


class MigrationScript(BaseModel):
    """A migration script discovered on disk."""

    filename: str = Field(..., description="Stem of the script file, e.g. '20240825_143022_add_user_preferences'.")
    path: Path
    timestamp: str = Field(..., description="Sortable 'YYYYMMDD_HHMMSS' prefix.")
    name: str = Field(..., description="Slug following the timestamp.")


class ValidationReport(BaseModel):
    """Outcome of statically validating a migration script."""

    filename: str
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


class MigrationOutcome(BaseModel):
    """Result of running one migration in one direction."""

    filename: str
    direction: MigrationDirection
    state: MigrationState
    execution_time_ms: float = Field(default=0.0, ge=0.0)
    used_transaction: bool = False
    error: str | None = None


class BatchResult(BaseModel):
    """Result of an apply or rollback batch."""

    direction: MigrationDirection
    outcomes: list[MigrationOutcome] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    dry_run: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.state == MigrationState.COMMITTED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.state == MigrationState.FAILED)


class MigrationStatus(BaseModel):
    """Applied ledger records alongside scripts not yet applied."""

    applied: list[MigrationRecord] = Field(default_factory=list)
    pending: list[MigrationScript] = Field(default_factory=list)
