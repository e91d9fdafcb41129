"""Sequential, transactional execution of migration scripts.

Each migration moves through a small state machine::

    PENDING -> VALIDATING -> APPLYING -> COMMITTED
                                 \\-> FAILED_RETRYING -> COMMITTED | FAILED
                                 \\-> FAILED

The whole batch is validated before anything runs.  Each migration then runs
inside its own session and transaction together with its ledger update, so
the script and the record of it commit or abort as one unit.  Deployments
without multi-document transactions (standalone servers) reject the
transaction; the migration is then retried exactly once without a session.
Any other failure stops the batch.  Migrations already committed stay
committed and the error tells the caller how to roll them back.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import cast

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import ConfigurationError, OperationFailure, PyMongoError

from drift_engine.config import Settings
from drift_engine.errors import (
    MigrationExecutionError,
    MigrationTargetError,
    MigrationValidationError,
    TransactionCapabilityError,
)
from drift_engine.executor.base import MigrationModule
from drift_engine.executor.loader import discover_scripts, inspect_script
from drift_engine.models.migration import (
    BatchResult,
    MigrationDirection,
    MigrationOutcome,
    MigrationScript,
    MigrationState,
    MigrationStatus,
)
from drift_engine.state.ledger import MigrationLedger

logger = logging.getLogger(__name__)

# IllegalOperation (20): "Transaction numbers are only allowed on a replica
# set member or mongos".  OperationNotSupportedInTransaction (263).
TRANSACTION_CAPABILITY_CODES: frozenset[int] = frozenset({20, 263})

_CAPABILITY_MESSAGES: tuple[str, ...] = (
    "replica set",
    "transaction numbers",
    "transactions are not supported",
    "does not support transactions",
    "transaction support",
)


def is_transaction_capability_error(exc: BaseException) -> bool:
    """Return True if *exc* means the deployment cannot run transactions."""
    if isinstance(exc, (TransactionCapabilityError, ConfigurationError)):
        return True
    if isinstance(exc, OperationFailure) and exc.code in TRANSACTION_CAPABILITY_CODES:
        return True
    if isinstance(exc, PyMongoError):
        message = str(exc).lower()
        return any(fragment in message for fragment in _CAPABILITY_MESSAGES)
    return False


def _elapsed_ms(start: float) -> float:
    return max((time.perf_counter() - start) * 1000.0, 0.0)


def _strip_py(filename: str) -> str:
    return filename[:-3] if filename.endswith(".py") else filename


class MigrationExecutor:
    """Apply and roll back migration scripts against one database.

    Parameters
    ----------
    client:
        The ``MongoClient`` used to open sessions.
    database:
        The target ``Database`` handed to each script.
    ledger:
        Ledger recording applied state.  Callers initialise it first.
    settings:
        Supplies ``migrations_dir`` and ``fallback_settle_seconds``.
    """

    def __init__(
        self,
        client: MongoClient,
        database: Database,
        ledger: MigrationLedger,
        settings: Settings | None = None,
    ) -> None:
        self._client = client
        self._database = database
        self._ledger = ledger
        self._settings = settings or Settings()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def status(self) -> MigrationStatus:
        applied = self._ledger.list_applied()
        applied_names = {record.filename for record in applied}
        pending = [s for s in self._scripts() if s.filename not in applied_names]
        return MigrationStatus(applied=applied, pending=pending)

    def apply(self, target: str | None = None, dry_run: bool = False) -> BatchResult:
        """Apply pending migrations in ascending timestamp order.

        Parameters
        ----------
        target:
            Stop after this migration (inclusive).  Must name a discovered
            script.
        dry_run:
            Validate and log what would run without opening a session.

        Raises
        ------
        MigrationTargetError
            If *target* does not name a discovered script.
        MigrationValidationError
            If any script in the batch fails validation.  Nothing runs.
        MigrationExecutionError
            If a migration fails.  Earlier migrations stay committed.
        """
        scripts = self._scripts()
        applied_names = {record.filename for record in self._ledger.list_applied()}
        pending = [s for s in scripts if s.filename not in applied_names]

        if target is not None:
            target = _strip_py(target)
            known = [s.filename for s in scripts]
            if target not in known:
                raise MigrationTargetError(f"Unknown migration target: {target}")
            cutoff = known.index(target)
            pending = [s for s in pending if known.index(s.filename) <= cutoff]

        previous = max(applied_names & {s.filename for s in scripts}, default=None)
        return self._run_batch(
            pending,
            MigrationDirection.UP,
            dry_run=dry_run,
            remedy_for=lambda done: self._apply_remedy(done, previous),
        )

    def rollback(self, target: str | None = None, dry_run: bool = False) -> BatchResult:
        """Roll back applied migrations, newest first.

        Without *target* only the most recently applied migration is rolled
        back.  With *target*, every migration applied after it is rolled
        back; *target* itself stays applied.

        Raises
        ------
        MigrationTargetError
            If *target* is not an applied migration, or an applied migration
            has no script on disk.
        MigrationValidationError
            If any script in the batch fails validation.  Nothing runs.
        MigrationExecutionError
            If a rollback fails.  Earlier rollbacks stay committed.
        """
        applied = self._ledger.list_applied()
        if not applied:
            logger.info("No applied migrations to roll back")
            return BatchResult(direction=MigrationDirection.DOWN, dry_run=dry_run)

        if target is None:
            to_revert = [applied[-1]]
        else:
            target = _strip_py(target)
            names = [record.filename for record in applied]
            if target not in names:
                raise MigrationTargetError(f"Migration {target} is not applied")
            to_revert = applied[names.index(target) + 1 :]
        to_revert = list(reversed(to_revert))

        by_name = {s.filename: s for s in self._scripts()}
        missing = [r.filename for r in to_revert if r.filename not in by_name]
        if missing:
            raise MigrationTargetError(f"No script found for applied migration(s): {', '.join(missing)}")

        return self._run_batch(
            [by_name[r.filename] for r in to_revert],
            MigrationDirection.DOWN,
            dry_run=dry_run,
            remedy_for=lambda done: self._rollback_remedy(),
        )

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def _scripts(self) -> list[MigrationScript]:
        return discover_scripts(self._settings.migrations_dir)

    def _run_batch(
        self,
        scripts: list[MigrationScript],
        direction: MigrationDirection,
        *,
        dry_run: bool,
        remedy_for: Callable[[list[str]], str],
    ) -> BatchResult:
        result = BatchResult(direction=direction, dry_run=dry_run)
        if not scripts:
            logger.info("No migrations to %s", "apply" if direction == MigrationDirection.UP else "roll back")
            return result

        modules = self._validate_batch(scripts, result)

        if dry_run:
            for script in scripts:
                logger.info("[dry-run] Would run %s %s", direction.value, script.filename)
                result.outcomes.append(
                    MigrationOutcome(filename=script.filename, direction=direction, state=MigrationState.PENDING)
                )
            return result

        done: list[str] = []
        for script, module in zip(scripts, modules, strict=True):
            try:
                outcome = self._run_one(script, module, direction)
            except MigrationExecutionError as exc:
                result.outcomes.append(
                    MigrationOutcome(
                        filename=script.filename,
                        direction=direction,
                        state=MigrationState.FAILED,
                        error=str(exc.__cause__ or exc),
                    )
                )
                raise MigrationExecutionError(
                    f"{direction.value} failed at {script.filename} after {len(done)} successful "
                    f"migration(s): {exc.__cause__ or exc}",
                    filename=script.filename,
                    succeeded=len(done),
                    remedy=remedy_for(done),
                ) from exc.__cause__
            result.outcomes.append(outcome)
            done.append(script.filename)

        logger.info("Completed %s batch: %d migration(s)", direction.value, result.succeeded)
        return result

    def _validate_batch(self, scripts: list[MigrationScript], result: BatchResult) -> list[MigrationModule]:
        """Validate every script before any of them runs (fail fast)."""
        modules: list[MigrationModule] = []
        errors: dict[str, list[str]] = {}
        for script in scripts:
            self._transition(script.filename, MigrationState.VALIDATING)
            report, module = inspect_script(script)
            for warning in report.warnings:
                result.warnings.append(f"{script.filename}: {warning}")
                logger.warning("Migration %s %s", script.filename, warning)
            if not report.valid or module is None:
                errors[script.filename] = report.errors
                continue
            modules.append(cast(MigrationModule, module))

        if errors:
            detail = "; ".join(f"{name}: {', '.join(problems)}" for name, problems in errors.items())
            raise MigrationValidationError(f"Migration validation failed, nothing was run. {detail}", errors)
        return modules

    # ------------------------------------------------------------------
    # One migration
    # ------------------------------------------------------------------

    def _transition(self, filename: str, state: MigrationState) -> None:
        logger.info("Migration %s -> %s", filename, state.value, extra={"migration": filename})

    def _run_one(
        self,
        script: MigrationScript,
        module: MigrationModule,
        direction: MigrationDirection,
    ) -> MigrationOutcome:
        fn = getattr(module, direction.value)
        is_applied = direction == MigrationDirection.UP
        self._transition(script.filename, MigrationState.APPLYING)

        try:
            elapsed = self._run_in_transaction(script.filename, fn, is_applied)
            used_transaction = True
        except Exception as exc:
            if not is_transaction_capability_error(exc):
                self._transition(script.filename, MigrationState.FAILED)
                raise MigrationExecutionError(str(exc), filename=script.filename, succeeded=0) from exc
            logger.warning(
                "Transactions unavailable (%s); retrying %s without a session",
                exc,
                script.filename,
            )
            self._transition(script.filename, MigrationState.FAILED_RETRYING)
            try:
                elapsed = self._run_without_session(script.filename, fn, is_applied)
            except Exception as retry_exc:
                self._transition(script.filename, MigrationState.FAILED)
                raise MigrationExecutionError(str(retry_exc), filename=script.filename, succeeded=0) from retry_exc
            used_transaction = False

        self._transition(script.filename, MigrationState.COMMITTED)
        return MigrationOutcome(
            filename=script.filename,
            direction=direction,
            state=MigrationState.COMMITTED,
            execution_time_ms=elapsed,
            used_transaction=used_transaction,
        )

    def _run_in_transaction(self, filename: str, fn: Callable[..., None], is_applied: bool) -> float:
        with self._client.start_session() as session:
            with session.start_transaction():
                start = time.perf_counter()
                fn(self._database, session=session)
                elapsed = _elapsed_ms(start)
                self._ledger.set_applied(filename, is_applied, elapsed, session=session)
        return elapsed

    def _run_without_session(self, filename: str, fn: Callable[..., None], is_applied: bool) -> float:
        start = time.perf_counter()
        fn(self._database, session=None)
        elapsed = _elapsed_ms(start)
        # Let unacknowledged effects settle before recording the outcome.
        time.sleep(self._settings.fallback_settle_seconds)
        self._ledger.set_applied(filename, is_applied, elapsed)
        return elapsed

    # ------------------------------------------------------------------
    # Remedies
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_remedy(done: list[str], previous: str | None) -> str:
        if not done:
            return "Fix the failing migration and run `docdrift migrate up` again."
        if previous is None:
            return (
                f"Run `docdrift migrate down --target {done[0]}` and then `docdrift migrate down` "
                f"to revert the {len(done)} migration(s) applied in this batch."
            )
        return f"Run `docdrift migrate down --target {previous}` to revert the migrations applied in this batch."

    @staticmethod
    def _rollback_remedy() -> str:
        return "Fix the failing migration and run `docdrift migrate down` again."
