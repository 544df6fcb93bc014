"""
Execution of single migrations.

Each migration runs under one of two strategies, chosen once from its
forward script:

``TRANSACTIONAL``
    The forward script and the tracking row are written in one
    transaction on one connection. Any failure leaves neither behind.

``NON_TRANSACTIONAL``
    For scripts containing statements PostgreSQL refuses to run inside a
    transaction block (``CREATE INDEX CONCURRENTLY`` and friends). The
    statements run one by one in autocommit mode; a failure stops the
    run but cannot undo statements that already completed. The tracking
    row is then written in its own transaction on a second connection.

Rollbacks are always transactional.
"""

from dataclasses import dataclass
from enum import Enum
import logging
import re
import time
from typing import Any, Optional, Pattern, Tuple

from ..connection import DRIVER_ERRORS, DatabaseManager
from .exceptions import ApplyError, RollbackError
from .models import MigrationDefinition, MigrationRecord
from .parser import mask_comments_and_literals, split_statements
from .tracking import TrackingTable


class ExecutionMode(str, Enum):
    """How a migration's forward script is executed."""
    TRANSACTIONAL = "transactional"
    NON_TRANSACTIONAL = "non_transactional"


NON_TRANSACTIONAL_MARKERS: Tuple[Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bCREATE\s+(?:UNIQUE\s+)?INDEX\s+CONCURRENTLY\b",
        r"\bDROP\s+INDEX\s+CONCURRENTLY\b",
        r"\bREINDEX\b[^;]*\bCONCURRENTLY\b",
        r"\bVACUUM\b",
        r"\b(?:CREATE|DROP)\s+DATABASE\b",
        r"\bALTER\s+SYSTEM\b",
        r"\bALTER\s+TYPE\b[^;]*\bADD\s+VALUE\b",
    )
)


@dataclass(frozen=True)
class ExecutionPlan:
    """Strategy chosen for one migration, with the text that forced it."""

    mode: ExecutionMode
    reason: Optional[str] = None

    @property
    def transactional(self) -> bool:
        return self.mode is ExecutionMode.TRANSACTIONAL


def select_execution_plan(forward_script: str) -> ExecutionPlan:
    """
    Choose the execution strategy for a forward script.

    Keywords inside comments and quoted text are ignored.

    Args:
        forward_script: Forward SQL of the migration

    Returns:
        A non-transactional plan naming the first matching statement, or a
        transactional plan
    """
    code = mask_comments_and_literals(forward_script)
    for marker in NON_TRANSACTIONAL_MARKERS:
        match = marker.search(code)
        if match:
            return ExecutionPlan(ExecutionMode.NON_TRANSACTIONAL, " ".join(match.group(0).split()).upper())
    return ExecutionPlan(ExecutionMode.TRANSACTIONAL)


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of applying one migration."""

    version: str
    name: str
    mode: ExecutionMode
    checksum: str
    statements_executed: int
    duration_ms: int


class MigrationExecutor:
    """
    Applies or rolls back exactly one migration.

    Usage:
        executor = MigrationExecutor(db, TrackingTable(db))
        result = await executor.apply_migration(definition)
    """

    def __init__(
        self,
        db: DatabaseManager,
        tracking: TrackingTable,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the executor.

        Args:
            db: Connection provider
            tracking: Tracking table accessor
            logger: Logger instance
        """
        self.db = db
        self.tracking = tracking
        self.logger = logger or logging.getLogger(__name__)

    async def apply_migration(self, definition: MigrationDefinition) -> ApplyResult:
        """
        Apply one migration and record it.

        Args:
            definition: Migration to apply

        Returns:
            Execution details

        Raises:
            ApplyError: If the forward script or the bookkeeping write fails
        """
        plan = select_execution_plan(definition.forward_script)
        log_extra = {"migration_version": definition.version}
        start_time = time.time()

        self.logger.info(
            f"Applying migration {definition.version}: {definition.name} ({plan.mode.value})",
            extra=log_extra,
        )

        if plan.transactional:
            executed = await self._apply_transactional(definition)
        else:
            executed = await self._apply_non_transactional(definition, plan)

        duration_ms = int((time.time() - start_time) * 1000)
        self.logger.info(
            f"Applied migration {definition.version}: {definition.name} in {duration_ms}ms",
            extra=log_extra,
        )

        return ApplyResult(
            version=definition.version,
            name=definition.name,
            mode=plan.mode,
            checksum=definition.checksum,
            statements_executed=executed,
            duration_ms=duration_ms,
        )

    async def _apply_transactional(self, definition: MigrationDefinition) -> int:
        """Run the forward script and the tracking insert in one transaction."""

        async def apply(conn: Any) -> int:
            if definition.forward_script:
                await conn.execute(definition.forward_script)
            await self.tracking.record_applied(
                conn,
                definition.version,
                definition.name,
                definition.rollback_script,
                definition.checksum,
            )
            return len(split_statements(definition.forward_script))

        try:
            return await self.db.transaction(apply)
        except DRIVER_ERRORS as e:
            self.logger.error(
                f"Failed to apply migration {definition.version}: {e}",
                extra={"migration_version": definition.version},
            )
            raise ApplyError(
                f"Failed to apply migration {definition.version}: {e}",
                version=definition.version,
                name=definition.name,
                mode=ExecutionMode.TRANSACTIONAL.value,
                cause=e,
            ) from e

    async def _apply_non_transactional(self, definition: MigrationDefinition, plan: ExecutionPlan) -> int:
        """
        Run the forward script statement by statement, then record it.

        The schema change and the bookkeeping write use separate
        connections so a failure of one does not implicate the other.
        """
        statements = split_statements(definition.forward_script)
        log_extra = {"migration_version": definition.version}
        mode = ExecutionMode.NON_TRANSACTIONAL.value

        self.logger.warning(
            f"Migration {definition.version} contains {plan.reason}; running {len(statements)} "
            "statements without a transaction, completed statements are not undone on failure",
            extra=log_extra,
        )

        executed = 0
        async with self.db.acquire() as conn:
            try:
                if conn.is_in_transaction():
                    await conn.execute("ROLLBACK")

                for statement in statements:
                    await conn.execute(statement)
                    executed += 1
            except DRIVER_ERRORS as e:
                self.logger.error(
                    f"Migration {definition.version} failed after {executed} of {len(statements)} "
                    f"statements; completed statements remain applied: {e}",
                    extra=log_extra,
                )
                raise ApplyError(
                    f"Failed to apply migration {definition.version}: {e}",
                    version=definition.version,
                    name=definition.name,
                    mode=mode,
                    partial=executed > 0,
                    statements_executed=executed,
                    cause=e,
                ) from e

            # The statements are committed; record them even if the reset fails.
            try:
                await conn.execute("RESET ALL")
            except DRIVER_ERRORS as e:
                self.logger.warning(
                    f"Could not reset session settings after migration {definition.version}: {e}",
                    extra=log_extra,
                )

        async def record(record_conn: Any) -> None:
            await self.tracking.record_applied(
                record_conn,
                definition.version,
                definition.name,
                definition.rollback_script,
                definition.checksum,
            )

        try:
            await self.db.transaction(record)
        except DRIVER_ERRORS as e:
            self.logger.error(
                f"Schema changes of migration {definition.version} were applied but could not be recorded: {e}",
                extra=log_extra,
            )
            raise ApplyError(
                f"Failed to record migration {definition.version}: {e}",
                version=definition.version,
                name=definition.name,
                mode=mode,
                partial=True,
                statements_executed=executed,
                context={"phase": "record"},
                cause=e,
            ) from e

        return executed

    async def rollback_migration(self, record: MigrationRecord) -> None:
        """
        Undo an applied migration using its recorded rollback script.

        Args:
            record: Tracking row of the migration

        Raises:
            RollbackError: If no rollback script was recorded (nothing is
                executed) or the script fails (nothing is changed)
        """
        rollback_script = (record.rollback_script or "").strip()
        if not rollback_script:
            raise RollbackError(f"Empty rollback script for migration {record.version}", version=record.version)

        log_extra = {"migration_version": record.version}
        self.logger.info(f"Rolling back migration {record.version}: {record.name}", extra=log_extra)

        async def rollback(conn: Any) -> None:
            await conn.execute(rollback_script)
            await self.tracking.remove_applied(conn, record.version)

        try:
            await self.db.transaction(rollback)
        except DRIVER_ERRORS as e:
            self.logger.error(f"Failed to rollback migration {record.version}: {e}", extra=log_extra)
            raise RollbackError(
                f"Failed to rollback migration {record.version}: {e}",
                version=record.version,
                cause=e,
            ) from e

        self.logger.info(f"Rolled back migration {record.version}", extra=log_extra)

