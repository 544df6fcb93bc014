"""
Database migration manager.

This module drives migrations end to end: it diffs the migration files
against the tracking table, applies pending migrations in order, rolls
back to a target version, validates applied migrations against their
files and scaffolds new migration files.

Only one process should apply or roll back migrations at a time. With
``use_advisory_lock`` enabled the manager serializes runs with a
PostgreSQL session advisory lock; otherwise the unique constraint on the
tracking table's ``version`` column is the only guard against two runs
applying the same migration.
"""

from contextlib import asynccontextmanager
import logging
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Union

from ..connection import DatabaseManager
from .exceptions import (
    DuplicateVersionError,
    InvalidVersionError,
    MigrationAlreadyAppliedError,
    MigrationNotFoundError,
    RollbackError,
)
from .executor import ApplyResult, MigrationExecutor
from .models import (
    IntegrityIssue,
    IssueKind,
    MigrationDefinition,
    MigrationRecord,
    MigrationStatus,
    is_valid_version,
    version_sort_key,
)
from .repository import MigrationRepository, find_duplicate_versions
from .tracking import TrackingTable

# pg_advisory_lock key shared by every migrator process
ADVISORY_LOCK_KEY = 0x6D696772


class MigrationManager:
    """
    Database migration manager.

    Usage:
        manager = MigrationManager(db, Path("migrations"), logger)
        await manager.initialize()
        applied = await manager.apply_all_pending()
        status = await manager.get_status()
    """

    def __init__(
        self,
        db: Optional[DatabaseManager],
        migrations_dir: Union[str, Path],
        logger: Optional[logging.Logger] = None,
        use_advisory_lock: bool = False,
    ):
        """
        Initialize migration manager.

        Args:
            db: Connection provider; may be None when only
                :meth:`create_migration` is used
            migrations_dir: Directory containing migration files
            logger: Logger instance for migration operations
            use_advisory_lock: Hold a session advisory lock while applying
                or rolling back
        """
        self.db = db
        self.logger = logger or logging.getLogger(__name__)
        self.use_advisory_lock = use_advisory_lock

        self.repository = MigrationRepository(migrations_dir, self.logger)
        self.tracking = TrackingTable(db, self.logger)
        self.executor = MigrationExecutor(db, self.tracking, self.logger)

    @property
    def migrations_dir(self) -> Path:
        return self.repository.migrations_dir

    async def initialize(self) -> None:
        """Create the tracking table if it does not exist."""
        await self.tracking.ensure_schema()

    def get_available_migrations(self) -> List[MigrationDefinition]:
        """Migration files on disk, ascending by version."""
        return self.repository.discover()

    async def get_applied_migrations(self) -> List[MigrationRecord]:
        """Tracking table rows, ascending by version."""
        await self.initialize()
        return await self.tracking.list_applied()

    async def get_pending_migrations(self) -> List[MigrationDefinition]:
        """Migration files whose version is not in the tracking table."""
        applied_versions = {record.version for record in await self.get_applied_migrations()}
        pending = [
            definition for definition in self.get_available_migrations()
            if definition.version not in applied_versions
        ]
        return sorted(pending, key=lambda d: version_sort_key(d.version))

    @asynccontextmanager
    async def _migration_lock(self) -> AsyncIterator[None]:
        """Serialize migration runs across processes when enabled."""
        if not self.use_advisory_lock:
            yield
            return

        async with self.db.acquire() as conn:
            self.logger.debug("Waiting for migration advisory lock")
            await conn.execute("SELECT pg_advisory_lock($1)", ADVISORY_LOCK_KEY)
            try:
                yield
            finally:
                await conn.execute("SELECT pg_advisory_unlock($1)", ADVISORY_LOCK_KEY)

    async def apply_all_pending(self) -> List[ApplyResult]:
        """
        Apply every pending migration, one at a time, in version order.

        Stops at the first failure and re-raises it; migrations applied
        before it stay applied, so re-running after a fix continues where
        this run stopped.

        Returns:
            Results of the migrations applied by this call

        Raises:
            DuplicateVersionError: If a pending version has more than one
                file; nothing is applied
        """
        async with self._migration_lock():
            pending = await self.get_pending_migrations()

            if not pending:
                self.logger.info("No pending migrations")
                return []

            duplicates = find_duplicate_versions(pending)
            if duplicates:
                version, files = next(iter(duplicates.items()))
                raise DuplicateVersionError(
                    f"Duplicate migration version {version}",
                    context={"version": version, "files": files},
                )

            self.logger.info(f"Applying {len(pending)} pending migrations...")

            results = []
            for definition in pending:
                try:
                    results.append(await self.executor.apply_migration(definition))
                except Exception:
                    self.logger.error(
                        f"Stopping migration chain at {definition.version}; "
                        f"{len(results)} of {len(pending)} migrations applied"
                    )
                    raise

            self.logger.info("All migrations applied successfully")
            return results

    async def apply_migration(self, version: str) -> ApplyResult:
        """
        Apply a single pending migration by version.

        Raises:
            MigrationNotFoundError: If no file has this version
            MigrationAlreadyAppliedError: If the version is already recorded
        """
        async with self._migration_lock():
            definition = self.repository.find(version)
            if definition is None:
                raise MigrationNotFoundError(f"Migration {version} not found", context={"version": version})

            await self.initialize()
            if await self.tracking.get_record(version) is not None:
                raise MigrationAlreadyAppliedError(
                    f"Migration {version} already applied", context={"version": version}
                )

            return await self.executor.apply_migration(definition)

    async def rollback_one(self, version: str) -> None:
        """
        Roll back one applied migration using its recorded rollback script.

        Raises:
            RollbackError: If the version is not applied, has no rollback
                script, or its rollback fails
        """
        async with self._migration_lock():
            await self._rollback_version(version)

    async def _rollback_version(self, version: str) -> None:
        await self.initialize()
        record = await self.tracking.get_record(version)
        if record is None:
            raise RollbackError(f"Migration {version} not found in applied migrations", version=version)

        await self.executor.rollback_migration(record)

    async def rollback_to(self, target_version: str) -> List[str]:
        """
        Roll back every applied migration newer than ``target_version``.

        Newest first, one at a time; stops at the first failure and
        re-raises it, leaving the older migrations applied.

        Returns:
            Versions rolled back, in the order they were rolled back

        Raises:
            InvalidVersionError: If ``target_version`` is not a number
        """
        if not is_valid_version(target_version):
            raise InvalidVersionError(
                f"Invalid target version {target_version!r}", context={"version": target_version}
            )

        async with self._migration_lock():
            target_key = version_sort_key(target_version)
            to_rollback = sorted(
                (record.version for record in await self.get_applied_migrations()
                 if version_sort_key(record.version) > target_key),
                key=version_sort_key,
                reverse=True,
            )

            if not to_rollback:
                self.logger.info(f"Already at or before version {target_version}")
                return []

            self.logger.info(f"Rolling back {len(to_rollback)} migrations to version {target_version}...")

            rolled_back: List[str] = []
            for version in to_rollback:
                try:
                    await self._rollback_version(version)
                except Exception:
                    remaining = [v for v in to_rollback if v not in rolled_back]
                    self.logger.error(
                        f"Stopping rollback chain at {version}; still applied: {', '.join(remaining)}"
                    )
                    raise
                rolled_back.append(version)

            self.logger.info(f"Rollback to version {target_version} completed")
            return rolled_back

    async def validate_migrations(self) -> List[IntegrityIssue]:
        """
        Compare applied migrations with their current files.

        Content problems are returned, never raised; only infrastructure
        failures (database or directory unreadable) propagate.

        Returns:
            One issue per version claimed by several files, then one per
            applied migration whose file changed or vanished
        """
        definitions = self.get_available_migrations()
        available: Dict[str, List[MigrationDefinition]] = {}
        for definition in definitions:
            available.setdefault(definition.version, []).append(definition)

        issues: List[IntegrityIssue] = [
            IntegrityIssue(
                version=version,
                kind=IssueKind.DUPLICATE_VERSION,
                message=f"Version claimed by several files: {', '.join(files)}",
            )
            for version, files in find_duplicate_versions(definitions).items()
        ]

        for record in await self.get_applied_migrations():
            candidates = available.get(record.version)

            if not candidates:
                issues.append(IntegrityIssue(
                    version=record.version,
                    kind=IssueKind.FILE_MISSING,
                    message="Migration file not found",
                ))
            elif all(definition.checksum != record.checksum for definition in candidates):
                issues.append(IntegrityIssue(
                    version=record.version,
                    kind=IssueKind.CHECKSUM_MISMATCH,
                    message="Migration file has been modified after application",
                ))

        for issue in issues:
            self.logger.warning(
                f"Integrity issue in migration {issue.version}: {issue.kind.value} - {issue.message}",
                extra={"migration_version": issue.version},
            )

        return issues

    async def get_status(self) -> MigrationStatus:
        """Counts and lists of available, applied and pending migrations."""
        available = self.get_available_migrations()
        applied = await self.get_applied_migrations()
        applied_versions = {record.version for record in applied}
        pending = [definition for definition in available if definition.version not in applied_versions]

        return MigrationStatus(
            available=len(available),
            applied=len(applied),
            pending=len(pending),
            applied_migrations=applied,
            pending_migrations=pending,
        )

    def create_migration(self, name: str, description: str = "") -> MigrationDefinition:
        """
        Scaffold a new migration file after the highest existing version.

        Args:
            name: Migration name, slugified for the filename
            description: Optional description for the file header

        Returns:
            The new migration's definition
        """
        version = self.repository.next_version()
        definition = self.repository.write_scaffold(name, version, description)
        self.logger.info(f"Created migration {definition.version}: {definition.filename}")
        return definition
