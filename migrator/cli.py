"""
Command line interface for the migration engine.

Usage:
    migrator up
    migrator down <version>
    migrator rollback <version>
    migrator status
    migrator validate
    migrator create <name> [--description TEXT]

Connection and directory settings come from ``MIGRATOR_*`` environment
variables, an optional ``--config`` file, or the flags below. All output
goes through logging.
"""

import argparse
import asyncio
import logging
from typing import List, Optional

from .config import MigratorSettings, load_settings
from .core.exceptions import MigratorError
from .database.connection import DatabaseManager
from .database.migrations import MigrationManager, MigrationStatus
from .database.migrations.models import is_valid_version
from .logging import LoggingManager

LOGGER_NAME = "migrator"

EXIT_OK = 0
EXIT_FAILURE = 1


def version_argument(value: str) -> str:
    """argparse type for migration versions such as ``0003``."""
    if not is_valid_version(value):
        raise argparse.ArgumentTypeError(f"invalid migration version: {value!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="migrator",
        description="Apply, roll back and inspect PostgreSQL schema migrations",
    )
    parser.add_argument("--config", help="YAML or JSON configuration file")
    parser.add_argument("--database-url", help="PostgreSQL connection URL")
    parser.add_argument("--migrations-dir", help="Directory containing migration files")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Logging level",
    )
    parser.add_argument(
        "--advisory-lock",
        action="store_true",
        default=None,
        help="Serialize runs with a PostgreSQL advisory lock",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("up", help="Apply all pending migrations")

    down = subparsers.add_parser("down", help="Roll back every migration newer than VERSION")
    down.add_argument("version", type=version_argument)

    rollback = subparsers.add_parser("rollback", help="Roll back exactly one applied migration")
    rollback.add_argument("version", type=version_argument)

    subparsers.add_parser("status", help="Show applied and pending migrations")
    subparsers.add_parser("validate", help="Check applied migrations against their files")

    create = subparsers.add_parser("create", help="Create a new migration file")
    create.add_argument("name")
    create.add_argument("--description", default="", help="Description for the file header")

    return parser


async def run_command(args: argparse.Namespace, settings: MigratorSettings, logger: logging.Logger) -> int:
    """
    Execute one parsed command.

    Returns:
        Process exit code
    """
    if args.command == "create":
        manager = MigrationManager(None, settings.migrations_dir, logger)
        definition = manager.create_migration(args.name, args.description)
        logger.info(f"Created migration: {definition.path}")
        return EXIT_OK

    db = DatabaseManager(
        settings.database_url,
        logger,
        pool_size=settings.pool_size,
        min_pool_size=settings.min_pool_size,
        query_timeout=settings.query_timeout,
        application_name=settings.application_name,
    )

    try:
        await db.initialize()
        manager = MigrationManager(
            db,
            settings.migrations_dir,
            logger,
            use_advisory_lock=settings.advisory_lock,
        )
        await manager.initialize()

        if args.command == "up":
            results = await manager.apply_all_pending()
            logger.info(f"{len(results)} migrations applied")
        elif args.command == "down":
            rolled_back = await manager.rollback_to(args.version)
            logger.info(f"{len(rolled_back)} migrations rolled back")
        elif args.command == "rollback":
            await manager.rollback_one(args.version)
        elif args.command == "status":
            _log_status(await manager.get_status(), logger)
        elif args.command == "validate":
            issues = await manager.validate_migrations()
            if issues:
                logger.error(f"{len(issues)} integrity issues found")
                return EXIT_FAILURE
            logger.info("All applied migrations match their files")
    finally:
        await db.close()

    return EXIT_OK


def _log_status(status: MigrationStatus, logger: logging.Logger) -> None:
    logger.info(f"Available: {status.available}, applied: {status.applied}, pending: {status.pending}")

    if status.applied_migrations:
        logger.info("Applied migrations:")
        for record in status.applied_migrations:
            logger.info(f"  [x] {record.version}_{record.name} (applied at: {record.applied_at})")

    if status.pending_migrations:
        logger.info("Pending migrations:")
        for definition in status.pending_migrations:
            logger.info(f"  [ ] {definition.version}_{definition.name}")
    elif status.applied_migrations:
        logger.info("All migrations are up to date")


def main(argv: Optional[List[str]] = None) -> int:
    """Console script entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(
            args.config,
            database_url=args.database_url,
            migrations_dir=args.migrations_dir,
            log_level=args.log_level,
            advisory_lock=args.advisory_lock,
        )
    except MigratorError as e:
        logging.basicConfig(level=logging.ERROR)
        logging.getLogger(LOGGER_NAME).error(f"Invalid configuration: {e}")
        return EXIT_FAILURE

    logging_manager = LoggingManager({
        "level": settings.log_level,
        "format": settings.log_format,
        "file": settings.log_file,
        "use_colors": settings.use_colors,
    })
    logger = logging_manager.get_logger(LOGGER_NAME)

    try:
        with logging_manager.log_performance(LOGGER_NAME, args.command):
            return asyncio.run(run_command(args, settings, logger))
    except MigratorError as e:
        logger.error(f"Migration command failed: {e}")
        return EXIT_FAILURE
    finally:
        logging_manager.shutdown()
