"""
Pytest configuration and shared fixtures for the test suite.

This module provides the migrations directory, the in-memory database and
the managers built on top of them.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

import pytest

from migrator.database.connection import DatabaseManager
from migrator.database.migrations import MigrationManager
from migrator.logging import FileHandler, StreamHandler
from tests.mocks.database_mocks import FakePool


@pytest.fixture
def logger() -> logging.Logger:
    """Logger shared by the component under test."""
    return logging.getLogger("migrator.tests")


@pytest.fixture
def restore_root_logger():
    """Undo the root logger changes made by LoggingManager."""
    root_logger = logging.getLogger()
    level = root_logger.level
    yield root_logger
    for handler in root_logger.handlers[:]:
        if isinstance(handler, (StreamHandler, FileHandler)):
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(level)


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    """Empty migrations directory."""
    path = tmp_path / "migrations"
    path.mkdir()
    return path


@pytest.fixture
def write_migration(migrations_dir: Path) -> Callable[..., Path]:
    """Write a migration file from forward and optional rollback SQL."""

    def _write(version: str, name: str, forward: str, rollback: Optional[str] = None) -> Path:
        content = f"-- Migration: {name}\n{forward}\n"
        if rollback is not None:
            content += f"\n-- ROLLBACK\n{rollback}\n"
        path = migrations_dir / f"{version}_{name}.sql"
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def fake_pool() -> FakePool:
    """In-memory stand-in for an asyncpg pool."""
    return FakePool()


@pytest.fixture
def db(fake_pool: FakePool, logger: logging.Logger) -> DatabaseManager:
    """DatabaseManager wired to the in-memory pool."""
    manager = DatabaseManager("postgresql://migrator@localhost:5432/migrator_test", logger)
    manager.connection_pool = fake_pool
    return manager


@pytest.fixture
def manager(db: DatabaseManager, migrations_dir: Path, logger: logging.Logger) -> MigrationManager:
    """MigrationManager over the in-memory database."""
    return MigrationManager(db, migrations_dir, logger)
