"""
Schema migration engine.

Usage:
    from migrator.database.migrations import MigrationManager

    manager = MigrationManager(db, Path("migrations"))
    await manager.apply_all_pending()
"""

from .exceptions import (
    ApplyError,
    DiscoveryError,
    DuplicateVersionError,
    InvalidVersionError,
    MigrationAlreadyAppliedError,
    MigrationError,
    MigrationNotFoundError,
    RollbackError,
)
from .executor import ApplyResult, ExecutionMode, ExecutionPlan, MigrationExecutor, select_execution_plan
from .manager import MigrationManager
from .models import IntegrityIssue, IssueKind, MigrationDefinition, MigrationRecord, MigrationStatus
from .parser import parse_migration, split_statements
from .repository import MigrationRepository
from .tracking import TRACKING_TABLE, TrackingTable

__all__ = [
    # Exceptions
    "ApplyError",
    "DiscoveryError",
    "DuplicateVersionError",
    "InvalidVersionError",
    "MigrationAlreadyAppliedError",
    "MigrationError",
    "MigrationNotFoundError",
    "RollbackError",
    # Components
    "MigrationExecutor",
    "MigrationManager",
    "MigrationRepository",
    "TrackingTable",
    "TRACKING_TABLE",
    # Types
    "ApplyResult",
    "ExecutionMode",
    "ExecutionPlan",
    "IntegrityIssue",
    "IssueKind",
    "MigrationDefinition",
    "MigrationRecord",
    "MigrationStatus",
    # Functions
    "parse_migration",
    "select_execution_plan",
    "split_statements",
]
