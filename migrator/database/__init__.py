"""
Database package for the migration engine.

This package provides:
- Async PostgreSQL connection pooling and transaction helpers
- The schema migration engine built on top of them
"""

from .connection import DatabaseConnectionError, DatabaseError, DatabaseManager
from .migrations import MigrationManager

__all__ = [
    "DatabaseConnectionError",
    "DatabaseError",
    "DatabaseManager",
    "MigrationManager",
]
