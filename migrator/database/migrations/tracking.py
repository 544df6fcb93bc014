"""
The schema_migrations tracking table.

The table is declared once with SQLAlchemy Core and compiled to
PostgreSQL DDL; row access uses fixed parameterized statements. No
caller-supplied identifier is ever interpolated into SQL text.
"""

import logging
from typing import Any, List, Optional

from sqlalchemy import Column, DateTime, Index, Integer, MetaData, String, Table, Text, func
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from ..connection import DatabaseManager
from .checksum import CHECKSUM_LENGTH
from .models import MigrationRecord, version_sort_key

TRACKING_TABLE = "schema_migrations"

metadata = MetaData()

schema_migrations = Table(
    TRACKING_TABLE,
    metadata,
    Column("id", Integer, primary_key=True),
    Column("version", String(255), unique=True, nullable=False),
    Column("name", String(500), nullable=False),
    Column("applied_at", DateTime(timezone=True), server_default=func.now()),
    Column("rollback_script", Text, nullable=True),
    Column("checksum", String(CHECKSUM_LENGTH), nullable=False),
)

Index("idx_schema_migrations_version", schema_migrations.c.version)

SELECT_APPLIED_SQL = f"""
SELECT version, name, applied_at, rollback_script, checksum
FROM {TRACKING_TABLE}
ORDER BY version
"""

SELECT_RECORD_SQL = f"""
SELECT version, name, applied_at, rollback_script, checksum
FROM {TRACKING_TABLE}
WHERE version = $1
"""

SELECT_CHECKSUM_SQL = f"SELECT checksum FROM {TRACKING_TABLE} WHERE version = $1"

INSERT_RECORD_SQL = f"""
INSERT INTO {TRACKING_TABLE} (version, name, rollback_script, checksum)
VALUES ($1, $2, $3, $4)
"""

DELETE_RECORD_SQL = f"DELETE FROM {TRACKING_TABLE} WHERE version = $1"


def schema_statements() -> List[str]:
    """DDL creating the tracking table and its indexes if they are missing."""
    dialect = postgresql.dialect()
    statements = [str(CreateTable(schema_migrations, if_not_exists=True).compile(dialect=dialect)).strip()]
    for index in sorted(schema_migrations.indexes, key=lambda idx: idx.name):
        statements.append(str(CreateIndex(index, if_not_exists=True).compile(dialect=dialect)).strip())
    return statements


class TrackingTable:
    """
    Persisted record of applied migrations.

    Reads go through the pool. Writes take the connection of the caller's
    transaction so the row commits or rolls back with the schema change.
    """

    def __init__(self, db: DatabaseManager, logger: Optional[logging.Logger] = None):
        self.db = db
        self.logger = logger or logging.getLogger(__name__)

    async def ensure_schema(self) -> None:
        """Create the tracking table and its version index; safe to repeat."""
        for statement in schema_statements():
            await self.db.execute_query(statement)
        self.logger.debug("Migration tracking table created/verified")

    async def list_applied(self) -> List[MigrationRecord]:
        """Applied migrations in ascending version order."""
        rows = await self.db.execute_query(SELECT_APPLIED_SQL)
        records = [MigrationRecord.from_row(row) for row in rows]
        return sorted(records, key=lambda record: version_sort_key(record.version))

    async def get_record(self, version: str) -> Optional[MigrationRecord]:
        rows = await self.db.execute_query(SELECT_RECORD_SQL, [version])
        return MigrationRecord.from_row(rows[0]) if rows else None

    async def get_checksum(self, version: str) -> Optional[str]:
        """Stored checksum for ``version``, or None when it is not applied."""
        rows = await self.db.execute_query(SELECT_CHECKSUM_SQL, [version])
        return rows[0]["checksum"] if rows else None

    async def record_applied(
        self,
        conn: Any,
        version: str,
        name: str,
        rollback_script: str,
        checksum: str,
    ) -> None:
        """
        Insert the row for an applied migration.

        The unique constraint on ``version`` rejects a second insert for the
        same version, which is what stops two concurrent runs from both
        recording one migration.
        """
        await conn.execute(INSERT_RECORD_SQL, version, name, rollback_script, checksum)

    async def remove_applied(self, conn: Any, version: str) -> None:
        await conn.execute(DELETE_RECORD_SQL, version)
