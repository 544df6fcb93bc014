"""
Data types shared by the migration engine components.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
import re
from typing import Any, Dict, List, Optional, Tuple

from .checksum import compute_checksum

VERSION_PATTERN = re.compile(r"[0-9]+")


def is_valid_version(version: str) -> bool:
    """True for a run of ASCII digits such as ``"0003"`` (``"0"`` included)."""
    return bool(VERSION_PATTERN.fullmatch(version))


def version_sort_key(version: str) -> Tuple[int, str]:
    """
    Sort key for migration versions.

    Zero-padded versions of equal width already sort lexicographically;
    comparing the integer first keeps a wider version (``10000``) after
    ``9999`` as well.
    """
    return int(version), version


@dataclass(frozen=True)
class MigrationDefinition:
    """
    A migration file as read from disk.

    Attributes:
        version: Zero-padded ordinal such as ``"0001"``
        name: Slug from the filename
        filename: File name inside the migrations directory
        path: Full path to the file
        forward_script: SQL executed to apply the migration
        rollback_script: SQL executed to undo it, possibly empty
    """

    version: str
    name: str
    filename: str
    path: Path
    forward_script: str
    rollback_script: str

    @property
    def checksum(self) -> str:
        """SHA-256 digest of the forward script."""
        return compute_checksum(self.forward_script)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "name": self.name,
            "filename": self.filename,
            "path": str(self.path),
        }


@dataclass(frozen=True)
class MigrationRecord:
    """A row of the tracking table."""

    version: str
    name: str
    applied_at: Optional[datetime]
    rollback_script: str
    checksum: str

    @classmethod
    def from_row(cls, row: Any) -> "MigrationRecord":
        return cls(
            version=row["version"],
            name=row["name"],
            applied_at=row["applied_at"],
            rollback_script=row["rollback_script"] or "",
            checksum=row["checksum"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "name": self.name,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
            "has_rollback": bool(self.rollback_script.strip()),
            "checksum": self.checksum,
        }


class IssueKind(str, Enum):
    """Kinds of integrity problems reported by validation."""
    CHECKSUM_MISMATCH = "checksum_mismatch"
    FILE_MISSING = "file_missing"
    DUPLICATE_VERSION = "duplicate_version"


@dataclass(frozen=True)
class IntegrityIssue:
    """Advisory finding about a migration file or tracking row; never raised."""

    version: str
    kind: IssueKind
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"migration": self.version, "issue": self.kind.value, "message": self.message}


@dataclass
class MigrationStatus:
    """Snapshot of available, applied and pending migrations."""

    available: int
    applied: int
    pending: int
    applied_migrations: List[MigrationRecord] = field(default_factory=list)
    pending_migrations: List[MigrationDefinition] = field(default_factory=list)

    @property
    def last_applied(self) -> Optional[str]:
        return self.applied_migrations[-1].version if self.applied_migrations else None

    @property
    def next_pending(self) -> Optional[str]:
        return self.pending_migrations[0].version if self.pending_migrations else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "applied": self.applied,
            "pending": self.pending,
            "applied_migrations": [record.to_dict() for record in self.applied_migrations],
            "pending_migrations": [definition.to_dict() for definition in self.pending_migrations],
            "last_applied": self.last_applied,
            "next_pending": self.next_pending,
        }
