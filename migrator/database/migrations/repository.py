"""
Discovery of migration files on disk.

Migration files are named ``<version>_<slug>.sql`` where the version is a
zero-padded ordinal of at least four digits, for example
``0001_create_widgets.sql``. Files are re-read on every call so edits made
after a migration was applied are always visible to validation.
"""

from datetime import datetime, timezone
import logging
from pathlib import Path
import re
from typing import Dict, Iterable, List, Optional, Union

from .exceptions import DiscoveryError, DuplicateVersionError, MigrationError
from .models import MigrationDefinition, version_sort_key
from .parser import ROLLBACK_MARKER, parse_migration

MIGRATION_FILENAME_PATTERN = re.compile(r"^(\d{4,})_([A-Za-z0-9_-]+)\.sql$")

VERSION_WIDTH = 4

SCAFFOLD_TEMPLATE = """-- Migration: {name}
-- Version: {version}
-- Description: {description}
-- Created: {created}

-- Forward migration
-- Add your forward migration SQL here


{marker}
-- Add your rollback SQL here

"""


def slugify(name: str) -> str:
    """Turn a free-form migration name into a filename slug."""
    slug = re.sub(r"[^a-zA-Z0-9]+", "_", name).strip("_").lower()
    if not slug:
        raise MigrationError(f"Migration name {name!r} does not contain any usable characters")
    return slug


def format_version(number: int) -> str:
    """Zero-pad a migration ordinal."""
    return str(number).zfill(VERSION_WIDTH)


def find_duplicate_versions(definitions: Iterable[MigrationDefinition]) -> Dict[str, List[str]]:
    """Map each version claimed by more than one file to those filenames."""
    files: Dict[str, List[str]] = {}
    for definition in definitions:
        files.setdefault(definition.version, []).append(definition.filename)
    return {version: names for version, names in files.items() if len(names) > 1}


class MigrationRepository:
    """
    Reads migration definitions from a directory.

    Usage:
        repository = MigrationRepository(Path("migrations"))
        for definition in repository.discover():
            print(definition.version, definition.name)
    """

    def __init__(self, migrations_dir: Union[str, Path], logger: Optional[logging.Logger] = None):
        """
        Initialize the repository.

        Args:
            migrations_dir: Directory containing migration files
            logger: Logger instance
        """
        self.migrations_dir = Path(migrations_dir)
        self.logger = logger or logging.getLogger(__name__)

    def discover(self) -> List[MigrationDefinition]:
        """
        Discover all migration files in the migrations directory.

        Files whose names do not follow the naming convention are skipped.
        A missing directory yields an empty list. Two files sharing a
        version are both returned; see ``find_duplicate_versions``.

        Returns:
            Definitions sorted by ascending version, then filename

        Raises:
            DiscoveryError: If the directory or a file cannot be read
        """
        if not self.migrations_dir.exists():
            self.logger.debug(f"Migrations directory does not exist: {self.migrations_dir}")
            return []

        try:
            entries = sorted(self.migrations_dir.iterdir())
        except OSError as e:
            raise DiscoveryError(
                f"Cannot read migrations directory: {self.migrations_dir}",
                context={"migrations_dir": str(self.migrations_dir)},
                cause=e,
            ) from e

        definitions: List[MigrationDefinition] = []
        for path in entries:
            match = MIGRATION_FILENAME_PATTERN.match(path.name)
            if not match or not path.is_file():
                continue
            definitions.append(self._read_definition(path, match.group(1), match.group(2)))

        return sorted(definitions, key=lambda d: (version_sort_key(d.version), d.filename))

    def find(self, version: str) -> Optional[MigrationDefinition]:
        """
        Return the definition for ``version``, freshly read, or None.

        Raises:
            DuplicateVersionError: If more than one file has this version
        """
        matches = [definition for definition in self.discover() if definition.version == version]
        if len(matches) > 1:
            raise DuplicateVersionError(
                f"Duplicate migration version {version}",
                context={"version": version, "files": [d.filename for d in matches]},
            )
        return matches[0] if matches else None

    def _read_definition(self, path: Path, version: str, name: str) -> MigrationDefinition:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DiscoveryError(
                f"Cannot read migration file: {path.name}",
                context={"path": str(path)},
                cause=e,
            ) from e

        parsed = parse_migration(content)
        return MigrationDefinition(
            version=version,
            name=name,
            filename=path.name,
            path=path,
            forward_script=parsed.forward,
            rollback_script=parsed.rollback,
        )

    def next_version(self) -> str:
        """Version following the highest one on disk (``0001`` when empty)."""
        versions = [int(definition.version) for definition in self.discover()]
        return format_version(max(versions, default=0) + 1)

    def write_scaffold(self, name: str, version: str, description: str = "") -> MigrationDefinition:
        """
        Write a new, empty migration file.

        Args:
            name: Free-form migration name, slugified for the filename
            version: Version to use
            description: Optional description for the header

        Returns:
            The definition of the new file

        Raises:
            MigrationError: If the file already exists
        """
        slug = slugify(name)
        path = self.migrations_dir / f"{version}_{slug}.sql"

        if path.exists():
            raise MigrationError(f"Migration file already exists: {path.name}", context={"path": str(path)})

        self.migrations_dir.mkdir(parents=True, exist_ok=True)
        content = SCAFFOLD_TEMPLATE.format(
            name=name,
            version=version,
            description=description or "Add description here",
            created=datetime.now(timezone.utc).isoformat(),
            marker=ROLLBACK_MARKER,
        )
        with open(path, "x", encoding="utf-8") as f:
            f.write(content)

        return self._read_definition(path, version, slug)
