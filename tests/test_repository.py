"""
Tests for migration discovery and scaffolding.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from migrator.database.migrations.checksum import compute_checksum
from migrator.database.migrations.exceptions import DiscoveryError, DuplicateVersionError, MigrationError
from migrator.database.migrations.models import version_sort_key
from migrator.database.migrations.repository import (
    MigrationRepository,
    find_duplicate_versions,
    format_version,
    slugify,
)


class TestDiscover:
    """Test discovery of migration files."""

    def test_missing_directory_is_empty(self, tmp_path):
        """Test that a missing directory yields no migrations."""
        repository = MigrationRepository(tmp_path / "does-not-exist")

        assert repository.discover() == []

    def test_sorted_by_version(self, migrations_dir, write_migration):
        """Test ascending order regardless of creation order."""
        write_migration("0003", "third", "SELECT 3;")
        write_migration("0001", "first", "SELECT 1;")
        write_migration("0002", "second", "SELECT 2;")

        definitions = MigrationRepository(migrations_dir).discover()

        assert [d.version for d in definitions] == ["0001", "0002", "0003"]
        assert [d.name for d in definitions] == ["first", "second", "third"]

    def test_wide_versions_sort_numerically(self, migrations_dir, write_migration):
        """Test a five-digit version sorts after four-digit ones."""
        write_migration("10000", "wide", "SELECT 2;")
        write_migration("9999", "narrow", "SELECT 1;")

        definitions = MigrationRepository(migrations_dir).discover()

        assert [d.version for d in definitions] == ["9999", "10000"]

    def test_skips_non_matching_files(self, migrations_dir, write_migration):
        """Test files outside the naming convention are ignored."""
        write_migration("0001", "valid", "SELECT 1;")
        (migrations_dir / "README.md").write_text("docs")
        (migrations_dir / "001_too_short.sql").write_text("SELECT 1;")
        (migrations_dir / "0002_bad name.sql").write_text("SELECT 1;")
        (migrations_dir / "0003_not_sql.txt").write_text("SELECT 1;")
        (migrations_dir / "0004_directory.sql").mkdir()

        definitions = MigrationRepository(migrations_dir).discover()

        assert [d.filename for d in definitions] == ["0001_valid.sql"]

    def test_definition_contents(self, migrations_dir, write_migration):
        """Test forward and rollback scripts are parsed from the file."""
        path = write_migration("0001", "create_widgets", "CREATE TABLE widgets (id INT);", "DROP TABLE widgets;")

        definition = MigrationRepository(migrations_dir).discover()[0]

        assert definition.path == path
        assert definition.filename == "0001_create_widgets.sql"
        assert definition.forward_script.endswith("CREATE TABLE widgets (id INT);")
        assert definition.rollback_script == "DROP TABLE widgets;"
        assert definition.checksum == compute_checksum(definition.forward_script)

    def test_duplicate_version(self, migrations_dir, write_migration):
        """Test two files with the same version are both discovered."""
        write_migration("0001", "other", "SELECT 2;")
        write_migration("0001", "first", "SELECT 1;")
        write_migration("0002", "second", "SELECT 3;")

        definitions = MigrationRepository(migrations_dir).discover()

        assert [d.filename for d in definitions] == ["0001_first.sql", "0001_other.sql", "0002_second.sql"]
        assert find_duplicate_versions(definitions) == {"0001": ["0001_first.sql", "0001_other.sql"]}

    def test_find_duplicate_version(self, migrations_dir, write_migration):
        """Test lookup refuses to pick between two files."""
        write_migration("0001", "first", "SELECT 1;")
        write_migration("0001", "other", "SELECT 2;")

        with pytest.raises(DuplicateVersionError) as exc_info:
            MigrationRepository(migrations_dir).find("0001")

        assert exc_info.value.context["files"] == ["0001_first.sql", "0001_other.sql"]

    def test_unreadable_directory(self, migrations_dir):
        """Test directory listing errors become DiscoveryError."""
        repository = MigrationRepository(migrations_dir)

        with patch.object(Path, "iterdir", side_effect=PermissionError("denied")):
            with pytest.raises(DiscoveryError) as exc_info:
                repository.discover()

        assert isinstance(exc_info.value.cause, PermissionError)

    def test_undecodable_file(self, migrations_dir):
        """Test files that are not UTF-8 become DiscoveryError."""
        (migrations_dir / "0001_binary.sql").write_bytes(b"\xff\xfe\x00broken")

        with pytest.raises(DiscoveryError):
            MigrationRepository(migrations_dir).discover()

    def test_files_are_reread(self, migrations_dir, write_migration):
        """Test edits are visible on the next discovery."""
        write_migration("0001", "first", "SELECT 1;")
        repository = MigrationRepository(migrations_dir)
        before = repository.discover()[0].checksum

        write_migration("0001", "first", "SELECT 2;")

        assert repository.discover()[0].checksum != before

    def test_find(self, migrations_dir, write_migration):
        """Test lookup by version."""
        write_migration("0001", "first", "SELECT 1;")
        repository = MigrationRepository(migrations_dir)

        assert repository.find("0001").name == "first"
        assert repository.find("0002") is None


class TestScaffold:
    """Test creation of new migration files."""

    def test_next_version_empty(self, migrations_dir):
        """Test the first version."""
        assert MigrationRepository(migrations_dir).next_version() == "0001"

    def test_next_version_after_gap(self, migrations_dir, write_migration):
        """Test next version follows the maximum, not the count."""
        write_migration("0001", "first", "SELECT 1;")
        write_migration("0005", "fifth", "SELECT 5;")

        assert MigrationRepository(migrations_dir).next_version() == "0006"

    def test_write_scaffold(self, migrations_dir):
        """Test the generated file parses to empty scripts."""
        repository = MigrationRepository(migrations_dir)

        definition = repository.write_scaffold("Add Users Table", "0001", "Users and roles")

        assert definition.filename == "0001_add_users_table.sql"
        content = definition.path.read_text(encoding="utf-8")
        assert "-- Migration: Add Users Table" in content
        assert "-- Version: 0001" in content
        assert "-- Description: Users and roles" in content
        assert "\n-- ROLLBACK\n" in content
        assert "CREATE" not in definition.forward_script
        assert all(line.startswith("--") for line in definition.rollback_script.splitlines())

    def test_write_scaffold_creates_directory(self, tmp_path):
        """Test the migrations directory is created on demand."""
        repository = MigrationRepository(tmp_path / "new" / "migrations")

        definition = repository.write_scaffold("init", "0001")

        assert definition.path.exists()
        assert "-- Description: Add description here" in definition.path.read_text(encoding="utf-8")

    def test_write_scaffold_refuses_overwrite(self, migrations_dir):
        """Test an existing file is never overwritten."""
        repository = MigrationRepository(migrations_dir)
        existing = migrations_dir / "0001_init.sql"
        existing.write_text("SELECT 1;")

        with pytest.raises(MigrationError):
            repository.write_scaffold("init", "0001")

        assert existing.read_text() == "SELECT 1;"


class TestHelpers:
    """Test naming helpers."""

    @pytest.mark.parametrize("name,expected", [
        ("create users", "create_users"),
        ("Add-Index!!", "add_index"),
        ("  spaced  out  ", "spaced_out"),
        ("already_slugged", "already_slugged"),
    ])
    def test_slugify(self, name, expected):
        """Test names are reduced to filename-safe slugs."""
        assert slugify(name) == expected

    def test_slugify_rejects_empty(self):
        """Test names without usable characters."""
        with pytest.raises(MigrationError):
            slugify("!!!")

    def test_format_version(self):
        """Test zero padding."""
        assert format_version(7) == "0007"
        assert format_version(12345) == "12345"

    def test_version_sort_key(self):
        """Test numeric ordering of versions."""
        assert sorted(["0010", "0002", "10000", "9999"], key=version_sort_key) == [
            "0002", "0010", "9999", "10000",
        ]
