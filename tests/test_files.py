"""Tests for migration discovery and scaffold generation."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from db_drift.migrations.files import (
    discover_migrations,
    generate_scaffold,
    next_version,
    slugify,
)


NOON = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestSlugify:
    """Filename-safe migration names."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("add trip status", "add_trip_status"),
            ("Add Trip-Status!", "add_trip_status"),
            ("  create   users  ", "create_users"),
            ("v2 index", "v2_index"),
        ],
    )
    def test_slug(self, name: str, expected: str) -> None:
        assert slugify(name) == expected

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValueError, match="no usable characters"):
            slugify("!!!")


class TestGenerateScaffold:
    """Up/down pairs with strictly increasing tokens."""

    def test_creates_pair(self, tmp_path: Path) -> None:
        up, down = generate_scaffold(tmp_path / "migrations", "add trip status", now=NOON)

        assert up.name == "20260301120000_add_trip_status.up.sql"
        assert down.name == "20260301120000_add_trip_status.down.sql"
        assert up.exists() and down.exists()
        assert "-- Migration: add trip status" in up.read_text()

    def test_same_second_bumps_token(self, tmp_path: Path) -> None:
        """Two scaffolds in the same second still sort in creation order."""
        first, _ = generate_scaffold(tmp_path, "first", now=NOON)
        second, _ = generate_scaffold(tmp_path, "second", now=NOON)

        assert first.name.startswith("20260301120000_")
        assert second.name.startswith("20260301120001_")
        assert [m.name for m in discover_migrations(tmp_path)] == ["first", "second"]

    def test_clock_behind_latest_token(self, tmp_path: Path) -> None:
        """A clock earlier than the newest token still yields a later token."""
        (tmp_path / "20300101000000_future.up.sql").write_text("SELECT 1;")

        assert next_version(tmp_path, now=NOON) == "20300101000001"

    def test_clock_ahead_uses_now(self, tmp_path: Path) -> None:
        (tmp_path / "20200101000000_old.up.sql").write_text("SELECT 1;")

        assert next_version(tmp_path, now=NOON) == "20260301120000"

    def test_tokens_strictly_increasing(self, tmp_path: Path) -> None:
        for i in range(5):
            generate_scaffold(tmp_path, f"step {i}", now=NOON)

        versions = [m.version for m in discover_migrations(tmp_path)]

        assert versions == sorted(versions)
        assert len(set(versions)) == 5

    def test_does_not_overwrite(self, tmp_path: Path) -> None:
        """An existing down file with the same name is never clobbered."""
        (tmp_path / "20260301120000_clash.down.sql").write_text("keep me")

        with pytest.raises(FileExistsError):
            generate_scaffold(tmp_path, "clash", now=NOON)

        assert (tmp_path / "20260301120000_clash.down.sql").read_text() == "keep me"


class TestDiscoverMigrations:
    """Filename-ordered discovery."""

    def test_sorted_and_filtered(self, tmp_path: Path) -> None:
        for name in (
            "20260102000000_b.up.sql",
            "20260101000000_a.up.sql",
            "20260101000000_a.down.sql",
            "README.md",
            "notes.up.sql",
        ):
            (tmp_path / name).write_text("")

        migrations = discover_migrations(tmp_path)

        assert [m.filename for m in migrations] == [
            "20260101000000_a.up.sql",
            "20260102000000_b.up.sql",
        ]
        assert migrations[0].down_path == tmp_path / "20260101000000_a.down.sql"

    def test_duplicate_versions_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "20260101000000_a.up.sql").write_text("")
        (tmp_path / "20260101000000_b.up.sql").write_text("")

        with pytest.raises(ValueError, match="Duplicate migration version"):
            discover_migrations(tmp_path)

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Migrations directory not found"):
            discover_migrations(tmp_path / "missing")
