"""Migration file discovery and scaffold generation.

Migrations are pairs of SQL files in one directory:

    migrations/
        20260101120000_create_users.up.sql
        20260101120000_create_users.down.sql

The leading token is a UTC ``YYYYMMDDHHMMSS`` timestamp.  Files sort (and
apply) by filename, so tokens must be strictly increasing;
``generate_scaffold()`` guarantees that even when two scaffolds are created
within the same second or the clock is behind an existing token.

Usage:
    from db_drift.migrations.files import discover_migrations, generate_scaffold

    up, down = generate_scaffold(Path("migrations"), "add trip status")
    migrations = discover_migrations(Path("migrations"))
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

TOKEN_FORMAT = "%Y%m%d%H%M%S"

_MIGRATION_RE = re.compile(r"^(?P<version>\d{14})_(?P<name>[a-z0-9_]+)\.up\.sql$")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class Migration:
    """A discovered migration (its ``.up.sql`` file).

    Example:
        m = Migration(version="20260101120000", name="create_users",
                      path=Path("migrations/20260101120000_create_users.up.sql"))
        m.filename
        # '20260101120000_create_users.up.sql'
    """

    version: str
    name: str
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def down_path(self) -> Path:
        return self.path.with_name(f"{self.version}_{self.name}.down.sql")

    def read_sql(self) -> str:
        return self.path.read_text()


def slugify(name: str) -> str:
    """Turn a free-form migration name into a filename-safe slug.

    Raises:
        ValueError: If nothing usable remains.

    Example:
        >>> slugify("Add Trip status!")
        'add_trip_status'
    """
    slug = _SLUG_RE.sub("_", name.lower()).strip("_")
    if not slug:
        raise ValueError(f"Migration name '{name}' has no usable characters")
    return slug


def discover_migrations(migrations_dir: Path) -> list[Migration]:
    """List migrations in filename (and therefore apply) order.

    Files not matching ``<14-digit token>_<slug>.up.sql`` are ignored.

    Raises:
        FileNotFoundError: If the directory does not exist.
        ValueError: If two migrations share a version token.
    """
    if not migrations_dir.is_dir():
        raise FileNotFoundError(f"Migrations directory not found: {migrations_dir}")

    migrations: list[Migration] = []
    seen: dict[str, str] = {}
    for path in sorted(migrations_dir.iterdir()):
        match = _MIGRATION_RE.match(path.name)
        if not match:
            continue
        version = match.group("version")
        if version in seen:
            raise ValueError(
                f"Duplicate migration version {version}: {seen[version]} and {path.name}"
            )
        seen[version] = path.name
        migrations.append(Migration(version=version, name=match.group("name"), path=path))

    return migrations


def next_version(migrations_dir: Path, now: datetime | None = None) -> str:
    """Return a version token greater than every existing one.

    Uses the current UTC time unless an existing token is equal or later,
    in which case the newest token plus one second is used.
    """
    now = now or datetime.now(timezone.utc)
    candidate = now.strftime(TOKEN_FORMAT)

    existing = discover_migrations(migrations_dir) if migrations_dir.is_dir() else []
    if existing:
        latest = existing[-1].version
        if candidate <= latest:
            bumped = datetime.strptime(latest, TOKEN_FORMAT) + timedelta(seconds=1)
            candidate = bumped.strftime(TOKEN_FORMAT)

    return candidate


def generate_scaffold(
    migrations_dir: Path,
    name: str,
    now: datetime | None = None,
) -> tuple[Path, Path]:
    """Create an empty up/down migration pair.

    Never inspects drift -- the files are placeholders to be hand-edited.

    Args:
        migrations_dir: Directory to write into (created if missing).
        name: Human-readable migration name, slugified for the filename.
        now: Clock override for the version token.

    Returns:
        Tuple of (up_path, down_path).

    Raises:
        FileExistsError: If either file already exists.
    """
    slug = slugify(name)
    migrations_dir.mkdir(parents=True, exist_ok=True)
    version = next_version(migrations_dir, now)

    up_path = migrations_dir / f"{version}_{slug}.up.sql"
    down_path = migrations_dir / f"{version}_{slug}.down.sql"
    for path in (up_path, down_path):
        if path.exists():
            raise FileExistsError(f"Migration file already exists: {path}")

    header = f"-- Migration: {name}\n-- Version: {version}\n"
    with open(up_path, "x") as f:
        f.write(header + "-- Write the forward migration below.\n\n")
    with open(down_path, "x") as f:
        f.write(header + "-- Write the statements that revert the up migration below.\n\n")

    logger.info("Created migration scaffold %s", up_path.name)
    return up_path, down_path
