"""Migration runner: list pending, apply pending, report status.

Defines the ``MigrationRunner`` Protocol the orchestrator depends on and
``PsycopgMigrationRunner``, a PostgreSQL implementation that records
applied versions in a ``schema_migrations`` table.

Each migration runs inside its own transaction together with the insert
of its version row.  A failure rolls back only that migration and stops
the run; earlier migrations stay applied.

Usage:
    from db_drift.migrations.runner import PsycopgMigrationRunner

    runner = PsycopgMigrationRunner(database_url, Path("migrations"))
    pending = await runner.list_pending()
    applied = await runner.apply_pending()
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Protocol

import psycopg
from psycopg import sql
from pydantic import BaseModel

from db_drift.errors import DatabaseConnectionError, MigrationApplyError, QueryError
from db_drift.migrations.files import Migration, discover_migrations

logger = logging.getLogger(__name__)

_COMMENT_RE = re.compile(r"--[^\n]*|/\*.*?\*/", re.DOTALL)


class MigrationStatus(BaseModel):
    """Apply status of one migration file."""

    version: str
    name: str
    filename: str
    applied: bool = False
    applied_at: datetime | None = None


class MigrationRunner(Protocol):
    """Migration runner interface the orchestrator depends on.

    All methods are async -- callers must ``await`` every operation.
    """

    async def list_pending(self) -> list[Migration]:
        """Migrations not yet recorded as applied, in filename order."""
        ...

    async def apply_pending(self) -> list[str]:
        """Apply pending migrations in order; return applied filenames.

        Raises:
            MigrationApplyError: On the first failing migration.
        """
        ...

    async def status(self) -> list[MigrationStatus]:
        """Apply status of every known migration, in filename order."""
        ...


def has_statements(migration_sql: str) -> bool:
    """True if the SQL contains anything besides comments and whitespace."""
    return bool(_COMMENT_RE.sub("", migration_sql).strip())


class PsycopgMigrationRunner:
    """PostgreSQL migration runner over ``psycopg.AsyncConnection``.

    Args:
        database_url: PostgreSQL connection URL.
        migrations_dir: Directory of ``<version>_<name>.up.sql`` files.
        table: Name of the bookkeeping table.
        connect_timeout: Seconds to wait when connecting.
    """

    def __init__(
        self,
        database_url: str,
        migrations_dir: Path,
        table: str = "schema_migrations",
        connect_timeout: int = 10,
    ) -> None:
        self._database_url = database_url
        self._migrations_dir = Path(migrations_dir)
        self._table = table
        self._connect_timeout = connect_timeout

    async def _connect(self) -> psycopg.AsyncConnection:
        try:
            return await psycopg.AsyncConnection.connect(
                self._database_url,
                autocommit=True,
                connect_timeout=self._connect_timeout,
            )
        except psycopg.Error as e:
            raise DatabaseConnectionError(f"Failed to connect to database: {e}") from e

    async def _ensure_table(self, conn: psycopg.AsyncConnection) -> None:
        await conn.execute(
            sql.SQL(
                "CREATE TABLE IF NOT EXISTS {} ("
                " version text PRIMARY KEY,"
                " name text NOT NULL,"
                " applied_at timestamptz NOT NULL DEFAULT now()"
                ")"
            ).format(sql.Identifier(self._table))
        )

    async def _applied_versions(self, conn: psycopg.AsyncConnection) -> dict[str, datetime]:
        try:
            await self._ensure_table(conn)
            cur = await conn.execute(
                sql.SQL("SELECT version, applied_at FROM {} ORDER BY version").format(
                    sql.Identifier(self._table)
                )
            )
            rows = await cur.fetchall()
        except psycopg.Error as e:
            raise QueryError(self._table, str(e)) from e
        return {version: applied_at for version, applied_at in rows}

    async def list_pending(self) -> list[Migration]:
        migrations = discover_migrations(self._migrations_dir)
        async with await self._connect() as conn:
            applied = await self._applied_versions(conn)
        return [m for m in migrations if m.version not in applied]

    async def apply_pending(self) -> list[str]:
        """Apply pending migrations in filename order.

        A migration with no statements (an unedited scaffold) is skipped and
        stays pending, so the SQL written into it later still runs.
        """
        migrations = discover_migrations(self._migrations_dir)
        applied_now: list[str] = []

        async with await self._connect() as conn:
            applied = await self._applied_versions(conn)
            pending = [m for m in migrations if m.version not in applied]
            logger.info("%d pending migration(s)", len(pending))

            for migration in pending:
                try:
                    migration_sql = migration.read_sql()
                except (OSError, UnicodeDecodeError) as e:
                    raise MigrationApplyError(migration.filename, str(e), applied_now) from e

                if not has_statements(migration_sql):
                    logger.warning("Migration %s has no statements; left pending", migration.filename)
                    continue

                try:
                    async with conn.transaction():
                        await conn.execute(migration_sql)
                        await conn.execute(
                            sql.SQL("INSERT INTO {} (version, name) VALUES (%s, %s)").format(
                                sql.Identifier(self._table)
                            ),
                            (migration.version, migration.name),
                        )
                except psycopg.Error as e:
                    logger.error("Migration %s failed: %s", migration.filename, e)
                    raise MigrationApplyError(migration.filename, str(e), applied_now) from e

                logger.info("Applied %s", migration.filename)
                applied_now.append(migration.filename)

        return applied_now

    async def status(self) -> list[MigrationStatus]:
        migrations = discover_migrations(self._migrations_dir)
        async with await self._connect() as conn:
            applied = await self._applied_versions(conn)

        known = {m.version for m in migrations}
        for version in applied:
            if version not in known:
                logger.warning("Applied migration %s has no file in %s", version, self._migrations_dir)

        return [
            MigrationStatus(
                version=m.version,
                name=m.name,
                filename=m.filename,
                applied=m.version in applied,
                applied_at=applied.get(m.version),
            )
            for m in migrations
        ]
