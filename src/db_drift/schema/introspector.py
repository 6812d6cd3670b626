"""PostgreSQL schema introspection via information_schema and pg_catalog.

This module queries the live database to build a ``SchemaSnapshot``:
- Tables (base tables only, system/internal tables excluded) and comments
- Columns: logical type, nullability, default presence, comment
- Indexes (those backing a primary key, unique or exclusion constraint
  are excluded -- they are reported as constraints)
- Constraints (primary key, foreign key, unique, check)
- Enumerated types with ordered labels

The five catalog queries are independent and run concurrently, each on its
own connection from a bounded ``psycopg_pool.AsyncConnectionPool``.  Either
all of them succeed or the whole introspection fails.

Uses psycopg (v3) for PostgreSQL connections.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from db_drift.errors import DatabaseConnectionError, QueryError
from db_drift.schema.models import (
    ColumnDef,
    ConstraintDef,
    ConstraintKind,
    IndexDef,
    SchemaSnapshot,
    TableDef,
)
from db_drift.schema.types import normalize_type

logger = logging.getLogger(__name__)


_TABLES_QUERY = """
    SELECT
        table_name,
        obj_description(
            (quote_ident(table_schema) || '.' || quote_ident(table_name))::regclass,
            'pg_class'
        ) AS comment
    FROM information_schema.tables
    WHERE table_schema = %s
      AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

_COLUMNS_QUERY = """
    SELECT
        table_name,
        column_name,
        data_type,
        udt_name,
        is_nullable,
        column_default,
        col_description(
            (quote_ident(table_schema) || '.' || quote_ident(table_name))::regclass,
            ordinal_position
        ) AS comment
    FROM information_schema.columns
    WHERE table_schema = %s
    ORDER BY table_name, ordinal_position
"""

_INDEXES_QUERY = """
    SELECT
        t.relname AS table_name,
        i.relname AS index_name,
        ix.indisunique AS is_unique,
        pg_get_indexdef(ix.indexrelid) AS definition,
        array_remove(array_agg(a.attname ORDER BY x.ordinality), NULL) AS columns
    FROM pg_index ix
    JOIN pg_class t ON t.oid = ix.indrelid
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_namespace n ON n.oid = t.relnamespace
    CROSS JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS x(attnum, ordinality)
    LEFT JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = x.attnum
    WHERE n.nspname = %s
      AND NOT ix.indisprimary
      AND NOT EXISTS (
          SELECT 1 FROM pg_constraint c
          WHERE c.conindid = ix.indexrelid
            AND c.conrelid = ix.indrelid
            AND c.contype IN ('p', 'u', 'x')
      )
    GROUP BY t.relname, i.relname, ix.indisunique, ix.indexrelid
    ORDER BY t.relname, i.relname
"""

_CONSTRAINTS_QUERY = """
    SELECT
        cls.relname AS table_name,
        con.conname AS constraint_name,
        con.contype AS constraint_type,
        ARRAY(
            SELECT a.attname
            FROM unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord)
            JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
            ORDER BY k.ord
        ) AS columns,
        ref.relname AS references_table,
        ARRAY(
            SELECT a.attname
            FROM unnest(con.confkey) WITH ORDINALITY AS k(attnum, ord)
            JOIN pg_attribute a ON a.attrelid = con.confrelid AND a.attnum = k.attnum
            ORDER BY k.ord
        ) AS references_columns,
        pg_get_constraintdef(con.oid) AS definition
    FROM pg_constraint con
    JOIN pg_class cls ON cls.oid = con.conrelid
    JOIN pg_namespace n ON n.oid = cls.relnamespace
    LEFT JOIN pg_class ref ON ref.oid = con.confrelid
    WHERE n.nspname = %s
      AND con.contype IN ('p', 'f', 'u', 'c')
    ORDER BY cls.relname, con.conname
"""

_ENUMS_QUERY = """
    SELECT
        t.typname AS enum_name,
        e.enumlabel AS enum_value
    FROM pg_type t
    JOIN pg_enum e ON t.oid = e.enumtypid
    JOIN pg_namespace n ON n.oid = t.typnamespace
    WHERE n.nspname = %s
    ORDER BY t.typname, e.enumsortorder
"""

_CONSTRAINT_KINDS: dict[str, ConstraintKind] = {
    "p": ConstraintKind.PRIMARY_KEY,
    "f": ConstraintKind.FOREIGN_KEY,
    "u": ConstraintKind.UNIQUE,
    "c": ConstraintKind.CHECK,
}


class SchemaIntrospector:
    """Introspects a PostgreSQL schema into a ``SchemaSnapshot``.

    Read-only: sessions are opened with ``default_transaction_read_only``
    and every statement is bounded by ``statement_timeout_ms``.

    Usage:
        async with SchemaIntrospector(database_url) as introspector:
            snapshot = await introspector.introspect()

    Args:
        database_url: PostgreSQL connection URL.
        excluded_tables: Table names to skip.  Defaults to
            ``EXCLUDED_TABLES_DEFAULT``.
        excluded_prefixes: Table name prefixes to skip (engine-reserved and
            internal tables).  Defaults to ``EXCLUDED_PREFIXES_DEFAULT``.
        pool_size: Maximum pooled connections.
        connect_timeout: Seconds to wait when connecting.
        statement_timeout_ms: Per-query statement timeout.
    """

    EXCLUDED_TABLES_DEFAULT: set[str] = {
        "schema_migrations",
        "pg_stat_statements",
        "spatial_ref_sys",
    }

    EXCLUDED_PREFIXES_DEFAULT: tuple[str, ...] = ("pg_", "_")

    def __init__(
        self,
        database_url: str,
        excluded_tables: set[str] | None = None,
        excluded_prefixes: tuple[str, ...] | None = None,
        pool_size: int = 5,
        connect_timeout: int = 10,
        statement_timeout_ms: int = 30_000,
    ) -> None:
        self._database_url = database_url
        self._excluded_tables = (
            set(excluded_tables)
            if excluded_tables is not None
            else set(self.EXCLUDED_TABLES_DEFAULT)
        )
        self._excluded_prefixes = (
            tuple(excluded_prefixes)
            if excluded_prefixes is not None
            else self.EXCLUDED_PREFIXES_DEFAULT
        )
        self._pool_size = pool_size
        self._connect_timeout = connect_timeout
        self._statement_timeout_ms = statement_timeout_ms
        self._pool: AsyncConnectionPool | None = None

    def _connection_kwargs(self) -> dict[str, Any]:
        return {
            "autocommit": True,
            "connect_timeout": self._connect_timeout,
            "options": (
                f"-c statement_timeout={self._statement_timeout_ms} "
                "-c default_transaction_read_only=on"
            ),
        }

    async def __aenter__(self) -> "SchemaIntrospector":
        """Verify the database is reachable, then open the pool."""
        kwargs = self._connection_kwargs()

        # Probe once so an unreachable database fails immediately instead of
        # waiting out the pool's reconnect loop
        try:
            probe = await psycopg.AsyncConnection.connect(self._database_url, **kwargs)
        except psycopg.Error as e:
            raise DatabaseConnectionError(f"Failed to connect to database: {e}") from e
        await probe.close()

        pool = AsyncConnectionPool(
            self._database_url,
            min_size=1,
            max_size=self._pool_size,
            kwargs=kwargs,
            open=False,
        )
        try:
            await pool.open(wait=True, timeout=self._connect_timeout)
        except (PoolTimeout, psycopg.Error) as e:
            await pool.close()
            raise DatabaseConnectionError(f"Failed to open connection pool: {e}") from e

        self._pool = pool
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the pool, releasing every connection."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def test_connection(self) -> bool:
        """Run ``SELECT 1`` on a pooled connection."""
        rows = await self._fetch("select_1", "SELECT 1 AS ok", ())
        return bool(rows) and rows[0]["ok"] == 1

    async def introspect(self, schema_name: str = "public") -> SchemaSnapshot:
        """Introspect the full schema.

        Args:
            schema_name: PostgreSQL schema to introspect (default: public)

        Returns:
            SchemaSnapshot with tables, columns, indexes, constraints, enums.

        Raises:
            RuntimeError: If called outside ``async with``.
            DatabaseConnectionError: If no connection can be acquired.
            QueryError: If any catalog query fails; no snapshot is returned.
        """
        if self._pool is None:
            raise RuntimeError("Introspector not connected. Use async with statement.")

        logger.info("Introspecting schema '%s'", schema_name)
        results = await self._gather_all(
            {
                "tables": self._get_tables(schema_name),
                "columns": self._get_columns(schema_name),
                "indexes": self._get_indexes(schema_name),
                "constraints": self._get_constraints(schema_name),
                "enums": self._get_enums(schema_name),
            }
        )
        return self._build_snapshot(results)

    # ------------------------------------------------------------------
    # Query execution
    # ------------------------------------------------------------------

    async def _gather_all(
        self, queries: dict[str, Coroutine[Any, Any, list[dict]]]
    ) -> dict[str, list[dict]]:
        """Run queries concurrently; on the first failure cancel the rest."""
        tasks = {
            name: asyncio.create_task(coro, name=f"introspect:{name}")
            for name, coro in queries.items()
        }
        try:
            await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)
            first_error: BaseException | None = None
            for task in tasks.values():
                if task.done() and not task.cancelled():
                    error = task.exception()
                    if error is not None and first_error is None:
                        first_error = error
            if first_error is not None:
                raise first_error
            return {name: task.result() for name, task in tasks.items()}
        finally:
            pending = [task for task in tasks.values() if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _fetch(self, query_name: str, query: str, params: tuple) -> list[dict]:
        """Execute one catalog query on its own pooled connection.

        The connection returns to the pool on every exit path.
        """
        if self._pool is None:
            raise RuntimeError("Introspector not connected. Use async with statement.")

        try:
            async with self._pool.connection() as conn:
                try:
                    async with conn.cursor(row_factory=dict_row) as cur:
                        await cur.execute(query, params)
                        rows = await cur.fetchall()
                except psycopg.Error as e:
                    raise QueryError(query_name, str(e)) from e
        except PoolTimeout as e:
            raise DatabaseConnectionError(
                f"No database connection available for '{query_name}': {e}"
            ) from e

        logger.debug("Catalog query '%s' returned %d rows", query_name, len(rows))
        return rows

    async def _get_tables(self, schema_name: str) -> list[dict]:
        return await self._fetch("tables", _TABLES_QUERY, (schema_name,))

    async def _get_columns(self, schema_name: str) -> list[dict]:
        return await self._fetch("columns", _COLUMNS_QUERY, (schema_name,))

    async def _get_indexes(self, schema_name: str) -> list[dict]:
        return await self._fetch("indexes", _INDEXES_QUERY, (schema_name,))

    async def _get_constraints(self, schema_name: str) -> list[dict]:
        return await self._fetch("constraints", _CONSTRAINTS_QUERY, (schema_name,))

    async def _get_enums(self, schema_name: str) -> list[dict]:
        return await self._fetch("enums", _ENUMS_QUERY, (schema_name,))

    # ------------------------------------------------------------------
    # Snapshot assembly
    # ------------------------------------------------------------------

    def _is_excluded(self, table_name: str) -> bool:
        return table_name in self._excluded_tables or table_name.startswith(
            self._excluded_prefixes
        )

    def _build_snapshot(self, results: dict[str, list[dict]]) -> SchemaSnapshot:
        """Group catalog rows by table into a ``SchemaSnapshot``."""
        enums: dict[str, list[str]] = {}
        for row in results["enums"]:
            enums.setdefault(row["enum_name"], []).append(row["enum_value"])
        enum_names = frozenset(enums)

        tables: dict[str, TableDef] = {}
        for row in results["tables"]:
            name = row["table_name"]
            if self._is_excluded(name):
                continue
            tables[name] = TableDef(name=name, comment=row.get("comment"))

        for row in results["columns"]:
            table = tables.get(row["table_name"])
            if table is None:
                continue
            column = ColumnDef(
                name=row["column_name"],
                data_type=normalize_type(self._raw_type(row), enum_names),
                nullable=row["is_nullable"] == "YES",
                has_default=row["column_default"] is not None,
                comment=row.get("comment"),
            )
            table.columns[column.name] = column

        for row in results["indexes"]:
            table = tables.get(row["table_name"])
            if table is None or row["index_name"].endswith("_pkey"):
                continue
            table.indexes.append(
                IndexDef(
                    name=row["index_name"],
                    definition=row["definition"] or "",
                    is_unique=bool(row["is_unique"]),
                    columns=list(row["columns"] or []),
                )
            )

        for row in results["constraints"]:
            table = tables.get(row["table_name"])
            if table is None:
                continue
            kind = _CONSTRAINT_KINDS[row["constraint_type"]]
            is_fk = kind is ConstraintKind.FOREIGN_KEY
            table.constraints.append(
                ConstraintDef(
                    name=row["constraint_name"],
                    kind=kind,
                    columns=list(row["columns"] or []),
                    references_table=row["references_table"] if is_fk else None,
                    references_columns=list(row["references_columns"] or []) if is_fk else None,
                    definition=row["definition"] or "",
                )
            )

        logger.info("Introspected %d tables, %d enums", len(tables), len(enums))
        return SchemaSnapshot(tables=tables, enums=enums)

    @staticmethod
    def _raw_type(row: dict) -> str:
        """Pick the catalog spelling to normalize.

        ``information_schema`` reports arrays as ``ARRAY`` and enums/extension
        types as ``USER-DEFINED``; the ``udt_name`` carries the real type.
        """
        data_type = row["data_type"]
        if data_type in ("ARRAY", "USER-DEFINED"):
            return row["udt_name"]
        return data_type
