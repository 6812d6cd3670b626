"""Structural drift comparison between a live and a declared schema.

Compares a live ``SchemaSnapshot`` (from ``SchemaIntrospector``) against a
declared one (from ``ModelRegistry``) in both directions and returns an
ordered list of ``Issue``.
Pure logic -- no I/O, no database connections.

Usage:
    from db_drift.schema.comparator import detect_drift
    from db_drift.schema.introspector import SchemaIntrospector
    from db_drift.schema.registry import ModelRegistry

    async with SchemaIntrospector(database_url) as introspector:
        live = await introspector.introspect()

    model = ModelRegistry.from_file("models.toml").snapshot()

    issues = detect_drift(live, model)
    for issue in issues:
        print(issue.severity, issue.message)
"""

import logging
from collections.abc import Mapping

from db_drift.schema.models import (
    Issue,
    IssueCategory,
    SchemaSnapshot,
    Severity,
    TableDef,
    is_constraint_backed_index,
)
from db_drift.schema.severity import DEFAULT_SEVERITIES

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_PREFIXES: tuple[str, ...] = ("pg_", "_")


class _IssueCollector:
    """Appends issues in visit order, stamping each with its severity."""

    def __init__(self, severities: Mapping[IssueCategory, Severity]) -> None:
        self._severities = severities
        self.issues: list[Issue] = []

    def add(self, category: IssueCategory, message: str, **details: object) -> None:
        issue = Issue(
            severity=self._severities[category],
            category=category,
            message=message,
            details=details,
        )
        logger.debug("[%s] %s: %s", issue.severity.value.upper(), category.value, message)
        self.issues.append(issue)


def detect_drift(
    live: SchemaSnapshot,
    model: SchemaSnapshot,
    severities: Mapping[IssueCategory, Severity] | None = None,
    excluded_prefixes: tuple[str, ...] = DEFAULT_EXCLUDED_PREFIXES,
) -> list[Issue]:
    """Compare the live schema against the declared model schema.

    For each model table (in registry order):

    - Missing table: one ``missing_table`` issue; the table's columns and
      indexes are not compared (no cascading issues).
    - Model columns against live columns: ``missing_column``,
      ``type_mismatch``, ``nullability_mismatch``.
    - Live columns against model columns: ``extra_column``.
    - Model indexes against live indexes: ``missing_index``.
    - Live indexes against model indexes: ``extra_index`` (primary/foreign
      key backed indexes skipped).

    Then, for each live table (in snapshot order) with no model and no
    excluded prefix: ``orphaned_table``.

    Args:
        live: Snapshot of the database as it is.
        model: Snapshot of the schema the application declares.
        severities: Category -> severity table.  Defaults to
            ``DEFAULT_SEVERITIES``; see ``severity_table()`` for overrides.
        excluded_prefixes: Live table name prefixes never reported as
            orphaned (system/internal tables).

    Returns:
        Issues in deterministic visit order.

    Examples:
        >>> from db_drift.schema.models import TableDef
        >>> model = SchemaSnapshot(tables={"orders": TableDef(name="orders")})
        >>> issues = detect_drift(SchemaSnapshot(), model)
        >>> [i.category.value for i in issues]
        ['missing_table']

        >>> detect_drift(model, model)
        []
    """
    collector = _IssueCollector(severities or DEFAULT_SEVERITIES)

    for table_name, model_table in model.tables.items():
        live_table = live.tables.get(table_name)

        if live_table is None:
            collector.add(
                IssueCategory.MISSING_TABLE,
                f"Table {table_name} exists in models but not in database",
                table=table_name,
            )
            continue

        _compare_columns(collector, model_table, live_table)
        _compare_indexes(collector, model_table, live_table)

    for table_name in live.tables:
        if table_name in model.tables:
            continue
        if table_name.startswith(excluded_prefixes):
            continue
        collector.add(
            IssueCategory.ORPHANED_TABLE,
            f"Table {table_name} exists in database but has no corresponding model",
            table=table_name,
        )

    return collector.issues


def _compare_columns(
    collector: _IssueCollector,
    model_table: TableDef,
    live_table: TableDef,
) -> None:
    """Column checks in both directions for a table present on both sides."""
    table_name = model_table.name

    for column_name, model_column in model_table.columns.items():
        live_column = live_table.columns.get(column_name)

        if live_column is None:
            collector.add(
                IssueCategory.MISSING_COLUMN,
                f"Column {column_name} exists in models but not in database table {table_name}",
                table=table_name,
                column=column_name,
                model_type=str(model_column.data_type),
            )
            continue

        if model_column.data_type != live_column.data_type:
            collector.add(
                IssueCategory.TYPE_MISMATCH,
                f"Type mismatch for {table_name}.{column_name}: "
                f"models have {model_column.data_type}, database has {live_column.data_type}",
                table=table_name,
                column=column_name,
                model_type=str(model_column.data_type),
                database_type=str(live_column.data_type),
            )

        if model_column.nullable != live_column.nullable:
            collector.add(
                IssueCategory.NULLABILITY_MISMATCH,
                f"Nullability mismatch for {table_name}.{column_name}: "
                f"models have {'NULL' if model_column.nullable else 'NOT NULL'}, "
                f"database has {'NULL' if live_column.nullable else 'NOT NULL'}",
                table=table_name,
                column=column_name,
                model_nullable=model_column.nullable,
                database_nullable=live_column.nullable,
            )

    for column_name, live_column in live_table.columns.items():
        if column_name not in model_table.columns:
            collector.add(
                IssueCategory.EXTRA_COLUMN,
                f"Column {column_name} exists in database but not in model {table_name}",
                table=table_name,
                column=column_name,
                database_type=str(live_column.data_type),
            )


def _compare_indexes(
    collector: _IssueCollector,
    model_table: TableDef,
    live_table: TableDef,
) -> None:
    """Index checks in both directions, matched by index name."""
    table_name = model_table.name
    live_names = {index.name for index in live_table.indexes}
    model_names = {index.name for index in model_table.indexes}

    for index in model_table.indexes:
        if index.name not in live_names:
            collector.add(
                IssueCategory.MISSING_INDEX,
                f"Index {index.name} exists in models but not in database table {table_name}",
                table=table_name,
                index=index.name,
                columns=list(index.columns),
                unique=index.is_unique,
            )

    for index in live_table.indexes:
        if index.name in model_names or is_constraint_backed_index(index.name):
            continue
        collector.add(
            IssueCategory.EXTRA_INDEX,
            f"Index {index.name} exists in database but not in model {table_name}",
            table=table_name,
            index=index.name,
            definition=index.definition,
        )
