"""Pydantic models for schema snapshots and drift reports.

This module contains schema-domain models:
- Snapshot models: ColumnDef, IndexDef, ConstraintDef, TableDef,
  SchemaSnapshot -- produced identically by the introspector and the
  model registry so the two are directly diffable
- Drift models: Severity, IssueCategory, Issue, DriftSummary, DriftReport,
  EnvironmentInfo

Configuration models (DatabaseProfile, DriftConfig) live in
db_drift.config.models.
"""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from db_drift.schema.types import ColumnType


# ============================================================================
# Snapshot Models
# ============================================================================


class ColumnDef(BaseModel):
    """Schema for a single column.

    Only the presence of a default is recorded, never its value.

    Example:
        >>> col = ColumnDef(name="id", data_type=ColumnType(base="uuid"))
        >>> col.nullable
        True
    """

    name: str
    data_type: ColumnType
    nullable: bool = True
    has_default: bool = False
    comment: str | None = None


class IndexDef(BaseModel):
    """Schema for an index (primary/foreign key backed indexes excluded)."""

    name: str
    definition: str = ""
    is_unique: bool = False
    columns: list[str] = Field(default_factory=list)


class ConstraintKind(StrEnum):
    PRIMARY_KEY = "primary_key"
    FOREIGN_KEY = "foreign_key"
    UNIQUE = "unique"
    CHECK = "check"


class ConstraintDef(BaseModel):
    """Schema for a table constraint.

    ``references_table``/``references_columns`` are only set for foreign keys.
    """

    name: str
    kind: ConstraintKind
    columns: list[str] = Field(default_factory=list)
    references_table: str | None = None
    references_columns: list[str] | None = None
    definition: str = ""


class TableDef(BaseModel):
    """Schema for a table.

    Column map keys must equal the column names, so every ``ColumnDef``
    belongs to exactly one table.
    """

    name: str
    columns: dict[str, ColumnDef] = Field(default_factory=dict)
    indexes: list[IndexDef] = Field(default_factory=list)
    constraints: list[ConstraintDef] = Field(default_factory=list)
    comment: str | None = None

    @model_validator(mode="after")
    def _check_column_keys(self) -> "TableDef":
        for key, column in self.columns.items():
            if key != column.name:
                raise ValueError(
                    f"Column key '{key}' does not match column name "
                    f"'{column.name}' in table '{self.name}'"
                )
        return self


class SchemaSnapshot(BaseModel):
    """Normalized schema -- either live (introspected) or declared (models).

    Table order is the order tables were discovered; enum label order is
    significant.
    """

    tables: dict[str, TableDef] = Field(default_factory=dict)
    enums: dict[str, list[str]] = Field(default_factory=dict)


def is_constraint_backed_index(index_name: str) -> bool:
    """True if the name follows the primary/foreign key index convention."""
    return index_name.endswith("_pkey") or index_name.endswith("_fkey")


# ============================================================================
# Drift Models
# ============================================================================


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssueCategory(StrEnum):
    """Closed drift taxonomy."""

    MISSING_TABLE = "missing_table"
    MISSING_COLUMN = "missing_column"
    TYPE_MISMATCH = "type_mismatch"
    NULLABILITY_MISMATCH = "nullability_mismatch"
    MISSING_INDEX = "missing_index"
    EXTRA_COLUMN = "extra_column"
    EXTRA_INDEX = "extra_index"
    ORPHANED_TABLE = "orphaned_table"


class Issue(BaseModel):
    """A single drift finding. Immutable once created.

    Example:
        >>> issue = Issue(
        ...     severity=Severity.ERROR,
        ...     category=IssueCategory.MISSING_TABLE,
        ...     message="Table orders exists in models but not in database",
        ...     details={"table": "orders"},
        ... )
        >>> issue.severity
        <Severity.ERROR: 'error'>
    """

    model_config = ConfigDict(frozen=True)

    severity: Severity
    category: IssueCategory
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class DriftSummary(BaseModel):
    """Counts derived from an issue list."""

    total_issues: int = 0
    by_severity: dict[Severity, int] = Field(default_factory=dict)
    by_category: dict[IssueCategory, int] = Field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return self.by_severity.get(Severity.ERROR, 0)


class EnvironmentInfo(BaseModel):
    """Where a report was produced."""

    name: str = "development"
    database: str | None = None
    host: str | None = None
    port: int | None = None


class DriftReport(BaseModel):
    """Complete, standalone result of one drift detection run.

    ``summary`` is always computed from ``issues`` and cannot be set.

    Example:
        >>> report = DriftReport(issues=[])
        >>> report.summary.total_issues
        0
        >>> report.passed
        True
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    issues: list[Issue] = Field(default_factory=list)
    environment: EnvironmentInfo = Field(default_factory=EnvironmentInfo)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def summary(self) -> DriftSummary:
        # Imported here: severity depends on this module
        from db_drift.schema.severity import summarize

        return summarize(self.issues)

    @property
    def passed(self) -> bool:
        """True if no error-severity issue exists."""
        return self.summary.error_count == 0
