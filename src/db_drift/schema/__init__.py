"""Schema snapshots, introspection, model registry, and drift comparison.

Usage:
    from db_drift.schema import SchemaIntrospector, ModelRegistry, detect_drift
    from db_drift.schema import normalize_type, summarize
"""

from db_drift.schema.comparator import detect_drift
from db_drift.schema.introspector import SchemaIntrospector
from db_drift.schema.models import (
    ColumnDef,
    ConstraintDef,
    ConstraintKind,
    DriftReport,
    DriftSummary,
    EnvironmentInfo,
    IndexDef,
    Issue,
    IssueCategory,
    SchemaSnapshot,
    Severity,
    TableDef,
)
from db_drift.schema.registry import ModelRegistry, load_registry
from db_drift.schema.severity import (
    DEFAULT_SEVERITIES,
    classify,
    severity_table,
    summarize,
)
from db_drift.schema.types import ColumnType, LogicalType, normalize_type

__all__ = [
    "detect_drift",
    "SchemaIntrospector",
    "ModelRegistry",
    "load_registry",
    "ColumnDef",
    "ConstraintDef",
    "ConstraintKind",
    "IndexDef",
    "TableDef",
    "SchemaSnapshot",
    "Severity",
    "IssueCategory",
    "Issue",
    "DriftSummary",
    "DriftReport",
    "EnvironmentInfo",
    "DEFAULT_SEVERITIES",
    "classify",
    "severity_table",
    "summarize",
    "ColumnType",
    "LogicalType",
    "normalize_type",
]
