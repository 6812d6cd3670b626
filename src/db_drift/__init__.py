"""db-drift: Schema drift detection and drift-gated migrations for PostgreSQL.

Introspects a live database, compares it with declared models, classifies
and reports the divergence, and gates a migration pipeline on the result.

Usage:
    from db_drift import SchemaIntrospector, ModelRegistry, detect_drift
    from db_drift import MigrationOrchestrator, PsycopgMigrationRunner
    from db_drift import load_config, build_orchestrator
"""

__version__ = "0.1.0"

# Config
from db_drift.config.loader import load_config
from db_drift.config.models import DatabaseProfile, DriftConfig, DriftSettings

# Errors
from db_drift.errors import (
    ConfigurationError,
    DatabaseConnectionError,
    DriftError,
    MigrationApplyError,
    ProfileNotFoundError,
    QueryError,
)

# Factory
from db_drift.factory import build_orchestrator, resolve_database_url, resolve_url

# Migrations
from db_drift.migrations.orchestrator import (
    MigrationOrchestrator,
    PipelineResult,
    PipelineState,
)
from db_drift.migrations.runner import MigrationRunner, PsycopgMigrationRunner

# Report
from db_drift.report import print_summary, write_report

# Schema
from db_drift.schema.comparator import detect_drift
from db_drift.schema.introspector import SchemaIntrospector
from db_drift.schema.models import DriftReport, Issue, IssueCategory, SchemaSnapshot, Severity
from db_drift.schema.registry import ModelRegistry
from db_drift.schema.types import normalize_type

__all__ = [
    # Config
    "load_config",
    "DatabaseProfile",
    "DriftConfig",
    "DriftSettings",
    # Errors
    "DriftError",
    "ConfigurationError",
    "ProfileNotFoundError",
    "DatabaseConnectionError",
    "QueryError",
    "MigrationApplyError",
    # Factory
    "build_orchestrator",
    "resolve_database_url",
    "resolve_url",
    # Migrations
    "MigrationOrchestrator",
    "PipelineResult",
    "PipelineState",
    "MigrationRunner",
    "PsycopgMigrationRunner",
    # Report
    "write_report",
    "print_summary",
    # Schema
    "detect_drift",
    "SchemaIntrospector",
    "ModelRegistry",
    "SchemaSnapshot",
    "DriftReport",
    "Issue",
    "IssueCategory",
    "Severity",
    "normalize_type",
]
