"""Migration discovery, application and the drift-gated pipeline.

Usage:
    >>> from db_drift.migrations import MigrationOrchestrator, PsycopgMigrationRunner
"""

from db_drift.migrations.files import Migration, discover_migrations, generate_scaffold
from db_drift.migrations.orchestrator import (
    MigrationOrchestrator,
    PipelineResult,
    PipelineState,
)
from db_drift.migrations.runner import (
    MigrationRunner,
    MigrationStatus,
    PsycopgMigrationRunner,
)

__all__ = [
    "Migration",
    "discover_migrations",
    "generate_scaffold",
    "MigrationOrchestrator",
    "PipelineResult",
    "PipelineState",
    "MigrationRunner",
    "MigrationStatus",
    "PsycopgMigrationRunner",
]
