"""Operational error taxonomy.

Drift itself is never an exception -- error-severity issues are reported
through the pipeline state and exit code.  These exceptions cover the
operational failures that abort a run.

Usage:
    from db_drift.errors import DatabaseConnectionError, QueryError

    try:
        snapshot = await introspector.introspect()
    except QueryError as e:
        print(f"Catalog query '{e.query_name}' failed")
"""


class DriftError(Exception):
    """Base class for all operational failures."""

    pass


class ConfigurationError(DriftError):
    """Raised when configuration is missing or invalid."""

    pass


class ProfileNotFoundError(ConfigurationError):
    """Raised when a requested database profile is not configured."""

    pass


class DatabaseConnectionError(DriftError, ConnectionError):
    """Raised when the database catalog cannot be reached."""

    pass


class QueryError(DriftError):
    """Raised when a specific catalog query fails.

    Attributes:
        query_name: Name of the failing catalog query (e.g. ``"columns"``).
    """

    def __init__(self, query_name: str, message: str) -> None:
        self.query_name = query_name
        super().__init__(f"Catalog query '{query_name}' failed: {message}")


class MigrationApplyError(DriftError):
    """Raised when a migration's transaction fails.

    Migrations applied before the failing one remain applied.

    Attributes:
        migration: Filename of the migration that failed.
        applied: Filenames applied successfully before the failure.
    """

    def __init__(
        self,
        migration: str,
        message: str,
        applied: list[str] | None = None,
    ) -> None:
        self.migration = migration
        self.applied = list(applied or [])
        super().__init__(f"Migration '{migration}' failed: {message}")
