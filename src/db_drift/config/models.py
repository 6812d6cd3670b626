"""Pydantic models for database profiles and drift settings."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db-drift.toml.

    Either ``url`` or the discrete ``host``/``port``/``user``/``password``/
    ``database`` parameters identify the database.
    """

    url: str | None = None
    host: str | None = None
    port: int = 5432
    user: str | None = None
    password: str | None = None
    database: str | None = None
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    ssl_mode: str | None = None  # Overrides the environment-derived sslmode
    environment: str | None = None  # Overrides APP_ENV for this profile


class DriftSettings(BaseModel):
    """The ``[drift]`` table of db-drift.toml."""

    models: str | None = None  # models.toml / models.json or "package.module:attr"
    migrations_dir: str = "migrations"
    report_path: str = "schema-drift-report.json"
    schema_name: str = Field(default="public", alias="schema")
    excluded_tables: list[str] = Field(
        default_factory=lambda: ["schema_migrations", "pg_stat_statements", "spatial_ref_sys"]
    )
    excluded_prefixes: list[str] = Field(default_factory=lambda: ["pg_", "_"])
    statement_timeout_ms: int = 30_000
    connect_timeout: int = 10
    pool_size: int = 5
    severity: dict[str, str] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class DriftConfig(BaseModel):
    """Complete configuration from db-drift.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    drift: DriftSettings = Field(default_factory=DriftSettings)
