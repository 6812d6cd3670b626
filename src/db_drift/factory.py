"""Wiring from configuration to pipeline components.

Resolves which database to talk to and builds the introspector callable,
migration runner and orchestrator from a ``DriftConfig``.

Database resolution order:
1. Profile named by ``--profile`` or ``{prefix}DB_PROFILE`` (db-drift.toml)
2. ``{prefix}DATABASE_URL``
3. Discrete ``{prefix}DB_HOST`` / ``DB_PORT`` / ``DB_USER`` / ``DB_PASSWORD`` /
   ``DB_NAME``

``{prefix}APP_ENV=production`` (or a profile's ``environment``) adds
``sslmode=require`` unless the URL already sets ``sslmode``; a profile's
``ssl_mode`` always wins.
"""

import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from rich.console import Console

from db_drift.config.models import DatabaseProfile, DriftConfig, DriftSettings
from db_drift.errors import ConfigurationError, ProfileNotFoundError
from db_drift.migrations.orchestrator import MigrationOrchestrator
from db_drift.migrations.runner import PsycopgMigrationRunner
from db_drift.schema.introspector import SchemaIntrospector
from db_drift.schema.models import EnvironmentInfo, SchemaSnapshot
from db_drift.schema.registry import ModelRegistry, load_registry
from db_drift.schema.severity import severity_table

logger = logging.getLogger(__name__)

_PASSWORD_PLACEHOLDER = "[YOUR-PASSWORD]"


# ============================================================================
# Profile Selection
# ============================================================================


def get_active_profile_name(
    env_prefix: str = "",
    environ: Mapping[str, str] | None = None,
) -> str | None:
    """Profile name from ``{env_prefix}DB_PROFILE``, or None if unset."""
    environ = os.environ if environ is None else environ
    return environ.get(f"{env_prefix}DB_PROFILE") or None


def get_profile(config: DriftConfig, profile_name: str) -> DatabaseProfile:
    """Look up a profile by name.

    Raises:
        ProfileNotFoundError: If the profile is not in db-drift.toml.
    """
    if profile_name not in config.profiles:
        available = ", ".join(config.profiles) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in db-drift.toml. "
            f"Available profiles: {available}"
        )
    return config.profiles[profile_name]


# ============================================================================
# URL Resolution
# ============================================================================


def build_url(
    host: str,
    port: int | str = 5432,
    user: str | None = None,
    password: str | None = None,
    database: str | None = None,
) -> str:
    """Assemble a PostgreSQL URL from discrete parameters.

    Example:
        >>> build_url("db", 5432, "app", "p@ss", "app")
        'postgresql://app:p%40ss@db:5432/app'
    """
    auth = ""
    if user:
        auth = quote(user, safe="")
        if password:
            auth += ":" + quote(password, safe="")
        auth += "@"
    return f"postgresql://{auth}{host}:{port}/{database or ''}"


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve a profile's URL.

    Substitutes ``[YOUR-PASSWORD]`` with ``db_password`` (URL-quoted) or
    assembles the URL from discrete parameters.

    Raises:
        ConfigurationError: If the profile has neither ``url`` nor ``host``.
    """
    if profile.url:
        url = profile.url
        if profile.db_password and _PASSWORD_PLACEHOLDER in url:
            url = url.replace(_PASSWORD_PLACEHOLDER, quote(profile.db_password, safe=""))
        return url

    if profile.host:
        return build_url(
            profile.host,
            profile.port,
            profile.user,
            profile.password,
            profile.database,
        )

    raise ConfigurationError("Profile must set either 'url' or 'host'")


def url_from_environment(
    env_prefix: str = "",
    environ: Mapping[str, str] | None = None,
) -> str | None:
    """URL from ``DATABASE_URL`` or discrete ``DB_*`` variables, if set."""
    environ = os.environ if environ is None else environ

    url = environ.get(f"{env_prefix}DATABASE_URL")
    if url:
        return url

    host = environ.get(f"{env_prefix}DB_HOST")
    if not host:
        return None
    return build_url(
        host,
        environ.get(f"{env_prefix}DB_PORT", "5432"),
        environ.get(f"{env_prefix}DB_USER"),
        environ.get(f"{env_prefix}DB_PASSWORD"),
        environ.get(f"{env_prefix}DB_NAME"),
    )


def apply_ssl_mode(url: str, ssl_mode: str | None) -> str:
    """Add ``sslmode`` to the URL's query unless it is already set."""
    if not ssl_mode:
        return url
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    if any(key == "sslmode" for key, _ in query):
        return url
    query.append(("sslmode", ssl_mode))
    return urlunsplit(parts._replace(query=urlencode(query)))


def environment_name(
    profile: DatabaseProfile | None = None,
    env_prefix: str = "",
    environ: Mapping[str, str] | None = None,
) -> str:
    environ = os.environ if environ is None else environ
    if profile is not None and profile.environment:
        return profile.environment
    return environ.get(f"{env_prefix}APP_ENV") or "development"


def resolve_database_url(
    config: DriftConfig,
    profile_name: str | None = None,
    env_prefix: str = "",
    environ: Mapping[str, str] | None = None,
) -> tuple[str, str]:
    """Resolve the database URL and environment name for this run.

    Args:
        config: Loaded configuration (may have no profiles).
        profile_name: Explicit profile (``--profile``).  Falls back to
            ``{env_prefix}DB_PROFILE``.
        env_prefix: Prefix for every environment variable lookup.
        environ: Environment mapping (default: ``os.environ``).

    Returns:
        Tuple of (url, environment name).

    Raises:
        ProfileNotFoundError: If the selected profile does not exist.
        ConfigurationError: If no database is configured at all.
    """
    environ = os.environ if environ is None else environ
    profile_name = profile_name or get_active_profile_name(env_prefix, environ)

    if profile_name:
        profile = get_profile(config, profile_name)
        url = resolve_url(profile)
        env_name = environment_name(profile, env_prefix, environ)
        ssl_mode = profile.ssl_mode
        logger.info("Using database profile '%s' (%s)", profile_name, env_name)
    else:
        url = url_from_environment(env_prefix, environ)
        if url is None:
            available = ", ".join(config.profiles) or "(none)"
            raise ConfigurationError(
                "No database configured. Set "
                f"{env_prefix}DB_PROFILE (profiles: {available}), "
                f"{env_prefix}DATABASE_URL, or {env_prefix}DB_HOST."
            )
        env_name = environment_name(None, env_prefix, environ)
        ssl_mode = None
        logger.info("Using database from environment (%s)", env_name)

    if ssl_mode is None and env_name == "production":
        ssl_mode = "require"
    return apply_ssl_mode(url, ssl_mode), env_name


def environment_info(url: str, name: str) -> EnvironmentInfo:
    """Report metadata for a URL.  Credentials are never included."""
    parts = urlsplit(url)
    return EnvironmentInfo(
        name=name,
        database=parts.path.lstrip("/") or None,
        host=parts.hostname,
        port=parts.port,
    )


# ============================================================================
# Component Builders
# ============================================================================


def build_introspect(
    database_url: str,
    settings: DriftSettings,
) -> Callable[[], Awaitable[SchemaSnapshot]]:
    """Return a coroutine factory that introspects the live schema once.

    Each call opens and closes its own connection pool.
    """

    async def introspect() -> SchemaSnapshot:
        async with SchemaIntrospector(
            database_url,
            excluded_tables=set(settings.excluded_tables),
            excluded_prefixes=tuple(settings.excluded_prefixes),
            pool_size=settings.pool_size,
            connect_timeout=settings.connect_timeout,
            statement_timeout_ms=settings.statement_timeout_ms,
        ) as introspector:
            return await introspector.introspect(settings.schema_name)

    return introspect


def build_registry(models: str | None) -> ModelRegistry:
    """Load the model registry.

    Raises:
        ConfigurationError: If no source is configured or it cannot be loaded.
    """
    if not models:
        raise ConfigurationError(
            "No models configured. Set [drift] models in db-drift.toml or pass --models."
        )
    try:
        return load_registry(models)
    except (FileNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Failed to load models from '{models}': {e}") from e


def build_orchestrator(
    config: DriftConfig,
    profile_name: str | None = None,
    env_prefix: str = "",
    models: str | None = None,
    report_path: str | Path | None = None,
    console: Console | None = None,
    environ: Mapping[str, str] | None = None,
) -> MigrationOrchestrator:
    """Build a ready-to-run orchestrator from configuration.

    Command line values (``models``, ``report_path``) override the
    ``[drift]`` table.

    Raises:
        ConfigurationError: On any unresolvable or invalid setting.
    """
    settings = config.drift
    url, env_name = resolve_database_url(config, profile_name, env_prefix, environ)

    try:
        severities = severity_table(settings.severity)
    except ValueError as e:
        raise ConfigurationError(f"Invalid [drift.severity] table: {e}") from e

    migrations_dir = Path(settings.migrations_dir)
    return MigrationOrchestrator(
        runner=PsycopgMigrationRunner(
            url,
            migrations_dir,
            connect_timeout=settings.connect_timeout,
        ),
        introspect=build_introspect(url, settings),
        registry=build_registry(models or settings.models),
        severities=severities,
        migrations_dir=migrations_dir,
        report_path=Path(report_path or settings.report_path),
        environment=environment_info(url, env_name),
        console=console,
        excluded_prefixes=tuple(settings.excluded_prefixes),
    )
