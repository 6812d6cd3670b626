"""CLI for schema drift detection and drift-gated migrations.

Usage:
    db-drift detect
    db-drift --profile ci migrate
    db-drift migrate --generate "add trip status"
    db-drift generate "add trip status"
    db-drift status
    db-drift profiles
    DATABASE_URL=postgresql://... db-drift --models app.models:Base detect

Commands:
    detect    - Compare the live schema with the models and write the report
    migrate   - Apply pending migrations, then validate (pipeline gate)
    generate  - Create an empty up/down migration pair
    status    - List applied and pending migrations
    profiles  - List configured database profiles

Exit codes:
    0 - no error-severity drift
    1 - error-severity drift remains
    2 - operational or configuration error
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from db_drift.config.loader import load_config
from db_drift.config.models import DriftConfig
from db_drift.errors import ConfigurationError, DriftError
from db_drift.factory import (
    build_orchestrator,
    get_active_profile_name,
    resolve_database_url,
)
from db_drift.migrations.files import generate_scaffold
from db_drift.migrations.orchestrator import (
    EXIT_OPERATIONAL_ERROR,
    PipelineResult,
    PipelineState,
)
from db_drift.migrations.runner import PsycopgMigrationRunner

console = Console()


def _configure_logging(verbosity: int) -> None:
    """Route logging through rich: WARNING, INFO with -v, DEBUG with -vv."""
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load(args: argparse.Namespace) -> DriftConfig:
    """Load db-drift.toml; optional unless ``--config`` names a file."""
    config_path = Path(args.config) if args.config else None
    return load_config(config_path, required=config_path is not None)


def _print_error(error: Exception) -> int:
    console.print(f"[bold red]x[/bold red] {error}", soft_wrap=True)
    return EXIT_OPERATIONAL_ERROR


def _print_result(result: PipelineResult) -> int:
    """Print the pipeline outcome and return its exit code."""
    if result.applied:
        console.print(f"Applied {len(result.applied)} migration(s):")
        for filename in result.applied:
            console.print(f"  [green]+[/green] {filename}")

    if result.state is PipelineState.PASSED:
        console.print("[bold green]Schema validation PASSED[/bold green]")
    elif result.error is not None:
        console.print()
        console.print(
            f"[bold red]x[/bold red] Aborted during {result.transitions[-2].value}: "
            f"{result.error}",
            soft_wrap=True,
        )
    else:
        console.print("[bold red]Schema validation FAILED[/bold red]")

    return result.exit_code


# ============================================================================
# Async implementations
# ============================================================================


async def _async_detect(args: argparse.Namespace) -> int:
    """Async implementation for detect command.

    Returns:
        0 passed, 1 error-severity drift, 2 operational error.
    """
    try:
        orchestrator = build_orchestrator(
            _load(args),
            profile_name=args.profile,
            env_prefix=args.env_prefix,
            models=args.models,
            report_path=args.report,
            console=console,
        )
    except (DriftError, FileNotFoundError) as e:
        return _print_error(e)

    console.print("Detecting schema drift...", style="dim")
    result = await orchestrator.validate()
    return _print_result(result)


async def _async_migrate(args: argparse.Namespace) -> int:
    """Async implementation for migrate command.

    Returns:
        0 passed, 1 error-severity drift, 2 operational error.
    """
    try:
        orchestrator = build_orchestrator(
            _load(args),
            profile_name=args.profile,
            env_prefix=args.env_prefix,
            models=args.models,
            report_path=args.report,
            console=console,
        )
    except (DriftError, FileNotFoundError) as e:
        return _print_error(e)

    console.print("Running migration pipeline...", style="dim")
    result = await orchestrator.run(scaffold_name=args.generate)
    if result.scaffold is not None:
        up_path, down_path = result.scaffold
        console.print(f"Created [cyan]{up_path}[/cyan] and [cyan]{down_path}[/cyan]")
    return _print_result(result)


async def _async_status(args: argparse.Namespace) -> int:
    """Async implementation for status command.

    Returns:
        0 on success, 2 on operational error.
    """
    try:
        config = _load(args)
        url, env_name = resolve_database_url(
            config, profile_name=args.profile, env_prefix=args.env_prefix
        )
        runner = PsycopgMigrationRunner(
            url,
            Path(config.drift.migrations_dir),
            connect_timeout=config.drift.connect_timeout,
        )
        statuses = await runner.status()
    except (DriftError, OSError, ValueError) as e:
        return _print_error(e)

    table = Table(title=f"Migrations ({env_name})", show_header=True, header_style="bold")
    table.add_column("Version")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Applied at", style="dim")

    for status in statuses:
        table.add_row(
            status.version,
            status.name,
            "[green]applied[/green]" if status.applied else "[yellow]pending[/yellow]",
            status.applied_at.isoformat(timespec="seconds") if status.applied_at else "",
        )

    console.print(table)
    pending = sum(1 for s in statuses if not s.applied)
    console.print(f"{len(statuses)} migration(s), {pending} pending")
    return 0


# ============================================================================
# Command handlers
# ============================================================================


def cmd_detect(args: argparse.Namespace) -> int:
    """Detect drift and write the report.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_detect(args))


def cmd_migrate(args: argparse.Namespace) -> int:
    """Run the generate -> apply -> validate pipeline.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_migrate(args))


def cmd_generate(args: argparse.Namespace) -> int:
    """Create an empty up/down migration pair.

    Reads only local config -- no database calls.

    Returns:
        0 on success, 2 on error.
    """
    try:
        config = _load(args)
        up_path, down_path = generate_scaffold(
            Path(config.drift.migrations_dir), args.name
        )
    except (ConfigurationError, OSError, ValueError) as e:
        return _print_error(e)

    console.print("[bold green]v[/bold green] Created migration scaffold:")
    console.print(f"  {up_path}")
    console.print(f"  {down_path}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """List applied and pending migrations.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_status(args))


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db-drift.toml.

    Reads only local TOML config -- no database calls.

    Returns:
        0 on success, 2 if db-drift.toml is missing or invalid.
    """
    try:
        config_path = Path(args.config) if args.config else None
        config = load_config(config_path)
    except (ConfigurationError, FileNotFoundError) as e:
        return _print_error(e)

    current = args.profile or get_active_profile_name(args.env_prefix)

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Environment")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.environment or "",
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = selected profile")

    return 0


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="db-drift",
        description="Schema drift detection and drift-gated migrations",
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to db-drift.toml (default: ./db-drift.toml if present)",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DATABASE_URL)"
        ),
    )
    parser.add_argument(
        "--profile",
        default=None,
        help="Database profile from db-drift.toml (overrides DB_PROFILE)",
    )
    parser.add_argument(
        "--models",
        default=None,
        help="Model file (.toml/.json) or import path 'package.module:attr'",
    )
    parser.add_argument(
        "--report",
        default=None,
        help="Report path (default: schema-drift-report.json)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log output (-v info, -vv debug)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # detect command
    p_detect = subparsers.add_parser(
        "detect",
        help="Compare the live schema with the models and write the report",
    )
    p_detect.set_defaults(func=cmd_detect)

    # migrate command
    p_migrate = subparsers.add_parser(
        "migrate",
        help="Apply pending migrations, then validate the schema",
    )
    p_migrate.add_argument(
        "--generate",
        metavar="NAME",
        default=None,
        help="Create an empty migration pair before applying",
    )
    p_migrate.set_defaults(func=cmd_migrate)

    # generate command
    p_generate = subparsers.add_parser(
        "generate",
        help="Create an empty up/down migration pair",
    )
    p_generate.add_argument("name", help="Migration name, e.g. 'add trip status'")
    p_generate.set_defaults(func=cmd_generate)

    # status command
    p_status = subparsers.add_parser(
        "status",
        help="List applied and pending migrations",
    )
    p_status.set_defaults(func=cmd_status)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 passed, 1 validation failure, 2 operational error).
    """
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
