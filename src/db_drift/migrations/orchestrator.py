"""Migration pipeline: generate -> apply -> validate -> pass/fail gate.

``MigrationOrchestrator`` sequences the pipeline stages and turns the
outcome into an exit code:

    idle -> generating -> applying -> validating -> passed | failed

- ``passed`` (exit 0): no error-severity drift after migrations.
- ``failed`` (exit 1): error-severity drift remains.
- ``failed`` (exit 2): an operational error aborted the run (connection,
  catalog query, migration apply, configuration).

The database is reached only through the injected runner and introspect
callable, so the pipeline can be driven without a live database.

Usage:
    from db_drift.migrations.orchestrator import MigrationOrchestrator

    orchestrator = MigrationOrchestrator(runner, introspect, registry)
    result = await orchestrator.run()
    sys.exit(result.exit_code)
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console

from db_drift.errors import DriftError, MigrationApplyError
from db_drift.migrations.files import generate_scaffold
from db_drift.migrations.runner import MigrationRunner, MigrationStatus
from db_drift.report import DEFAULT_REPORT_PATH, print_summary, write_report
from db_drift.schema.comparator import DEFAULT_EXCLUDED_PREFIXES, detect_drift
from db_drift.schema.models import (
    DriftReport,
    EnvironmentInfo,
    IssueCategory,
    SchemaSnapshot,
    Severity,
)
from db_drift.schema.registry import ModelRegistry
from db_drift.schema.severity import DEFAULT_SEVERITIES

logger = logging.getLogger(__name__)

EXIT_PASSED = 0
EXIT_VALIDATION_FAILED = 1
EXIT_OPERATIONAL_ERROR = 2

# Failures that abort the run with exit code 2.  OSError and ValueError
# cover unreadable migration directories and invalid model descriptions.
OPERATIONAL_ERRORS: tuple[type[Exception], ...] = (DriftError, OSError, ValueError)

_LOG_LEVELS: dict[Severity, int] = {
    Severity.ERROR: logging.ERROR,
    Severity.WARNING: logging.WARNING,
    Severity.INFO: logging.INFO,
}


class PipelineState(StrEnum):
    IDLE = "idle"
    GENERATING = "generating"
    APPLYING = "applying"
    VALIDATING = "validating"
    PASSED = "passed"
    FAILED = "failed"


class PipelineResult(BaseModel):
    """Outcome of one pipeline run.

    Attributes:
        state: Terminal state (``passed`` or ``failed``).
        transitions: Every state entered, in order, starting at ``idle``.
        scaffold: Up/down paths created in ``generating``, if any.
        applied: Migration filenames applied in ``applying``.
        report: Drift report from ``validating`` (None if never reached).
        error: Message of the operational error that aborted the run.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: PipelineState = PipelineState.IDLE
    transitions: list[PipelineState] = Field(default_factory=lambda: [PipelineState.IDLE])
    scaffold: tuple[Path, Path] | None = None
    applied: list[str] = Field(default_factory=list)
    report: DriftReport | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.state is PipelineState.PASSED:
            return EXIT_PASSED
        if self.error is not None:
            return EXIT_OPERATIONAL_ERROR
        return EXIT_VALIDATION_FAILED


class MigrationOrchestrator:
    """Drives the migration pipeline and gates it on schema drift.

    Args:
        runner: Migration runner (``MigrationRunner`` protocol).
        introspect: Zero-argument coroutine factory returning the live
            ``SchemaSnapshot``; opens and closes its own connections.
        registry: Declared models.
        severities: Category -> severity table (see ``severity_table()``).
        migrations_dir: Where ``generating`` writes scaffolds.
        report_path: Fixed location of the JSON report (overwritten).
        environment: Metadata recorded in the report.
        console: Console for the summary; None prints nothing.
        excluded_prefixes: Live table prefixes never reported as orphaned.
    """

    def __init__(
        self,
        runner: MigrationRunner,
        introspect: Callable[[], Awaitable[SchemaSnapshot]],
        registry: ModelRegistry,
        severities: Mapping[IssueCategory, Severity] | None = None,
        migrations_dir: Path = Path("migrations"),
        report_path: Path = DEFAULT_REPORT_PATH,
        environment: EnvironmentInfo | None = None,
        console: Console | None = None,
        excluded_prefixes: tuple[str, ...] = DEFAULT_EXCLUDED_PREFIXES,
    ) -> None:
        self._runner = runner
        self._introspect = introspect
        self._registry = registry
        self._severities = severities or DEFAULT_SEVERITIES
        self._migrations_dir = Path(migrations_dir)
        self._report_path = Path(report_path)
        self._environment = environment or EnvironmentInfo()
        self._console = console
        self._excluded_prefixes = excluded_prefixes

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def run(self, scaffold_name: str | None = None) -> PipelineResult:
        """Run the full pipeline.

        Args:
            scaffold_name: If given, an empty up/down migration pair is
                created before applying; it stays pending until SQL is
                written into it.  Without it ``generating`` is a
                pass-through.

        Returns:
            PipelineResult in state ``passed`` or ``failed``.
        """
        result = PipelineResult()
        try:
            self._enter(result, PipelineState.GENERATING)
            if scaffold_name is not None:
                result.scaffold = generate_scaffold(self._migrations_dir, scaffold_name)

            self._enter(result, PipelineState.APPLYING)
            result.applied = await self._runner.apply_pending()

            self._enter(result, PipelineState.VALIDATING)
            report = await self._build_report()
        except MigrationApplyError as e:
            result.applied = list(e.applied)
            return self._abort(result, e)
        except OPERATIONAL_ERRORS as e:
            return self._abort(result, e)

        return self._gate(result, report)

    async def validate(self) -> PipelineResult:
        """Run only the validation step (no generation, no migrations)."""
        result = PipelineResult()
        try:
            self._enter(result, PipelineState.VALIDATING)
            report = await self._build_report()
        except OPERATIONAL_ERRORS as e:
            return self._abort(result, e)

        return self._gate(result, report)

    async def status(self) -> list[MigrationStatus]:
        return await self._runner.status()

    def generate(self, name: str) -> tuple[Path, Path]:
        """Create an empty up/down migration pair without touching the database."""
        return generate_scaffold(self._migrations_dir, name)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _build_report(self) -> DriftReport:
        live = await self._introspect()
        model = self._registry.snapshot()

        issues = detect_drift(
            live,
            model,
            severities=self._severities,
            excluded_prefixes=self._excluded_prefixes,
        )
        for issue in issues:
            logger.log(_LOG_LEVELS[issue.severity], "%s", issue.message)

        report = DriftReport(issues=issues, environment=self._environment)
        write_report(report, self._report_path)
        if self._console is not None:
            print_summary(report, self._console)
        return report

    def _enter(self, result: PipelineResult, state: PipelineState) -> None:
        logger.debug("Pipeline state: %s -> %s", result.state.value, state.value)
        result.state = state
        result.transitions.append(state)

    def _gate(self, result: PipelineResult, report: DriftReport) -> PipelineResult:
        result.report = report
        if report.passed:
            self._enter(result, PipelineState.PASSED)
        else:
            logger.error(
                "Schema validation failed: %d error-severity issue(s)",
                report.summary.error_count,
            )
            self._enter(result, PipelineState.FAILED)
        return result

    def _abort(self, result: PipelineResult, error: Exception) -> PipelineResult:
        logger.error("Pipeline aborted in %s: %s", result.state.value, error)
        result.error = str(error)
        self._enter(result, PipelineState.FAILED)
        return result
