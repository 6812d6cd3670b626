"""Tests for the drift-gated migration pipeline.

The runner and introspection are fakes; the registry is real.  Verifies the
state transitions, the pass/fail gate and exit code mapping.
"""

import io
import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from rich.console import Console

from db_drift.errors import DatabaseConnectionError, MigrationApplyError, QueryError
from db_drift.migrations.orchestrator import (
    MigrationOrchestrator,
    PipelineResult,
    PipelineState,
)
from db_drift.migrations.runner import MigrationStatus
from db_drift.schema.models import ColumnDef, SchemaSnapshot, Severity, TableDef
from db_drift.schema.registry import ModelRegistry
from db_drift.schema.severity import severity_table
from db_drift.schema.types import normalize_type


REGISTRY = ModelRegistry.from_dict(
    {
        "tables": {
            "users": {
                "columns": {
                    "id": {"type": "uuid", "nullable": False},
                    "email": {"type": "text", "nullable": False},
                }
            }
        }
    }
)


def _live(*tables: str, with_email: bool = True) -> SchemaSnapshot:
    result = {}
    for name in tables:
        columns = {"id": ColumnDef(name="id", data_type=normalize_type("uuid"), nullable=False)}
        if with_email:
            columns["email"] = ColumnDef(
                name="email", data_type=normalize_type("varchar"), nullable=False
            )
        result[name] = TableDef(name=name, columns=columns)
    return SchemaSnapshot(tables=result)


class _FakeRunner:
    def __init__(self, applied: list[str] | None = None, error: Exception | None = None) -> None:
        self.apply_pending = AsyncMock(return_value=applied or [], side_effect=error)
        self.list_pending = AsyncMock(return_value=[])
        self.status = AsyncMock(return_value=[])


def _orchestrator(
    tmp_path: Path,
    live: SchemaSnapshot | None = None,
    runner: _FakeRunner | None = None,
    introspect: AsyncMock | None = None,
    **kwargs,
) -> MigrationOrchestrator:
    return MigrationOrchestrator(
        runner=runner or _FakeRunner(),
        introspect=introspect if introspect is not None else AsyncMock(
            return_value=live if live is not None else _live("users")
        ),
        registry=REGISTRY,
        migrations_dir=tmp_path / "migrations",
        report_path=tmp_path / "schema-drift-report.json",
        **kwargs,
    )


# ============================================================================
# Test: Gate
# ============================================================================


class TestGate:
    """passed iff there are no error-severity issues."""

    @pytest.mark.asyncio
    async def test_clean_schema_passes(self, tmp_path: Path) -> None:
        result = await _orchestrator(tmp_path).run()

        assert result.state is PipelineState.PASSED
        assert result.exit_code == 0
        assert result.transitions == [
            PipelineState.IDLE,
            PipelineState.GENERATING,
            PipelineState.APPLYING,
            PipelineState.VALIDATING,
            PipelineState.PASSED,
        ]

    @pytest.mark.asyncio
    async def test_missing_table_fails(self, tmp_path: Path) -> None:
        result = await _orchestrator(tmp_path, live=SchemaSnapshot()).run()

        assert result.state is PipelineState.FAILED
        assert result.exit_code == 1
        assert result.error is None
        assert result.report.summary.by_severity[Severity.ERROR] == 1

    @pytest.mark.asyncio
    async def test_warnings_and_info_pass(self, tmp_path: Path) -> None:
        """Orphaned tables (warning) do not fail the gate."""
        result = await _orchestrator(tmp_path, live=_live("users", "legacy")).run()

        assert result.state is PipelineState.PASSED
        assert result.report.summary.total_issues == 1

    @pytest.mark.asyncio
    async def test_severity_override_can_fail_gate(self, tmp_path: Path) -> None:
        orchestrator = _orchestrator(
            tmp_path,
            live=_live("users", "legacy"),
            severities=severity_table({"orphaned_table": "error"}),
        )

        result = await orchestrator.run()

        assert result.exit_code == 1

    @pytest.mark.asyncio
    async def test_missing_column_fails(self, tmp_path: Path) -> None:
        result = await _orchestrator(tmp_path, live=_live("users", with_email=False)).run()

        assert result.exit_code == 1


# ============================================================================
# Test: Stages
# ============================================================================


class TestStages:
    """Generating, applying and validating."""

    @pytest.mark.asyncio
    async def test_without_name_generates_nothing(self, tmp_path: Path) -> None:
        result = await _orchestrator(tmp_path).run()

        assert result.scaffold is None
        assert not (tmp_path / "migrations").exists()

    @pytest.mark.asyncio
    async def test_with_name_creates_scaffold(self, tmp_path: Path) -> None:
        result = await _orchestrator(tmp_path).run(scaffold_name="add trip status")

        up_path, down_path = result.scaffold
        assert up_path.name.endswith("_add_trip_status.up.sql")
        assert down_path.exists()

    @pytest.mark.asyncio
    async def test_applied_migrations_recorded(self, tmp_path: Path) -> None:
        runner = _FakeRunner(applied=["20260101000000_a.up.sql"])

        result = await _orchestrator(tmp_path, runner=runner).run()

        runner.apply_pending.assert_awaited_once()
        assert result.applied == ["20260101000000_a.up.sql"]

    @pytest.mark.asyncio
    async def test_validation_after_apply(self, tmp_path: Path) -> None:
        """Introspection happens after migrations are applied."""
        calls: list[str] = []
        runner = _FakeRunner()
        runner.apply_pending.side_effect = lambda: calls.append("apply") or []

        async def introspect() -> SchemaSnapshot:
            calls.append("introspect")
            return _live("users")

        orchestrator = MigrationOrchestrator(
            runner=runner,
            introspect=introspect,
            registry=REGISTRY,
            migrations_dir=tmp_path / "migrations",
            report_path=tmp_path / "report.json",
        )

        await orchestrator.run()

        assert calls == ["apply", "introspect"]

    @pytest.mark.asyncio
    async def test_report_written(self, tmp_path: Path) -> None:
        await _orchestrator(tmp_path, live=SchemaSnapshot()).run()

        data = json.loads((tmp_path / "schema-drift-report.json").read_text())
        assert data["summary"]["by_severity"]["error"] == 1

    @pytest.mark.asyncio
    async def test_summary_printed_to_console(self, tmp_path: Path) -> None:
        console = Console(file=io.StringIO(), width=120, color_system=None)

        await _orchestrator(tmp_path, live=SchemaSnapshot(), console=console).run()

        assert "Table users exists in models but not in database" in console.file.getvalue()

    @pytest.mark.asyncio
    async def test_validate_only(self, tmp_path: Path) -> None:
        runner = _FakeRunner()

        result = await _orchestrator(tmp_path, runner=runner).validate()

        runner.apply_pending.assert_not_awaited()
        assert result.transitions == [
            PipelineState.IDLE,
            PipelineState.VALIDATING,
            PipelineState.PASSED,
        ]

    @pytest.mark.asyncio
    async def test_status_delegates(self, tmp_path: Path) -> None:
        runner = _FakeRunner()
        runner.status.return_value = [
            MigrationStatus(version="20260101000000", name="a", filename="20260101000000_a.up.sql")
        ]

        statuses = await _orchestrator(tmp_path, runner=runner).status()

        assert statuses[0].name == "a"

    def test_generate(self, tmp_path: Path) -> None:
        up_path, _ = _orchestrator(tmp_path).generate("create users")
        assert up_path.parent == tmp_path / "migrations"


# ============================================================================
# Test: Operational errors
# ============================================================================


class TestOperationalErrors:
    """Operational failures abort with exit code 2."""

    @pytest.mark.asyncio
    async def test_migration_failure(self, tmp_path: Path) -> None:
        error = MigrationApplyError(
            "20260102000000_b.up.sql", "syntax error", applied=["20260101000000_a.up.sql"]
        )
        introspect = AsyncMock()
        orchestrator = _orchestrator(tmp_path, runner=_FakeRunner(error=error), introspect=introspect)

        result = await orchestrator.run()

        assert result.state is PipelineState.FAILED
        assert result.exit_code == 2
        assert result.applied == ["20260101000000_a.up.sql"]
        assert "20260102000000_b.up.sql" in result.error
        assert result.transitions[-2:] == [PipelineState.APPLYING, PipelineState.FAILED]
        introspect.assert_not_awaited()
        assert not (tmp_path / "schema-drift-report.json").exists()

    @pytest.mark.parametrize(
        "error",
        [
            DatabaseConnectionError("connection refused"),
            QueryError("columns", "canceling statement due to statement timeout"),
        ],
    )
    @pytest.mark.asyncio
    async def test_introspection_failure(self, tmp_path: Path, error: Exception) -> None:
        introspect = AsyncMock(side_effect=error)

        result = await _orchestrator(tmp_path, introspect=introspect).run()

        assert result.exit_code == 2
        assert result.report is None
        assert result.transitions[-2:] == [PipelineState.VALIDATING, PipelineState.FAILED]

    @pytest.mark.asyncio
    async def test_missing_migrations_directory(self, tmp_path: Path) -> None:
        runner = _FakeRunner(error=FileNotFoundError("Migrations directory not found"))

        result = await _orchestrator(tmp_path, runner=runner).run()

        assert result.exit_code == 2


class TestPipelineResult:
    """Exit code mapping."""

    def test_exit_codes(self) -> None:
        assert PipelineResult(state=PipelineState.PASSED).exit_code == 0
        assert PipelineResult(state=PipelineState.FAILED).exit_code == 1
        assert PipelineResult(state=PipelineState.FAILED, error="boom").exit_code == 2
