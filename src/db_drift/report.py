"""Drift report persistence and console summary.

``write_report()`` serializes a ``DriftReport`` to JSON at a fixed path,
overwriting the previous run's artifact.  ``print_summary()`` prints counts
and the full details of every error-severity issue with rich.

Usage:
    from rich.console import Console
    from db_drift.report import write_report, print_summary

    path = write_report(report)          # ./schema-drift-report.json
    print_summary(report, Console())
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.pretty import Pretty
from rich.table import Table

from db_drift.schema.models import DriftReport, IssueCategory, Severity

logger = logging.getLogger(__name__)

DEFAULT_REPORT_PATH = Path("schema-drift-report.json")

_SEVERITY_STYLES: dict[Severity, str] = {
    Severity.ERROR: "bold red",
    Severity.WARNING: "yellow",
    Severity.INFO: "cyan",
}


def write_report(report: DriftReport, path: str | Path | None = None) -> Path:
    """Write the report as JSON, replacing any existing report at ``path``.

    Args:
        report: Report to serialize (summary included).
        path: Destination.  Defaults to ``schema-drift-report.json`` in the
            working directory.

    Returns:
        The path written.
    """
    report_path = Path(path) if path is not None else DEFAULT_REPORT_PATH
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(report.model_dump_json(indent=2) + "\n")
    logger.info("Schema drift report written to %s", report_path)
    return report_path


def print_summary(report: DriftReport, console: Console | None = None) -> None:
    """Print a human-readable summary.

    Error-severity issues are printed with their complete ``details``
    payload; nothing is truncated or cropped.
    """
    console = console or Console()
    summary = report.summary

    console.print()
    console.print("[bold]Schema Drift Detection Summary[/bold]")
    console.print(f"Total issues found: [bold]{summary.total_issues}[/bold]")

    severity_table = Table(title="By severity", show_header=True, header_style="bold")
    severity_table.add_column("Severity")
    severity_table.add_column("Count", justify="right")
    for severity in Severity:
        style = _SEVERITY_STYLES[severity]
        severity_table.add_row(
            f"[{style}]{severity.value}[/{style}]",
            str(summary.by_severity.get(severity, 0)),
        )
    console.print(severity_table)

    if summary.by_category:
        category_table = Table(title="By category", show_header=True, header_style="bold")
        category_table.add_column("Category")
        category_table.add_column("Count", justify="right")
        for category in IssueCategory:
            count = summary.by_category.get(category)
            if count:
                category_table.add_row(category.value, str(count))
        console.print(category_table)

    errors = [issue for issue in report.issues if issue.severity is Severity.ERROR]
    if errors:
        console.print()
        console.print(
            "[bold red]Critical issues found that may cause application errors:[/bold red]"
        )
        for number, issue in enumerate(errors, start=1):
            console.print(f"\n{number}. {issue.message}", markup=False, soft_wrap=True)
            if issue.details:
                console.print("   Details:")
                console.print(
                    Pretty(issue.details, expand_all=True, indent_size=4),
                    soft_wrap=True,
                )

    console.print()
    if report.passed:
        console.print("[bold green]v[/bold green] No error-severity drift")
    else:
        console.print(
            f"[bold red]x[/bold red] {summary.error_count} error-severity issue(s)"
        )
