"""Severity classification and issue aggregation.

Pure logic -- no I/O.  ``classify()`` maps every ``IssueCategory`` to a
``Severity`` (with optional per-deployment overrides); ``summarize()`` folds
an issue list into a ``DriftSummary``.

Usage:
    from db_drift.schema.severity import classify, summarize

    severity = classify(IssueCategory.ORPHANED_TABLE, {"orphaned_table": "info"})
    summary = summarize(issues)
"""

from collections.abc import Iterable, Mapping

from db_drift.schema.models import DriftSummary, Issue, IssueCategory, Severity


DEFAULT_SEVERITIES: dict[IssueCategory, Severity] = {
    IssueCategory.MISSING_TABLE: Severity.ERROR,
    IssueCategory.MISSING_COLUMN: Severity.ERROR,
    IssueCategory.TYPE_MISMATCH: Severity.WARNING,
    IssueCategory.NULLABILITY_MISMATCH: Severity.WARNING,
    IssueCategory.MISSING_INDEX: Severity.WARNING,
    IssueCategory.EXTRA_COLUMN: Severity.INFO,
    IssueCategory.EXTRA_INDEX: Severity.INFO,
    IssueCategory.ORPHANED_TABLE: Severity.WARNING,
}


def severity_table(
    overrides: Mapping[str, str] | None = None,
) -> dict[IssueCategory, Severity]:
    """Build the full category -> severity table with overrides applied.

    Args:
        overrides: Mapping of category name to severity name, e.g. from the
            ``[drift.severity]`` config table.

    Returns:
        A table covering every category.

    Raises:
        ValueError: If an override names an unknown category or severity.

    Example:
        >>> severity_table({"orphaned_table": "info"})[IssueCategory.ORPHANED_TABLE]
        <Severity.INFO: 'info'>
    """
    table = dict(DEFAULT_SEVERITIES)
    for category_name, severity_name in (overrides or {}).items():
        try:
            category = IssueCategory(category_name)
        except ValueError:
            valid = ", ".join(c.value for c in IssueCategory)
            raise ValueError(
                f"Unknown issue category '{category_name}'. Valid: {valid}"
            ) from None
        try:
            table[category] = Severity(severity_name)
        except ValueError:
            valid = ", ".join(s.value for s in Severity)
            raise ValueError(
                f"Unknown severity '{severity_name}' for '{category_name}'. "
                f"Valid: {valid}"
            ) from None
    return table


def classify(
    category: IssueCategory,
    overrides: Mapping[str, str] | None = None,
) -> Severity:
    """Return the severity for ``category``."""
    return severity_table(overrides)[category]


def summarize(issues: Iterable[Issue]) -> DriftSummary:
    """Fold issues into severity and category counts.

    Every severity is present in ``by_severity`` (zero-filled);
    ``by_category`` only lists categories that occurred, in first-seen order.

    Example:
        >>> summarize([]).total_issues
        0
    """
    by_severity: dict[Severity, int] = {severity: 0 for severity in Severity}
    by_category: dict[IssueCategory, int] = {}
    total = 0

    for issue in issues:
        total += 1
        by_severity[issue.severity] += 1
        by_category[issue.category] = by_category.get(issue.category, 0) + 1

    return DriftSummary(
        total_issues=total,
        by_severity=by_severity,
        by_category=by_category,
    )
