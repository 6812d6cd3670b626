"""Tests for severity classification and issue aggregation."""

import pytest

from db_drift.schema.models import Issue, IssueCategory, Severity
from db_drift.schema.severity import (
    DEFAULT_SEVERITIES,
    classify,
    severity_table,
    summarize,
)


def _issue(category: IssueCategory, severity: Severity | None = None) -> Issue:
    return Issue(
        severity=severity or DEFAULT_SEVERITIES[category],
        category=category,
        message=category.value,
    )


class TestClassify:
    """classify() is total over the category enum."""

    def test_every_category_has_default(self) -> None:
        """DEFAULT_SEVERITIES covers the whole taxonomy."""
        assert set(DEFAULT_SEVERITIES) == set(IssueCategory)

    @pytest.mark.parametrize(
        "category, expected",
        [
            (IssueCategory.MISSING_TABLE, Severity.ERROR),
            (IssueCategory.MISSING_COLUMN, Severity.ERROR),
            (IssueCategory.TYPE_MISMATCH, Severity.WARNING),
            (IssueCategory.NULLABILITY_MISMATCH, Severity.WARNING),
            (IssueCategory.MISSING_INDEX, Severity.WARNING),
            (IssueCategory.EXTRA_COLUMN, Severity.INFO),
            (IssueCategory.EXTRA_INDEX, Severity.INFO),
            (IssueCategory.ORPHANED_TABLE, Severity.WARNING),
        ],
    )
    def test_default_mapping(self, category: IssueCategory, expected: Severity) -> None:
        assert classify(category) is expected

    def test_override(self) -> None:
        """Overrides replace the default for the named category only."""
        assert classify(IssueCategory.MISSING_INDEX, {"missing_index": "error"}) is Severity.ERROR
        assert classify(IssueCategory.MISSING_TABLE, {"missing_index": "error"}) is Severity.ERROR
        assert classify(IssueCategory.TYPE_MISMATCH, {"missing_index": "error"}) is Severity.WARNING

    def test_override_does_not_mutate_defaults(self) -> None:
        """Building an override table leaves DEFAULT_SEVERITIES untouched."""
        severity_table({"orphaned_table": "info"})
        assert DEFAULT_SEVERITIES[IssueCategory.ORPHANED_TABLE] is Severity.WARNING

    def test_unknown_category_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown issue category 'stale_view'"):
            severity_table({"stale_view": "info"})

    def test_unknown_severity_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown severity 'fatal'"):
            severity_table({"missing_table": "fatal"})


class TestSummarize:
    """summarize() is a pure, consistent fold."""

    def test_empty(self) -> None:
        """No issues: zero totals, every severity present."""
        summary = summarize([])
        assert summary.total_issues == 0
        assert summary.by_severity == {Severity.ERROR: 0, Severity.WARNING: 0, Severity.INFO: 0}
        assert summary.by_category == {}

    def test_counts_consistent(self) -> None:
        """Severity counts sum to the total and match the issue list."""
        issues = [
            _issue(IssueCategory.MISSING_TABLE),
            _issue(IssueCategory.EXTRA_COLUMN),
            _issue(IssueCategory.EXTRA_COLUMN),
            _issue(IssueCategory.TYPE_MISMATCH),
        ]

        summary = summarize(issues)

        assert summary.total_issues == len(issues)
        assert sum(summary.by_severity.values()) == summary.total_issues
        assert summary.by_severity[Severity.ERROR] == 1
        assert summary.by_severity[Severity.WARNING] == 1
        assert summary.by_severity[Severity.INFO] == 2
        assert summary.by_category == {
            IssueCategory.MISSING_TABLE: 1,
            IssueCategory.EXTRA_COLUMN: 2,
            IssueCategory.TYPE_MISMATCH: 1,
        }
        assert summary.error_count == 1

    def test_counts_issue_severity_not_default(self) -> None:
        """Counts follow the severity stamped on each issue."""
        summary = summarize([_issue(IssueCategory.ORPHANED_TABLE, Severity.INFO)])
        assert summary.by_severity[Severity.INFO] == 1
        assert summary.by_severity[Severity.WARNING] == 0

    def test_accepts_generator(self) -> None:
        """Any iterable of issues can be summarized."""
        summary = summarize(_issue(c) for c in (IssueCategory.MISSING_TABLE,) * 3)
        assert summary.total_issues == 3
