"""Tests for report truncation and markdown rendering."""

import pytest

from guardrails.checker import CheckRunResult, RuleError, Severity, Violation
from guardrails.review.formatter import (
    FAILED,
    PASSED,
    omission_marker,
    render_check_results,
    render_error,
    render_review,
    render_static_analysis,
    truncate_output,
)
from guardrails.review.models import (
    BatchReviewResult,
    FileReviewResult,
    LintIssue,
    StaticAnalysisResult,
    ToolReport,
)


def _numbered_lines(count: int) -> str:
    return "".join(f"L{i}\n" for i in range(count))


class TestTruncateOutput:
    """Tests for head/tail truncation."""

    def test_within_budget_is_unchanged(self):
        text = "short\ntext\n"

        assert truncate_output(text, 100) == text

    def test_long_text(self):
        """Test a 10000-line text bounded to 100 characters."""
        text = _numbered_lines(10_000)

        result = truncate_output(text, 100)

        assert len(result) <= 100
        assert result.startswith("L0\n")
        assert result.endswith("L9999\n")
        assert "K chars omitted" in result

    @pytest.mark.parametrize("budget", [40, 50, 80, 100, 257, 1000, 5000])
    @pytest.mark.parametrize("line_width", [1, 7, 30, 200])
    def test_length_bound_and_whole_lines(self, budget, line_width):
        """Test that output fits the budget and every kept line is whole."""
        lines = [f"{i:04d}" + "x" * line_width for i in range(500)]
        text = "\n".join(lines) + "\n"

        result = truncate_output(text, budget)

        assert len(result) <= budget
        kept = set(lines)
        for line in result.splitlines():
            assert line in kept or "chars omitted" in line

    def test_budget_smaller_than_marker(self):
        """Test that even a tiny budget is respected."""
        assert len(truncate_output("x" * 5000, 10)) == 10

    def test_tail_gets_most_of_the_budget(self):
        """Test that the tail keeps more text than the head."""
        text = _numbered_lines(5000)

        result = truncate_output(text, 1000, tail_ratio=0.85)
        head, tail = result.split("chars omitted) ...\n")

        assert len(tail) > len(head)

    def test_marker_rounds_half_up(self):
        assert omission_marker(1500) == "... (about 2K chars omitted) ..."
        assert omission_marker(1499) == "... (about 1K chars omitted) ..."

    def test_small_omission_never_reads_zero(self):
        """Test that a few hundred omitted characters are not reported as 0K."""
        assert omission_marker(400) == "... (about 1K chars omitted) ..."
        text = "".join(f"line {i:03d}\n" for i in range(120))

        result = truncate_output(text, len(text) - 100)

        assert "about 1K chars omitted" in result
        assert len(result) <= len(text) - 100


class TestRendering:
    """Tests for markdown reports."""

    def test_render_error(self):
        report = render_error("Static analysis", "Workspace directory not found")

        assert report.startswith("# Static analysis")
        assert FAILED in report
        assert "Workspace directory not found" in report

    def test_render_check_results(self):
        """Test that violations, rule errors and their metadata are listed."""
        result = CheckRunResult(
            violations=[Violation(
                file="/repo/server/src/user.entity.ts",
                line=1,
                column=1,
                message='Import "zod" is not allowed',
                rule_id="server/domain-model/no-external-imports",
                severity=Severity.ERROR,
                what="Domain models import only from @/domain/ and @/util/",
            )],
            errors=[RuleError("server/use-case/crash", "/repo/server/src/a.ts", "ValueError: boom")],
            files_checked=2,
        )

        report = render_check_results(result, ["/repo/server/src"])

        assert FAILED in report
        assert "/repo/server/src/user.entity.ts:1:1" in report
        assert "What: Domain models import only" in report
        assert "ValueError: boom" in report

    def test_render_clean_check_results(self):
        report = render_check_results(CheckRunResult(files_checked=3), ["/repo/web/src"])

        assert PASSED in report
        assert "No violations found." in report

    def test_render_static_analysis_hides_output_when_passed(self):
        """Test that raw tool output is only shown for failed tools."""
        result = StaticAnalysisResult(
            workspace="web",
            target_directories=["/repo/web/src"],
            lint=ToolReport(
                tool="eslint",
                passed=True,
                issues=[LintIssue("/repo/web/src/a.tsx", 1, 1, "no-console", "warning", "Unexpected console")],
                output="RAW ESLINT OUTPUT",
            ),
        )

        report = render_static_analysis(result)

        assert "1 errors" not in report
        assert "0 errors, 1 warnings" in report
        assert "RAW ESLINT OUTPUT" not in report

    def test_render_review(self):
        """Test that each file gets its own section with review or error."""
        batch = BatchReviewResult(policy_id="web/test-strategy", results=[
            FileReviewResult("/repo/web/src/A.ct.test.tsx", ["10-test-strategy-overview.md"], "### Summary\nFine.", True),
            FileReviewResult("/repo/web/src/B.ct.test.tsx", error="Review timed out after 180s"),
        ])

        report = render_review(batch)

        assert "- Total files: 2" in report
        assert "- Failed: 1" in report
        assert "## A.ct.test.tsx" in report
        assert "Fine." in report
        assert "Review timed out after 180s" in report
