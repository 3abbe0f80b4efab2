"""Markdown rendering and length-bounded truncation of reports.

Diagnostic tools put their actionable summary at the end of their output, so
truncation keeps a short head and a long tail and never cuts a line in half.
"""

import math
from pathlib import Path
from typing import Iterable, Sequence

from guardrails.checker.loader import RuleLoadResult
from guardrails.checker.runner import CheckRunResult
from guardrails.policy.documents import ScannedPolicy
from guardrails.policy.scanner import WorkspaceInfo
from guardrails.review.models import (
    BatchReviewResult,
    InfraAnalysisResult,
    StaticAnalysisResult,
    ToolReport,
    UnusedExportsResult,
)

MAX_OUTPUT_CHARS = 20_000
TAIL_RATIO = 0.85

PASSED = "✅ Passed"
FAILED = "❌ Failed"


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def omission_marker(omitted_chars: int) -> str:
    return f"... (about {max(1, _round_half_up(omitted_chars / 1000))}K chars omitted) ..."


def truncate_output(text: str, max_chars: int = MAX_OUTPUT_CHARS, tail_ratio: float = TAIL_RATIO) -> str:
    """Bound ``text`` to ``max_chars`` keeping its head and, mostly, its tail.

    Text within budget is returned unchanged. Otherwise the result is the
    leading whole lines, an omission marker line with the approximate number
    of omitted characters, and the trailing whole lines. The marker's length
    is reserved up front so the result never exceeds ``max_chars``.

    Args:
        text: Text to bound
        max_chars: Maximum length of the result
        tail_ratio: Share of the budget given to the tail

    Returns:
        Text of at most ``max_chars`` characters
    """
    if len(text) <= max_chars:
        return text

    # Omitted count never exceeds len(text), so this is the longest marker
    reserved = len(omission_marker(len(text))) + 1
    budget = max_chars - reserved
    if budget <= 0:
        return omission_marker(len(text))[:max_chars]

    tail_chars = math.floor(budget * tail_ratio)
    head_chars = budget - tail_chars

    head = text[:head_chars]
    if not head.endswith("\n"):
        head = head[:head.rfind("\n") + 1]

    tail = text[len(text) - tail_chars:] if tail_chars else ""
    if tail and text[len(text) - tail_chars - 1] != "\n":
        newline = tail.find("\n")
        tail = tail[newline + 1:] if newline >= 0 else ""

    marker = omission_marker(len(text) - len(head) - len(tail))
    if tail:
        return f"{head}{marker}\n{tail}"
    return f"{head}{marker}"


def _status(passed: bool) -> str:
    return PASSED if passed else FAILED


def _code_block(output: str, max_chars: int) -> list[str]:
    return ["```", truncate_output(output.rstrip("\n"), max_chars), "```", ""]


def render_error(title: str, message: str) -> str:
    """Report section for a failure, so even total failure renders."""
    return "\n".join([f"# {title}", "", f"- **Status**: {FAILED}", "", "## Error", "", message, ""])


def _targets(lines: list[str], target_directories: Sequence[str]) -> None:
    lines.append("## Target directories")
    lines.append("")
    if target_directories:
        lines.extend(f"- {d}" for d in target_directories)
    else:
        lines.append("- (all)")
    lines.append("")


# =============================================================================
# Catalogs
# =============================================================================


def render_rule_catalog(workspaces: Iterable[WorkspaceInfo]) -> str:
    lines = ["# Policy rules", ""]
    count = 0
    for workspace in workspaces:
        lines.append(f"## {workspace.workspace}")
        lines.append("")
        for layer in workspace.layers:
            lines.append(f"### {layer.layer}")
            lines.append("")
            for check in layer.checks:
                description = check.description or "(no description)"
                lines.append(f"- `{workspace.workspace}/{layer.layer}/{check.id}`: {description}")
                count += 1
            lines.append("")
    if count == 0:
        lines.append("No rules found.")
        lines.append("")
    return "\n".join(lines)


def render_policy_documents(policies: Iterable[ScannedPolicy]) -> str:
    lines = ["# Policy documents", ""]
    policies = list(policies)
    if not policies:
        lines.append("No policy documents found.")
        lines.append("")
    for policy in policies:
        lines.append(f"## {policy.qualified_id}: {policy.meta.label}")
        lines.append("")
        lines.append(policy.meta.description)
        lines.append("")
        if policy.meta.dependencies:
            lines.append(f"- Depends on: {', '.join(policy.meta.dependencies)}")
        for document in policy.documents():
            lines.append(f"- {document.name}")
        lines.append("")
    return "\n".join(lines)


# =============================================================================
# Analysis reports
# =============================================================================


def render_check_results(
    result: CheckRunResult,
    target_directories: Sequence[str],
    load_result: RuleLoadResult | None = None,
) -> str:
    """Custom (AST rule) static analysis report."""
    load_errors = load_result.errors if load_result else ()
    lines = ["# Custom static analysis", "", "## Summary", ""]
    lines.append(f"- **Status**: {_status(result.success and not load_errors)}")
    if load_result is not None:
        lines.append(f"- Rules loaded: {len(load_result.rules)}")
    lines.append(f"- Files checked: {result.files_checked}")
    lines.append(f"- Violations: {len(result.violations)}")
    if result.errors or load_errors:
        lines.append(f"- Tooling errors: {len(result.errors) + len(load_errors)}")
    lines.append("")
    _targets(lines, target_directories)

    if result.violations:
        lines.append("## Violations")
        lines.append("")
        for v in result.violations:
            lines.append(f"- **{v.file}:{v.line}:{v.column}** [{v.severity.value}] `{v.rule_id}`")
            for message_line in v.message.splitlines():
                lines.append(f"  {message_line}")
            if v.what:
                lines.append(f"  - What: {v.what}")
            if v.why:
                lines.append(f"  - Why: {v.why}")
        lines.append("")
    else:
        lines.append("No violations found.")
        lines.append("")

    if load_errors:
        lines.append("## Rule load errors")
        lines.append("")
        lines.extend(f"- {e}" for e in load_errors)
        lines.append("")

    if result.errors:
        lines.append("## Rule errors")
        lines.append("")
        lines.extend(f"- `{e.rule_id}` on {e.file}: {e.error}" for e in result.errors)
        lines.append("")

    return "\n".join(lines)


def _tool_section(lines: list[str], title: str, report: ToolReport, issue_lines, output_chars: int) -> None:
    lines.append(f"## {title}")
    lines.append("")
    lines.append(f"- **Status**: {_status(report.passed)}")
    lines.append(f"- Issues: {len(report.issues)}")
    lines.append("")
    if report.error:
        lines.append("### Error")
        lines.append("")
        lines.append(report.error)
        lines.append("")
    if report.issues:
        lines.append("### Issues")
        lines.append("")
        lines.extend(issue_lines(issue) for issue in report.issues)
        lines.append("")
    if report.output and not report.passed:
        lines.append("### Output")
        lines.append("")
        lines.extend(_code_block(report.output, output_chars))


def render_static_analysis(result: StaticAnalysisResult, output_chars: int = MAX_OUTPUT_CHARS // 4) -> str:
    lines = [f"# Static analysis ({result.workspace})", "", "## Summary", ""]
    if result.error:
        lines.append(f"- **Status**: {FAILED}")
        lines.append("")
        lines.append("## Error")
        lines.append("")
        lines.append(result.error)
        lines.append("")
        return "\n".join(lines)

    lines.append(f"- **Status**: {_status(result.success)}")
    if result.type_check is not None:
        lines.append(f"- Type check: {_status(result.type_check.passed)} ({len(result.type_check.issues)} issues)")
    if result.lint is not None:
        errors = sum(1 for i in result.lint.issues if i.severity == "error")
        warnings = len(result.lint.issues) - errors
        lines.append(f"- Lint: {_status(result.lint.passed)} ({errors} errors, {warnings} warnings)")
    lines.append("")
    _targets(lines, result.target_directories)

    if result.type_check is not None:
        _tool_section(
            lines, "Type check", result.type_check,
            lambda i: f"- **{i.file}:{i.line}:{i.column}** `{i.code}` {i.message}",
            output_chars,
        )
    if result.lint is not None:
        _tool_section(
            lines, "Lint", result.lint,
            lambda i: f"- **{i.file}:{i.line}:{i.column}** [{i.severity}] `{i.rule_id or '-'}` {i.message}",
            output_chars,
        )
    return "\n".join(lines)


def render_infra_analysis(result: InfraAnalysisResult, output_chars: int = MAX_OUTPUT_CHARS // 4) -> str:
    title = "# Infra static analysis" + (" (deep)" if result.deep_check else "")
    lines = [title, "", "## Summary", ""]
    if result.error:
        lines.append(f"- **Status**: {FAILED}")
        lines.append("")
        lines.append("## Error")
        lines.append("")
        lines.append(result.error)
        lines.append("")
        return "\n".join(lines)

    lines.append(f"- **Status**: {_status(result.success)}")
    for label, report in (("Format", result.format), ("TFLint", result.lint), ("Trivy", result.security)):
        if report is not None:
            lines.append(f"- {label}: {_status(report.passed)} ({len(report.issues)} issues)")
    lines.append("")
    _targets(lines, result.target_directories)

    if result.format is not None:
        _tool_section(
            lines, "Format (terraform fmt)", result.format,
            lambda i: f"- {i.file}: not properly formatted",
            output_chars,
        )
    if result.lint is not None:
        _tool_section(
            lines, "Lint (TFLint)", result.lint,
            lambda i: f"- **{i.file}:{i.line}** [{i.severity}] `{i.rule}` {i.message}",
            output_chars,
        )
    if result.security is not None:
        _tool_section(
            lines, "Security (Trivy)", result.security,
            lambda i: (
                f"- **[{i.severity.value}] {i.id}** {i.title} ({i.file})\n"
                f"  - {i.message}" + (f"\n  - Resolution: {i.resolution}" if i.resolution else "")
            ),
            output_chars,
        )
    return "\n".join(lines)


def render_unused_exports(result: UnusedExportsResult) -> str:
    lines = [f"# Unused exports ({result.workspace})", "", "## Summary", ""]
    lines.append(f"- **Status**: {_status(result.success)}")
    if result.error:
        lines.append("")
        lines.append("## Error")
        lines.append("")
        lines.append(result.error)
        lines.append("")
        return "\n".join(lines)

    lines.append(f"- Unused exports: {len(result.exports)}")
    lines.append("")
    _targets(lines, result.target_directories)

    if result.exports:
        lines.append("## Details")
        lines.append("")
        lines.extend(f"- `{e.name}` at {e.file}:{e.line}:{e.column}" for e in result.exports)
        lines.append("")
    else:
        lines.append("No unused exports found.")
        lines.append("")
    return "\n".join(lines)


def render_review(result: BatchReviewResult) -> str:
    """Qualitative review report, one section per file."""
    summary = result.summary
    lines = [f"# Qualitative review ({result.policy_id})", "", "## Summary", ""]
    lines.append(f"- Total files: {summary.total}")
    lines.append(f"- Successful: {summary.successful}")
    lines.append(f"- Failed: {summary.failed}")
    lines.append("")

    for file_result in result.results:
        lines.append("---")
        lines.append("")
        lines.append(f"## {Path(file_result.file_path).name}")
        lines.append("")
        lines.append(f"- Path: {file_result.file_path}")
        if file_result.applied_policies:
            lines.append(f"- Policies: {', '.join(file_result.applied_policies)}")
        lines.append(f"- **Status**: {_status(file_result.success)}")
        lines.append("")
        if file_result.success:
            lines.append(file_result.review.strip())
        else:
            lines.append("### Error")
            lines.append("")
            lines.append(file_result.error or "Unknown error")
        lines.append("")
    return "\n".join(lines)
