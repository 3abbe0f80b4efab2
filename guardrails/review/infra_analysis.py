"""Terraform format, lint and security runner.

All three tools run from the terraform root and report paths relative to it;
issues are narrowed to the caller's target directories after parsing.
"""

import json
from pathlib import Path
from typing import Any, Sequence

import structlog

from guardrails.errors import ParseError, ToolInvocationError
from guardrails.review.models import (
    FormatIssue,
    InfraAnalysisResult,
    InfraAnalysisType,
    InfraLintIssue,
    SecurityIssue,
    SecuritySeverity,
    ToolReport,
)
from guardrails.review.paths import is_within, resolve_path
from guardrails.review.process import CommandRunner

logger = structlog.get_logger()

FMT_COMMAND = ("terraform", "fmt", "-check", "-recursive", "-list=true")
TFLINT_INIT_COMMAND = ("tflint", "--init")
TFLINT_COMMAND = ("tflint", "--recursive", "--format=json")
TRIVY_COMMAND = ("trivy", "config", "--format=json", ".")

TFLINT_CONFIG = ".tflint.hcl"
TFLINT_DEEP_CONFIG = ".tflint.deep.hcl"


def _load_json(output: str, tool: str) -> Any:
    if not output.strip():
        raise ParseError(f"{tool} produced no output", tool)
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        raise ParseError(f"{tool} output is not JSON: {e}", tool) from e


def parse_fmt_output(output: str) -> list[FormatIssue]:
    """One unformatted file per line of ``terraform fmt -list=true``."""
    return [FormatIssue(file=line.strip()) for line in output.splitlines() if line.strip()]


def parse_tflint_output(output: str) -> tuple[list[InfraLintIssue], list[str]]:
    """Parse TFLint JSON into issues and tool-level error messages."""
    data = _load_json(output, "tflint")
    if not isinstance(data, dict):
        raise ParseError("tflint output is not a JSON object", "tflint")

    issues = []
    for issue in data.get("issues") or []:
        range_ = issue.get("range") or {}
        issues.append(InfraLintIssue(
            file=range_.get("filename", ""),
            line=int((range_.get("start") or {}).get("line") or 0),
            rule=(issue.get("rule") or {}).get("name", ""),
            severity=str((issue.get("rule") or {}).get("severity") or issue.get("severity") or "warning").lower(),
            message=issue.get("message", ""),
        ))
    errors = [e.get("message", "") for e in data.get("errors") or []]
    return issues, errors


def parse_trivy_output(output: str) -> list[SecurityIssue]:
    """Flatten Trivy misconfigurations, most severe first."""
    data = _load_json(output, "trivy")
    if not isinstance(data, dict):
        raise ParseError("trivy output is not a JSON object", "trivy")

    issues = []
    for result in data.get("Results") or []:
        for misconfig in result.get("Misconfigurations") or []:
            issues.append(SecurityIssue(
                id=misconfig.get("ID", ""),
                title=misconfig.get("Title", ""),
                severity=SecuritySeverity.parse(misconfig.get("Severity")),
                message=misconfig.get("Message", ""),
                resolution=misconfig.get("Resolution", ""),
                file=result.get("Target", ""),
            ))
    return sorted(issues, key=lambda issue: issue.severity.rank)


class InfraAnalysisRunner:
    """Runs terraform fmt, TFLint and Trivy against the terraform root."""

    def __init__(self, infra_root: str | Path, command_runner: CommandRunner):
        self.infra_root = Path(infra_root)
        self.command_runner = command_runner
        self._logger = logger.bind(component="InfraAnalysisRunner")

    async def format_check(self, target_directories: Sequence[str]) -> ToolReport:
        result = await self.command_runner(FMT_COMMAND, self.infra_root)
        if result.exit_code == 0:
            return ToolReport(tool="terraform fmt", passed=True, output=result.output or "All files are properly formatted.")

        all_issues = parse_fmt_output(result.stdout)
        if not all_issues:
            raise ParseError(
                f"terraform fmt exited with code {result.exit_code}: {result.stderr.strip()}",
                "terraform fmt",
                result.output,
            )

        issues = [
            FormatIssue(file=str(resolve_path(issue.file, self.infra_root)))
            for issue in all_issues
            if is_within(issue.file, target_directories, self.infra_root)
        ]
        return ToolReport(tool="terraform fmt", passed=not issues, issues=issues, output=result.output)

    async def lint(self, target_directories: Sequence[str], deep_check: bool = False) -> ToolReport:
        init = await self.command_runner(TFLINT_INIT_COMMAND, self.infra_root)
        if init.exit_code != 0:
            raise ToolInvocationError(f"tflint --init failed: {init.output.strip()}", " ".join(TFLINT_INIT_COMMAND))

        command = TFLINT_COMMAND
        config = self.infra_root / (TFLINT_DEEP_CONFIG if deep_check else TFLINT_CONFIG)
        if config.is_file():
            command = (*command, f"--config={config}")

        result = await self.command_runner(command, self.infra_root)
        try:
            all_issues, errors = parse_tflint_output(result.stdout)
        except ParseError as e:
            e.output = result.output
            raise

        issues = [i for i in all_issues if is_within(i.file, target_directories, self.infra_root)]
        passed = not errors and not any(issue.severity == "error" for issue in issues)
        return ToolReport(
            tool="tflint",
            passed=passed,
            issues=issues,
            output=result.output,
            error="; ".join(errors) or None,
        )

    async def security(self, target_directories: Sequence[str]) -> ToolReport:
        result = await self.command_runner(TRIVY_COMMAND, self.infra_root)
        try:
            all_issues = parse_trivy_output(result.stdout)
        except ParseError as e:
            e.output = result.output
            raise

        issues = [i for i in all_issues if is_within(i.file, target_directories, self.infra_root)]
        # Any misconfiguration fails, whatever its tier
        return ToolReport(tool="trivy", passed=not issues, issues=issues, output=result.output)

    async def run(
        self,
        target_directories: Sequence[str],
        analysis_type: InfraAnalysisType = InfraAnalysisType.ALL,
        deep_check: bool = False,
    ) -> InfraAnalysisResult:
        """Run the requested infra analyses sequentially.

        Args:
            target_directories: Absolute directories issues are narrowed to
            analysis_type: format, lint, security or all
            deep_check: Use the deep TFLint configuration

        Returns:
            InfraAnalysisResult; tool failures are captured, never raised
        """
        result = InfraAnalysisResult(target_directories=list(target_directories), deep_check=deep_check)
        if not self.infra_root.is_dir():
            result.error = f"Terraform root not found: {self.infra_root}"
            return result

        await self._logger.ainfo(
            "Running infra analysis",
            analysis_type=analysis_type.value,
            deep_check=deep_check,
            targets=len(target_directories),
        )

        steps = {
            InfraAnalysisType.FORMAT: ("format", "terraform fmt", lambda: self.format_check(target_directories)),
            InfraAnalysisType.LINT: ("lint", "tflint", lambda: self.lint(target_directories, deep_check)),
            InfraAnalysisType.SECURITY: ("security", "trivy", lambda: self.security(target_directories)),
        }

        for kind, (attribute, tool, step) in steps.items():
            if analysis_type not in (kind, InfraAnalysisType.ALL):
                continue
            try:
                report = await step()
            except ToolInvocationError as e:
                await self._logger.aerror("Infra analysis tool failed", tool=tool, error=str(e))
                report = ToolReport.failure(tool, str(e))
            except ParseError as e:
                await self._logger.aerror("Infra analysis output unreadable", tool=tool, error=str(e))
                report = ToolReport.failure(tool, str(e), e.output)
            setattr(result, attribute, report)

        await self._logger.ainfo("Infra analysis finished", success=result.success)
        return result
