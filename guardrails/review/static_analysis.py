"""TypeScript type-check and lint runner.

Runs ``tsc`` and ``eslint`` over a whole workspace and narrows the reported
issues to the caller's target directories afterwards.
"""

import asyncio
import json
import re
from pathlib import Path
from typing import Sequence

import structlog

from guardrails.errors import ParseError, ToolInvocationError
from guardrails.review.models import (
    LintIssue,
    StaticAnalysisResult,
    StaticAnalysisType,
    ToolReport,
    TypeCheckIssue,
)
from guardrails.review.paths import is_within, resolve_path
from guardrails.review.process import CommandRunner

logger = structlog.get_logger()

TSC_COMMAND = ("npx", "tsc", "--noEmit", "--pretty", "false")
ESLINT_COMMAND = ("npx", "eslint", "--format", "json", ".")

# file(line,col): error TSxxxx: message
TSC_ERROR = re.compile(r"^(.+)\((\d+),(\d+)\):\s+error\s+(TS\d+):\s+(.+)$")


def parse_tsc_output(output: str) -> list[TypeCheckIssue]:
    """Parse ``tsc --pretty false`` diagnostics. Unrecognised lines are ignored."""
    issues = []
    for line in output.splitlines():
        match = TSC_ERROR.match(line.strip())
        if match:
            file, line_no, column, code, message = match.groups()
            issues.append(TypeCheckIssue(
                file=file,
                line=int(line_no),
                column=int(column),
                code=code,
                message=message,
            ))
    return issues


def parse_eslint_output(output: str) -> list[LintIssue]:
    """Parse the ESLint JSON formatter output.

    Severity 2 maps to "error", anything else to "warning".

    Raises:
        ParseError: Output is empty or not an ESLint JSON result array
    """
    if not output.strip():
        raise ParseError("ESLint produced no output", "eslint")
    try:
        results = json.loads(output)
    except json.JSONDecodeError as e:
        raise ParseError(f"ESLint output is not JSON: {e}", "eslint") from e
    if not isinstance(results, list):
        raise ParseError("ESLint output is not a result array", "eslint")

    issues = []
    for result in results:
        if not isinstance(result, dict):
            raise ParseError("ESLint result entry is not an object", "eslint")
        file = result.get("filePath", "")
        for message in result.get("messages", []):
            issues.append(LintIssue(
                file=file,
                line=int(message.get("line") or 0),
                column=int(message.get("column") or 0),
                rule_id=message.get("ruleId") or "",
                severity="error" if message.get("severity") == 2 else "warning",
                message=message.get("message", ""),
            ))
    return issues


class StaticAnalysisRunner:
    """Runs the TypeScript compiler and ESLint for one workspace."""

    def __init__(self, project_root: str | Path, command_runner: CommandRunner):
        self.project_root = Path(project_root)
        self.command_runner = command_runner
        self._logger = logger.bind(component="StaticAnalysisRunner")

    async def type_check(self, cwd: Path, target_directories: Sequence[str]) -> ToolReport:
        """Run tsc; a failing exit with no parseable diagnostics is a ParseError."""
        result = await self.command_runner(TSC_COMMAND, cwd)

        if result.exit_code == 0:
            return ToolReport(tool="tsc", passed=True, output=result.output or "No type errors found.")

        all_issues = parse_tsc_output(result.output)
        if not all_issues:
            raise ParseError(
                f"tsc exited with code {result.exit_code} but reported no parseable errors",
                "tsc",
                result.output,
            )

        issues = [
            TypeCheckIssue(
                file=str(resolve_path(issue.file, cwd)),
                line=issue.line,
                column=issue.column,
                code=issue.code,
                message=issue.message,
            )
            for issue in all_issues
            if is_within(issue.file, target_directories, cwd)
        ]
        return ToolReport(tool="tsc", passed=not issues, issues=issues, output=result.output)

    async def lint(self, cwd: Path, target_directories: Sequence[str]) -> ToolReport:
        """Run ESLint; passes when no remaining issue has severity "error"."""
        result = await self.command_runner(ESLINT_COMMAND, cwd)

        try:
            all_issues = parse_eslint_output(result.stdout)
        except ParseError as e:
            e.output = result.output
            raise

        issues = [issue for issue in all_issues if is_within(issue.file, target_directories, cwd)]
        passed = not any(issue.severity == "error" for issue in issues)
        return ToolReport(tool="eslint", passed=passed, issues=issues, output=result.output)

    async def _guarded(self, tool: str, coro) -> ToolReport:
        """Turn invocation and parse failures into a failed report."""
        try:
            return await coro
        except ToolInvocationError as e:
            await self._logger.aerror("Static analysis tool failed", tool=tool, error=str(e))
            return ToolReport.failure(tool, str(e))
        except ParseError as e:
            await self._logger.aerror("Static analysis output unreadable", tool=tool, error=str(e))
            return ToolReport.failure(tool, str(e), e.output)

    async def run(
        self,
        workspace: str,
        target_directories: Sequence[str],
        analysis_type: StaticAnalysisType = StaticAnalysisType.BOTH,
    ) -> StaticAnalysisResult:
        """Run the requested analyses.

        Args:
            workspace: Workspace directory under the project root
            target_directories: Absolute directories issues are narrowed to
            analysis_type: type-check, lint or both

        Returns:
            StaticAnalysisResult; tool failures are captured, never raised
        """
        cwd = self.project_root / workspace
        result = StaticAnalysisResult(workspace=workspace, target_directories=list(target_directories))

        if not cwd.is_dir():
            result.error = f"Workspace directory not found: {cwd}"
            return result

        run_type_check = analysis_type in (StaticAnalysisType.TYPE_CHECK, StaticAnalysisType.BOTH)
        run_lint = analysis_type in (StaticAnalysisType.LINT, StaticAnalysisType.BOTH)

        await self._logger.ainfo(
            "Running static analysis",
            workspace=workspace,
            analysis_type=analysis_type.value,
            targets=len(target_directories),
        )

        tasks = {}
        if run_type_check:
            tasks["type_check"] = self._guarded("tsc", self.type_check(cwd, target_directories))
        if run_lint:
            tasks["lint"] = self._guarded("eslint", self.lint(cwd, target_directories))

        reports = await asyncio.gather(*tasks.values())
        for name, report in zip(tasks, reports):
            setattr(result, name, report)

        await self._logger.ainfo("Static analysis finished", workspace=workspace, success=result.success)
        return result
