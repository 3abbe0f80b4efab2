"""Unused export detection with knip."""

import json
from pathlib import Path
from typing import Sequence

import structlog

from guardrails.errors import ParseError, ToolInvocationError
from guardrails.review.models import UnusedExport, UnusedExportsResult
from guardrails.review.paths import is_within, resolve_path
from guardrails.review.process import CommandRunner

logger = structlog.get_logger()


def knip_command(workspace: str) -> tuple[str, ...]:
    return ("npm", "run", "validate:knip", "-w", workspace)


def extract_json(output: str) -> str | None:
    """JSON payload of the output; npm logs may precede the first ``{``."""
    start = output.find("{")
    if start == -1:
        return None
    return output[start:]


def parse_knip_output(payload: str) -> list[UnusedExport]:
    """Flatten knip's ``files -> exports`` report into one entry per export.

    Raises:
        ParseError: Payload is not a knip JSON report
    """
    try:
        # raw_decode tolerates npm output trailing the JSON document
        data, _ = json.JSONDecoder().raw_decode(payload)
    except json.JSONDecodeError as e:
        raise ParseError(f"knip output is not JSON: {e}", "knip") from e
    if not isinstance(data, dict) or not isinstance(data.get("files", {}), dict):
        raise ParseError("knip output has no files map", "knip")

    exports = []
    for file, file_issues in sorted(data.get("files", {}).items()):
        for item in (file_issues or {}).get("exports") or []:
            exports.append(UnusedExport(
                name=item.get("name", ""),
                file=file,
                line=int(item.get("line") or 0),
                column=int(item.get("col") or 0),
            ))
    return exports


class UnusedExportsAnalyzer:
    """Runs knip for a workspace and reports exports nothing imports."""

    def __init__(self, project_root: str | Path, command_runner: CommandRunner):
        self.project_root = Path(project_root)
        self.command_runner = command_runner
        self._logger = logger.bind(component="UnusedExportsAnalyzer")

    async def _analyze(self, workspace: str, target_directories: Sequence[str]) -> list[UnusedExport]:
        result = await self.command_runner(knip_command(workspace), self.project_root)

        payload = extract_json(result.stdout)
        if payload is None:
            if result.exit_code == 0:
                return []
            raise ParseError(
                f"knip exited with code {result.exit_code} without a JSON report: {result.output.strip()}",
                "knip",
            )

        workspace_root = self.project_root / workspace
        return [
            UnusedExport(
                name=item.name,
                file=str(resolve_path(item.file, workspace_root)),
                line=item.line,
                column=item.column,
            )
            for item in parse_knip_output(payload)
            if is_within(item.file, target_directories, workspace_root)
        ]

    async def run(self, workspace: str, target_directories: Sequence[str] = ()) -> UnusedExportsResult:
        """Find unused exports, optionally narrowed to target directories.

        Returns:
            UnusedExportsResult; succeeds when nothing remains after filtering
        """
        result = UnusedExportsResult(workspace=workspace, target_directories=list(target_directories))
        try:
            result.exports = await self._analyze(workspace, target_directories)
        except (ToolInvocationError, ParseError) as e:
            await self._logger.aerror("Unused export analysis failed", workspace=workspace, error=str(e))
            result.error = str(e)
            return result

        await self._logger.ainfo("Unused export analysis finished", workspace=workspace, unused=len(result.exports))
        return result
