"""Read-only filesystem tools offered to the reviewing model.

Tool failures never abort a review: they come back to the model as error
tool results ("Error: ...") so it can recover. Long results are truncated.
"""

import asyncio
import fnmatch
import re
from pathlib import Path
from typing import Any

import structlog
from langchain_core.messages import ToolCall, ToolMessage
from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from guardrails.review.formatter import truncate_output

logger = structlog.get_logger()

OVERVIEW_FILE = re.compile(r"^\d0-.*-overview\.md$")


class PathInput(BaseModel):
    path: str = Field(description="Absolute path (relative paths resolve against the project root)")


class GlobInput(BaseModel):
    pattern: str = Field(description="Glob pattern, e.g. '**/*.ts' or 'server/src/domain/model/**/*.ts'")
    cwd: str | None = Field(default=None, description="Directory to search from (default: project root)")


class GrepInput(BaseModel):
    pattern: str = Field(description="Regular expression to search for")
    path: str = Field(description="File or directory to search")
    file_pattern: str | None = Field(
        default=None,
        description="Glob for files to search when path is a directory, e.g. '*.ts'",
    )


class ReviewToolset:
    """Filesystem tools bound to a project root."""

    def __init__(self, project_root: str | Path, max_output_chars: int = 100_000):
        self.project_root = Path(project_root)
        self.max_output_chars = max_output_chars
        self._logger = logger.bind(component="ReviewToolset")
        self._tools = {tool.name: tool for tool in self._build_tools()}

    def _resolve(self, path: str) -> Path:
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.project_root / candidate

    # -------------------------------------------------------------------------
    # Tool implementations
    # -------------------------------------------------------------------------

    async def read_file(self, path: str) -> str:
        return await asyncio.to_thread(self._resolve(path).read_text, encoding="utf-8")

    async def list_files(self, path: str) -> str:
        entries = await asyncio.to_thread(lambda: sorted(p.name for p in self._resolve(path).iterdir()))
        return "\n".join(entries) if entries else "Directory is empty"

    async def list_overview_files(self, path: str) -> str:
        directory = self._resolve(path)
        entries = await asyncio.to_thread(lambda: sorted(p.name for p in directory.iterdir()))
        overviews = [str(directory / name) for name in entries if OVERVIEW_FILE.match(name)]
        return "\n".join(overviews) if overviews else "No overview files found"

    async def glob(self, pattern: str, cwd: str | None = None) -> str:
        base = self._resolve(cwd) if cwd else self.project_root

        def search() -> list[str]:
            return sorted(str(p) for p in base.glob(pattern) if p.is_file())

        files = await asyncio.to_thread(search)
        return "\n".join(files) if files else f"No files found matching pattern: {pattern}"

    async def grep(self, pattern: str, path: str, file_pattern: str | None = None) -> str:
        regex = re.compile(pattern, re.MULTILINE)
        target = self._resolve(path)

        def search() -> list[str]:
            if target.is_file():
                files = [target]
            elif target.is_dir():
                files = sorted(
                    p for p in target.rglob("*")
                    if p.is_file() and (file_pattern is None or fnmatch.fnmatch(p.name, file_pattern))
                )
            else:
                raise FileNotFoundError(f"No such file or directory: {target}")

            matches = []
            for file in files:
                try:
                    text = file.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError):
                    continue
                for number, line in enumerate(text.splitlines(), start=1):
                    if regex.search(line):
                        matches.append(f"{file}:{number}:{line}")
            return matches

        matches = await asyncio.to_thread(search)
        return "\n".join(matches) if matches else f"No matches found for pattern: {pattern}"

    # -------------------------------------------------------------------------
    # LangChain tool definitions and dispatch
    # -------------------------------------------------------------------------

    def _build_tools(self) -> list[StructuredTool]:
        return [
            StructuredTool.from_function(
                coroutine=self.read_file,
                name="read_file",
                description="Read the contents of the file at the given path.",
                args_schema=PathInput,
            ),
            StructuredTool.from_function(
                coroutine=self.list_files,
                name="list_files",
                description="List the entries of a directory.",
                args_schema=PathInput,
            ),
            StructuredTool.from_function(
                coroutine=self.list_overview_files,
                name="list_overview_files",
                description=(
                    "List only the overview documents (N0-*-overview.md) of a policy directory. "
                    "Read the overviews first, then read detailed documents with read_file as needed."
                ),
                args_schema=PathInput,
            ),
            StructuredTool.from_function(
                coroutine=self.glob,
                name="glob",
                description="Find files matching a glob pattern in the codebase.",
                args_schema=GlobInput,
            ),
            StructuredTool.from_function(
                coroutine=self.grep,
                name="grep",
                description="Search files for lines matching a regular expression.",
                args_schema=GrepInput,
            ),
        ]

    @property
    def tools(self) -> list[StructuredTool]:
        return list(self._tools.values())

    async def execute(self, tool_call: ToolCall | dict[str, Any]) -> ToolMessage:
        """Run one tool call and wrap the outcome as a ToolMessage.

        Args:
            tool_call: ``{"name", "args", "id"}`` as found on ``AIMessage.tool_calls``

        Returns:
            ToolMessage answering the call; failures have ``status="error"``
        """
        name = tool_call["name"]
        call_id = tool_call.get("id") or ""
        tool = self._tools.get(name)

        if tool is None:
            return ToolMessage(content=f"Error: Unknown tool {name}", tool_call_id=call_id, name=name, status="error")

        await self._logger.ainfo("Tool call", tool=name, args=tool_call.get("args", {}))
        try:
            content = await tool.ainvoke(tool_call.get("args", {}))
        except Exception as e:
            await self._logger.awarning("Tool call failed", tool=name, error=str(e))
            return ToolMessage(content=f"Error: {e}", tool_call_id=call_id, name=name, status="error")

        return ToolMessage(
            content=truncate_output(str(content), self.max_output_chars),
            tool_call_id=call_id,
            name=name,
        )
