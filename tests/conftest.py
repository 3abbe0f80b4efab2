"""Pytest configuration and shared fixtures."""

from pathlib import Path
from typing import Any, Callable, Sequence

import pytest
import structlog
from langchain_core.messages import AIMessage

from guardrails.checker import TypeScriptParser
from guardrails.config import GuardrailsSettings
from guardrails.review.process import CommandResult


class FakeCommandRunner:
    """CommandRunner replaying scripted results instead of spawning processes.

    ``responses`` maps a command-line prefix to a CommandResult field tuple
    ``(exit_code, stdout, stderr)`` or to an exception to raise. The first
    matching prefix in insertion order wins.
    """

    def __init__(self, responses: dict[str, tuple[int, str, str] | Exception] | None = None):
        self.responses = responses or {}
        self.calls: list[tuple[tuple[str, ...], Path]] = []

    async def __call__(self, command: Sequence[str], cwd: Path) -> CommandResult:
        command = tuple(command)
        self.calls.append((command, Path(cwd)))
        command_line = " ".join(command)

        for prefix, response in self.responses.items():
            if command_line.startswith(prefix):
                if isinstance(response, Exception):
                    raise response
                exit_code, stdout, stderr = response
                return CommandResult(command, str(cwd), exit_code, stdout, stderr)

        raise AssertionError(f"Unexpected command: {command_line}")

    @property
    def command_lines(self) -> list[str]:
        return [" ".join(command) for command, _ in self.calls]


class FakeChatModel:
    """Chat model replaying scripted responses.

    Items of ``responses`` are returned in order; exceptions are raised.
    Once exhausted, ``default`` is returned (or produced, when callable).
    """

    def __init__(self, responses: Sequence[Any] = (), default: Any = None):
        self.responses = list(responses)
        self.default = default
        self.calls: list[list[Any]] = []
        self.bound_tools: list[Any] | None = None

    def bind_tools(self, tools):
        self.bound_tools = list(tools)
        return self

    async def ainvoke(self, messages):
        self.calls.append(list(messages))
        if self.responses:
            response = self.responses.pop(0)
        elif callable(self.default):
            response = await self.default(messages)
        elif self.default is not None:
            response = self.default
        else:
            raise AssertionError("No scripted model response left")

        if isinstance(response, Exception):
            raise response
        return response


def tool_call_message(name: str, args: dict[str, Any], call_id: str = "call_1") -> AIMessage:
    """AIMessage requesting a single tool call."""
    return AIMessage(content="", tool_calls=[{"name": name, "args": args, "id": call_id}])


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo logging configured by a test (e.g. via cli.main) so later tests
    do not write to a captured stream pytest has already closed."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def settings(tmp_path: Path) -> GuardrailsSettings:
    """Settings rooted at a temporary project, with retries that never sleep."""
    return GuardrailsSettings(
        project_root=tmp_path,
        retry_initial_delay=0.0,
        retry_max_delay=0.0,
        llm_retry_attempts=2,
        tool_retry_attempts=1,
        max_turns=5,
        file_review_timeout=5.0,
        batch_review_timeout=10.0,
    )


@pytest.fixture(scope="session")
def parser() -> TypeScriptParser:
    """Shared tree-sitter parser."""
    return TypeScriptParser()


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a file under tmp_path, creating parent directories."""

    def write(relative_path: str, content: str = "") -> Path:
        path = tmp_path / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return write


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()
