"""Bounded subprocess execution for external analysis tools.

Every tool runs with a wall-clock timeout and a ceiling on captured output.
Both stdout and stderr are captured whatever the exit code: a non-zero exit
means "issues found", not "invocation failed". Invocation failures (start
error, timeout, output overflow) raise ``ToolInvocationError``.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Sequence

import structlog

from guardrails.config import GuardrailsSettings
from guardrails.errors import ToolInvocationError
from guardrails.resilience import retry_async

logger = structlog.get_logger()

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a finished command."""

    command: tuple[str, ...]
    cwd: str
    exit_code: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """stdout followed by stderr."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr

    @property
    def command_line(self) -> str:
        return " ".join(self.command)


# (command, cwd) -> CommandResult; injectable so tests never spawn processes
CommandRunner = Callable[[Sequence[str], Path], Awaitable[CommandResult]]


class _OutputBudget:
    """Byte budget shared by the stdout and stderr readers."""

    def __init__(self, limit: int, command_line: str):
        self.limit = limit
        self.used = 0
        self.command_line = command_line

    def consume(self, size: int) -> None:
        self.used += size
        if self.used > self.limit:
            raise ToolInvocationError(
                f"Output of `{self.command_line}` exceeded {self.limit} bytes",
                self.command_line,
            )


async def _read_stream(stream: asyncio.StreamReader | None, budget: _OutputBudget) -> bytes:
    if stream is None:
        return b""
    chunks: list[bytes] = []
    while True:
        chunk = await stream.read(_CHUNK_SIZE)
        if not chunk:
            break
        budget.consume(len(chunk))
        chunks.append(chunk)
    return b"".join(chunks)


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()


async def run_command(
    command: Sequence[str],
    cwd: str | Path,
    timeout: float = 300.0,
    max_output_bytes: int = 10 * 1024 * 1024,
) -> CommandResult:
    """Run a command and capture its output.

    Args:
        command: Program and arguments (no shell)
        cwd: Working directory
        timeout: Wall-clock limit in seconds
        max_output_bytes: Limit on stdout plus stderr

    Returns:
        CommandResult, whatever the exit code

    Raises:
        ToolInvocationError: The command could not start, timed out or
            produced too much output
    """
    command = tuple(str(part) for part in command)
    command_line = " ".join(command)
    log = logger.bind(command=command_line, cwd=str(cwd))

    await log.ainfo("Starting subprocess")
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        await log.aerror("Subprocess failed to start", error=str(e))
        raise ToolInvocationError(f"Cannot start `{command_line}`: {e}", command_line) from e

    budget = _OutputBudget(max_output_bytes, command_line)

    async def communicate() -> tuple[bytes, bytes]:
        stdout, stderr = await asyncio.gather(
            _read_stream(process.stdout, budget),
            _read_stream(process.stderr, budget),
        )
        await process.wait()
        return stdout, stderr

    try:
        stdout, stderr = await asyncio.wait_for(communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        await _kill(process)
        await log.aerror("Subprocess timed out", timeout=timeout)
        raise ToolInvocationError(f"`{command_line}` timed out after {timeout:g}s", command_line) from e
    except ToolInvocationError:
        await _kill(process)
        await log.aerror("Subprocess output limit exceeded", limit=max_output_bytes)
        raise

    await log.ainfo("Subprocess exited", exit_code=process.returncode, output_bytes=budget.used)
    return CommandResult(
        command=command,
        cwd=str(cwd),
        exit_code=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


class ProcessRunner:
    """``CommandRunner`` that applies configured bounds and retries."""

    def __init__(
        self,
        timeout: float = 300.0,
        max_output_bytes: int = 10 * 1024 * 1024,
        retry_attempts: int = 1,
        retry_initial_delay: float = 1.0,
        retry_backoff_factor: float = 2.0,
        retry_max_delay: float = 30.0,
    ):
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes
        self._run = retry_async(
            max_attempts=retry_attempts,
            initial_delay=retry_initial_delay,
            backoff_factor=retry_backoff_factor,
            max_delay=retry_max_delay,
            exceptions=(ToolInvocationError,),
        )(run_command)

    @classmethod
    def from_settings(cls, settings: GuardrailsSettings) -> "ProcessRunner":
        return cls(
            timeout=settings.subprocess_timeout,
            max_output_bytes=settings.max_output_bytes,
            retry_attempts=settings.tool_retry_attempts,
            retry_initial_delay=settings.retry_initial_delay,
            retry_backoff_factor=settings.retry_backoff_factor,
            retry_max_delay=settings.retry_max_delay,
        )

    async def __call__(self, command: Sequence[str], cwd: Path) -> CommandResult:
        return await self._run(command, cwd, timeout=self.timeout, max_output_bytes=self.max_output_bytes)
