"""Process runner with buffered and streaming output capture.

ollama-desk runtime module

This module provides:
- Buffered execution that reports exit codes and spawn errors as data
- Line streaming of stdout/stderr terminated by a single Termination
- Cross-platform subprocess isolation (new session/process group)
- Cancel-safe cleanup using asyncio.shield

Key design points:
- A non-zero exit is never raised; callers inspect CapturedOutput/Termination
- Failure to start the process (OSError, or ValueError for an argument the
  OS cannot accept such as one with a NUL byte) is the only immediately
  fatal case
- POSIX: start_new_session=True, so cleanup can signal the whole group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import AsyncIterator, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Union

import anyio

__all__ = [
    "EXIT_CODE_UNKNOWN",
    "SPAWN_ERRORS",
    "CapturedOutput",
    "ProcessRunner",
    "ProcessSpec",
    "SpawnError",
    "StreamChannel",
    "StreamItem",
    "StreamedLine",
    "Termination",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

# StreamReader line limit for streamed chat output; longer lines are truncated
DEFAULT_LINE_LIMIT = 1024 * 1024

# Sentinel exit code for "never started" / "could not be waited on"
EXIT_CODE_UNKNOWN = -1

# create_subprocess_exec raises ValueError for arguments containing NUL
SPAWN_ERRORS = (OSError, ValueError)
SpawnError = Union[OSError, ValueError]


class StreamChannel(str, Enum):
    """Output channel a streamed line came from."""

    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        program: Executable name or path
        arguments: Ordered arguments passed to the program
        cwd: Working directory (None = inherit parent)
        env: Environment variables (None = inherit parent)
    """

    program: str
    arguments: tuple[str, ...] = ()
    cwd: Path | None = None
    env: Mapping[str, str] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.arguments, tuple):
            object.__setattr__(self, "arguments", tuple(self.arguments))

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.arguments]

    @property
    def command_line(self) -> str:
        return " ".join(self.argv)


@dataclass(frozen=True)
class CapturedOutput:
    """Result of a buffered run.

    Exactly one of ``exit_code`` / ``spawn_error`` is meaningful: a process
    that failed to start has ``spawn_error`` set and no output.
    """

    stdout: bytes = b""
    stderr: bytes = b""
    exit_code: int | None = None
    spawn_error: SpawnError | None = None

    @property
    def success(self) -> bool:
        return self.spawn_error is None and self.exit_code == 0

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class StreamedLine:
    """One line of output, without its trailing line terminator."""

    channel: StreamChannel
    text: str


@dataclass(frozen=True)
class Termination:
    """Final item of every stream.

    Attributes:
        exit_code: Real exit code, or EXIT_CODE_UNKNOWN
        spawn_error: Set when the process could not be started
    """

    exit_code: int = EXIT_CODE_UNKNOWN
    spawn_error: SpawnError | None = None


StreamItem = Union[StreamedLine, Termination]


def _decode_line(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


@dataclass
class ProcessRunner:
    """Cross-platform process runner.

    Example:
        runner = ProcessRunner()
        spec = ProcessSpec("ollama", ("list",))

        captured = await runner.run(spec)
        if captured.spawn_error is None:
            print(captured.exit_code, captured.stdout_text)

        async for item in runner.stream(ProcessSpec("ollama", ("pull", "llama3"))):
            if isinstance(item, Termination):
                print("exit", item.exit_code)
            else:
                print(item.channel.value, item.text)
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    line_limit: int = DEFAULT_LINE_LIMIT

    async def run(self, spec: ProcessSpec) -> CapturedOutput:
        """Run subprocess to completion and capture all output.

        Never raises for a non-zero exit code or a spawn failure; both are
        reported on the returned CapturedOutput.

        Args:
            spec: Process specification

        Returns:
            CapturedOutput with stdout, stderr and exit_code, or spawn_error
        """
        try:
            process = await self._spawn(spec)
        except SPAWN_ERRORS as e:
            logger.warning(f"Failed to start {spec.program!r}: {e}")
            return CapturedOutput(spawn_error=e)

        try:
            stdout, stderr = await process.communicate()
            logger.debug(
                f"Subprocess completed pid={process.pid} "
                f"returncode={process.returncode}"
            )
            return CapturedOutput(
                stdout=stdout or b"",
                stderr=stderr or b"",
                exit_code=process.returncode,
            )
        finally:
            await self._safe_cleanup(process, ())

    async def stream(
        self,
        spec: ProcessSpec,
        *,
        cancel_scope: anyio.CancelScope | None = None,
    ) -> AsyncIterator[StreamItem]:
        """Run subprocess and yield its output line by line.

        stdout and stderr are read concurrently; lines are yielded in the
        order they arrive, which is only guaranteed within one channel. The
        stream always ends with exactly one Termination. If the process
        cannot be started, that Termination is the only item.

        Closing the iterator early (or cancel_scope being cancelled)
        terminates the process group.

        Args:
            spec: Process specification
            cancel_scope: Optional anyio.CancelScope; delivery stops once
                cancel has been called on it

        Yields:
            StreamedLine items, then one Termination
        """
        try:
            process = await self._spawn(spec)
        except SPAWN_ERRORS as e:
            logger.warning(f"Failed to start {spec.program!r}: {e}")
            yield Termination(spawn_error=e)
            return

        lines: asyncio.Queue[StreamedLine | None] = asyncio.Queue()
        readers = [
            asyncio.create_task(self._pump(process.stdout, StreamChannel.STDOUT, lines)),
            asyncio.create_task(self._pump(process.stderr, StreamChannel.STDERR, lines)),
        ]

        stopped = False
        try:
            open_channels = len(readers)
            while open_channels:
                item = await lines.get()
                if item is None:
                    open_channels -= 1
                    continue
                if cancel_scope is not None and cancel_scope.cancel_called:
                    stopped = True
                    break
                yield item

            if not stopped:
                await process.wait()
                logger.debug(
                    f"Subprocess completed pid={process.pid} "
                    f"returncode={process.returncode}"
                )
        finally:
            await self._safe_cleanup(process, readers)

        returncode = process.returncode
        yield Termination(
            exit_code=returncode if returncode is not None else EXIT_CODE_UNKNOWN
        )

    async def _spawn(self, spec: ProcessSpec) -> asyncio.subprocess.Process:
        process = await asyncio.create_subprocess_exec(
            *spec.argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=spec.cwd,
            limit=self.line_limit,
            **self._build_subprocess_kwargs(spec),
        )
        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={spec.argv[0]} cwd={spec.cwd}"
        )
        return process

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs."""
        kwargs: dict[str, Any] = {}

        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs

    async def _pump(
        self,
        reader: asyncio.StreamReader | None,
        channel: StreamChannel,
        lines: asyncio.Queue[StreamedLine | None],
    ) -> None:
        """Forward lines from one pipe; None marks the channel closed.

        A line longer than line_limit is delivered truncated to line_limit
        bytes. The rest of it is read and discarded so the pipe never stalls.
        """
        try:
            if reader is None:
                return
            oversized: bytes | None = None
            while True:
                try:
                    raw = await reader.readuntil(b"\n")
                except asyncio.IncompleteReadError as e:
                    # EOF; e.partial is an unterminated last line
                    raw = oversized if oversized is not None else e.partial
                    if raw:
                        lines.put_nowait(StreamedLine(channel, _decode_line(raw)))
                    return
                except asyncio.LimitOverrunError as e:
                    chunk = await reader.read(e.consumed)
                    if oversized is None:
                        logger.warning(
                            f"Truncating {channel.value} line longer than "
                            f"{self.line_limit} bytes"
                        )
                        oversized = chunk[: self.line_limit]
                    continue

                if oversized is not None:
                    raw, oversized = oversized, None
                lines.put_nowait(StreamedLine(channel, _decode_line(raw)))
        finally:
            lines.put_nowait(None)

    async def _safe_cleanup(
        self,
        process: asyncio.subprocess.Process,
        readers: Iterable[asyncio.Task[None]],
    ) -> None:
        """Cleanup subprocess and reader tasks, shielded from cancellation."""
        readers = list(readers)
        try:
            await asyncio.shield(self._do_cleanup(process, readers))
        except asyncio.CancelledError:
            await self._do_cleanup(process, readers)
            raise

    async def _do_cleanup(
        self,
        process: asyncio.subprocess.Process,
        readers: list[asyncio.Task[None]],
    ) -> None:
        for task in readers:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if process.returncode is None:
            await self._terminate_process(process)

    async def _terminate_process(self, process: asyncio.subprocess.Process) -> None:
        """Terminate gracefully, then forcefully after term_timeout."""
        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            self._send_terminate(process)
            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except asyncio.TimeoutError:
                pass

            logger.debug(f"Force killing subprocess pid={pid}")
            self._send_kill(process)
            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")
        except Exception as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")

    def _send_terminate(self, process: asyncio.subprocess.Process) -> None:
        if IS_WINDOWS:
            try:
                os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            except (ProcessLookupError, OSError) as e:
                logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
                process.terminate()
            return

        try:
            os.killpg(os.getpgid(process.pid), signal.SIGTERM)
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to terminate: {e}")
            process.terminate()

    def _send_kill(self, process: asyncio.subprocess.Process) -> None:
        if IS_WINDOWS:
            process.kill()
            return

        try:
            os.killpg(os.getpgid(process.pid), signal.SIGKILL)
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to kill: {e}")
            process.kill()
