"""ProcessRunner unit tests.

Test coverage:
- Buffered execution (stdout/stderr capture, exit codes, cwd)
- Spawn failures reported as values, never raised
- Line streaming with a single trailing Termination
- Early close and cancel scope terminating the process
- Process isolation (new session/process group)
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import anyio
import pytest

from ollama_desk.runtime import (
    EXIT_CODE_UNKNOWN,
    CapturedOutput,
    ProcessRunner,
    ProcessSpec,
    StreamChannel,
    StreamedLine,
    Termination,
)
from ollama_desk.runtime.process_runner import IS_WINDOWS

pytestmark = pytest.mark.skipif(IS_WINDOWS, reason="uses POSIX sh")


def sh(script: str, cwd: Path | None = None) -> ProcessSpec:
    return ProcessSpec("sh", ("-c", script), cwd=cwd)


async def collect(runner: ProcessRunner, spec: ProcessSpec, **kwargs) -> list:
    return [item async for item in runner.stream(spec, **kwargs)]


# =============================================================================
# ProcessSpec / CapturedOutput
# =============================================================================


class TestProcessSpec:
    """Test ProcessSpec helpers."""

    def test_arguments_become_tuple(self):
        spec = ProcessSpec("ollama", ["pull", "llama3"])
        assert spec.arguments == ("pull", "llama3")
        assert spec.argv == ["ollama", "pull", "llama3"]

    def test_command_line(self):
        spec = ProcessSpec("ollama", ("run", "llama3", "--help"))
        assert spec.command_line == "ollama run llama3 --help"

    def test_command_line_without_arguments(self):
        assert ProcessSpec("ollama").command_line == "ollama"


class TestCapturedOutput:
    """Test CapturedOutput decoding."""

    def test_invalid_utf8_is_replaced(self):
        captured = CapturedOutput(stdout=b"ok \xff\xfe", exit_code=0)
        assert captured.stdout_text.startswith("ok ")
        assert "�" in captured.stdout_text

    def test_success_requires_zero_exit(self):
        assert CapturedOutput(exit_code=0).success
        assert not CapturedOutput(exit_code=1).success
        assert not CapturedOutput(spawn_error=FileNotFoundError("x")).success


# =============================================================================
# Buffered Execution Tests
# =============================================================================


class TestRun:
    """Test buffered execution."""

    @pytest.mark.asyncio
    async def test_simple_command(self, runner: ProcessRunner):
        """Test running a simple command."""
        captured = await runner.run(ProcessSpec("echo", ("hello",)))

        assert captured.spawn_error is None
        assert captured.exit_code == 0
        assert captured.stdout_text == "hello\n"
        assert captured.stderr == b""

    @pytest.mark.asyncio
    async def test_multiline_output(self, runner: ProcessRunner):
        """Test capturing several lines at once."""
        captured = await runner.run(sh("printf 'a\\nb\\nc\\n'"))
        assert captured.stdout_text.splitlines() == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_working_directory(self, runner: ProcessRunner, tmp_path: Path):
        """Test that cwd is honoured."""
        captured = await runner.run(sh("pwd", cwd=tmp_path))
        assert Path(captured.stdout_text.strip()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_not_raised(self, runner: ProcessRunner):
        """Test that a failing command is reported, not raised."""
        captured = await runner.run(sh("exit 3"))

        assert captured.spawn_error is None
        assert captured.exit_code == 3
        assert not captured.success

    @pytest.mark.asyncio
    async def test_stderr_captured_separately(self, runner: ProcessRunner):
        """Test stderr capture."""
        captured = await runner.run(sh("echo out; echo err >&2"))

        assert captured.stdout_text == "out\n"
        assert captured.stderr_text == "err\n"

    @pytest.mark.asyncio
    async def test_spawn_error(self, runner: ProcessRunner, tmp_path: Path):
        """Test missing executable."""
        captured = await runner.run(ProcessSpec(str(tmp_path / "missing-binary")))

        assert isinstance(captured.spawn_error, OSError)
        assert captured.exit_code is None
        assert captured.stdout == b""

    @pytest.mark.asyncio
    async def test_nul_in_argument_is_spawn_error(self, runner: ProcessRunner):
        """Test that an argument the OS rejects is reported, not raised."""
        captured = await runner.run(ProcessSpec("echo", ("a\x00b",)))

        assert isinstance(captured.spawn_error, ValueError)
        assert captured.exit_code is None
        assert not captured.success

    @pytest.mark.asyncio
    async def test_stdin_is_closed(self, runner: ProcessRunner):
        """Test that a process reading stdin sees EOF instead of hanging."""
        captured = await runner.run(sh("cat; echo done"))
        assert captured.stdout_text == "done\n"


# =============================================================================
# Streaming Tests
# =============================================================================


class TestStream:
    """Test line streaming."""

    @pytest.mark.asyncio
    async def test_lines_then_termination(self, runner: ProcessRunner):
        """Test stdout order and the trailing Termination."""
        items = await collect(runner, sh("echo one; echo two; echo three"))

        assert isinstance(items[-1], Termination)
        assert items[-1].exit_code == 0
        assert items[-1].spawn_error is None

        lines = items[:-1]
        assert all(isinstance(item, StreamedLine) for item in lines)
        assert [item.text for item in lines] == ["one", "two", "three"]
        assert all(item.channel is StreamChannel.STDOUT for item in lines)

    @pytest.mark.asyncio
    async def test_exactly_one_termination(self, runner: ProcessRunner):
        items = await collect(runner, sh("echo x; exit 4"))

        terminations = [item for item in items if isinstance(item, Termination)]
        assert len(terminations) == 1
        assert terminations[0].exit_code == 4

    @pytest.mark.asyncio
    async def test_stderr_channel(self, runner: ProcessRunner):
        """Test that stderr lines are tagged with their channel."""
        items = await collect(runner, sh("echo out; echo err >&2"))

        by_channel = {item.channel: item.text for item in items if isinstance(item, StreamedLine)}
        assert by_channel == {StreamChannel.STDOUT: "out", StreamChannel.STDERR: "err"}

    @pytest.mark.asyncio
    async def test_partial_last_line(self, runner: ProcessRunner):
        """Test that output without a trailing newline is still delivered."""
        items = await collect(runner, sh("printf 'no newline'"))
        assert items[0] == StreamedLine(StreamChannel.STDOUT, "no newline")

    @pytest.mark.asyncio
    async def test_spawn_error_yields_single_termination(
        self, runner: ProcessRunner, tmp_path: Path
    ):
        """Test missing executable in streaming mode."""
        items = await collect(runner, ProcessSpec(str(tmp_path / "missing-binary")))

        assert len(items) == 1
        assert isinstance(items[0], Termination)
        assert items[0].exit_code == EXIT_CODE_UNKNOWN
        assert isinstance(items[0].spawn_error, OSError)

    @pytest.mark.asyncio
    async def test_early_close_terminates_process(self, runner: ProcessRunner):
        """Test that closing the iterator kills the running process."""
        stream = runner.stream(sh("echo $$; exec sleep 30"))
        first = await stream.__anext__()
        pid = int(first.text)

        with anyio.fail_after(5):
            await stream.aclose()

        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)

    @pytest.mark.asyncio
    async def test_cancel_scope_stops_delivery(self, runner: ProcessRunner):
        """Test that a cancelled scope stops delivery and ends the process."""
        scope = anyio.CancelScope()
        scope.cancel()

        with anyio.fail_after(5):
            items = await collect(runner, sh("echo started; sleep 30"), cancel_scope=scope)

        assert not any(isinstance(item, StreamedLine) for item in items)
        assert isinstance(items[-1], Termination)
        assert items[-1].exit_code != 0

    @pytest.mark.asyncio
    async def test_nul_in_argument_yields_single_termination(self, runner: ProcessRunner):
        """Test that an argument the OS rejects ends the stream cleanly."""
        items = await collect(runner, ProcessSpec("echo", ("a\x00b",)))

        assert len(items) == 1
        assert isinstance(items[0], Termination)
        assert items[0].exit_code == EXIT_CODE_UNKNOWN
        assert isinstance(items[0].spawn_error, ValueError)

    @pytest.mark.asyncio
    async def test_oversized_line_is_truncated_and_drained(self):
        """Test that a line over line_limit does not stall the pipe."""
        runner = ProcessRunner(term_timeout=0.5, kill_timeout=0.3, line_limit=1024)
        code = (
            "import sys\n"
            "sys.stdout.write('x' * 200000 + '\\n')\n"
            "for i in range(20000):\n"
            "    sys.stdout.write(f'line {i}\\n')\n"
            "sys.stdout.write('tail')\n"
        )

        with anyio.fail_after(20):
            items = await collect(runner, ProcessSpec(sys.executable, ("-c", code)))

        assert isinstance(items[-1], Termination)
        assert items[-1].exit_code == 0

        texts = [item.text for item in items[:-1]]
        assert texts[0] == "x" * 1024
        assert texts[1:-1] == [f"line {i}" for i in range(20000)]
        assert texts[-1] == "tail"

    @pytest.mark.asyncio
    async def test_oversized_last_line_without_newline(self):
        """Test truncation of an unterminated final line."""
        runner = ProcessRunner(line_limit=1024)
        code = "import sys; sys.stdout.write('y' * 50000)"

        with anyio.fail_after(20):
            items = await collect(runner, ProcessSpec(sys.executable, ("-c", code)))

        assert [item.text for item in items[:-1]] == ["y" * 1024]
        assert items[-1].exit_code == 0


# =============================================================================
# Process Isolation Tests
# =============================================================================


class TestProcessIsolation:
    """Test process isolation (new session/process group)."""

    @pytest.mark.asyncio
    async def test_new_session_posix(self, runner: ProcessRunner):
        """Test that the child leads its own session on POSIX."""
        code = "import os; print(os.getpid(), os.getsid(0))"
        captured = await runner.run(ProcessSpec(sys.executable, ("-c", code)))

        pid, sid = captured.stdout_text.split()
        assert pid == sid
        assert int(sid) != os.getsid(0)
