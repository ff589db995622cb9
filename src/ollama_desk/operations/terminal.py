"""任意命令执行（终端面板）。"""

from __future__ import annotations

import logging

from ..events.models import Channel, TerminalOutputEvent
from ..runtime import EXIT_CODE_UNKNOWN, CapturedOutput, ProcessSpec
from .base import OperationContext

__all__ = ["execute", "combine_output"]

logger = logging.getLogger(__name__)


def combine_output(captured: CapturedOutput) -> str:
    """stdout 在前；stderr 追加在后，仅当 stdout 非空时以换行分隔。"""
    result = captured.stdout_text
    stderr = captured.stderr_text
    if stderr:
        if result:
            result += "\n"
        result += stderr
    return result


async def execute(ctx: OperationContext, command_line: str) -> None:
    """按空白切分命令行并在后台执行。

    空命令行什么也不做。否则立即发布一条命令回显，
    执行结束后再发布一条带真实退出码的输出（无法启动时退出码为 -1）。
    """
    parts = command_line.split()
    if not parts:
        return

    command = command_line
    ctx.publish(Channel.OUTPUT, TerminalOutputEvent(command=command, output=f"$ {command}"))
    ctx.spawn(
        "execute_terminal_command",
        _run_command(ctx, command, ProcessSpec(parts[0], tuple(parts[1:]))),
        subject=command,
    )


async def _run_command(ctx: OperationContext, command: str, spec: ProcessSpec) -> None:
    captured = await ctx.runner.run(spec)

    if captured.spawn_error is not None:
        event = TerminalOutputEvent(
            command=command,
            output=f"Error: {captured.spawn_error}",
            exit_code=EXIT_CODE_UNKNOWN,
        )
    else:
        logger.debug(f"Command {spec.program!r} exited with {captured.exit_code}")
        event = TerminalOutputEvent(
            command=command,
            output=combine_output(captured),
            exit_code=captured.exit_code,
        )

    ctx.publish(Channel.OUTPUT, event)
