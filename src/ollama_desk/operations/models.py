"""模型管理操作：list / pull / run / rm / show。

只有 pull 是异步的（提交即返回，进度走 progress/output 通道）；
其余操作同步返回结果或抛出 OperationError，从不发布事件。
"""

from __future__ import annotations

import logging

from ..events.models import Channel, InstalledModel, ProgressEvent, TerminalOutputEvent
from ..runtime import EXIT_CODE_UNKNOWN
from .base import OperationContext

__all__ = [
    "parse_model_list",
    "list_installed",
    "fetch",
    "validate_runnable",
    "remove",
    "show_model",
]

logger = logging.getLogger(__name__)

# name, id, size(2 tokens) 至少 4 列
MIN_LIST_COLUMNS = 4


def parse_model_list(text: str) -> list[InstalledModel]:
    """解析 `ollama list` 的表格输出。

    第一行为表头，空行跳过；不足 4 列的行直接丢弃，不影响其余行。

        NAME            ID              SIZE      MODIFIED
        llama3:latest   365c0bd3c000    4.7 GB    2 days ago
    """
    models: list[InstalledModel] = []
    for line in text.splitlines()[1:]:
        if not line.strip():
            continue
        parts = line.split()
        if len(parts) < MIN_LIST_COLUMNS:
            logger.debug(f"Skipping malformed list row: {line!r}")
            continue
        models.append(
            InstalledModel(
                name=parts[0],
                id=parts[1],
                size=f"{parts[2]} {parts[3]}",
                modified=" ".join(parts[4:]),
            )
        )
    return models


async def list_installed(ctx: OperationContext) -> list[InstalledModel]:
    """列出本地已安装的模型。"""
    captured = await ctx.run_checked(ctx.spec("list"))
    return parse_model_list(captured.stdout_text)


async def fetch(ctx: OperationContext, model: str) -> None:
    """后台拉取模型，立即返回。

    发布顺序：
    1. progress(starting)
    2. output(命令回显)
    3. output(stdout)、output(stderr)，非空时各一条
    4. progress(completed)，成功或失败恰好一条
    """
    ctx.spawn("pull_model", _run_fetch(ctx, model), subject=model)


async def _run_fetch(ctx: OperationContext, model: str) -> None:
    spec = ctx.spec("pull", model)
    command = spec.command_line

    ctx.publish(Channel.PROGRESS, ProgressEvent.starting(model))
    ctx.publish(Channel.OUTPUT, TerminalOutputEvent(command=command, output=f"$ {command}"))

    captured = await ctx.runner.run(spec)

    if captured.spawn_error is not None:
        error = captured.spawn_error
        ctx.publish(
            Channel.OUTPUT,
            TerminalOutputEvent(
                command=command,
                output=f"Error: {error}",
                exit_code=EXIT_CODE_UNKNOWN,
            ),
        )
        ctx.publish(Channel.PROGRESS, ProgressEvent.failed(model, f"process error: {error}"))
        return

    for text in (captured.stdout_text, captured.stderr_text):
        if text:
            ctx.publish(Channel.OUTPUT, TerminalOutputEvent(command=command, output=text))

    if captured.success:
        logger.info(f"Pulled model {model}")
        ctx.publish(Channel.PROGRESS, ProgressEvent.succeeded(model))
    else:
        logger.info(f"Pull of {model} failed with exit code {captured.exit_code}")
        ctx.publish(Channel.PROGRESS, ProgressEvent.failed(model, "process failed"))


async def validate_runnable(ctx: OperationContext, model: str) -> str:
    """校验模型能否加载（`ollama run <model> --help`）。"""
    await ctx.run_checked(
        ctx.spec("run", model, "--help"),
        spawn_prefix="failed to run model",
        failure_prefix=f"failed to run model {model}",
    )
    return f"model {model} is ready to run"


async def remove(ctx: OperationContext, model: str) -> str:
    """删除本地模型。"""
    await ctx.run_checked(
        ctx.spec("rm", model),
        spawn_prefix="failed to delete model",
        failure_prefix=f"failed to delete model {model}",
    )
    logger.info(f"Deleted model {model}")
    return f"model {model} deleted successfully"


async def show_model(ctx: OperationContext, model: str) -> str:
    """返回 `ollama show <model>` 的原始输出。"""
    captured = await ctx.run_checked(
        ctx.spec("show", model),
        spawn_prefix="failed to show model",
        failure_prefix=f"failed to show model {model}",
    )
    return captured.stdout_text
