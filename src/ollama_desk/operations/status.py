"""ollama 状态检查操作。

所有状态检查都是同步的且从不发布事件，可以重复调用。
"""

from __future__ import annotations

import logging
import time

from ..errors import SpawnFailure
from ..events.models import OllamaStatus, PingResult
from .base import OperationContext

__all__ = [
    "check_availability",
    "detailed_status",
    "ping",
    "is_model_available",
]

logger = logging.getLogger(__name__)


async def check_availability(ctx: OperationContext) -> bool:
    """ollama 是否可用（`ollama list` 退出码为 0）。

    Raises:
        SpawnFailure: ollama 无法启动
    """
    spec = ctx.spec("list")
    captured = await ctx.runner.run(spec)
    if captured.spawn_error is not None:
        raise SpawnFailure(
            spec.command_line,
            captured.spawn_error,
            f"Ollama not found or not running: {captured.spawn_error}",
        )
    return captured.exit_code == 0


async def detailed_status(ctx: OperationContext) -> OllamaStatus:
    """运行 `ollama --version`，失败信息放进结果而不是抛出。"""
    captured = await ctx.runner.run(ctx.spec("--version"))

    if captured.spawn_error is not None:
        return OllamaStatus(is_running=False, error=str(captured.spawn_error))

    if not captured.success:
        error = captured.stderr_text.strip() or f"exit code {captured.exit_code}"
        return OllamaStatus(is_running=False, error=error)

    return OllamaStatus(
        is_running=True,
        version=captured.stdout_text.strip() or "unknown",
    )


async def ping(ctx: OperationContext) -> PingResult:
    """测量 `ollama --version` 的响应时间。"""
    start = time.monotonic()
    captured = await ctx.runner.run(ctx.spec("--version"))
    elapsed_ms = round((time.monotonic() - start) * 1000, 3)

    if captured.spawn_error is not None:
        return PingResult(success=False, response_time_ms=elapsed_ms, error=str(captured.spawn_error))
    if not captured.success:
        return PingResult(
            success=False,
            response_time_ms=elapsed_ms,
            error=captured.stderr_text.strip() or f"exit code {captured.exit_code}",
        )
    return PingResult(success=True, response_time_ms=elapsed_ms)


async def is_model_available(ctx: OperationContext, model: str) -> bool:
    """模型是否已在本地（`ollama show <model>` 成功）。

    Raises:
        SpawnFailure: ollama 无法启动
    """
    spec = ctx.spec("show", model)
    captured = await ctx.runner.run(spec)
    if captured.spawn_error is not None:
        raise SpawnFailure(spec.command_line, captured.spawn_error)
    return captured.exit_code == 0
