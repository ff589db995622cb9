"""操作执行上下文。

封装操作执行所需的所有依赖（进程执行器、事件发布器、后台任务注册表），
避免在函数间传递大量参数；测试中可替换为记录型发布器。
"""

from __future__ import annotations

import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

from ..errors import NonZeroExit, SpawnFailure
from ..events.emitter import EventEmitter
from ..orchestrator import BackgroundTasks
from ..runtime import CapturedOutput, ProcessRunner, ProcessSpec

__all__ = ["OperationContext"]

logger = logging.getLogger(__name__)


@dataclass
class OperationContext:
    """操作执行上下文。

    Attributes:
        emitter: 事件发布器（唯一的回传通道）
        runner: 进程执行器
        tasks: 后台任务注册表
        program: ollama 可执行文件
    """

    emitter: EventEmitter
    runner: ProcessRunner = field(default_factory=ProcessRunner)
    tasks: BackgroundTasks = field(default_factory=BackgroundTasks)
    program: str = "ollama"

    def spec(self, *arguments: str) -> ProcessSpec:
        """构造一次 ollama 调用。"""
        return ProcessSpec(self.program, arguments)

    def publish(self, channel: str, payload: Any) -> None:
        self.emitter.publish(channel, payload)

    def spawn(self, name: str, coro: Coroutine[Any, Any, Any], subject: str = "") -> None:
        """提交后台任务，不返回任务句柄。"""
        self.tasks.spawn(name, coro, subject=subject)

    async def run_checked(
        self,
        spec: ProcessSpec,
        *,
        spawn_prefix: str | None = None,
        failure_prefix: str | None = None,
    ) -> CapturedOutput:
        """同步操作的缓冲执行：失败直接抛给调用方。

        Args:
            spec: 进程规格
            spawn_prefix: 启动失败时的消息前缀
            failure_prefix: 非零退出时的消息前缀

        Raises:
            SpawnFailure: 进程无法启动
            NonZeroExit: 进程以非零退出码结束
        """
        command = spec.command_line
        captured = await self.runner.run(spec)

        if captured.spawn_error is not None:
            message = None
            if spawn_prefix:
                message = f"{spawn_prefix}: {captured.spawn_error}"
            raise SpawnFailure(command, captured.spawn_error, message)

        if captured.exit_code != 0:
            stderr = captured.stderr_text
            message = None
            if failure_prefix:
                message = f"{failure_prefix}: {stderr}"
            logger.debug(f"{command} exited with {captured.exit_code}")
            raise NonZeroExit(command, captured.exit_code, stderr, message)

        return captured
