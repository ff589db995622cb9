"""后台任务编排模块。

异步操作（pull / chat / execute）以"提交即返回"的方式运行：
- BackgroundTasks: 持有后台任务的强引用，避免任务被垃圾回收
- 任务异常只记录日志，不会回传给最初的调用方
- 按 subject 统计在途任务，仅用于诊断（不做互斥或去重）

任务句柄从不暴露给操作的公共契约。
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict

__all__ = ["BackgroundTasks", "TaskInfo"]

logger = logging.getLogger(__name__)


@dataclass
class TaskInfo:
    """后台任务的信息。

    Attributes:
        task_id: 唯一任务标识符
        name: 操作名 (pull_model / send_chat_message / ...)
        subject: 操作对象（模型名或命令行）
        task: 关联的 asyncio Task
        created_at: 创建时间
    """

    task_id: str
    name: str
    task: asyncio.Task
    subject: str = ""
    created_at: datetime = field(default_factory=datetime.now)

    def __repr__(self) -> str:
        elapsed = (datetime.now() - self.created_at).total_seconds()
        status = "running" if not self.task.done() else "done"
        return (
            f"TaskInfo(id={self.task_id[:8]}..., "
            f"name={self.name}, "
            f"subject={self.subject!r}, "
            f"status={status}, "
            f"elapsed={elapsed:.1f}s)"
        )


class BackgroundTasks:
    """后台任务注册表。

    线程安全：所有操作都是同步的，由调用方保证在同一个事件循环中调用。

    Example:
        ```python
        tasks = BackgroundTasks()

        # 提交任务，立即返回
        tasks.spawn("pull_model", do_pull("llama3"), subject="llama3")

        # 诊断
        print(tasks.active_count, tasks.in_flight("llama3"))

        # 关闭时等待
        await tasks.join(timeout=5.0)
        ```
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, TaskInfo] = {}

    def spawn(
        self,
        name: str,
        coro: Coroutine[Any, Any, Any],
        subject: str = "",
    ) -> str:
        """在当前事件循环中启动后台任务。

        Args:
            name: 操作名
            coro: 要运行的协程
            subject: 操作对象

        Returns:
            任务 ID
        """
        task_id = str(uuid.uuid4())
        task = asyncio.get_running_loop().create_task(coro, name=f"{name}:{task_id[:8]}")
        info = TaskInfo(task_id=task_id, name=name, task=task, subject=subject)
        self._tasks[task_id] = info
        task.add_done_callback(lambda t: self._on_done(task_id))
        logger.debug(f"Spawned background task: {info}")
        return task_id

    def _on_done(self, task_id: str) -> None:
        info = self._tasks.pop(task_id, None)
        if info is None:
            return

        task = info.task
        if task.cancelled():
            logger.info(f"Background task cancelled: {info}")
            return

        error = task.exception()
        if error is not None:
            logger.error(
                f"Background task failed: {info}",
                exc_info=(type(error), error, error.__traceback__),
            )
        else:
            logger.debug(f"Background task finished: {info}")

    @property
    def active_count(self) -> int:
        """未完成的任务数量。"""
        return sum(1 for info in self._tasks.values() if not info.task.done())

    def in_flight(self, subject: str) -> int:
        """指定 subject 的未完成任务数量。"""
        return sum(
            1
            for info in self._tasks.values()
            if info.subject == subject and not info.task.done()
        )

    def list_active(self) -> list[TaskInfo]:
        """列出所有未完成任务（按创建时间排序）。"""
        active = [info for info in self._tasks.values() if not info.task.done()]
        return sorted(active, key=lambda x: x.created_at)

    async def join(self, timeout: float | None = None) -> bool:
        """等待当前所有任务结束。

        任务执行中新提交的任务也会被等待。

        Args:
            timeout: 最长等待时间（秒），None 表示一直等待

        Returns:
            是否全部结束（超时返回 False）
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while True:
            pending = [info.task for info in self._tasks.values() if not info.task.done()]
            if not pending:
                return True
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            done, _ = await asyncio.wait(pending, timeout=remaining)
            if not done:
                return False

    def cancel_all(self) -> int:
        """取消所有未完成任务（仅用于进程退出）。

        Returns:
            成功发起取消的任务数量
        """
        cancelled = 0
        for info in list(self._tasks.values()):
            if not info.task.done():
                info.task.cancel()
                cancelled += 1

        if cancelled > 0:
            logger.info(f"Cancelled {cancelled} background task(s)")

        return cancelled

    def __len__(self) -> int:
        return len(self._tasks)
