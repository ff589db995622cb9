"""ollama-desk 异常类。

同步操作（list / run / rm / show）直接向调用方抛出这些异常；
异步操作（pull / chat / execute）只通过事件通道报告失败。
"""

from __future__ import annotations

__all__ = [
    "OperationError",
    "SpawnFailure",
    "NonZeroExit",
    "UnknownOperationError",
    "InvalidArgumentsError",
]


class OperationError(Exception):
    """ollama-desk 操作基础异常。

    Attributes:
        message: 错误消息（直接展示给 UI）
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class SpawnFailure(OperationError):
    """进程无法启动（可执行文件不存在、权限不足、参数含 NUL 字符等）。

    Attributes:
        command: 尝试执行的命令行
        os_error: 底层错误（OSError，参数无效时为 ValueError）
        exit_code: 固定为 -1
    """

    exit_code = -1

    def __init__(
        self,
        command: str,
        os_error: OSError | ValueError,
        message: str | None = None,
    ) -> None:
        self.command = command
        self.os_error = os_error
        super().__init__(message or f"failed to execute {command}: {os_error}")


class NonZeroExit(OperationError):
    """进程已启动但以非零退出码结束。

    Attributes:
        command: 执行的命令行
        exit_code: 进程退出码
        stderr: 解码后的标准错误输出
    """

    def __init__(
        self,
        command: str,
        exit_code: int | None,
        stderr: str = "",
        message: str | None = None,
    ) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message or f"{command} failed: {stderr}")


class UnknownOperationError(OperationError):
    """调用了未注册的操作名。"""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown operation '{name}'")


class InvalidArgumentsError(OperationError):
    """操作参数缺失或类型错误。"""

    def __init__(self, name: str, detail: str) -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Invalid arguments for '{name}': {detail}")
