"""事件载荷模型定义。

UI 按通道名订阅事件，载荷结构由通道名约定：
    progress      -> ProgressEvent
    output        -> TerminalOutputEvent
    chat-message  -> ChatMessageEvent
    chat-chunk    -> ChatChunkEvent
    chat-error    -> str

设计原则：
1. 每次调用必有一个终止标记 - completed 的 ProgressEvent、带 exit_code 的
   TerminalOutputEvent，或唯一的一条 chat 事件
2. 时间戳在事件构造时生成，而非进程输出时
3. 向前兼容 - 使用 extra='ignore' 忽略未知字段
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

__all__ = [
    "Channel",
    "ProgressEvent",
    "TerminalOutputEvent",
    "ChatMessageEvent",
    "ChatChunkEvent",
    "InstalledModel",
    "OllamaStatus",
    "PingResult",
    "utc_timestamp",
]


class Channel(str, Enum):
    """事件通道名。"""

    PROGRESS = "progress"
    OUTPUT = "output"
    CHAT_MESSAGE = "chat-message"
    CHAT_CHUNK = "chat-chunk"
    CHAT_ERROR = "chat-error"


def utc_timestamp() -> str:
    """当前时间的 ISO-8601 字符串（带 UTC 偏移）。"""
    return datetime.now(timezone.utc).isoformat()


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class ProgressEvent(_Payload):
    """模型拉取进度。

    completed=True 为终止事件：成功时 error 为 None，失败时 error 必填。

    Attributes:
        model: 模型标识
        status: 状态描述 (starting / completed / failed)
        progress: 百分比 [0, 100]
        completed: 是否终止事件
        error: 失败详情
    """

    model: str
    status: str
    progress: float | None = Field(default=None, ge=0, le=100)
    completed: bool = False
    error: str | None = None

    @model_validator(mode="after")
    def _error_only_when_completed(self) -> "ProgressEvent":
        if self.error is not None and not self.completed:
            raise ValueError("error is only allowed on a completed event")
        return self

    @classmethod
    def starting(cls, model: str) -> "ProgressEvent":
        return cls(model=model, status="starting", progress=0.0)

    @classmethod
    def succeeded(cls, model: str) -> "ProgressEvent":
        return cls(model=model, status="completed", progress=100.0, completed=True)

    @classmethod
    def failed(cls, model: str, error: str) -> "ProgressEvent":
        return cls(model=model, status="failed", progress=0.0, completed=True, error=error)


class TerminalOutputEvent(_Payload):
    """终端输出。

    exit_code 为 None 表示中间输出；带 exit_code 的事件是该次调用的终止事件。
    """

    command: str
    output: str
    timestamp: str = Field(default_factory=utc_timestamp)
    exit_code: int | None = None


class ChatMessageEvent(_Payload):
    """一条完整的对话消息。"""

    role: Literal["user", "assistant", "system"] = "assistant"
    content: str = ""


class ChatChunkEvent(_Payload):
    """流式对话中的一行增量输出（非终止）。"""

    model: str
    content: str


class InstalledModel(_Payload):
    """`ollama list` 中的一行。"""

    name: str
    id: str
    size: str
    modified: str


class OllamaStatus(_Payload):
    """ollama 可用性详情。"""

    is_running: bool
    version: str | None = None
    error: str | None = None


class PingResult(_Payload):
    """一次 ping 的结果。"""

    success: bool
    response_time_ms: float
    error: str | None = None
