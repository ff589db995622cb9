"""事件模块。

提供事件载荷模型、命名通道发布器和 SSE 事件桥。
"""

from __future__ import annotations

from .emitter import BroadcastEmitter, EventEmitter, NullEmitter, to_payload
from .models import (
    Channel,
    ChatChunkEvent,
    ChatMessageEvent,
    InstalledModel,
    OllamaStatus,
    PingResult,
    ProgressEvent,
    TerminalOutputEvent,
    utc_timestamp,
)
from .server import EventServer, ServerConfig

__all__ = [
    # 发布器
    "EventEmitter",
    "BroadcastEmitter",
    "NullEmitter",
    "to_payload",
    # 事件桥
    "EventServer",
    "ServerConfig",
    # 载荷
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
