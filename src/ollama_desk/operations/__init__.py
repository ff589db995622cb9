"""ollama 命令操作模块。

每个操作都遵循"执行进程 → 转换输出 → 发布事件"的模式：
- 同步操作（list / run / rm / show / 状态检查）直接返回结果或抛出 OperationError
- 异步操作（pull / chat / execute）提交后台任务后立即返回 None，
  所有结果与失败都只通过事件通道送达

基础用法:
    from ollama_desk.events import BroadcastEmitter
    from ollama_desk.operations import OperationContext, fetch, list_installed

    ctx = OperationContext(emitter=BroadcastEmitter())
    models = await list_installed(ctx)
    await fetch(ctx, "llama3")  # progress/output 事件随后到达
"""

from __future__ import annotations

from .base import OperationContext
from .chat import chat, stream_chat
from .models import fetch, list_installed, parse_model_list, remove, show_model, validate_runnable
from .status import check_availability, detailed_status, is_model_available, ping
from .terminal import combine_output, execute

__all__ = [
    "OperationContext",
    # 模型管理
    "parse_model_list",
    "list_installed",
    "fetch",
    "validate_runnable",
    "remove",
    "show_model",
    # 状态
    "check_availability",
    "detailed_status",
    "ping",
    "is_model_available",
    # 对话
    "chat",
    "stream_chat",
    # 终端
    "execute",
    "combine_output",
]
