"""单次对话操作。

chat 与 stream_chat 都在后台运行 `ollama run <model> <message>`，
每次调用恰好发布一条 chat-message 或一条 chat-error，绝不同时发布两者。

注意：进程只要启动成功，即使非零退出也按成功处理，stdout 原样作为回复
发布。这是保留下来的既有行为，非零退出仅记录 WARNING 日志。
"""

from __future__ import annotations

import logging

from ..events.models import Channel, ChatChunkEvent, ChatMessageEvent
from ..runtime import SpawnError, StreamChannel, Termination
from .base import OperationContext

__all__ = ["chat", "stream_chat"]

logger = logging.getLogger(__name__)


def _error_text(error: SpawnError) -> str:
    return f"failed to get response: {error}"


async def chat(ctx: OperationContext, model: str, message: str) -> None:
    """后台缓冲执行，结束后发布完整回复。"""
    ctx.spawn("send_chat_message", _run_chat(ctx, model, message), subject=model)


async def _run_chat(ctx: OperationContext, model: str, message: str) -> None:
    captured = await ctx.runner.run(ctx.spec("run", model, message))

    if captured.spawn_error is not None:
        ctx.publish(Channel.CHAT_ERROR, _error_text(captured.spawn_error))
        return

    if captured.exit_code != 0:
        logger.warning(
            f"Chat with {model} exited with {captured.exit_code}; "
            f"publishing stdout as the reply"
        )
    ctx.publish(
        Channel.CHAT_MESSAGE,
        ChatMessageEvent(role="assistant", content=captured.stdout_text),
    )


async def stream_chat(ctx: OperationContext, model: str, message: str) -> None:
    """后台流式执行：每行 stdout 发布一条 chat-chunk，结束后发布完整回复。"""
    ctx.spawn("stream_chat_message", _run_stream_chat(ctx, model, message), subject=model)


async def _run_stream_chat(ctx: OperationContext, model: str, message: str) -> None:
    lines: list[str] = []
    termination = Termination()

    async for item in ctx.runner.stream(ctx.spec("run", model, message)):
        if isinstance(item, Termination):
            termination = item
        elif item.channel is StreamChannel.STDERR:
            # spinner / progress chatter
            logger.debug(f"[{model}] {item.text}")
        else:
            lines.append(item.text)
            ctx.publish(Channel.CHAT_CHUNK, ChatChunkEvent(model=model, content=item.text))

    if termination.spawn_error is not None:
        ctx.publish(Channel.CHAT_ERROR, _error_text(termination.spawn_error))
        return

    if termination.exit_code != 0:
        logger.warning(
            f"Streaming chat with {model} exited with {termination.exit_code}; "
            f"publishing stdout as the reply"
        )
    ctx.publish(
        Channel.CHAT_MESSAGE,
        ChatMessageEvent(role="assistant", content="\n".join(lines)),
    )
