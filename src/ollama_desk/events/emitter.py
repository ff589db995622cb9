"""事件发布器。

命名通道的 fire-and-forget 发布机制：
- publish 从不阻塞、从不向发布方抛出异常
- 没有订阅者时事件直接丢弃
- 同一任务在同一通道上发布的事件按发布顺序送达

订阅者通过 subscribe() 拿到一个线程安全队列，队列中的元素是
{"channel": str, "payload": Any} 信封。SSE 服务器线程和 asyncio 事件循环
可以同时使用同一个 BroadcastEmitter。
"""

from __future__ import annotations

import logging
import queue
import threading
from enum import Enum
from typing import Any, Protocol

__all__ = [
    "EventEmitter",
    "BroadcastEmitter",
    "NullEmitter",
    "to_payload",
]

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 500


class EventEmitter(Protocol):
    """事件发布接口（注入到各操作中）。"""

    def publish(self, channel: str, payload: Any) -> None:
        ...


def _channel_name(channel: str) -> str:
    if isinstance(channel, Enum):
        return str(channel.value)
    return str(channel)


def to_payload(payload: Any) -> Any:
    """把事件载荷转换为可 JSON 序列化的结构。"""
    if hasattr(payload, "model_dump"):
        return payload.model_dump(mode="json")
    return payload


class BroadcastEmitter:
    """向所有订阅队列广播事件。

    Example:
        ```python
        emitter = BroadcastEmitter()
        events = emitter.subscribe()

        emitter.publish("progress", ProgressEvent.starting("llama3"))
        envelope = events.get_nowait()
        # {"channel": "progress", "payload": {"model": "llama3", ...}}

        emitter.unsubscribe(events)
        ```
    """

    def __init__(self) -> None:
        self._subscribers: list[queue.Queue] = []
        self._lock = threading.Lock()

    def publish(self, channel: str, payload: Any) -> None:
        """发布事件到所有订阅者，失败静默丢弃。"""
        name = _channel_name(channel)
        try:
            envelope = {"channel": name, "payload": to_payload(payload)}
        except Exception as e:
            logger.warning(f"Dropping unserializable event on '{name}': {e}")
            return

        with self._lock:
            if not self._subscribers:
                logger.debug(f"No subscribers, dropping event on '{name}'")
                return
            for subscriber in self._subscribers:
                try:
                    subscriber.put_nowait(envelope)
                except queue.Full:
                    logger.debug(f"Subscriber queue full, dropping event on '{name}'")

    def subscribe(self, maxsize: int = DEFAULT_QUEUE_SIZE) -> queue.Queue:
        """注册新订阅者，返回其事件队列。"""
        subscriber: queue.Queue = queue.Queue(maxsize=maxsize)
        with self._lock:
            self._subscribers.append(subscriber)
            logger.debug(f"Subscriber added, total: {len(self._subscribers)}")
        return subscriber

    def unsubscribe(self, subscriber: queue.Queue) -> None:
        """注销订阅者（重复注销无副作用）。"""
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)
            logger.debug(f"Subscriber removed, remaining: {len(self._subscribers)}")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


class NullEmitter:
    """丢弃所有事件（事件桥关闭时使用）。"""

    def publish(self, channel: str, payload: Any) -> None:
        logger.debug(f"Event bridge disabled, dropping event on '{_channel_name(channel)}'")
