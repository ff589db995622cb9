"""操作分发注册表。

把外部可调用的操作名映射到具体操作；纯路由，不持有状态。
未知操作名与参数缺失在到达操作之前就被拒绝。
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Any

from . import operations
from .errors import InvalidArgumentsError, UnknownOperationError
from .operations import OperationContext
from .tool_schema import OPERATION_PARAMS, TOOL_DESCRIPTIONS, create_tool_schema

__all__ = ["Operation", "DispatchRegistry", "build_registry"]

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class Operation:
    """一个可调用操作。

    Attributes:
        name: 操作名
        handler: 以关键字参数调用的协程函数
        params: 必填参数名
        description: 操作描述
    """

    name: str
    handler: Handler
    params: tuple[str, ...] = ()
    description: str = ""

    @property
    def input_schema(self) -> dict[str, Any]:
        return create_tool_schema(self.name)


class DispatchRegistry:
    """操作名到操作的映射。

    Example:
        ```python
        registry = build_registry(ctx)
        models = await registry.invoke("list_models", {})
        await registry.invoke("pull_model", {"model": "llama3"})
        ```
    """

    def __init__(self) -> None:
        self._operations: dict[str, Operation] = {}

    def register(
        self,
        name: str,
        handler: Handler,
        params: tuple[str, ...] | None = None,
        description: str | None = None,
    ) -> None:
        """登记操作。

        Raises:
            ValueError: 如果操作名已存在
        """
        if name in self._operations:
            raise ValueError(f"Operation {name} already registered")
        self._operations[name] = Operation(
            name=name,
            handler=handler,
            params=params if params is not None else OPERATION_PARAMS.get(name, ()),
            description=description if description is not None else TOOL_DESCRIPTIONS.get(name, ""),
        )

    def get(self, name: str) -> Operation:
        """获取操作。

        Raises:
            UnknownOperationError: 操作名未登记
        """
        try:
            return self._operations[name]
        except KeyError:
            raise UnknownOperationError(name) from None

    def validate(self, name: str, arguments: dict[str, Any] | None) -> dict[str, str]:
        """校验参数并返回操作所需的关键字参数。

        Raises:
            UnknownOperationError: 操作名未登记
            InvalidArgumentsError: 参数缺失或不是字符串
        """
        operation = self.get(name)
        arguments = arguments or {}

        missing = [param for param in operation.params if param not in arguments]
        if missing:
            raise InvalidArgumentsError(name, f"missing {', '.join(missing)}")

        kwargs: dict[str, str] = {}
        for param in operation.params:
            value = arguments[param]
            if not isinstance(value, str):
                raise InvalidArgumentsError(name, f"'{param}' must be a string")
            kwargs[param] = value
        return kwargs

    async def invoke(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """校验并调用操作。"""
        kwargs = self.validate(name, arguments)
        logger.debug(f"Dispatching {name} with {sorted(kwargs)}")
        return await self.get(name).handler(**kwargs)

    @property
    def names(self) -> list[str]:
        return list(self._operations)

    def __iter__(self) -> Iterator[Operation]:
        return iter(self._operations.values())

    def __contains__(self, name: str) -> bool:
        return name in self._operations

    def __len__(self) -> int:
        return len(self._operations)


def build_registry(ctx: OperationContext) -> DispatchRegistry:
    """把所有操作绑定到同一个执行上下文。"""
    registry = DispatchRegistry()

    def bind(handler: Callable[..., Awaitable[Any]], rename: dict[str, str] | None = None) -> Handler:
        bound = functools.partial(handler, ctx)
        if not rename:
            return bound

        async def call(**kwargs: str) -> Any:
            return await bound(**{rename.get(k, k): v for k, v in kwargs.items()})

        return call

    registry.register("list_models", bind(operations.list_installed))
    registry.register("check_status", bind(operations.check_availability))
    registry.register("pull_model", bind(operations.fetch))
    registry.register("run_model", bind(operations.validate_runnable))
    registry.register("delete_model", bind(operations.remove))
    registry.register("send_chat_message", bind(operations.chat))
    registry.register(
        "execute_terminal_command",
        bind(operations.execute, rename={"command": "command_line"}),
    )
    registry.register("stream_chat_message", bind(operations.stream_chat))
    registry.register("get_status", bind(operations.detailed_status))
    registry.register("ping", bind(operations.ping))
    registry.register("show_model", bind(operations.show_model))
    registry.register("is_model_available", bind(operations.is_model_available))

    return registry
