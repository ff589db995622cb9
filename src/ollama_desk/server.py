"""ollama-desk MCP Server。

UI 通过 MCP 调用操作，通过 SSE 事件桥订阅事件。

响应格式（JSON 文本）:
    同步操作: {"success": true, "result": ...}
    异步操作: {"success": true, "accepted": true}
    失败:     {"success": false, "error": "..."}
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool

from .dispatch import DispatchRegistry
from .errors import OperationError
from .events.emitter import to_payload
from .tool_schema import EVENTS_URL_TOOL, TOOL_DESCRIPTIONS

__all__ = ["create_server", "format_result", "format_error_response"]

logger = logging.getLogger(__name__)


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return to_payload(value)


def format_result(result: Any) -> list[TextContent]:
    """格式化操作结果；None 表示后台任务已提交。"""
    if result is None:
        data: dict[str, Any] = {"success": True, "accepted": True}
    else:
        data = {"success": True, "result": _to_jsonable(result)}
    return [TextContent(type="text", text=json.dumps(data, ensure_ascii=False))]


def format_error_response(error: str) -> list[TextContent]:
    """统一的错误响应格式化函数。"""
    data = {"success": False, "error": error}
    return [TextContent(type="text", text=json.dumps(data, ensure_ascii=False))]


def create_server(
    registry: DispatchRegistry,
    events_url: str | None = None,
) -> Server:
    """创建 MCP Server 实例。

    Args:
        registry: 操作分发注册表
        events_url: SSE 事件桥地址（事件桥未启动时为 None）
    """
    server = Server("ollama-desk")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """列出可用工具。"""
        tools = [
            Tool(
                name=operation.name,
                description=operation.description,
                inputSchema=operation.input_schema,
            )
            for operation in registry
        ]
        tools.append(
            Tool(
                name=EVENTS_URL_TOOL,
                description=TOOL_DESCRIPTIONS[EVENTS_URL_TOOL],
                inputSchema={"type": "object", "properties": {}, "required": []},
            )
        )
        logger.debug(
            f"[MCP] list_tools called, returning {len(tools)} tools: "
            f"{[t.name for t in tools]}"
        )
        return tools

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """调用工具。"""
        logger.debug(
            f"[MCP] call_tool request:\n"
            f"  Tool: {name}\n"
            f"  Arguments: {json.dumps({k: v[:100] + '...' if isinstance(v, str) and len(v) > 100 else v for k, v in (arguments or {}).items()}, ensure_ascii=False, default=str)}"
        )

        if name == EVENTS_URL_TOOL:
            if events_url:
                return [TextContent(type="text", text=events_url)]
            return [TextContent(type="text", text="Event bridge not available")]

        try:
            result = await registry.invoke(name, arguments)
            return format_result(result)

        except OperationError as e:
            logger.info(f"Tool '{name}' failed: {e.message}")
            return format_error_response(e.message)

        except asyncio.CancelledError:
            logger.info(f"Tool '{name}' cancelled")
            raise

    return server
