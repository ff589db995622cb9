"""ollama-desk 应用入口。

包含服务器生命周期管理和主入口点。
"""

from __future__ import annotations

import asyncio
import logging
import sys

from mcp.server.stdio import stdio_server

from .config import Config, get_config
from .dispatch import build_registry
from .events import BroadcastEmitter, EventEmitter, EventServer, NullEmitter, ServerConfig
from .operations import OperationContext
from .orchestrator import BackgroundTasks
from .runtime import ProcessRunner
from .server import create_server

__all__ = ["run_server", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _start_event_server(config: Config) -> tuple[EventEmitter, EventServer | None]:
    """按配置启动 SSE 事件桥；失败时退化为丢弃事件。"""
    if not config.events_enabled:
        logger.info("Event bridge disabled, events will be dropped")
        return NullEmitter(), None

    emitter = BroadcastEmitter()
    event_server = EventServer(
        emitter,
        ServerConfig(
            host=config.events_host,
            port=config.events_port,
            max_clients=config.events_max_clients,
        ),
    )
    try:
        event_server.start()
    except OSError as e:
        logger.warning(f"Failed to start event server, continuing without it: {e}")
        return NullEmitter(), None
    return emitter, event_server


async def run_server() -> None:
    """运行 MCP Server。

    - 事件桥: 后台线程中的 HTTP + SSE 服务器
    - MCP: stdio 传输，调用方通过工具调用操作
    - 退出时等待后台任务 shutdown_grace 秒，之后取消剩余任务
    """
    config = get_config()
    logger.info(f"Starting ollama-desk server: {config}")

    emitter, event_server = _start_event_server(config)
    tasks = BackgroundTasks()
    ctx = OperationContext(
        emitter=emitter,
        runner=ProcessRunner(),
        tasks=tasks,
        program=config.ollama_bin,
    )
    registry = build_registry(ctx)
    server = create_server(registry, event_server.url if event_server else None)

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
        logger.debug("MCP server completed normally")

    finally:
        logger.info("run_server: entering finally block")

        if tasks.active_count:
            logger.info(
                f"Waiting up to {config.shutdown_grace}s for "
                f"{tasks.active_count} background task(s)"
            )
            if not await tasks.join(timeout=config.shutdown_grace):
                tasks.cancel_all()
                await tasks.join(timeout=1.0)

        if event_server:
            event_server.stop()

        logger.info("run_server: cleanup completed")


def main() -> None:
    """主入口点。"""
    config = get_config()

    # stdout 是 MCP 的 JSON-RPC 通道，日志只能走 stderr 或文件
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 ollama_desk 命名空间启用详细日志
    logging.getLogger("ollama_desk").setLevel(log_level)

    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")


if __name__ == "__main__":
    main()
