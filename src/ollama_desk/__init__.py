"""ollama-desk - ollama 桌面应用后端。

通过 MCP 暴露模型管理操作，通过 SSE 事件桥推送进度与输出。

环境变量:
    ODESK_OLLAMA_BIN: ollama 可执行文件 (默认 ollama)
    ODESK_EVENTS: 是否启动 SSE 事件桥 (默认 true)
    ODESK_LOG_DEBUG: 日志输出到临时文件 (默认 false)

用法:
    uvx ollama-desk
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
