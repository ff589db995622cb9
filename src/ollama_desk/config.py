"""ollama-desk 环境变量配置管理。

环境变量:
    ODESK_OLLAMA_BIN: 所有操作使用的 ollama 可执行文件
        - 默认 "ollama"（从 PATH 查找）

    ODESK_EVENTS: 是否启动 SSE 事件桥
        - true/1/yes = 启动 (默认)
        - false/0/no = 不启动（事件直接丢弃）

    ODESK_EVENTS_HOST: 事件桥监听地址
        - 默认 127.0.0.1

    ODESK_EVENTS_PORT: 事件桥端口
        - 默认 0（随机端口）

    ODESK_EVENTS_MAX_CLIENTS: 最大 SSE 客户端数
        - 默认 10，限制在 1-100

    ODESK_SHUTDOWN_GRACE: 退出时等待后台任务的时间（秒）
        - 默认 5.0，限制在 0-60

    ODESK_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_OLLAMA_BIN = "ollama"
DEFAULT_SHUTDOWN_GRACE = 5.0
DEFAULT_MAX_CLIENTS = 10


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_int(value: str | None, default: int, low: int, high: int) -> int:
    """解析整数环境变量，无效值返回默认值，有效值限制在 [low, high]。"""
    if not value:
        return default
    try:
        return max(low, min(int(value), high))
    except ValueError:
        return default


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    """解析浮点环境变量，无效值返回默认值，有效值限制在 [low, high]。"""
    if not value:
        return default
    try:
        return max(low, min(float(value), high))
    except ValueError:
        return default


@dataclass
class Config:
    """ollama-desk 配置。

    Attributes:
        ollama_bin: ollama 可执行文件
        events_enabled: 是否启动 SSE 事件桥
        events_host: 事件桥监听地址
        events_port: 事件桥端口（0 = 随机）
        events_max_clients: 最大 SSE 客户端数
        shutdown_grace: 退出时等待后台任务的时间（秒）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    ollama_bin: str = DEFAULT_OLLAMA_BIN
    events_enabled: bool = True
    events_host: str = "127.0.0.1"
    events_port: int = 0
    events_max_clients: int = DEFAULT_MAX_CLIENTS
    shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(ollama_bin={self.ollama_bin}, "
            f"events_enabled={self.events_enabled}, "
            f"events={self.events_host}:{self.events_port}, "
            f"events_max_clients={self.events_max_clients}, "
            f"shutdown_grace={self.shutdown_grace}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "ollama-desk"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"odesk_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("ODESK_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        ollama_bin=os.environ.get("ODESK_OLLAMA_BIN", "").strip() or DEFAULT_OLLAMA_BIN,
        events_enabled=_parse_bool(os.environ.get("ODESK_EVENTS"), default=True),
        events_host=os.environ.get("ODESK_EVENTS_HOST", "").strip() or "127.0.0.1",
        events_port=_parse_int(os.environ.get("ODESK_EVENTS_PORT"), 0, 0, 65535),
        events_max_clients=_parse_int(
            os.environ.get("ODESK_EVENTS_MAX_CLIENTS"), DEFAULT_MAX_CLIENTS, 1, 100
        ),
        shutdown_grace=_parse_float(
            os.environ.get("ODESK_SHUTDOWN_GRACE"), DEFAULT_SHUTDOWN_GRACE, 0.0, 60.0
        ),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
