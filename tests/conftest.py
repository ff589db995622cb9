"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import stat
import sys
import threading
from enum import Enum
from pathlib import Path
from typing import Any

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from ollama_desk.operations import OperationContext  # noqa: E402
from ollama_desk.runtime import ProcessRunner  # noqa: E402

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_OLLAMA = FIXTURES_DIR / "fake_ollama.py"

IS_WINDOWS = sys.platform == "win32"


class RecordingEmitter:
    """记录所有发布的事件，保留原始载荷对象。"""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []
        self._lock = threading.Lock()

    def publish(self, channel: str, payload: Any) -> None:
        name = str(channel.value) if isinstance(channel, Enum) else str(channel)
        with self._lock:
            self.events.append((name, payload))

    @property
    def channels(self) -> list[str]:
        return [name for name, _ in self.events]

    def payloads(self, channel: str) -> list[Any]:
        return [payload for name, payload in self.events if name == channel]


@pytest.fixture
def emitter() -> RecordingEmitter:
    """记录型事件发布器。"""
    return RecordingEmitter()


@pytest.fixture
def runner() -> ProcessRunner:
    """短超时的 ProcessRunner。"""
    return ProcessRunner(term_timeout=0.5, kill_timeout=0.3)


@pytest.fixture
def fake_ollama(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """生成调用 fake_ollama.py 的可执行包装脚本。"""
    if IS_WINDOWS:
        pytest.skip("fake ollama wrapper requires a POSIX shell")

    monkeypatch.delenv("FAKE_OLLAMA_FAIL", raising=False)
    monkeypatch.delenv("FAKE_OLLAMA_LIST", raising=False)

    wrapper = tmp_path / "ollama"
    wrapper.write_text(
        f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_OLLAMA}" "$@"\n',
        encoding="utf-8",
    )
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return wrapper


@pytest.fixture
def missing_program(tmp_path: Path) -> Path:
    """不存在的可执行文件路径。"""
    return tmp_path / "definitely-not-ollama"


@pytest.fixture
def ctx(emitter: RecordingEmitter, runner: ProcessRunner, fake_ollama: Path) -> OperationContext:
    """指向 fake ollama 的执行上下文。"""
    return OperationContext(emitter=emitter, runner=runner, program=str(fake_ollama))


@pytest.fixture
def broken_ctx(
    emitter: RecordingEmitter, runner: ProcessRunner, missing_program: Path
) -> OperationContext:
    """ollama 无法启动的执行上下文。"""
    return OperationContext(emitter=emitter, runner=runner, program=str(missing_program))
