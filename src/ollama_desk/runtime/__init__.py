"""Runtime module for subprocess execution and output capture.

This module provides buffered and line-streaming process execution with
process-group isolation and reliable termination.
"""

from __future__ import annotations

from .process_runner import (
    EXIT_CODE_UNKNOWN,
    SPAWN_ERRORS,
    CapturedOutput,
    ProcessRunner,
    ProcessSpec,
    SpawnError,
    StreamChannel,
    StreamedLine,
    StreamItem,
    Termination,
)

__all__ = [
    "EXIT_CODE_UNKNOWN",
    "SPAWN_ERRORS",
    "CapturedOutput",
    "ProcessRunner",
    "ProcessSpec",
    "SpawnError",
    "StreamChannel",
    "StreamedLine",
    "StreamItem",
    "Termination",
]
