"""Tool Schema 定义。

包含操作描述、参数 schema 和 schema 创建函数。
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "OPERATION_PARAMS",
    "TOOL_DESCRIPTIONS",
    "PARAM_PROPERTIES",
    "EVENTS_URL_TOOL",
    "create_tool_schema",
]

# 特殊工具：返回 SSE 事件桥地址（不经过 DispatchRegistry）
EVENTS_URL_TOOL = "get_events_url"

# 操作名 -> 参数名（按顺序，全部必填）
OPERATION_PARAMS: dict[str, tuple[str, ...]] = {
    "list_models": (),
    "check_status": (),
    "pull_model": ("model",),
    "run_model": ("model",),
    "delete_model": ("model",),
    "send_chat_message": ("model", "message"),
    "execute_terminal_command": ("command",),
    "stream_chat_message": ("model", "message"),
    "get_status": (),
    "ping": (),
    "show_model": ("model",),
    "is_model_available": ("model",),
}

# 工具描述
TOOL_DESCRIPTIONS = {
    "list_models": "List locally installed models (name, id, size, modified). Returns JSON.",
    "check_status": "Return true if the ollama tool runs and `ollama list` succeeds. Never emits events.",
    "pull_model": """Download a model in the background and return immediately.

EVENTS:
- progress: starting, then exactly one completed event (error set on failure)
- output: the echoed command line, then captured stdout/stderr""",
    "run_model": "Check that a model can be loaded (`ollama run <model> --help`). Never emits events.",
    "delete_model": "Delete a local model (`ollama rm <model>`). Never emits events.",
    "send_chat_message": """Ask a model one question in the background and return immediately.

EVENTS:
- chat-message: {role: assistant, content} with the full reply, or
- chat-error: failure text if ollama could not be started
Exactly one of the two is emitted.""",
    "execute_terminal_command": """Run a whitespace-split command line in the background.

EVENTS:
- output: the echoed command line (exit_code null)
- output: combined stdout/stderr with the real exit code (-1 if it could not start)
An empty command line does nothing.""",
    "stream_chat_message": """Like send_chat_message, but each stdout line is also emitted as a chat-chunk event while the model answers.""",
    "get_status": "Return {is_running, version, error} from `ollama --version`. Never fails.",
    "ping": "Return {success, response_time_ms, error} for `ollama --version`. Never fails.",
    "show_model": "Return the raw output of `ollama show <model>`.",
    "is_model_available": "Return true if `ollama show <model>` succeeds.",
    EVENTS_URL_TOOL: "Get the SSE event stream URL. Subscribe by channel name: progress, output, chat-message, chat-chunk, chat-error.",
}

PARAM_PROPERTIES: dict[str, dict[str, Any]] = {
    "model": {
        "type": "string",
        "description": "Model identifier, e.g. 'llama3' or 'qwen2.5:7b'.",
    },
    "message": {
        "type": "string",
        "description": "The prompt, passed to the model as a single argument.",
    },
    "command": {
        "type": "string",
        "description": "Command line to run; split on whitespace, no shell quoting.",
    },
}


def create_tool_schema(name: str) -> dict[str, Any]:
    """创建操作的 JSON Schema。"""
    params = OPERATION_PARAMS.get(name, ())
    return {
        "type": "object",
        "properties": {param: PARAM_PROPERTIES[param] for param in params},
        "required": list(params),
    }
