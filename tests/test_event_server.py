"""EventServer 单元测试"""

import json
import urllib.error
import urllib.request

import pytest

from ollama_desk.events import (
    BroadcastEmitter,
    Channel,
    EventServer,
    ProgressEvent,
    ServerConfig,
)


@pytest.fixture
def emitter():
    return BroadcastEmitter()


@pytest.fixture
def server(emitter):
    server = EventServer(emitter)
    server.start()
    yield server
    server.stop()


def base_url(server: EventServer) -> str:
    return f"http://{server.config.host}:{server.port}"


class TestEventServer:
    """EventServer 基本功能测试"""

    def test_server_starts_and_stops(self, emitter):
        """服务器能正常启动和停止"""
        server = EventServer(emitter)
        port = server.start()
        assert port > 0
        assert server.url == f"http://127.0.0.1:{port}/sse"
        server.stop()

    def test_status_endpoint(self, server):
        """根路径返回客户端数和通道列表"""
        with urllib.request.urlopen(base_url(server) + "/", timeout=2) as resp:
            status = json.loads(resp.read().decode("utf-8"))

        assert status["clients"] == 0
        assert status["channels"] == [
            "progress",
            "output",
            "chat-message",
            "chat-chunk",
            "chat-error",
        ]

    def test_unknown_path(self, server):
        """未知路径返回 404"""
        with pytest.raises(urllib.error.HTTPError) as exc_info:
            urllib.request.urlopen(base_url(server) + "/nope", timeout=2)
        assert exc_info.value.code == 404


class TestSSEConnection:
    """SSE 连接测试"""

    def test_named_event_delivered(self, emitter, server):
        """事件以具名 SSE 事件下发"""
        with urllib.request.urlopen(server.url, timeout=5) as resp:
            assert resp.headers.get("Content-Type") == "text/event-stream"
            assert emitter.subscriber_count == 1

            emitter.publish(Channel.PROGRESS, ProgressEvent.starting("llama3"))

            assert resp.readline() == b"event: progress\n"
            data = resp.readline()
            assert data.startswith(b"data: ")
            payload = json.loads(data[len(b"data: "):])
            assert payload["model"] == "llama3"
            assert payload["status"] == "starting"
            assert resp.readline() == b"\n"

    def test_string_payload(self, emitter, server):
        """字符串载荷按 JSON 字符串编码"""
        with urllib.request.urlopen(server.url, timeout=5) as resp:
            emitter.publish(Channel.CHAT_ERROR, "failed to get response: boom")

            assert resp.readline() == b"event: chat-error\n"
            assert resp.readline() == b'data: "failed to get response: boom"\n'

    def test_keepalive_comment(self, emitter):
        """空闲时发送 ping 注释"""
        server = EventServer(emitter, ServerConfig(keepalive_interval=0.1))
        server.start()
        try:
            with urllib.request.urlopen(server.url, timeout=5) as resp:
                assert resp.readline() == b": ping\n"
        finally:
            server.stop()


class TestClientManagement:
    """客户端管理测试"""

    def test_max_clients_limit(self, emitter):
        """客户端数量限制"""
        server = EventServer(emitter, ServerConfig(max_clients=2))

        q1 = server._client_connected()
        q2 = server._client_connected()
        assert q1 is not None
        assert q2 is not None
        assert server._client_connected() is None  # 超过限制
        assert server.client_count == 2
        assert emitter.subscriber_count == 2

    def test_client_disconnect_updates_count(self, emitter):
        """客户端断开后计数更新"""
        server = EventServer(emitter)
        q = server._client_connected()
        assert server.client_count == 1
        server._client_disconnected(q)
        assert server.client_count == 0
        assert emitter.subscriber_count == 0

    def test_over_limit_returns_503(self, emitter):
        """超过上限的 SSE 请求返回 503"""
        server = EventServer(emitter, ServerConfig(max_clients=1))
        server.start()
        try:
            with urllib.request.urlopen(server.url, timeout=5):
                with pytest.raises(urllib.error.HTTPError) as exc_info:
                    urllib.request.urlopen(server.url, timeout=5)
                assert exc_info.value.code == 503
        finally:
            server.stop()
