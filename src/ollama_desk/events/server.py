"""内置 HTTP + SSE 事件桥

每个 SSE 客户端是 BroadcastEmitter 的一个订阅者，事件以具名 SSE 事件下发：

    event: progress
    data: {"model": "llama3", "status": "starting", ...}

UI 端可以直接 EventSource.addEventListener("<通道名>", ...) 按通道订阅。
"""

from __future__ import annotations

import http.server
import json
import logging
import queue
import socketserver
import threading
from dataclasses import dataclass

from .emitter import BroadcastEmitter
from .models import Channel

logger = logging.getLogger(__name__)

__all__ = [
    "EventServer",
    "ServerConfig",
]


@dataclass
class ServerConfig:
    """服务器配置"""
    host: str = "127.0.0.1"
    port: int = 0  # 0 = 随机端口
    max_clients: int = 10  # 最大客户端数
    keepalive_interval: float = 25.0  # 空闲时发送 ping 注释的间隔（秒）
    queue_size: int = 500  # 每个客户端的事件队列长度


class ReusableTCPServer(socketserver.ThreadingTCPServer):
    """支持端口复用的 TCP 服务器"""
    allow_reuse_address = True


class EventServer:
    """HTTP 服务器，把 BroadcastEmitter 的事件以 SSE 推送给 UI"""

    def __init__(self, emitter: BroadcastEmitter, config: ServerConfig | None = None):
        self.emitter = emitter
        self.config = config or ServerConfig()
        self._clients = 0
        self._lock = threading.Lock()
        self._server: socketserver.TCPServer | None = None
        self._actual_port: int = 0

    @property
    def port(self) -> int:
        """实际绑定的端口"""
        return self._actual_port

    @property
    def url(self) -> str:
        """SSE 事件流 URL"""
        return f"http://{self.config.host}:{self._actual_port}/sse"

    @property
    def client_count(self) -> int:
        """当前连接的客户端数量"""
        with self._lock:
            return self._clients

    def start(self) -> int:
        """启动服务器，返回实际端口"""
        handler = self._create_handler()

        self._server = ReusableTCPServer(
            (self.config.host, self.config.port), handler
        )
        self._server.daemon_threads = True  # SSE 线程不阻塞进程退出
        self._server.block_on_close = False  # stop() 不等待线程结束

        self._actual_port = self._server.server_address[1]

        thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="event_http_server"
        )
        thread.start()

        logger.info(f"Event server started at {self.url}")
        return self._actual_port

    def stop(self):
        """停止服务器"""
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            logger.debug("Event server stopped")

    def _client_connected(self) -> queue.Queue | None:
        """客户端连接，返回其订阅队列；超过上限返回 None"""
        with self._lock:
            if self._clients >= self.config.max_clients:
                logger.warning(f"Max clients ({self.config.max_clients}) reached")
                return None
            self._clients += 1
            logger.debug(f"Client connected, total: {self._clients}")
        return self.emitter.subscribe(self.config.queue_size)

    def _client_disconnected(self, subscriber: queue.Queue):
        """客户端断开"""
        self.emitter.unsubscribe(subscriber)
        with self._lock:
            self._clients -= 1
            logger.debug(f"Client disconnected, remaining: {self._clients}")

    def _create_handler(self):
        server = self

        class Handler(http.server.BaseHTTPRequestHandler):
            protocol_version = 'HTTP/1.1'

            def do_GET(self):
                if self.path == '/':
                    self._serve_status()
                elif self.path == '/sse':
                    self._serve_sse()
                else:
                    self.send_error(404)

            def _serve_status(self):
                content = json.dumps({
                    "clients": server.client_count,
                    "channels": [c.value for c in Channel],
                }).encode('utf-8')
                self.send_response(200)
                self.send_header('Content-Type', 'application/json')
                self.send_header('Content-Length', len(content))
                self.end_headers()
                self.wfile.write(content)

            def _serve_sse(self):
                subscriber = server._client_connected()
                if subscriber is None:
                    self.send_error(503, "Too many clients")
                    return

                try:
                    self.send_response(200)
                    self.send_header('Content-Type', 'text/event-stream')
                    self.send_header('Cache-Control', 'no-cache')
                    self.send_header('Connection', 'keep-alive')
                    self.send_header('X-Accel-Buffering', 'no')
                    self.end_headers()

                    while True:
                        try:
                            envelope = subscriber.get(timeout=server.config.keepalive_interval)
                            data = json.dumps(envelope["payload"], ensure_ascii=False)
                            frame = f"event: {envelope['channel']}\ndata: {data}\n\n"
                            self.wfile.write(frame.encode('utf-8'))
                            self.wfile.flush()
                        except queue.Empty:
                            self.wfile.write(b": ping\n\n")
                            self.wfile.flush()
                except (BrokenPipeError, ConnectionResetError, OSError, TimeoutError):
                    pass
                finally:
                    server._client_disconnected(subscriber)

            def log_message(self, format, *args):
                pass

        return Handler
