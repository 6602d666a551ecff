"""Forwarding proxy between the console and the language-model provider.

Keeps the provider credential out of the console process. Built on
stdlib ``http.server`` and served from a daemon thread.

Endpoints
---------
POST /api/chat      Forward ``{"messages": [...]}`` to the provider
GET  /health        Liveness probe
"""

from __future__ import annotations

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

import httpx

from rescue_console.modules.advisory.client import provider_payload
from rescue_console.utils.config import (
    ADVISORY_REQUEST_TIMEOUT,
    DEFAULT_PROVIDER_API_URL,
    DEFAULT_PROVIDER_MODEL,
    DEFAULT_PROXY_PORT,
    ConsoleSettings,
)
from rescue_console.utils.logging import LogLevel, StructuredLogger, get_logger

logger = logging.getLogger(__name__)


class ChatForwarder:
    """Forwards chat messages to the provider and shapes the reply.

    ``forward`` never raises; it returns the status and JSON body the
    proxy sends back to its caller.
    """

    def __init__(
        self,
        api_key: str | None,
        api_url: str = DEFAULT_PROVIDER_API_URL,
        model: str = DEFAULT_PROVIDER_MODEL,
        timeout: float = ADVISORY_REQUEST_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._model = model
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: ConsoleSettings,
        transport: httpx.BaseTransport | None = None,
    ) -> ChatForwarder:
        return cls(
            api_key=settings.provider_api_key,
            api_url=settings.provider_api_url,
            timeout=settings.advisory_timeout,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def forward(self, messages: Any) -> tuple[int, dict[str, Any]]:
        """Send ``messages`` to the provider.

        Returns:
            (status, body). The provider body is passed through unchanged
            on success.
        """
        if not self._api_key:
            logger.error("Provider API key missing")
            return 500, {"error": "Provider API key not configured"}

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(
                    self._api_url,
                    json=provider_payload(messages, self._model),
                    headers=headers,
                )
            if not response.is_success:
                logger.error(f"Provider API error {response.status_code}: {response.text[:200]}")
                return response.status_code, {
                    "error": "Provider API Error",
                    "details": response.text,
                }
            return 200, response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Proxy forwarding failed: {e}")
            return 500, {"error": "Internal Server Error"}


# =====================================================================
# HTTP Request Handler
# =====================================================================

class _ProxyHandler(BaseHTTPRequestHandler):
    """Handles proxy requests."""

    # Bound per server by AdvisoryProxyServer.start()
    _forwarder: ChatForwarder
    _events: StructuredLogger

    def log_message(self, format: str, *args: Any) -> None:
        pass  # Suppress default stderr

    def _send_json(self, data: Any, status: int = 200) -> None:
        body = json.dumps(data, default=str).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()
        self.wfile.write(body)

    def do_OPTIONS(self) -> None:
        """Handle CORS preflight."""
        self.send_response(204)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()

    def do_GET(self) -> None:
        path = self.path.split("?")[0]
        if path == "/health":
            self._send_json({"status": "ok"})
        else:
            self._send_json({"error": "Not found"}, 404)

    def do_POST(self) -> None:
        path = self.path.split("?")[0]
        if path == "/api/chat":
            self._handle_chat()
        else:
            self._send_json({"error": "Not found"}, 404)

    def _handle_chat(self) -> None:
        length = int(self.headers.get("Content-Length", 0))
        raw = self.rfile.read(length) if length else b""
        try:
            payload = json.loads(raw or b"{}")
        except json.JSONDecodeError:
            self._send_json({"error": "Invalid JSON"}, 400)
            return
        if not isinstance(payload, dict):
            self._send_json({"error": "Invalid JSON"}, 400)
            return

        self._events.proxy("chat request received")
        status, body = self._forwarder.forward(payload.get("messages"))
        if status == 200:
            self._events.proxy("chat request forwarded", state="ok")
        else:
            self._events.proxy(
                "chat request failed",
                level=LogLevel.ERROR,
                state=str(status),
                reason=body.get("error"),
            )
        self._send_json(body, status)


class AdvisoryProxyServer:
    """Runs the forwarding proxy in a daemon thread.

    Parameters
    ----------
    forwarder : ChatForwarder
        Provider forwarding logic.
    port : int
        Port to listen on (default 3001, 0 picks a free port).
    host : str
        Interface to bind.
    """

    def __init__(
        self,
        forwarder: ChatForwarder,
        port: int = DEFAULT_PROXY_PORT,
        host: str = "",
        event_log: StructuredLogger | None = None,
    ) -> None:
        self._forwarder = forwarder
        self._requested_port = port
        self._host = host
        self._events = event_log or get_logger()
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        """Bound port once started, the requested port before."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._requested_port

    @property
    def url(self) -> str:
        return f"http://localhost:{self.port}"

    @property
    def running(self) -> bool:
        return self._server is not None

    def start(self) -> None:
        handler = type(
            "BoundProxyHandler",
            (_ProxyHandler,),
            {"_forwarder": self._forwarder, "_events": self._events},
        )
        self._server = ThreadingHTTPServer((self._host, self._requested_port), handler)
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="advisory-proxy",
        )
        self._thread.start()
        if not self._forwarder.configured:
            logger.warning("Provider API key not set; /api/chat will answer 500")
        logger.info(f"Advisory proxy running on {self.url}")

    def serve_forever(self) -> None:
        """Start and block until interrupted."""
        self.start()
        try:
            assert self._thread is not None
            while self._thread.is_alive():
                self._thread.join(timeout=0.5)
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        logger.info("Advisory proxy stopped")

    def __enter__(self) -> AdvisoryProxyServer:
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()
