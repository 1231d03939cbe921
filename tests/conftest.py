"""Pytest configuration and fixtures for fluent-request tests.

This file provides:
- EchoServer: Threaded local HTTP server that echoes each request as JSON
- silent_listener: A socket that accepts connections at the kernel level
  but never answers, for timeout tests
- closed_port: A port with nothing listening, for connection-refused tests
- make_transport: httpx.MockTransport factory with call recording
"""

from __future__ import annotations

import json
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Generator

import httpx
import pytest


class _EchoHandler(BaseHTTPRequestHandler):
    """Responds with a JSON description of the request it received."""

    def _echo(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        payload = json.dumps(
            {
                "method": self.command,
                "path": self.path,
                "headers": {k.lower(): v for k, v in self.headers.items()},
                "body": body.decode("utf-8", errors="replace"),
            }
        ).encode("utf-8")

        status = 200
        if self.path.startswith("/status/"):
            status = int(self.path.split("/")[2].split("?")[0])

        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    do_GET = _echo
    do_POST = _echo
    do_PUT = _echo
    do_PATCH = _echo
    do_DELETE = _echo

    def log_message(self, format: str, *args: Any) -> None:
        pass


class EchoServer:
    """Local HTTP server running in a daemon thread.

    Usage:
        with EchoServer() as server:
            url = server.url("/widgets")
    """

    def __init__(self) -> None:
        self._server = ThreadingHTTPServer(("127.0.0.1", 0), _EchoHandler)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)

    @property
    def port(self) -> int:
        return self._server.server_address[1]

    def url(self, path: str = "/") -> str:
        return f"http://127.0.0.1:{self.port}{path}"

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._server.shutdown()
        self._server.server_close()
        self._thread.join(timeout=5)

    def __enter__(self) -> EchoServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


@pytest.fixture(scope="session")
def echo_server() -> Generator[EchoServer, None, None]:
    """Shared echo server for tests that need a real socket."""
    with EchoServer() as server:
        yield server


@pytest.fixture
def silent_listener() -> Generator[tuple[str, int], None, None]:
    """(host, port) of a socket that is listening but never responds."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(8)
    try:
        yield sock.getsockname()
    finally:
        sock.close()


@pytest.fixture
def closed_port() -> int:
    """A port that was free a moment ago, with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def make_transport() -> Callable[..., tuple[httpx.MockTransport, list[httpx.Request]]]:
    """Build an httpx.MockTransport that records every request it receives.

    Usage:
        transport, calls = make_transport(status_code=404, json={"error": "nope"})
    """

    def factory(
        status_code: int = 200,
        **response_kwargs: Any,
    ) -> tuple[httpx.MockTransport, list[httpx.Request]]:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            request.read()
            calls.append(request)
            return httpx.Response(status_code, **response_kwargs)

        return httpx.MockTransport(handler), calls

    return factory


@pytest.fixture
def unreachable_transport() -> httpx.MockTransport:
    """A transport that fails the test if anything reaches it."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"transport must not be used (got {request.method} {request.url})")

    return httpx.MockTransport(handler)
