"""
Molkbook SDK - Pytest Configuration

Shared fixtures:
- Wire frame builders
- In-memory chunk transports (sync and async)
- httpx MockTransport helpers for streamed responses
- A localhost server that holds a stream open
"""

import json
import socket
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx
import pytest

from molkbook.streaming.classifier import escape_newlines


# ============================================================
# Frame Builders
# ============================================================

def delta_frame(text: str) -> str:
    """Content frame as the server writes it."""
    return f"data: {escape_newlines(text)}\n\n"


def done_frame(resource_id: int, content: str) -> str:
    return "event: done\ndata: " + json.dumps({"id": resource_id, "content": content}) + "\n\n"


def error_frame(message: str) -> str:
    return f"event: error\ndata: {message}\n\n"


def stream_for(deltas: Iterable[str], resource_id: int = 1) -> str:
    """Full wire text for a successful generation of ``deltas``."""
    deltas = list(deltas)
    return "".join(delta_frame(d) for d in deltas) + done_frame(resource_id, "".join(deltas))


def split_every(text: str, size: int) -> List[str]:
    return [text[i:i + size] for i in range(0, len(text), size)]


# ============================================================
# In-memory Transports
# ============================================================

class FakeTransport:
    """
    Chunk transport fed from a list.

    Items may be strings (yielded) or exceptions (raised). ``on_chunk``
    runs after each chunk is handed out, which lets tests cancel
    "while chunks are in flight".
    """

    def __init__(self, chunks: Iterable[Any], on_chunk: Optional[Callable[[int], None]] = None):
        self.chunks = list(chunks)
        self.on_chunk = on_chunk
        self.cancel_calls = 0
        self.opened = 0
        self.closed = False
        self.served = 0

    def iter_chunks(self):
        self.opened += 1
        try:
            for index, item in enumerate(self.chunks):
                if self.cancel_calls:
                    return
                if isinstance(item, BaseException):
                    raise item
                self.served += 1
                yield item
                if self.on_chunk:
                    self.on_chunk(index)
        finally:
            self.closed = True

    def cancel(self):
        self.cancel_calls += 1


class AsyncFakeTransport:
    """Async counterpart of ``FakeTransport``."""

    def __init__(self, chunks: Iterable[Any], gate: Optional["object"] = None):
        self.chunks = list(chunks)
        self.gate = gate
        self.cancel_calls = 0
        self.closed = False
        self.served = 0

    async def aiter_chunks(self):
        try:
            for item in self.chunks:
                if self.gate is not None:
                    await self.gate.wait()
                if self.cancel_calls:
                    return
                if isinstance(item, BaseException):
                    raise item
                self.served += 1
                yield item
        finally:
            self.closed = True

    def cancel(self):
        self.cancel_calls += 1


class BlockingTransport:
    """
    Yields the given chunks, then blocks until cancelled.

    Models a server that keeps the connection open.
    """

    def __init__(self, chunks: Iterable[str]):
        self.chunks = list(chunks)
        self.released = threading.Event()
        self.served_all = threading.Event()
        self.cancel_calls = 0

    def iter_chunks(self):
        for chunk in self.chunks:
            yield chunk
        self.served_all.set()
        self.released.wait(timeout=5)

    def cancel(self):
        self.cancel_calls += 1
        self.released.set()


# ============================================================
# httpx Mock Helpers
# ============================================================

class Recorder:
    """Remembers every request a MockTransport handled."""

    def __init__(self):
        self.requests: List[httpx.Request] = []

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def streaming_transport(
    chunks: Iterable[str],
    status_code: int = 200,
    recorder: Optional[Recorder] = None,
    asynchronous: bool = False,
) -> httpx.MockTransport:
    """
    MockTransport answering every request with the given body chunks.

    Pass ``asynchronous=True`` when the transport backs an AsyncClient.
    """
    chunks = [c.encode("utf-8") for c in chunks]

    async def abody():
        for chunk in chunks:
            yield chunk

    def handler(request: httpx.Request) -> httpx.Response:
        if recorder is not None:
            recorder.requests.append(request)
        return httpx.Response(
            status_code,
            headers={"Content-Type": "text/event-stream"},
            content=abody() if asynchronous else iter(chunks),
        )

    return httpx.MockTransport(handler)


def json_transport(
    routes: Dict[str, Any],
    recorder: Optional[Recorder] = None,
) -> httpx.MockTransport:
    """
    MockTransport serving JSON by ``"METHOD /path"`` key.

    A value is either a body (status 200) or a ``(status, body)`` tuple;
    a list of those is served in order across repeated calls.
    """
    served: Dict[str, int] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if recorder is not None:
            recorder.requests.append(request)
        key = f"{request.method} {request.url.path}"
        if key not in routes:
            return httpx.Response(404, json={"error": "Resource not found"})

        route = routes[key]
        if isinstance(route, list):
            index = served.get(key, 0)
            served[key] = index + 1
            route = route[min(index, len(route) - 1)]

        if isinstance(route, tuple):
            status, body = route
        else:
            status, body = 200, route
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler)


# ============================================================
# Live Socket Server
# ============================================================

class HeldStreamServer:
    """
    One-shot HTTP server on localhost.

    Answers the first request with a chunked event stream containing
    ``first_body``, then keeps the connection open without sending more
    until ``release`` is set. Models a generation that is still thinking.
    """

    def __init__(self, first_body: str):
        self.first_body = first_body.encode("utf-8")
        self.release = threading.Event()
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.bind(("127.0.0.1", 0))
        self._listener.listen(1)
        self._listener.settimeout(10)
        self.port = self._listener.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}/api"

    def start(self) -> "HeldStreamServer":
        self._thread.start()
        return self

    def _serve(self) -> None:
        try:
            conn, _ = self._listener.accept()
        except OSError:
            return
        with conn:
            request = b""
            while b"\r\n\r\n" not in request:
                data = conn.recv(4096)
                if not data:
                    return
                request += data
            conn.sendall(
                b"HTTP/1.1 200 OK\r\n"
                b"Content-Type: text/event-stream\r\n"
                b"Transfer-Encoding: chunked\r\n\r\n"
            )
            conn.sendall(b"%x\r\n%s\r\n" % (len(self.first_body), self.first_body))
            self.release.wait(timeout=10)

    def close(self) -> None:
        self.release.set()
        self._listener.close()
        self._thread.join(timeout=5)


@pytest.fixture
def held_stream_server(monkeypatch):
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(name, raising=False)
    server = HeldStreamServer(delta_frame("a")).start()
    yield server
    server.close()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep developer environment variables out of the tests."""
    monkeypatch.delenv("MOLKBOOK_TOKEN", raising=False)
    monkeypatch.delenv("MOLKBOOK_BASE_URL", raising=False)
