"""
Molkbook SDK - Stream Transports

Open a streamed generation request and yield raw text chunks.

Both transports follow the same contract:
- each call to ``iter_chunks()`` / ``aiter_chunks()`` issues a new request
- failures raise ``TransportError`` (or a subclass)
- ``cancel()`` ends the chunk sequence early without raising
"""

from __future__ import annotations

import json
import socket
from typing import AsyncIterator, Iterator, Optional, Protocol

import httpx

from ..errors import TransportError, TimeoutError, ConnectionError
from ..logging import get_logger


logger = get_logger(__name__)

STREAM_METHOD = "POST"


class ChunkTransport(Protocol):
    """Anything a ``StreamSession`` can pull chunks from."""

    def iter_chunks(self) -> Iterator[str]:
        ...

    def cancel(self) -> None:
        ...


class AsyncChunkTransport(Protocol):
    """Anything an ``AsyncStreamSession`` can pull chunks from."""

    def aiter_chunks(self) -> AsyncIterator[str]:
        ...

    def cancel(self) -> None:
        ...


def _stream_headers(token: str) -> dict:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "text/event-stream",
    }


def _error_message(response: httpx.Response) -> str:
    """Best-effort message from an error body that has been read."""
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return f"HTTP {response.status_code}"
    if isinstance(data, dict):
        message = data.get("error") or data.get("message")
        if message:
            return str(message)
    return f"HTTP {response.status_code}"


def _status_error(response: httpx.Response) -> TransportError:
    return TransportError(
        message=_error_message(response),
        status_code=response.status_code,
        retryable=response.status_code >= 500 or response.status_code == 429,
    )


def _shutdown_socket(response: httpx.Response) -> None:
    """
    Wake a thread blocked reading ``response``.

    Closing the response from another thread does not interrupt a pending
    ``recv``; shutting the socket down does. Responses without a network
    stream (e.g. from ``httpx.MockTransport``) are left alone.
    """
    stream = response.extensions.get("network_stream")
    if stream is None:
        return
    sock = stream.get_extra_info("socket")
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # Peer already closed the connection
        pass


def _request_error(error: httpx.RequestError) -> TransportError:
    if isinstance(error, httpx.TimeoutException):
        return TimeoutError("Stream timed out")
    if isinstance(error, httpx.ConnectError):
        return ConnectionError("Failed to connect to API")
    return TransportError(f"Stream failed: {error}")


class HttpTransport:
    """
    Synchronous streamed ``POST`` over an ``httpx.Client``.

    ``cancel()`` may be called from another thread. It shuts down the
    response's socket, so a read blocked waiting for the server returns
    at once, then closes the response.

    Args:
        client: Shared HTTP client (base URL and timeouts configured).
        path: Endpoint path, e.g. ``/posts/generate/stream``.
        token: Bearer credential.
        timeout: Optional per-request timeout override.
    """

    def __init__(
        self,
        client: httpx.Client,
        path: str,
        token: str,
        timeout: Optional[httpx.Timeout] = None,
    ):
        self._client = client
        self.path = path
        self._token = token
        self._timeout = timeout
        self._response: Optional[httpx.Response] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def iter_chunks(self) -> Iterator[str]:
        """Open the request and yield decoded text chunks."""
        if self._cancelled:
            return

        kwargs = {"headers": _stream_headers(self._token)}
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout

        logger.debug("Opening generation stream", path=self.path)
        try:
            with self._client.stream(STREAM_METHOD, self.path, **kwargs) as response:
                self._response = response
                if self._cancelled:
                    return

                if not response.is_success:
                    response.read()
                    raise _status_error(response)

                for text in response.iter_text():
                    if self._cancelled:
                        return
                    if text:
                        yield text
        except httpx.RequestError as e:
            if self._cancelled:
                return
            raise _request_error(e) from e
        except httpx.StreamError as e:
            # Reading from a response closed by cancel()
            if self._cancelled:
                return
            raise TransportError(f"Stream failed: {e}") from e
        finally:
            self._response = None

    def cancel(self) -> None:
        """Stop reading and release the connection. Safe to call repeatedly."""
        self._cancelled = True
        response = self._response
        if response is not None:
            _shutdown_socket(response)
            response.close()


class AsyncHttpTransport:
    """
    Asynchronous streamed ``POST`` over an ``httpx.AsyncClient``.

    ``cancel()`` only flags the transport; the read loop stops at the next
    chunk. An ``AsyncStreamSession`` additionally cancels its reader task so
    a pending read is interrupted right away.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        path: str,
        token: str,
        timeout: Optional[httpx.Timeout] = None,
    ):
        self._client = client
        self.path = path
        self._token = token
        self._timeout = timeout
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def aiter_chunks(self) -> AsyncIterator[str]:
        """Open the request and yield decoded text chunks."""
        if self._cancelled:
            return

        kwargs = {"headers": _stream_headers(self._token)}
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout

        logger.debug("Opening generation stream", path=self.path)
        try:
            async with self._client.stream(STREAM_METHOD, self.path, **kwargs) as response:
                if self._cancelled:
                    return

                if not response.is_success:
                    await response.aread()
                    raise _status_error(response)

                async for text in response.aiter_text():
                    if self._cancelled:
                        return
                    if text:
                        yield text
        except httpx.RequestError as e:
            if self._cancelled:
                return
            raise _request_error(e) from e
        except httpx.StreamError as e:
            if self._cancelled:
                return
            raise TransportError(f"Stream failed: {e}") from e

    def cancel(self) -> None:
        """Flag the transport as cancelled. Safe to call repeatedly."""
        self._cancelled = True
