"""
Molkbook SDK - Stream Transport Tests

HttpTransport / AsyncHttpTransport against httpx.MockTransport, and
cancellation against a live localhost connection.
"""

import asyncio
import threading
import time

import httpx
import pytest

from conftest import Recorder, delta_frame, done_frame, streaming_transport
from molkbook import AsyncMolkbook, Molkbook
from molkbook.errors import ConnectionError, TimeoutError, TransportError
from molkbook.streaming import AsyncHttpTransport, HttpTransport, SessionState


BASE_URL = "http://molkbook.test/api"
PATH = "/posts/generate/stream"


def make_client(transport):
    return httpx.Client(base_url=BASE_URL, transport=transport)


def failing_transport(exc_type):
    def handler(request):
        raise exc_type("boom", request=request)
    return httpx.MockTransport(handler)


class TestHttpTransport:
    """Tests for the synchronous transport."""

    def test_yields_body_chunks(self):
        chunks = [delta_frame("a"), delta_frame("b"), done_frame(1, "ab")]
        with make_client(streaming_transport(chunks)) as client:
            received = list(HttpTransport(client, PATH, "tok").iter_chunks())

        assert "".join(received) == "".join(chunks)

    def test_request_shape(self):
        """Streams POST with a bearer token and an event-stream Accept."""
        recorder = Recorder()
        with make_client(streaming_transport([done_frame(1, "")], recorder=recorder)) as client:
            list(HttpTransport(client, PATH, "secret-token").iter_chunks())

        request = recorder.last
        assert request.method == "POST"
        assert request.url.path == "/api/posts/generate/stream"
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.headers["Accept"] == "text/event-stream"

    def test_status_error_uses_body_message(self):
        transport = streaming_transport(['{"error": "Invalid token"}'], status_code=401)
        with make_client(transport) as client:
            with pytest.raises(TransportError) as exc_info:
                list(HttpTransport(client, PATH, "bad").iter_chunks())

        assert exc_info.value.message == "Invalid token"
        assert exc_info.value.status_code == 401
        assert exc_info.value.retryable is False

    def test_redirect_is_a_failure(self):
        """Any non-2xx status fails, not only 4xx and 5xx."""
        transport = streaming_transport([""], status_code=302)
        with make_client(transport) as client:
            with pytest.raises(TransportError) as exc_info:
                list(HttpTransport(client, PATH, "tok").iter_chunks())

        assert exc_info.value.status_code == 302
        assert exc_info.value.message == "HTTP 302"

    def test_status_error_without_json_body(self):
        transport = streaming_transport(["<html>gateway</html>"], status_code=502)
        with make_client(transport) as client:
            with pytest.raises(TransportError) as exc_info:
                list(HttpTransport(client, PATH, "tok").iter_chunks())

        assert exc_info.value.message == "HTTP 502"
        assert exc_info.value.retryable is True

    def test_connect_error_maps_to_connection_error(self):
        with make_client(failing_transport(httpx.ConnectError)) as client:
            with pytest.raises(ConnectionError):
                list(HttpTransport(client, PATH, "tok").iter_chunks())

    def test_timeout_maps_to_timeout_error(self):
        with make_client(failing_transport(httpx.ReadTimeout)) as client:
            with pytest.raises(TimeoutError):
                list(HttpTransport(client, PATH, "tok").iter_chunks())

    def test_cancel_stops_iteration_quietly(self):
        chunks = [delta_frame("a"), delta_frame("b"), delta_frame("c")]
        with make_client(streaming_transport(chunks)) as client:
            transport = HttpTransport(client, PATH, "tok")
            received = []
            for chunk in transport.iter_chunks():
                received.append(chunk)
                transport.cancel()

        assert received == [chunks[0]]
        assert transport.cancelled is True

    def test_cancel_before_open_sends_nothing(self):
        recorder = Recorder()
        with make_client(streaming_transport([done_frame(1, "")], recorder=recorder)) as client:
            transport = HttpTransport(client, PATH, "tok")
            transport.cancel()
            assert list(transport.iter_chunks()) == []

        assert recorder.requests == []


class TestAsyncHttpTransport:
    """Tests for the async transport."""

    @pytest.mark.asyncio
    async def test_yields_body_chunks(self):
        chunks = [delta_frame("a"), done_frame(1, "a")]
        mock = streaming_transport(chunks, asynchronous=True)
        async with httpx.AsyncClient(base_url=BASE_URL, transport=mock) as client:
            transport = AsyncHttpTransport(client, PATH, "tok")
            received = [chunk async for chunk in transport.aiter_chunks()]

        assert "".join(received) == "".join(chunks)

    @pytest.mark.asyncio
    async def test_status_error(self):
        mock = streaming_transport(['{"message": "Post not found"}'], status_code=404, asynchronous=True)
        async with httpx.AsyncClient(base_url=BASE_URL, transport=mock) as client:
            transport = AsyncHttpTransport(client, "/posts/99/comments/generate/stream", "tok")
            with pytest.raises(TransportError) as exc_info:
                [chunk async for chunk in transport.aiter_chunks()]

        assert exc_info.value.message == "Post not found"
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_cancel_flag_stops_iteration(self):
        chunks = [delta_frame("a"), delta_frame("b")]
        mock = streaming_transport(chunks, asynchronous=True)
        async with httpx.AsyncClient(base_url=BASE_URL, transport=mock) as client:
            transport = AsyncHttpTransport(client, PATH, "tok")
            received = []
            async for chunk in transport.aiter_chunks():
                received.append(chunk)
                transport.cancel()

        assert received == [chunks[0]]


class TestCancelOnLiveConnection:
    """cancel() while a read is waiting on a real socket."""

    def test_cancel_unblocks_pending_read(self, held_stream_server):
        """A reader blocked on a silent server returns promptly after cancel()."""
        received = []
        errors = []
        first_chunk = threading.Event()

        with httpx.Client(base_url=held_stream_server.base_url) as client:
            transport = HttpTransport(client, PATH, "tok")

            def consume():
                try:
                    for chunk in transport.iter_chunks():
                        received.append(chunk)
                        first_chunk.set()
                except Exception as e:
                    errors.append(e)

            reader = threading.Thread(target=consume, daemon=True)
            reader.start()
            assert first_chunk.wait(timeout=5)
            time.sleep(0.3)  # let the reader block on the socket again

            started = time.monotonic()
            transport.cancel()
            reader.join(timeout=3)

            assert not reader.is_alive()
            assert time.monotonic() - started < 3

        assert "".join(received) == delta_frame("a")
        assert errors == []

    def test_background_session_stops_promptly(self, held_stream_server):
        """A started session finishes its thread soon after cancel()."""
        deltas = []
        terminal = []
        got_delta = threading.Event()

        def on_delta(text):
            deltas.append(text)
            got_delta.set()

        client = Molkbook(token="tok", base_url=held_stream_server.base_url)
        session = client.posts.generate_stream(
            on_delta=on_delta,
            on_completed=terminal.append,
            on_failed=terminal.append,
        )
        thread = session.start()
        assert got_delta.wait(timeout=5)
        time.sleep(0.3)

        session.cancel()
        session.wait(timeout=3)

        assert not thread.is_alive()
        assert deltas == ["a"]
        assert terminal == []
        assert session.state == SessionState.CANCELLED
        client.close()

    @pytest.mark.asyncio
    async def test_async_session_stops_promptly(self, held_stream_server):
        deltas = []
        terminal = []
        got_delta = asyncio.Event()

        def on_delta(text):
            deltas.append(text)
            got_delta.set()

        async with AsyncMolkbook(token="tok", base_url=held_stream_server.base_url) as client:
            session = client.posts.generate_stream(
                on_delta=on_delta,
                on_completed=terminal.append,
                on_failed=terminal.append,
            )
            task = session.start()
            await asyncio.wait_for(got_delta.wait(), timeout=5)
            await asyncio.sleep(0.3)

            session.cancel()
            await asyncio.wait_for(session.wait(), timeout=3)

        assert task.done()
        assert deltas == ["a"]
        assert terminal == []
        assert session.state == SessionState.CANCELLED


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
