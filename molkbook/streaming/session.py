"""
Molkbook SDK - Stream Sessions

One generation stream, from opening the request to its single terminal
outcome.

    Transport -> FrameDecoder -> classify_frame -> session -> handlers

A session is used once. It can be consumed two ways:

    # Handlers
    session = StreamSession(transport, on_delta=print_delta, on_completed=save)
    session.start()      # background thread
    ...
    session.cancel()     # no handler runs after this returns

    # Event iterator
    for event in session.events():
        ...

Guarantees:
- events are delivered in the order their frames arrived
- at most one terminal event (Completed or Failed), nothing after it
- exactly one terminal event unless the session is cancelled
- no event after cancel(); cancelling is not an error
"""

from __future__ import annotations

import asyncio
import inspect
import threading
import uuid
from contextlib import closing
from enum import Enum
from typing import Any, AsyncIterator, Callable, Iterator, List, Optional

from ..errors import MolkbookError, ProtocolError
from ..logging import get_logger
from .classifier import classify_frame, describe_frame
from .decoder import FrameDecoder
from .events import Completed, ContentDelta, Failed, StreamEvent
from .transport import AsyncChunkTransport, ChunkTransport


logger = get_logger(__name__)

DeltaHandler = Callable[[str], Any]
CompletedHandler = Callable[[Completed], Any]
FailedHandler = Callable[[Failed], Any]


class SessionState(str, Enum):
    """Lifecycle of a stream session."""
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED)


class _SessionCore:
    """
    State shared by the sync and async sessions.

    Holds the decode buffer, the cancellation flag and the handlers, and
    decides which events may still be delivered.
    """

    def __init__(
        self,
        kind: str = "content",
        on_delta: Optional[DeltaHandler] = None,
        on_completed: Optional[CompletedHandler] = None,
        on_failed: Optional[FailedHandler] = None,
    ):
        self.kind = kind
        self.session_id = f"gen_{uuid.uuid4().hex[:12]}"
        self.on_delta = on_delta
        self.on_completed = on_completed
        self.on_failed = on_failed

        self._decoder = FrameDecoder()
        self._state = SessionState.IDLE
        self._cancelled = False
        self._delivered: List[str] = []
        self._outcome: Optional[StreamEvent] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def outcome(self) -> Optional[StreamEvent]:
        """The terminal event, once one was delivered."""
        return self._outcome

    @property
    def partial_content(self) -> str:
        """Concatenation of every delta delivered so far."""
        return "".join(self._delivered)

    def _open(self) -> bool:
        """Move IDLE -> CONNECTING. False if cancelled before start."""
        if self._cancelled:
            return False
        if self._state is not SessionState.IDLE:
            raise RuntimeError("Stream session can only be consumed once")
        self._state = SessionState.CONNECTING
        logger.debug("Stream session opened", session_id=self.session_id, kind=self.kind)
        return True

    def _decode(self, chunk: str) -> List[StreamEvent]:
        if self._state is SessionState.CONNECTING:
            self._state = SessionState.STREAMING

        events: List[StreamEvent] = []
        for frame in self._decoder.feed(chunk):
            event = classify_frame(frame)
            if event is None:
                logger.debug(
                    "Skipping unknown frame",
                    session_id=self.session_id,
                    **describe_frame(frame),
                )
                continue
            events.append(event)
        return events

    def _end_of_stream(self) -> StreamEvent:
        """Event for a stream that closed without a terminal frame."""
        remainder = self._decoder.finish()
        if remainder.strip():
            logger.warning(
                "Discarding unterminated frame at end of stream",
                session_id=self.session_id,
                pending_chars=len(remainder),
            )
        return Failed.from_error(ProtocolError("Stream ended before completion"))

    def _admit(self, event: StreamEvent) -> bool:
        """
        Record an event about to be delivered.

        Returns False when the session is cancelled or already finished;
        the caller must then stop without delivering anything.
        """
        if self._cancelled or self._state.is_terminal:
            return False

        if isinstance(event, ContentDelta):
            self._delivered.append(event.text)
        elif isinstance(event, Completed):
            self._state = SessionState.COMPLETED
            self._outcome = event
            if event.content != self.partial_content:
                logger.warning(
                    "Completed content differs from streamed deltas",
                    session_id=self.session_id,
                    streamed_chars=len(self.partial_content),
                    completed_chars=len(event.content),
                )
            logger.info(
                "Stream completed",
                session_id=self.session_id,
                kind=self.kind,
                resource_id=event.id,
            )
        else:
            self._state = SessionState.FAILED
            self._outcome = event
            logger.info(
                "Stream failed",
                session_id=self.session_id,
                kind=self.kind,
                reason=event.message,
            )
        return True

    def _mark_cancelled(self) -> bool:
        """Flag cancellation. False if the session had already finished."""
        if self._state.is_terminal:
            return False
        self._cancelled = True
        self._state = SessionState.CANCELLED
        logger.info("Stream cancelled", session_id=self.session_id, kind=self.kind)
        return True

    def _release(self) -> None:
        self._decoder.reset()
        # Consumer stopped iterating before a terminal event
        if not self._state.is_terminal:
            self._mark_cancelled()

    def _handler_for(self, event: StreamEvent):
        if isinstance(event, ContentDelta):
            return self.on_delta, event.text
        if isinstance(event, Completed):
            return self.on_completed, event
        return self.on_failed, event


class StreamSession(_SessionCore):
    """
    Synchronous stream session.

    Args:
        transport: Chunk source, usually an ``HttpTransport``.
        kind: Label for the generated resource ("post", "comment", "reply").
        on_delta: Called with each piece of text.
        on_completed: Called once with the ``Completed`` event.
        on_failed: Called once with the ``Failed`` event.
    """

    def __init__(
        self,
        transport: ChunkTransport,
        kind: str = "content",
        on_delta: Optional[DeltaHandler] = None,
        on_completed: Optional[CompletedHandler] = None,
        on_failed: Optional[FailedHandler] = None,
    ):
        super().__init__(kind, on_delta, on_completed, on_failed)
        self._transport = transport
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def _pump(self) -> Iterator[StreamEvent]:
        """Classified events in arrival order, ending with a terminal one."""
        chunks = self._transport.iter_chunks()
        try:
            for chunk in chunks:
                if self._cancelled:
                    return
                for event in self._decode(chunk):
                    yield event
        except MolkbookError as e:
            if not self._cancelled:
                logger.debug("Stream transport failed", session_id=self.session_id, error=repr(e))
                yield Failed.from_error(e)
            return
        finally:
            close = getattr(chunks, "close", None)
            if close is not None:
                close()

        if not self._cancelled:
            yield self._end_of_stream()

    def events(self) -> Iterator[StreamEvent]:
        """
        Iterate over the session's events.

        Leaving the loop early cancels the session and releases the
        connection.
        """
        if not self._open():
            return
        try:
            with closing(self._pump()) as pump:
                for event in pump:
                    with self._lock:
                        admitted = self._admit(event)
                    if not admitted:
                        return
                    yield event
                    if event.is_terminal:
                        return
        finally:
            with self._lock:
                self._release()
            self._transport.cancel()

    def run(self) -> Optional[StreamEvent]:
        """
        Consume the stream, dispatching every event to its handler.

        Returns:
            The terminal event, or None if the session was cancelled.
        """
        with closing(self.events()) as events:
            for event in events:
                if self._cancelled:
                    break
                handler, argument = self._handler_for(event)
                if handler is not None:
                    handler(argument)
        return self._outcome

    def start(self) -> threading.Thread:
        """Run the session on a daemon thread."""
        if self._thread is not None:
            raise RuntimeError("Stream session already started")
        self._thread = threading.Thread(
            target=self._run_in_background,
            name=f"molkbook-{self.session_id}",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def _run_in_background(self) -> None:
        try:
            self.run()
        except Exception:
            logger.exception("Stream handler raised", session_id=self.session_id)

    def wait(self, timeout: Optional[float] = None) -> Optional[StreamEvent]:
        """Block until a background session finishes."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self._outcome

    def cancel(self) -> None:
        """
        Stop the stream. Idempotent; a no-op once the session finished.

        No handler is invoked after this returns, except one that was
        already running when it was called.
        """
        with self._lock:
            changed = self._mark_cancelled()
        if changed:
            self._transport.cancel()


class AsyncStreamSession(_SessionCore):
    """
    Asyncio stream session.

    Handlers may be plain functions or coroutine functions.
    """

    def __init__(
        self,
        transport: AsyncChunkTransport,
        kind: str = "content",
        on_delta: Optional[DeltaHandler] = None,
        on_completed: Optional[CompletedHandler] = None,
        on_failed: Optional[FailedHandler] = None,
    ):
        super().__init__(kind, on_delta, on_completed, on_failed)
        self._transport = transport
        self._task: Optional[asyncio.Task] = None
        self._interrupted = False

    async def _pump(self) -> AsyncIterator[StreamEvent]:
        chunks = self._transport.aiter_chunks()
        try:
            async for chunk in chunks:
                if self._cancelled:
                    return
                for event in self._decode(chunk):
                    yield event
        except MolkbookError as e:
            if not self._cancelled:
                logger.debug("Stream transport failed", session_id=self.session_id, error=repr(e))
                yield Failed.from_error(e)
            return
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()

        if not self._cancelled:
            yield self._end_of_stream()

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Async iterator over the session's events."""
        if not self._open():
            return
        pump = self._pump()
        try:
            async for event in pump:
                if not self._admit(event):
                    return
                yield event
                if event.is_terminal:
                    return
        finally:
            await pump.aclose()
            self._release()
            self._transport.cancel()

    async def run(self) -> Optional[StreamEvent]:
        """
        Consume the stream, dispatching every event to its handler.

        Returns:
            The terminal event, or None if the session was cancelled.
        """
        if self._task is None:
            self._task = asyncio.current_task()

        events = self.events()
        try:
            async for event in events:
                if self._cancelled:
                    break
                handler, argument = self._handler_for(event)
                if handler is not None:
                    result = handler(argument)
                    if inspect.isawaitable(result):
                        await result
        except asyncio.CancelledError:
            # Only swallow the interruption cancel() caused
            if not self._interrupted:
                raise
            task = asyncio.current_task()
            if task is not None and hasattr(task, "uncancel"):
                task.uncancel()
        finally:
            await events.aclose()
        return self._outcome

    def start(self) -> asyncio.Task:
        """Run the session as a background task on the running loop."""
        if self._task is not None:
            raise RuntimeError("Stream session already started")
        self._task = asyncio.ensure_future(self._run_in_background())
        return self._task

    async def _run_in_background(self) -> Optional[StreamEvent]:
        try:
            return await self.run()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Stream handler raised", session_id=self.session_id)
            return None

    async def wait(self) -> Optional[StreamEvent]:
        """Wait for a background session to finish."""
        if self._task is not None and self._task is not asyncio.current_task():
            await asyncio.gather(self._task, return_exceptions=True)
        return self._outcome

    def cancel(self) -> None:
        """
        Stop the stream. Idempotent; a no-op once the session finished.

        When called from outside the session's task, the task is cancelled
        so a pending read is interrupted immediately.
        """
        if not self._mark_cancelled():
            return
        self._transport.cancel()

        task = self._task
        if task is not None and not task.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if task is not current:
                self._interrupted = True
                task.cancel()
