"""
Molkbook SDK - Streaming Module

Client side of the generation stream protocol:
- Frame reassembly from arbitrarily split chunks
- Frame classification into delta / completed / failed events
- Sessions with ordered dispatch and cancellation
"""

from .events import (
    EventKind,
    ContentDelta,
    Completed,
    Failed,
    StreamEvent,
)
from .decoder import FrameDecoder, FRAME_DELIMITER
from .classifier import (
    classify_frame,
    parse_done_payload,
    escape_newlines,
    unescape_newlines,
)
from .transport import (
    ChunkTransport,
    AsyncChunkTransport,
    HttpTransport,
    AsyncHttpTransport,
)
from .session import (
    SessionState,
    StreamSession,
    AsyncStreamSession,
)

__all__ = [
    # Events
    "EventKind",
    "ContentDelta",
    "Completed",
    "Failed",
    "StreamEvent",
    # Decoding
    "FrameDecoder",
    "FRAME_DELIMITER",
    "classify_frame",
    "parse_done_payload",
    "escape_newlines",
    "unescape_newlines",
    # Transports
    "ChunkTransport",
    "AsyncChunkTransport",
    "HttpTransport",
    "AsyncHttpTransport",
    # Sessions
    "SessionState",
    "StreamSession",
    "AsyncStreamSession",
]
