"""
Molkbook SDK - Frame Classifier

Turns a complete wire frame into a stream event.

Wire format (one frame per blank-line separated block):

    data: <delta text, newlines escaped as \\n>

    event: done
    data: {"id": 42, "content": "<full text>"}

    event: error
    data: <plain text message>
"""

import json
from typing import Any, Dict, List, Optional

from ..errors import ProtocolError, RemoteFailure
from .events import Completed, ContentDelta, Failed, StreamEvent


DATA_PREFIX = "data: "
DONE_MARKER = "event: done"
ERROR_MARKER = "event: error"
ESCAPED_NEWLINE = "\\n"


def escape_newlines(text: str) -> str:
    """Escape newlines the way the server writes them into a data line."""
    return text.replace("\n", ESCAPED_NEWLINE)


def unescape_newlines(text: str) -> str:
    """Replace every backslash-n sequence with a real newline."""
    return text.replace(ESCAPED_NEWLINE, "\n")


def parse_done_payload(data: str) -> Completed:
    """
    Decode the JSON payload of a ``done`` frame.

    Raises:
        ProtocolError: If the payload is not a JSON object with an
            integer ``id`` and a string ``content``.
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Failed to parse done data: {e.msg}", frame=data)

    if not isinstance(payload, dict):
        raise ProtocolError("Failed to parse done data: expected a JSON object", frame=data)

    resource_id = payload.get("id")
    content = payload.get("content")

    # bool is an int subclass but never a valid identifier
    if isinstance(resource_id, bool) or not isinstance(resource_id, int):
        raise ProtocolError("Failed to parse done data: missing integer 'id'", frame=data)
    if not isinstance(content, str):
        raise ProtocolError("Failed to parse done data: missing string 'content'", frame=data)

    return Completed(id=resource_id, content=content, payload=payload)


def _split_lines(frame: str) -> List[str]:
    lines = frame.split("\n")
    while lines and not lines[0]:
        lines.pop(0)
    return lines


def _data_of(line: str) -> Optional[str]:
    if line.startswith(DATA_PREFIX):
        return line[len(DATA_PREFIX):]
    return None


def classify_frame(frame: str) -> Optional[StreamEvent]:
    """
    Classify one complete frame.

    Returns:
        ``ContentDelta``, ``Completed`` or ``Failed``; ``None`` for frames
        of unknown shape, which are skipped so newer servers can add
        frame kinds without breaking older clients.
    """
    lines = _split_lines(frame)
    if not lines:
        return None

    first = lines[0]

    data = _data_of(first)
    if data is not None:
        parts = [data]
        for line in lines[1:]:
            more = _data_of(line)
            if more is not None:
                parts.append(more)
        return ContentDelta(text=unescape_newlines("\n".join(parts)))

    # Prefix match: servers may pad the marker line
    is_done = first.startswith(DONE_MARKER)
    if is_done or first.startswith(ERROR_MARKER):
        data = _data_of(lines[1]) if len(lines) > 1 else None
        if data is None:
            return None

        if is_done:
            try:
                return parse_done_payload(data)
            except ProtocolError as e:
                return Failed.from_error(e)

        return Failed.from_error(RemoteFailure(data))

    return None


def describe_frame(frame: str) -> Dict[str, Any]:
    """Small summary of a frame for log records."""
    lines = _split_lines(frame)
    return {
        "frame_lines": len(lines),
        "frame_head": lines[0][:40] if lines else "",
    }
