"""
Molkbook SDK - Frame Decoder

Reassembles wire frames out of arbitrarily split text chunks.
"""

from typing import List


FRAME_DELIMITER = "\n\n"


class FrameDecoder:
    """
    Buffers raw text and splits it into complete frames.

    A frame is everything up to a blank line (two consecutive ``\\n``).
    Text after the last delimiter stays buffered until the next chunk
    completes it, so a chunk boundary may fall anywhere, including
    between the two line breaks of the delimiter.

    Usage:
        decoder = FrameDecoder()
        for chunk in chunks:
            for frame in decoder.feed(chunk):
                handle(frame)
        leftover = decoder.finish()
    """

    def __init__(self):
        self._buffer = ""
        # Offset below which the buffer is known to hold no delimiter
        self._scan_from = 0

    @property
    def pending(self) -> str:
        """Text received but not yet part of a complete frame."""
        return self._buffer

    def feed(self, chunk: str) -> List[str]:
        """Append a chunk and return every frame it completed, in order."""
        if not chunk:
            return []

        self._buffer += chunk
        frames: List[str] = []
        start = 0
        search_from = self._scan_from

        while True:
            index = self._buffer.find(FRAME_DELIMITER, search_from)
            if index < 0:
                break
            frames.append(self._buffer[start:index])
            start = index + len(FRAME_DELIMITER)
            search_from = start

        if start:
            self._buffer = self._buffer[start:]

        # A delimiter may straddle the next chunk boundary
        self._scan_from = max(0, len(self._buffer) - (len(FRAME_DELIMITER) - 1))
        return frames

    def finish(self) -> str:
        """Return and clear the unterminated remainder at end-of-stream."""
        remainder = self._buffer
        self.reset()
        return remainder

    def reset(self) -> None:
        """Discard any buffered text."""
        self._buffer = ""
        self._scan_from = 0
