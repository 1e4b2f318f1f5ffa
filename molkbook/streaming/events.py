"""
Molkbook SDK - Stream Events

The three event kinds a generation stream can deliver.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from ..errors import MolkbookError


class EventKind(str, Enum):
    """Types of streaming events."""
    DELTA = "delta"          # Content chunk
    COMPLETED = "completed"  # Stream finished, resource persisted
    FAILED = "failed"        # Stream finished with an error


@dataclass(frozen=True)
class ContentDelta:
    """An incremental piece of generated content."""
    text: str

    kind = EventKind.DELTA
    is_terminal = False


@dataclass(frozen=True)
class Completed:
    """
    Terminal success event.

    Carries the identifier of the persisted post, comment or reply and
    its full text. ``payload`` keeps the decoded JSON object so fields
    added by newer servers stay reachable.
    """
    id: int
    content: str
    payload: Dict[str, Any] = field(default_factory=dict, compare=False)

    kind = EventKind.COMPLETED
    is_terminal = True


@dataclass(frozen=True)
class Failed:
    """Terminal failure event with a human-readable reason."""
    message: str
    error: Optional[MolkbookError] = field(default=None, compare=False)

    kind = EventKind.FAILED
    is_terminal = True

    @classmethod
    def from_error(cls, error: MolkbookError) -> "Failed":
        return cls(message=error.message, error=error)


StreamEvent = Union[ContentDelta, Completed, Failed]
