"""Display bookkeeping for one streamed turn."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from cascade_bridge.surface import MessageHandle

# Discord caps messages at 2000 characters; the margin covers the indicator
# and the truncation notice.
CHUNK_SIZE = 1900

INDICATOR_FRAMES = (" 🔵", " 🟢")


def chunk_text(text: str, size: int = CHUNK_SIZE) -> List[str]:
    """Split into fixed-size slices; always at least one (possibly empty)."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    if not text:
        return [""]
    return [text[i : i + size] for i in range(0, len(text), size)]


class EditThrottle:
    """Minimum spacing between edits, measured on a monotonic clock."""

    def __init__(self, interval_s: float) -> None:
        self.interval_s = interval_s
        self.last_edit_at: float | None = None

    def ready(self, now: float) -> bool:
        return self.last_edit_at is None or now - self.last_edit_at >= self.interval_s

    def mark(self, now: float) -> None:
        self.last_edit_at = now


class Indicator:
    """Two-frame "still working" suffix that flips on every render."""

    def __init__(self) -> None:
        self._index = len(INDICATOR_FRAMES) - 1

    def next(self) -> str:
        self._index = (self._index + 1) % len(INDICATOR_FRAMES)
        return INDICATOR_FRAMES[self._index]


@dataclass
class DisplayState:
    handles: List[MessageHandle]
    throttle: EditThrottle
    indicator: Indicator = field(default_factory=Indicator)
    last_shown_text: str | None = None
    flushes: int = 0

    def append(self, handle: MessageHandle) -> None:
        self.handles.append(handle)

    @property
    def last_handle(self) -> MessageHandle:
        return self.handles[-1]
