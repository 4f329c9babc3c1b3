"""Chat platform contract used by the bridge core.

The core only ever creates messages, edits them, replies to them, and opens
threads. Platform bindings (``cascade_bridge.gateway``) implement these
protocols and raise ``SurfaceError`` when the platform refuses an operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Protocol, Sequence, Tuple

ButtonStyle = Literal["primary", "secondary", "success", "danger"]

MAX_BUTTONS_PER_ROW = 5


@dataclass(frozen=True)
class Button:
    custom_id: str
    label: str
    style: ButtonStyle = "secondary"


@dataclass(frozen=True)
class Card:
    """Rich block rendered next to message text (an embed on Discord)."""

    title: str
    description: str = ""
    color: int | None = None
    fields: Tuple[Tuple[str, str], ...] = ()
    footer: str = ""


def button_rows(buttons: Sequence[Button], per_row: int = MAX_BUTTONS_PER_ROW) -> List[List[Button]]:
    return [list(buttons[i : i + per_row]) for i in range(0, len(buttons), per_row)]


class ImageSource(Protocol):
    """An image attachment that is only downloaded when a turn uses it."""

    @property
    def name(self) -> str: ...

    async def read(self) -> bytes: ...


class ThreadHandle(Protocol):
    @property
    def id(self) -> str: ...

    async def send(self, content: str) -> "MessageHandle": ...


class MessageHandle(Protocol):
    @property
    def id(self) -> str: ...

    async def edit(self, content: str) -> None: ...

    async def reply(
        self,
        content: str = "",
        *,
        buttons: Sequence[Button] = (),
        files: Sequence[Path] = (),
        card: Card | None = None,
    ) -> "MessageHandle": ...

    async def start_thread(self, name: str) -> ThreadHandle: ...


class ButtonPress(Protocol):
    """A click on one of the bridge's buttons."""

    @property
    def user_id(self) -> str: ...

    @property
    def custom_id(self) -> str: ...

    @property
    def conversation_id(self) -> str: ...

    @property
    def message(self) -> MessageHandle: ...

    async def update(self, content: str = "", *, card: Card | None = None) -> None:
        """Replace the clicked message's content and remove its buttons."""
        ...

    async def notify(self, content: str) -> None:
        """Reply visibly only to the clicking user."""
        ...


@dataclass
class IncomingMessage:
    author_id: str
    author_name: str
    content: str
    channel_id: str
    thread_id: str | None
    message: MessageHandle
    images: List[ImageSource] = field(default_factory=list)
    is_bot: bool = False

    @property
    def conversation_id(self) -> str:
        return self.thread_id or self.channel_id
