from __future__ import annotations

import asyncio
import itertools
from pathlib import Path
from typing import Any, List, Sequence

from cascade_bridge.backend.steps import PLANNER_RESPONSE_TYPE, STATUS_DONE, Step
from cascade_bridge.errors import SurfaceError
from cascade_bridge.surface import Button, Card, IncomingMessage

STATUS_RUNNING = "CORTEX_STEP_STATUS_GENERATING"

_ids = itertools.count(1)


def planner(text: str, *, done: bool = False) -> Step:
    return Step.model_validate(
        {
            "type": PLANNER_RESPONSE_TYPE,
            "status": STATUS_DONE if done else STATUS_RUNNING,
            "plannerResponse": {"response": text},
        }
    )


def other_step(status: str = STATUS_DONE) -> Step:
    return Step.model_validate({"type": "CORTEX_STEP_TYPE_RUN_COMMAND", "status": status})


class FakeMessage:
    """In-memory message handle; every operation lands in a shared log."""

    def __init__(
        self,
        content: str = "",
        *,
        log: list[tuple[str, str, Any]] | None = None,
        buttons: Sequence[Button] = (),
        files: Sequence[Path] = (),
        card: Card | None = None,
        fail_edits: int = 0,
    ) -> None:
        self.id = f"m{next(_ids)}"
        self.content = content
        self.log = log if log is not None else []
        self.buttons = list(buttons)
        self.files = list(files)
        self.card = card
        self.fail_edits = fail_edits
        self.fail_replies = False
        self.edits: list[str] = []
        self.replies: list[FakeMessage] = []
        self.threads: list[FakeThread] = []

    async def edit(self, content: str) -> None:
        if self.fail_edits:
            self.fail_edits -= 1
            raise SurfaceError("429 Too Many Requests")
        self.edits.append(content)
        self.content = content
        self.log.append(("edit", self.id, content))

    async def reply(
        self,
        content: str = "",
        *,
        buttons: Sequence[Button] = (),
        files: Sequence[Path] = (),
        card: Card | None = None,
    ) -> "FakeMessage":
        if self.fail_replies:
            raise SurfaceError("Missing Permissions")
        child = FakeMessage(content, log=self.log, buttons=buttons, files=files, card=card)
        self.replies.append(child)
        self.log.append(("reply", self.id, child.id))
        return child

    async def start_thread(self, name: str) -> "FakeThread":
        thread = FakeThread(name, log=self.log)
        self.threads.append(thread)
        self.log.append(("thread", self.id, thread.id))
        return thread


class FakeThread:
    def __init__(self, name: str, *, log: list[tuple[str, str, Any]]) -> None:
        self.id = f"t{next(_ids)}"
        self.name = name
        self.log = log
        self.messages: list[FakeMessage] = []

    async def send(self, content: str) -> FakeMessage:
        message = FakeMessage(content, log=self.log)
        self.messages.append(message)
        self.log.append(("send", self.id, message.id))
        return message


class FakePress:
    def __init__(
        self,
        custom_id: str,
        *,
        user_id: str = "owner",
        conversation_id: str = "thread-1",
        message: FakeMessage | None = None,
    ) -> None:
        self.custom_id = custom_id
        self.user_id = user_id
        self.conversation_id = conversation_id
        self.message = message or FakeMessage("panel")
        self.updates: list[tuple[str, Card | None]] = []
        self.notices: list[str] = []

    async def update(self, content: str = "", *, card: Card | None = None) -> None:
        self.updates.append((content, card))

    async def notify(self, content: str) -> None:
        self.notices.append(content)


class FakeImage:
    def __init__(self, data: bytes, *, name: str = "shot.png", fail: bool = False) -> None:
        self.name = name
        self.data = data
        self.fail = fail
        self.reads = 0

    async def read(self) -> bytes:
        self.reads += 1
        if self.fail:
            raise SurfaceError("404 Not Found")
        return self.data


def incoming(
    content: str,
    *,
    author_id: str = "owner",
    channel_id: str = "chan-1",
    thread_id: str | None = None,
    images: List[FakeImage] | None = None,
) -> IncomingMessage:
    return IncomingMessage(
        author_id=author_id,
        author_name=f"user-{author_id}",
        content=content,
        channel_id=channel_id,
        thread_id=thread_id,
        message=FakeMessage(content),
        images=images or [],
    )


class FakeClient:
    """Scripted backend.

    Each ``get_steps`` call returns the next snapshot; the last one repeats.
    """

    def __init__(self, snapshots: Sequence[Sequence[Step]] = ()) -> None:
        self.snapshots: list[list[Step]] = [list(s) for s in snapshots]
        self.started = 0
        self.polls = 0
        self.sent: list[tuple[str, list[dict[str, Any]], str]] = []
        self.accepted: list[str] = []
        self.poll_error: Exception | None = None
        self.send_error: Exception | None = None
        self.accept_error: Exception | None = None
        self.start_response: Any = None

    async def start_cascade(self) -> Any:
        await asyncio.sleep(0)
        self.started += 1
        if self.start_response is not None:
            return self.start_response
        return {"cascadeId": f"cascade-{self.started}"}

    async def send_user_message(self, cascade_id: str, items: list[dict[str, Any]], model: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((cascade_id, items, model))

    async def get_steps(self, cascade_id: str) -> list[Step]:
        self.polls += 1
        if self.poll_error is not None:
            raise self.poll_error
        if not self.snapshots:
            return []
        if len(self.snapshots) > 1:
            return self.snapshots.pop(0)
        return self.snapshots[0]

    async def accept_interaction(self, cascade_id: str) -> None:
        self.accepted.append(cascade_id)
        if self.accept_error is not None:
            raise self.accept_error


class FakeClock:
    """Monotonic clock advanced only by ``sleep``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)
