"""Polling loop that turns backend step snapshots into chat message edits."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Set

from cascade_bridge.backend.client import CascadeClient
from cascade_bridge.backend.steps import latest_planner_step
from cascade_bridge.directives import display_text, reviewable_files
from cascade_bridge.display import CHUNK_SIZE, DisplayState, EditThrottle, chunk_text
from cascade_bridge.errors import PollError, RpcError, SurfaceError, TurnTimeoutError
from cascade_bridge.log_utils import log_context, log_event
from cascade_bridge.models import ConversationConfig
from cascade_bridge.surface import MessageHandle

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.8
EDIT_INTERVAL_S = 1.5
CONTINUATION_PLACEHOLDER = "..."
TRUNCATED_NOTICE = "\n\n❌ Reply truncated: the rest of the answer could not be posted."

ReviewSink = Callable[[str, List[Path], MessageHandle, ConversationConfig], Awaitable[None]]


@dataclass
class TurnResult:
    cascade_id: str
    raw_text: str
    shown_text: str
    handles: List[MessageHandle]
    flushes: int
    review_files: List[Path] = field(default_factory=list)
    truncated: bool = False


class ResponseReconciler:
    """Run one polling loop per turn.

    A turn ends when the most recent planner step after ``baseline`` reports
    ``CORTEX_STEP_STATUS_DONE``. That cycle always flushes, ignoring the edit
    throttle, and no edit is issued after it.
    """

    def __init__(
        self,
        client: CascadeClient,
        *,
        poll_interval_s: float = POLL_INTERVAL_S,
        edit_interval_s: float = EDIT_INTERVAL_S,
        timeout_s: float | None = None,
        review_sink: ReviewSink | None = None,
        chunk_size: int = CHUNK_SIZE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self.poll_interval_s = poll_interval_s
        self.edit_interval_s = edit_interval_s
        self.timeout_s = timeout_s
        self.review_sink = review_sink
        self.chunk_size = chunk_size
        self._clock = clock
        self._sleep = sleep
        self._auto_approve_tasks: Set[asyncio.Task[None]] = set()

    async def run(
        self,
        cascade_id: str,
        handles: List[MessageHandle],
        config: ConversationConfig,
        *,
        baseline: int = 0,
    ) -> TurnResult:
        if not handles:
            raise ValueError("a turn needs at least one outgoing message")
        state = DisplayState(handles=handles, throttle=EditThrottle(self.edit_interval_s))
        started = self._clock()
        with log_context(cascade_id=cascade_id):
            log_event(logger, "turn.polling", baseline=baseline, model=config.model_display, mode=config.mode)
            while True:
                if self.timeout_s is not None and self._clock() - started >= self.timeout_s:
                    log_event(logger, "turn.timeout", level=logging.WARNING, timeout_s=self.timeout_s)
                    raise TurnTimeoutError(cascade_id, self.timeout_s)

                try:
                    steps = await self._client.get_steps(cascade_id)
                except RpcError as exc:
                    log_event(logger, "turn.poll.failed", level=logging.WARNING, error=str(exc))
                    raise PollError(cascade_id, str(exc)) from exc

                step = latest_planner_step(steps, start=baseline)
                if step is not None:
                    raw = step.response_text
                    if step.is_done:
                        return await self._finish(cascade_id, state, raw, config)
                    if raw != state.last_shown_text and state.throttle.ready(self._clock()):
                        await self._flush(state, raw, terminal=False, config=config)

                if config.auto_approve:
                    self._auto_approve(cascade_id)
                await self._sleep(self.poll_interval_s)

    async def _finish(
        self,
        cascade_id: str,
        state: DisplayState,
        raw: str,
        config: ConversationConfig,
    ) -> TurnResult:
        files = reviewable_files(raw)
        shown, truncated = await self._flush(state, raw, terminal=True, config=config)
        if files and self.review_sink is not None:
            await self.review_sink(cascade_id, files, state.last_handle, config)
        log_event(
            logger,
            "turn.complete",
            flushes=state.flushes,
            messages=len(state.handles),
            reviews=len(files),
            truncated=truncated,
        )
        return TurnResult(
            cascade_id=cascade_id,
            raw_text=raw,
            shown_text=shown,
            handles=state.handles,
            flushes=state.flushes,
            review_files=files,
            truncated=truncated,
        )

    async def _flush(
        self,
        state: DisplayState,
        raw: str,
        *,
        terminal: bool,
        config: ConversationConfig,
    ) -> tuple[str, bool]:
        """Render ``raw`` into the turn's messages; returns the shown text and whether it was cut short."""
        text = display_text(raw, terminal=terminal, status_label=config.status_label)
        chunks = chunk_text(text, self.chunk_size)

        while len(state.handles) < len(chunks):
            try:
                state.append(await state.last_handle.reply(CONTINUATION_PLACEHOLDER))
            except SurfaceError as exc:
                log_event(logger, "turn.reply.failed", level=logging.WARNING, error=str(exc), chunks=len(chunks))
                break
        posted = min(len(chunks), len(state.handles))

        edited = 0
        for index in range(posted):
            content = chunks[index]
            if index == posted - 1:
                if not terminal:
                    content += state.indicator.next()
                elif posted < len(chunks):
                    content += TRUNCATED_NOTICE
            try:
                await state.handles[index].edit(content)
            except SurfaceError as exc:
                log_event(logger, "turn.edit.failed", level=logging.DEBUG, index=index, error=str(exc))
                continue
            edited += 1

        state.flushes += 1
        if edited or terminal:
            state.throttle.mark(self._clock())
        # A chunk without a message keeps the text pending for the next cycle.
        if terminal or (edited and posted == len(chunks)):
            state.last_shown_text = raw
        return "".join(chunks[:posted]), posted < len(chunks)

    def _auto_approve(self, cascade_id: str) -> None:
        task = asyncio.create_task(self._accept(cascade_id))
        self._auto_approve_tasks.add(task)
        task.add_done_callback(self._auto_approve_tasks.discard)

    async def _accept(self, cascade_id: str) -> None:
        try:
            await self._client.accept_interaction(cascade_id)
        except Exception:  # noqa: BLE001
            logger.debug("Auto-approve tick failed for %s", cascade_id, exc_info=True)

    async def drain(self) -> None:
        """Wait for outstanding auto-approve ticks (shutdown and tests)."""
        if self._auto_approve_tasks:
            await asyncio.gather(*list(self._auto_approve_tasks), return_exceptions=True)
