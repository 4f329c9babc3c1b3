"""Turn orchestration between chat events and the cascade backend."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, List, Set

from cascade_bridge import commands, prompts
from cascade_bridge.approval import ApprovalGate, Authorizer, is_review_id
from cascade_bridge.backend.client import CascadeClient
from cascade_bridge.errors import BridgeError, PollError, RpcError, SurfaceError
from cascade_bridge.log_utils import log_context, log_event
from cascade_bridge.models import ConversationConfig, ConversationConfigStore, default_config
from cascade_bridge.reconciler import ResponseReconciler, TurnResult
from cascade_bridge.sessions import SessionManager, build_items
from cascade_bridge.settings import BridgeSettings
from cascade_bridge.surface import ButtonPress, IncomingMessage, MessageHandle

logger = logging.getLogger(__name__)


class Bridge:
    """Routes incoming messages and button presses.

    Every turn (user message or approved review) runs as its own task so a
    long cascade never blocks the event handlers of other threads.
    """

    def __init__(
        self,
        client: CascadeClient,
        settings: BridgeSettings,
        *,
        sessions: SessionManager | None = None,
        configs: ConversationConfigStore | None = None,
        reconciler: ResponseReconciler | None = None,
    ) -> None:
        self.client = client
        self.settings = settings
        self.sessions = sessions or SessionManager(client)
        self.configs = configs or ConversationConfigStore(default_config(settings.default_model))
        self.authorizer = Authorizer(settings.allowed_user_id)
        self.gate = ApprovalGate(self.authorizer, self.configs, continue_turn=self.continue_after_approval)
        if reconciler is None:
            reconciler = ResponseReconciler(
                client,
                poll_interval_s=settings.poll_interval_s,
                edit_interval_s=settings.edit_interval_s,
                timeout_s=settings.turn_timeout_s,
            )
        if reconciler.review_sink is None:
            reconciler.review_sink = self.gate.raise_reviews
        self.reconciler = reconciler
        self._turn_tasks: Set[asyncio.Task[Any]] = set()

    async def on_message(self, message: IncomingMessage) -> asyncio.Task[Any] | None:
        """Handle one chat message; returns the spawned turn task, if any."""
        if message.is_bot:
            return None
        if not self.authorizer.is_allowed(message.author_id):
            log_event(logger, "auth.rejected", level=logging.WARNING, user=message.author_id, name=message.author_name)
            return None
        if await commands.dispatch(commands.CommandContext(message=message, configs=self.configs)):
            return None
        if not message.content.strip() and not message.images:
            return None
        return self.spawn(self.handle_turn(message))

    async def on_button(self, press: ButtonPress) -> None:
        if await commands.handle_model_press(press, self.configs, self.authorizer):
            return
        if is_review_id(press.custom_id):
            await self.gate.handle_press(press)
            return
        logger.debug("Ignoring unknown button %s", press.custom_id)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._turn_tasks.add(task)
        task.add_done_callback(self._turn_done)
        return task

    def _turn_done(self, task: asyncio.Task[Any]) -> None:
        self._turn_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Turn task crashed", exc_info=exc)

    async def drain(self) -> None:
        """Wait for every in-flight turn (shutdown and tests)."""
        while self._turn_tasks:
            await asyncio.gather(*list(self._turn_tasks), return_exceptions=True)
        await self.reconciler.drain()

    async def handle_turn(self, message: IncomingMessage) -> TurnResult | None:
        config = self.configs.get(message.conversation_id)
        text = prompts.compose_turn_text(
            message.content,
            config,
            github_username=self.settings.github_username,
            github_token=self.settings.github_token,
        )
        with log_context(thread_id=message.thread_id):
            items = build_items(text, await self._download_images(message))
            try:
                if message.thread_id is not None:
                    opened = await self._open_in_thread(message, message.thread_id, config)
                else:
                    opened = await self._open_new_thread(message, config)
            except SurfaceError as exc:
                log_event(logger, "turn.surface.failed", level=logging.WARNING, error=str(exc))
                return None
            if opened is None:
                return None
            cascade_id, handle = opened
            return await self.run_turn(cascade_id, items, [handle], config)

    async def _download_images(self, message: IncomingMessage) -> List[bytes]:
        images: List[bytes] = []
        for source in message.images:
            try:
                images.append(await source.read())
            except SurfaceError as exc:
                log_event(logger, "image.fetch.failed", level=logging.WARNING, image=source.name, error=str(exc))
        return images

    async def _open_in_thread(
        self,
        message: IncomingMessage,
        thread_id: str,
        config: ConversationConfig,
    ) -> tuple[str, MessageHandle] | None:
        handle = await message.message.reply(prompts.thinking(config))
        try:
            cascade_id = await self.sessions.resolve_for_thread(thread_id)
        except BridgeError as exc:
            await self._report_failure(handle, exc)
            return None
        return cascade_id, handle

    async def _open_new_thread(
        self,
        message: IncomingMessage,
        config: ConversationConfig,
    ) -> tuple[str, MessageHandle] | None:
        status = await message.message.reply(prompts.THREAD_STARTING)
        try:
            cascade_id = await self.sessions.start_session()
            # DMs and channels without thread permissions fail here.
            thread = await message.message.start_thread(prompts.thread_name(message.content))
            await self.sessions.bind(thread.id, cascade_id)
            self.configs.inherit(thread.id, message.channel_id)
            handle = await thread.send(prompts.thinking(config))
        except BridgeError as exc:
            await self._report_failure(status, exc)
            return None
        with log_context(cascade_id=cascade_id, thread_id=thread.id):
            log_event(logger, "thread.opened", channel=message.channel_id)
        return cascade_id, handle

    async def run_turn(
        self,
        cascade_id: str,
        items: List[dict[str, Any]],
        handles: List[MessageHandle],
        config: ConversationConfig,
    ) -> TurnResult | None:
        """Send one turn and stream its answer into ``handles``."""
        with log_context(cascade_id=cascade_id):
            try:
                baseline = await self._baseline(cascade_id)
                await self.sessions.send_turn(cascade_id, items, config.model_id)
                return await self.reconciler.run(cascade_id, handles, config, baseline=baseline)
            except BridgeError as exc:
                log_event(logger, "turn.failed", level=logging.WARNING, error=str(exc), kind=type(exc).__name__)
                await self._report_failure(handles[-1], exc)
                return None

    async def continue_after_approval(
        self,
        cascade_id: str,
        text: str,
        anchor: MessageHandle,
        config: ConversationConfig,
    ) -> None:
        handle = await anchor.reply(prompts.processing(config))
        self.spawn(self.run_turn(cascade_id, build_items(text), [handle], config))

    async def _baseline(self, cascade_id: str) -> int:
        try:
            return await self.sessions.step_count(cascade_id)
        except RpcError as exc:
            raise PollError(cascade_id, str(exc)) from exc

    async def _report_failure(self, handle: MessageHandle, exc: BaseException) -> None:
        try:
            await handle.edit(prompts.turn_failed(exc))
        except SurfaceError:
            logger.warning("Could not report turn failure", exc_info=True)
