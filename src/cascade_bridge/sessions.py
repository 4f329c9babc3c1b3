"""Cascade lifecycle and thread -> cascade bindings."""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Dict, Iterable
from weakref import WeakValueDictionary

from cascade_bridge.backend.client import CascadeClient
from cascade_bridge.errors import RpcError, SendError, SessionStartError
from cascade_bridge.log_utils import log_context, log_event

logger = logging.getLogger(__name__)


def build_items(text: str, images: Iterable[bytes] = ()) -> list[dict[str, Any]]:
    """Shape a user turn into backend content items."""
    items: list[dict[str, Any]] = []
    if text:
        items.append({"text": text})
    for data in images:
        items.append({"image": {"data": base64.b64encode(data).decode("ascii")}})
    return items


class SessionManager:
    """Owns the process-wide thread -> cascade map.

    Bindings are not persisted. A thread whose binding was lost (restart) gets
    a fresh cascade on its next message; the backend history is gone but the
    thread keeps working. Every such recreation is logged and counted.
    """

    def __init__(self, client: CascadeClient) -> None:
        self._client = client
        self._bindings: Dict[str, str] = {}
        # Entries disappear once no coroutine holds the lock.
        self._locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()
        self.recreated_count = 0

    def binding(self, thread_id: str) -> str | None:
        return self._bindings.get(thread_id)

    def _lock_for(self, thread_id: str) -> asyncio.Lock:
        lock = self._locks.get(thread_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[thread_id] = lock
        return lock

    async def start_session(self) -> str:
        try:
            response = await self._client.start_cascade()
        except RpcError as exc:
            raise SessionStartError(f"Failed to start cascade: {exc}") from exc
        cascade_id = response.get("cascadeId") if isinstance(response, dict) else None
        if not cascade_id:
            raise SessionStartError(f"Failed to start cascade. Response: {response!r}")
        log_event(logger, "session.started", cascade_id=cascade_id)
        return str(cascade_id)

    async def resolve_for_thread(self, thread_id: str) -> str:
        """Return the thread's cascade, creating and binding one if missing.

        Serialized per thread so two quick messages cannot create two cascades.
        """
        lock = self._lock_for(thread_id)
        async with lock:
            cascade_id = self._bindings.get(thread_id)
            if cascade_id:
                with log_context(thread_id=thread_id, cascade_id=cascade_id):
                    log_event(logger, "session.resumed")
                return cascade_id
            cascade_id = await self.start_session()
            self._bindings[thread_id] = cascade_id
            self.recreated_count += 1
            with log_context(thread_id=thread_id, cascade_id=cascade_id):
                log_event(logger, "session.recreated", level=logging.WARNING, total=self.recreated_count)
            return cascade_id

    async def bind(self, thread_id: str, cascade_id: str) -> None:
        lock = self._lock_for(thread_id)
        async with lock:
            self._bindings[thread_id] = cascade_id
        with log_context(thread_id=thread_id, cascade_id=cascade_id):
            log_event(logger, "session.bound")

    async def step_count(self, cascade_id: str) -> int:
        return len(await self._client.get_steps(cascade_id))

    async def send_turn(self, cascade_id: str, items: list[dict[str, Any]], model: str) -> None:
        try:
            await self._client.send_user_message(cascade_id, items, model)
        except RpcError as exc:
            raise SendError(cascade_id, str(exc)) from exc
        with log_context(cascade_id=cascade_id):
            log_event(logger, "turn.sent", model=model, items=len(items))
