"""Review panels for files the model asks the user to approve.

A ``<discord_review file="...">`` marker in a finished response becomes one
panel per file: the file attached plus Yes/No buttons whose ids carry the
cascade id. Approving sends a synthetic turn into the same cascade; rejecting
asks for corrections, which then arrive as an ordinary thread message.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List

from cascade_bridge import prompts
from cascade_bridge.errors import SurfaceError
from cascade_bridge.log_utils import log_context, log_event
from cascade_bridge.models import ConversationConfig, ConversationConfigStore
from cascade_bridge.surface import Button, ButtonPress, MessageHandle

logger = logging.getLogger(__name__)

REVIEW_YES_PREFIX = "review_yes_"
REVIEW_NO_PREFIX = "review_no_"
MAX_TRACKED_PANELS = 256

ContinueTurn = Callable[[str, str, MessageHandle, ConversationConfig], Awaitable[None]]


class ApprovalState(str, Enum):
    CREATED = "created"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def decided(self) -> bool:
        return self in (ApprovalState.APPROVED, ApprovalState.REJECTED)


@dataclass
class ApprovalRequest:
    cascade_id: str
    file: Path | None
    state: ApprovalState = ApprovalState.CREATED
    panel: MessageHandle | None = None
    history: List[ApprovalState] = field(default_factory=list)

    def transition(self, state: ApprovalState) -> None:
        self.history.append(self.state)
        self.state = state


class Authorizer:
    """Single allow-listed user. An empty id lets everyone through."""

    def __init__(self, allowed_user_id: str) -> None:
        self.allowed_user_id = allowed_user_id
        if not allowed_user_id:
            logger.warning("No allowed user id configured; every user may drive the bridge")

    def is_allowed(self, user_id: str) -> bool:
        return not self.allowed_user_id or user_id == self.allowed_user_id


def review_buttons(cascade_id: str) -> List[Button]:
    return [
        Button(f"{REVIEW_YES_PREFIX}{cascade_id}", prompts.REVIEW_YES_LABEL, "success"),
        Button(f"{REVIEW_NO_PREFIX}{cascade_id}", prompts.REVIEW_NO_LABEL, "danger"),
    ]


def parse_review_id(custom_id: str) -> tuple[bool, str] | None:
    """Return ``(approved, cascade_id)`` for a review button id."""
    for prefix, approved in ((REVIEW_YES_PREFIX, True), (REVIEW_NO_PREFIX, False)):
        if custom_id.startswith(prefix):
            cascade_id = custom_id[len(prefix) :]
            if cascade_id:
                return approved, cascade_id
    return None


def is_review_id(custom_id: str) -> bool:
    return parse_review_id(custom_id) is not None


class ApprovalGate:
    """Tracks review panels by panel message id.

    Only the most recent ``max_tracked`` panels are remembered. A press on an
    older panel is treated like one raised before a restart.
    """

    def __init__(
        self,
        authorizer: Authorizer,
        configs: ConversationConfigStore,
        *,
        continue_turn: ContinueTurn | None = None,
        max_tracked: int = MAX_TRACKED_PANELS,
    ) -> None:
        self._authorizer = authorizer
        self._configs = configs
        self.continue_turn = continue_turn
        self.max_tracked = max_tracked
        self._requests: OrderedDict[str, ApprovalRequest] = OrderedDict()

    def request_for(self, panel_id: str) -> ApprovalRequest | None:
        return self._requests.get(panel_id)

    def _track(self, panel_id: str, request: ApprovalRequest) -> None:
        self._requests[panel_id] = request
        self._requests.move_to_end(panel_id)
        while len(self._requests) > self.max_tracked:
            self._requests.popitem(last=False)

    async def raise_reviews(
        self,
        cascade_id: str,
        files: List[Path],
        anchor: MessageHandle,
        config: ConversationConfig | None = None,
    ) -> List[ApprovalRequest]:
        """Send one panel per file as replies under ``anchor``."""
        raised: List[ApprovalRequest] = []
        with log_context(cascade_id=cascade_id):
            for path in files:
                request = ApprovalRequest(cascade_id=cascade_id, file=path)
                try:
                    panel = await anchor.reply(
                        prompts.REVIEW_PANEL,
                        buttons=review_buttons(cascade_id),
                        files=[path],
                    )
                except SurfaceError as exc:
                    log_event(logger, "review.panel.failed", level=logging.WARNING, file=str(path), error=str(exc))
                    continue
                request.panel = panel
                request.transition(ApprovalState.AWAITING_APPROVAL)
                self._track(panel.id, request)
                raised.append(request)
                log_event(logger, "review.panel.sent", file=str(path), panel=panel.id)
        return raised

    async def handle_press(self, press: ButtonPress) -> ApprovalRequest | None:
        if not self._authorizer.is_allowed(press.user_id):
            log_event(logger, "auth.rejected", level=logging.WARNING, user=press.user_id, button=press.custom_id)
            await press.notify(prompts.NOT_AUTHORIZED)
            return None

        parsed = parse_review_id(press.custom_id)
        if parsed is None:
            return None
        approved, cascade_id = parsed

        request = self._requests.get(press.message.id)
        if request is None:
            # Panel raised before a restart; the button still names its cascade.
            request = ApprovalRequest(cascade_id=cascade_id, file=None, panel=press.message)
            request.transition(ApprovalState.AWAITING_APPROVAL)
            self._track(press.message.id, request)

        if request.state.decided:
            await press.notify(prompts.ALREADY_DECIDED)
            return request

        with log_context(cascade_id=cascade_id):
            if approved:
                request.transition(ApprovalState.APPROVED)
                log_event(logger, "review.approved", panel=press.message.id)
                await press.update(prompts.APPROVED_PANEL)
                if self.continue_turn is not None:
                    config = self._configs.get(press.conversation_id)
                    await self.continue_turn(cascade_id, prompts.APPROVED_TURN, press.message, config)
            else:
                request.transition(ApprovalState.REJECTED)
                log_event(logger, "review.rejected", panel=press.message.id)
                await press.update(prompts.REJECTED_PANEL)
                await press.message.reply(prompts.REJECTED_FOLLOW_UP)
        return request
