from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from cascade_bridge import prompts
from cascade_bridge.approval import (
    ApprovalGate,
    ApprovalState,
    Authorizer,
    is_review_id,
    parse_review_id,
)
from cascade_bridge.models import ConversationConfigStore, default_config
from tests.utils import FakeMessage, FakePress


def make_gate(allowed: str = "owner", continue_turn=None) -> ApprovalGate:
    return ApprovalGate(Authorizer(allowed), ConversationConfigStore(default_config()), continue_turn=continue_turn)


def test_parse_review_ids() -> None:
    assert parse_review_id("review_yes_abc-123") == (True, "abc-123")
    assert parse_review_id("review_no_abc") == (False, "abc")
    assert parse_review_id("review_yes_") is None
    assert parse_review_id("model_X") is None
    assert is_review_id("review_no_c")


def test_empty_allowed_user_lets_everyone_in(caplog) -> None:
    authorizer = Authorizer("")
    assert authorizer.is_allowed("anyone")
    assert "No allowed user id configured" in caplog.text
    assert not Authorizer("owner").is_allowed("anyone")


@pytest.mark.asyncio
async def test_two_files_raise_two_panels_for_same_session(tmp_path) -> None:
    first, second = tmp_path / "plan.md", tmp_path / "tasks.md"
    first.write_text("1")
    second.write_text("2")
    gate = make_gate()
    anchor = FakeMessage()

    requests = await gate.raise_reviews("c1", [first, second], anchor)

    assert len(requests) == 2
    panels = anchor.replies
    assert [p.files for p in panels] == [[first], [second]]
    assert panels[0].id != panels[1].id
    for panel in panels:
        assert [b.custom_id for b in panel.buttons] == ["review_yes_c1", "review_no_c1"]
        assert panel.content == prompts.REVIEW_PANEL
    assert {r.cascade_id for r in requests} == {"c1"}
    assert all(r.state is ApprovalState.AWAITING_APPROVAL for r in requests)
    assert gate.request_for(panels[1].id) is requests[1]


@pytest.mark.asyncio
async def test_failed_panel_is_skipped(tmp_path) -> None:
    plan = tmp_path / "plan.md"
    plan.write_text("x")
    anchor = FakeMessage()
    anchor.fail_replies = True

    assert await make_gate().raise_reviews("c1", [plan], anchor) == []


@pytest.mark.asyncio
async def test_approve_updates_panel_and_continues_session(tmp_path) -> None:
    plan = tmp_path / "plan.md"
    plan.write_text("x")
    continue_turn = AsyncMock()
    gate = make_gate(continue_turn=continue_turn)
    [request] = await gate.raise_reviews("c1", [plan], FakeMessage())
    press = FakePress("review_yes_c1", message=request.panel, conversation_id="thread-9")

    result = await gate.handle_press(press)

    assert result is request
    assert request.state is ApprovalState.APPROVED
    assert request.history == [ApprovalState.CREATED, ApprovalState.AWAITING_APPROVAL]
    assert press.updates == [(prompts.APPROVED_PANEL, None)]
    continue_turn.assert_awaited_once_with("c1", prompts.APPROVED_TURN, request.panel, default_config())


@pytest.mark.asyncio
async def test_reject_asks_for_corrections(tmp_path) -> None:
    plan = tmp_path / "plan.md"
    plan.write_text("x")
    continue_turn = AsyncMock()
    gate = make_gate(continue_turn=continue_turn)
    [request] = await gate.raise_reviews("c1", [plan], FakeMessage())
    press = FakePress("review_no_c1", message=request.panel)

    await gate.handle_press(press)

    assert request.state is ApprovalState.REJECTED
    assert press.updates == [(prompts.REJECTED_PANEL, None)]
    assert [m.content for m in request.panel.replies] == [prompts.REJECTED_FOLLOW_UP]
    continue_turn.assert_not_awaited()


@pytest.mark.asyncio
async def test_decided_request_ignores_further_presses(tmp_path) -> None:
    plan = tmp_path / "plan.md"
    plan.write_text("x")
    continue_turn = AsyncMock()
    gate = make_gate(continue_turn=continue_turn)
    [request] = await gate.raise_reviews("c1", [plan], FakeMessage())

    await gate.handle_press(FakePress("review_yes_c1", message=request.panel))
    again = FakePress("review_no_c1", message=request.panel)
    await gate.handle_press(again)

    assert request.state is ApprovalState.APPROVED
    assert again.notices == [prompts.ALREADY_DECIDED]
    assert again.updates == []
    assert continue_turn.await_count == 1


@pytest.mark.asyncio
async def test_unauthorized_press_changes_nothing(tmp_path) -> None:
    plan = tmp_path / "plan.md"
    plan.write_text("x")
    continue_turn = AsyncMock()
    gate = make_gate(continue_turn=continue_turn)
    [request] = await gate.raise_reviews("c1", [plan], FakeMessage())
    press = FakePress("review_yes_c1", user_id="intruder", message=request.panel)

    result = await gate.handle_press(press)

    assert result is None
    assert press.notices == [prompts.NOT_AUTHORIZED]
    assert press.updates == []
    assert request.state is ApprovalState.AWAITING_APPROVAL
    assert request.panel.replies == []
    continue_turn.assert_not_awaited()


@pytest.mark.asyncio
async def test_panel_from_before_restart_still_works() -> None:
    continue_turn = AsyncMock()
    gate = make_gate(continue_turn=continue_turn)
    press = FakePress("review_yes_c7")

    request = await gate.handle_press(press)

    assert request is not None and request.file is None
    assert request.state is ApprovalState.APPROVED
    continue_turn.assert_awaited_once()
    assert continue_turn.await_args.args[0] == "c7"


@pytest.mark.asyncio
async def test_only_recent_panels_are_tracked(tmp_path) -> None:
    files = []
    for name in ("a.md", "b.md", "c.md"):
        path = tmp_path / name
        path.write_text(name)
        files.append(path)
    gate = ApprovalGate(Authorizer("owner"), ConversationConfigStore(default_config()), max_tracked=2)

    first, second, third = await gate.raise_reviews("c1", files, FakeMessage())

    assert gate.request_for(first.panel.id) is None
    assert gate.request_for(second.panel.id) is second
    assert gate.request_for(third.panel.id) is third
