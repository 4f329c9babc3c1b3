from __future__ import annotations

import pytest

from cascade_bridge.models import (
    MODE_FAST,
    MODE_PLANNING,
    MODEL_CATALOG,
    ConversationConfigStore,
    default_config,
    display_name_for,
    resolve_model,
)


def test_default_config_is_planning_with_gemini_pro() -> None:
    config = default_config()
    assert config.model_display == "Gemini 3.1 Pro (High)"
    assert config.model_id == "MODEL_PLACEHOLDER_M37"
    assert config.mode == MODE_PLANNING
    assert config.auto_approve is False
    assert config.status_label == "`Gemini 3.1 Pro (High)` / `Planning`"


def test_default_model_accepts_display_name_or_id() -> None:
    assert default_config("gemini 3 flash").model_id == "MODEL_PLACEHOLDER_M18"
    assert default_config("MODEL_PLACEHOLDER_M26").model_display == "Claude Opus 4.6 (Thinking)"


def test_unknown_default_model_falls_back(caplog) -> None:
    config = default_config("not-a-model")
    assert config.model_display == "Gemini 3.1 Pro (High)"
    assert "Unknown default model" in caplog.text


def test_display_name_lookup() -> None:
    for display, model_id in MODEL_CATALOG.items():
        assert display_name_for(model_id) == display
    assert display_name_for("MODEL_NOPE") == "Unknown Model"
    assert resolve_model("") is None
    assert resolve_model("nope") is None


def test_modes_pin_their_models() -> None:
    config = default_config().with_model("MODEL_PLACEHOLDER_M35")

    fast = config.with_mode(MODE_FAST)
    planning = fast.with_mode(MODE_PLANNING)

    assert (fast.mode, fast.model_display) == ("Fast", "Gemini 3 Flash")
    assert (planning.mode, planning.model_display) == ("Planning", "Gemini 3.1 Pro (High)")
    assert config.model_display == "Claude Sonnet 4.6 (Thinking)"
    with pytest.raises(ValueError):
        config.with_mode("Turbo")


def test_auto_approve_toggle_keeps_model() -> None:
    config = default_config().with_model("MODEL_PLACEHOLDER_M18")
    toggled = config.toggled_auto_approve()
    assert toggled.auto_approve is True
    assert toggled.model_id == config.model_id
    assert toggled.toggled_auto_approve().auto_approve is False


def test_store_is_per_conversation() -> None:
    store = ConversationConfigStore(default_config())
    store.set("thread-a", store.get("thread-a").with_mode(MODE_FAST))

    assert store.get("thread-a").mode == MODE_FAST
    assert store.get("thread-b").mode == MODE_PLANNING
    assert store.get("thread-b") is store.default


def test_new_thread_inherits_channel_config() -> None:
    store = ConversationConfigStore(default_config())
    store.set("channel", store.get("channel").toggled_auto_approve())

    inherited = store.inherit("thread", "channel")
    store.set("channel", store.get("channel").with_mode(MODE_FAST))

    assert inherited.auto_approve is True
    assert store.get("thread").mode == MODE_PLANNING
    assert store.get("thread").auto_approve is True
