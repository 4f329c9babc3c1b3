"""Model catalog and per-conversation configuration.

Each conversation (a thread, or the channel a request was typed in) owns an
immutable ``ConversationConfig``. Commands replace the stored value; turns take
a snapshot when they are sent, so concurrent threads never observe each
other's switches.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict

from cascade_bridge.log_utils import log_event

logger = logging.getLogger(__name__)

# Display name -> backend model id, in picker order.
MODEL_CATALOG: Dict[str, str] = {
    "Gemini 3.1 Pro (High)": "MODEL_PLACEHOLDER_M37",
    "Gemini 3.1 Pro (Low)": "MODEL_PLACEHOLDER_M36",
    "Gemini 3 Pro (High)": "MODEL_GOOGLE_GEMINI_2_5_FLASH_THINKING",
    "Gemini 3 Pro (Low)": "MODEL_GOOGLE_GEMINI_2_5_FLASH_LITE",
    "Gemini 3 Flash": "MODEL_PLACEHOLDER_M18",
    "Claude Sonnet 4.6 (Thinking)": "MODEL_PLACEHOLDER_M35",
    "Claude Opus 4.6 (Thinking)": "MODEL_PLACEHOLDER_M26",
    "GPT-OSS 120B (Medium)": "MODEL_OPENAI_GPT_OSS_120B_MEDIUM",
}

DEFAULT_MODEL_DISPLAY = "Gemini 3.1 Pro (High)"
PLANNING_MODEL_DISPLAY = "Gemini 3.1 Pro (High)"
FAST_MODEL_DISPLAY = "Gemini 3 Flash"

MODE_PLANNING = "Planning"
MODE_FAST = "Fast"

UNKNOWN_MODEL_DISPLAY = "Unknown Model"


def display_name_for(model_id: str) -> str:
    for display, mid in MODEL_CATALOG.items():
        if mid == model_id:
            return display
    return UNKNOWN_MODEL_DISPLAY


def resolve_model(value: str | None) -> tuple[str, str] | None:
    """Resolve a display name or backend id to ``(model_id, display_name)``."""
    if not value:
        return None
    if value in MODEL_CATALOG:
        return MODEL_CATALOG[value], value
    lowered = value.strip().lower()
    for display, mid in MODEL_CATALOG.items():
        if display.lower() == lowered or mid.lower() == lowered:
            return mid, display
    return None


@dataclass(frozen=True)
class ConversationConfig:
    model_id: str
    model_display: str
    mode: str = MODE_PLANNING
    auto_approve: bool = False

    def with_model(self, model_id: str) -> "ConversationConfig":
        return replace(self, model_id=model_id, model_display=display_name_for(model_id))

    def with_mode(self, mode: str) -> "ConversationConfig":
        """Switch mode; planning and fast each pin their model."""
        if mode == MODE_PLANNING:
            display = PLANNING_MODEL_DISPLAY
        elif mode == MODE_FAST:
            display = FAST_MODEL_DISPLAY
        else:
            raise ValueError(f"Unknown mode: {mode}")
        return replace(self, mode=mode, model_id=MODEL_CATALOG[display], model_display=display)

    def toggled_auto_approve(self) -> "ConversationConfig":
        return replace(self, auto_approve=not self.auto_approve)

    @property
    def status_label(self) -> str:
        return f"`{self.model_display}` / `{self.mode}`"


def default_config(default_model: str | None = None) -> ConversationConfig:
    resolved = resolve_model(default_model)
    if resolved is None:
        if default_model:
            logger.warning("Unknown default model %r; using %s", default_model, DEFAULT_MODEL_DISPLAY)
        resolved = MODEL_CATALOG[DEFAULT_MODEL_DISPLAY], DEFAULT_MODEL_DISPLAY
    model_id, display = resolved
    return ConversationConfig(model_id=model_id, model_display=display)


class ConversationConfigStore:
    """In-memory map of conversation key -> ``ConversationConfig``."""

    def __init__(self, default: ConversationConfig) -> None:
        self._default = default
        self._configs: Dict[str, ConversationConfig] = {}

    @property
    def default(self) -> ConversationConfig:
        return self._default

    def get(self, key: str) -> ConversationConfig:
        return self._configs.get(key, self._default)

    def set(self, key: str, config: ConversationConfig) -> ConversationConfig:
        self._configs[key] = config
        log_event(
            logger,
            "config.updated",
            conversation=key,
            model=config.model_display,
            mode=config.mode,
            auto_approve=config.auto_approve,
        )
        return config

    def inherit(self, child_key: str, parent_key: str) -> ConversationConfig:
        """Seed a new thread with its parent channel's current config."""
        config = self.get(parent_key)
        self._configs[child_key] = config
        return config
