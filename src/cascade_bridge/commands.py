"""Chat commands: ``/models`` picker and ``/mode`` switches.

Commands change the configuration of the conversation they are typed in. A
top-level channel's configuration is copied into every thread opened from it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List

from cascade_bridge import prompts
from cascade_bridge.approval import Authorizer
from cascade_bridge.log_utils import log_event
from cascade_bridge.models import (
    MODE_FAST,
    MODE_PLANNING,
    MODEL_CATALOG,
    ConversationConfig,
    ConversationConfigStore,
    display_name_for,
)
from cascade_bridge.surface import Button, ButtonPress, Card, IncomingMessage

logger = logging.getLogger(__name__)

MODEL_BUTTON_PREFIX = "model_"
PICKER_COLOR = 0x2ECC71
SELECTED_COLOR = 0x5865F2

MODE_USAGE = "Invalid mode. Use `/mode planning`, `/mode fast`, or `/mode auto`."


@dataclass
class CommandContext:
    message: IncomingMessage
    configs: ConversationConfigStore

    @property
    def key(self) -> str:
        return self.message.conversation_id

    @property
    def config(self) -> ConversationConfig:
        return self.configs.get(self.key)


CommandHandler = Callable[[CommandContext, str], Awaitable[None]]


@dataclass
class CommandDef:
    description: str
    hint: str
    handler: CommandHandler


COMMANDS: Dict[str, CommandDef] = {}
ALIASES: Dict[str, str] = {"!models": "/models"}


def register_command(name: str, description: str, hint: str) -> Callable[[CommandHandler], CommandHandler]:
    """Decorator to register a chat command handler."""

    def _decorator(func: CommandHandler) -> CommandHandler:
        COMMANDS[name] = CommandDef(description=description, hint=hint, handler=func)
        return func

    return _decorator


def parse_command(content: str) -> tuple[str, str] | None:
    """Split ``/name argument`` into ``(name, argument)`` for known commands."""
    text = content.strip()
    if not text:
        return None
    head, _, rest = text.partition(" ")
    name = ALIASES.get(head.lower(), head.lower())
    if name not in COMMANDS:
        return None
    return name, rest.strip()


async def dispatch(ctx: CommandContext) -> bool:
    """Run the command in ``ctx.message`` if there is one."""
    parsed = parse_command(ctx.message.content)
    if parsed is None:
        return False
    name, argument = parsed
    log_event(logger, "command.received", command=name, conversation=ctx.key)
    await COMMANDS[name].handler(ctx, argument)
    return True


def model_buttons(current_model_id: str) -> List[Button]:
    return [
        Button(
            f"{MODEL_BUTTON_PREFIX}{model_id}",
            display,
            "success" if model_id == current_model_id else "secondary",
        )
        for display, model_id in MODEL_CATALOG.items()
    ]


def model_picker_card() -> Card:
    return Card(
        title="🧠 Model Configuration",
        description="Select the AI model for the bridge:",
        color=PICKER_COLOR,
    )


def model_selected_card(config: ConversationConfig) -> Card:
    return Card(
        title="🤖 Model Selected",
        color=SELECTED_COLOR,
        fields=(("Current Model", f"**{config.model_display}**"),),
        footer=f"Mode: {config.mode}",
    )


@register_command("/models", description="Pick the model for this conversation.", hint="/models")
async def _handle_models(ctx: CommandContext, _argument: str) -> None:
    await ctx.message.message.reply(card=model_picker_card(), buttons=model_buttons(ctx.config.model_id))


@register_command("/mode", description="Switch planning/fast mode or toggle auto-approve.", hint="/mode planning|fast|auto")
async def _handle_mode(ctx: CommandContext, argument: str) -> None:
    mode = argument.split(" ", 1)[0].lower() if argument else ""
    config = ctx.config
    if mode == "planning":
        ctx.configs.set(ctx.key, config.with_mode(MODE_PLANNING))
        reply = "🧠 Switched to **Planning Mode** (High Intelligence: Gemini 3.1 Pro)."
    elif mode == "fast":
        ctx.configs.set(ctx.key, config.with_mode(MODE_FAST))
        reply = "⚡ Switched to **Fast Mode** (High Speed: Gemini 3 Flash)."
    elif mode == "auto":
        updated = ctx.configs.set(ctx.key, config.toggled_auto_approve())
        status = "ON" if updated.auto_approve else "OFF"
        reply = (
            f"🤖 **Auto-Approve / GitHub Deployment Mode** is now **{status}**.\n"
            "*(When ON, the AI will be instructed to automatically run commands, "
            "create a GitHub repo, and push the final code.)*"
        )
    else:
        reply = MODE_USAGE
    await ctx.message.message.reply(reply)


def help_text() -> str:
    lines = ["**Bridge commands**"]
    for name, command in COMMANDS.items():
        aliases = [alias for alias, target in ALIASES.items() if target == name]
        suffix = f" (also `{'`, `'.join(aliases)}`)" if aliases else ""
        lines.append(f"`{command.hint}`: {command.description}{suffix}")
    return "\n".join(lines)


@register_command("/help", description="List the bridge's commands.", hint="/help")
async def _handle_help(ctx: CommandContext, _argument: str) -> None:
    await ctx.message.message.reply(help_text())


def is_model_id(custom_id: str) -> bool:
    return custom_id.startswith(MODEL_BUTTON_PREFIX)


async def handle_model_press(
    press: ButtonPress,
    configs: ConversationConfigStore,
    authorizer: Authorizer,
) -> bool:
    """Apply a ``model_<id>`` button press; returns False for other buttons."""
    if not is_model_id(press.custom_id):
        return False
    if not authorizer.is_allowed(press.user_id):
        log_event(logger, "auth.rejected", level=logging.WARNING, user=press.user_id, button=press.custom_id)
        await press.notify(prompts.NOT_AUTHORIZED)
        return True

    model_id = press.custom_id[len(MODEL_BUTTON_PREFIX) :]
    if model_id not in MODEL_CATALOG.values():
        await press.notify(f"Unknown model: {model_id}")
        return True

    key = press.conversation_id
    updated = configs.set(key, configs.get(key).with_model(model_id))
    log_event(logger, "model.selected", model=display_name_for(model_id), conversation=key)
    await press.update(card=model_selected_card(updated))
    return True
