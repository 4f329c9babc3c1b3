"""discord.py binding of the chat surface.

Presses on every bridge button arrive through ``on_interaction``; the views
attached to messages only carry the components.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence

import discord

from cascade_bridge.bridge import Bridge
from cascade_bridge.errors import SurfaceError
from cascade_bridge.surface import Button, Card, IncomingMessage, button_rows

logger = logging.getLogger(__name__)

THREAD_ARCHIVE_MINUTES = 60
THREAD_NAME_LIMIT = 100
PRESENCE = "Cascade backend"

_STYLES = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "success": discord.ButtonStyle.success,
    "danger": discord.ButtonStyle.danger,
}


def build_embed(card: Card) -> discord.Embed:
    embed = discord.Embed(
        title=card.title,
        description=card.description or None,
        colour=discord.Colour(card.color) if card.color is not None else None,
    )
    for name, value in card.fields:
        embed.add_field(name=name, value=value, inline=False)
    if card.footer:
        embed.set_footer(text=card.footer)
    return embed


def build_view(buttons: Sequence[Button]) -> discord.ui.View:
    """Component container only; presses are routed through ``on_interaction``."""
    view = discord.ui.View(timeout=None)
    for row, items in enumerate(button_rows(buttons)):
        for button in items:
            view.add_item(
                discord.ui.Button(
                    label=button.label,
                    style=_STYLES.get(button.style, discord.ButtonStyle.secondary),
                    custom_id=button.custom_id,
                    row=row,
                )
            )
    return view


class DiscordMessageHandle:
    def __init__(self, message: discord.Message) -> None:
        self._message = message

    @property
    def id(self) -> str:
        return str(self._message.id)

    async def edit(self, content: str) -> None:
        try:
            await self._message.edit(content=content)
        except discord.HTTPException as exc:
            raise SurfaceError(f"edit of message {self.id} failed: {exc}") from exc

    async def reply(
        self,
        content: str = "",
        *,
        buttons: Sequence[Button] = (),
        files: Sequence[Path] = (),
        card: Card | None = None,
    ) -> "DiscordMessageHandle":
        kwargs: Dict[str, Any] = {}
        if content:
            kwargs["content"] = content
        if card is not None:
            kwargs["embed"] = build_embed(card)
        if files:
            kwargs["files"] = [discord.File(str(path), filename=path.name) for path in files]
        view = build_view(buttons) if buttons else None
        if view is not None:
            kwargs["view"] = view
        try:
            sent = await self._message.reply(**kwargs)
        except discord.HTTPException as exc:
            raise SurfaceError(f"reply to message {self.id} failed: {exc}") from exc
        if view is not None:
            # Drop it from the client's view store; on_interaction handles presses.
            view.stop()
        return DiscordMessageHandle(sent)

    async def start_thread(self, name: str) -> "DiscordThreadHandle":
        try:
            thread = await self._message.create_thread(
                name=name[:THREAD_NAME_LIMIT],
                auto_archive_duration=THREAD_ARCHIVE_MINUTES,
                reason="Isolated cascade task thread",
            )
        except discord.HTTPException as exc:
            raise SurfaceError(f"could not open thread from message {self.id}: {exc}") from exc
        return DiscordThreadHandle(thread)


class DiscordThreadHandle:
    def __init__(self, thread: discord.Thread) -> None:
        self._thread = thread

    @property
    def id(self) -> str:
        return str(self._thread.id)

    async def send(self, content: str) -> DiscordMessageHandle:
        try:
            message = await self._thread.send(content)
        except discord.HTTPException as exc:
            raise SurfaceError(f"send to thread {self.id} failed: {exc}") from exc
        return DiscordMessageHandle(message)


class DiscordButtonPress:
    def __init__(self, interaction: discord.Interaction) -> None:
        self._interaction = interaction

    @property
    def user_id(self) -> str:
        return str(self._interaction.user.id)

    @property
    def custom_id(self) -> str:
        data = self._interaction.data or {}
        return str(data.get("custom_id", ""))

    @property
    def conversation_id(self) -> str:
        return str(self._interaction.channel_id)

    @property
    def message(self) -> DiscordMessageHandle:
        return DiscordMessageHandle(self._interaction.message)

    async def update(self, content: str = "", *, card: Card | None = None) -> None:
        kwargs: Dict[str, Any] = {"view": None}
        if content:
            kwargs["content"] = content
        if card is not None:
            kwargs["embed"] = build_embed(card)
        try:
            await self._interaction.response.edit_message(**kwargs)
        except discord.HTTPException as exc:
            raise SurfaceError(f"could not update panel: {exc}") from exc

    async def notify(self, content: str) -> None:
        try:
            if self._interaction.response.is_done():
                await self._interaction.followup.send(content, ephemeral=True)
            else:
                await self._interaction.response.send_message(content, ephemeral=True)
        except discord.HTTPException as exc:
            raise SurfaceError(f"could not notify user: {exc}") from exc


class DiscordImage:
    def __init__(self, attachment: discord.Attachment) -> None:
        self._attachment = attachment

    @property
    def name(self) -> str:
        return self._attachment.filename

    async def read(self) -> bytes:
        try:
            return await self._attachment.read()
        except discord.HTTPException as exc:
            raise SurfaceError(f"could not fetch attachment {self.name}: {exc}") from exc


def image_sources(message: discord.Message) -> List[DiscordImage]:
    return [
        DiscordImage(attachment)
        for attachment in message.attachments
        if (attachment.content_type or "").startswith("image/")
    ]


def to_incoming(message: discord.Message) -> IncomingMessage:
    channel = message.channel
    if isinstance(channel, discord.Thread):
        thread_id: str | None = str(channel.id)
        channel_id = str(channel.parent_id)
    else:
        thread_id = None
        channel_id = str(channel.id)
    return IncomingMessage(
        author_id=str(message.author.id),
        author_name=str(message.author),
        content=message.content,
        channel_id=channel_id,
        thread_id=thread_id,
        message=DiscordMessageHandle(message),
        images=image_sources(message),
        is_bot=message.author.bot,
    )


class DiscordGateway:
    """discord.py client wired to a ``Bridge``."""

    def __init__(self, token: str, bridge: Bridge) -> None:
        self._token = token
        self._bridge = bridge
        self._client: discord.Client | None = None

    def build_client(self) -> discord.Client:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.dm_messages = True
        client = discord.Client(intents=intents)
        bridge = self._bridge

        @client.event
        async def on_ready() -> None:
            logger.info("[discord] Online as %s", client.user)
            await client.change_presence(activity=discord.Game(name=PRESENCE))

        @client.event
        async def on_message(message: discord.Message) -> None:
            if message.author == client.user or message.author.bot:
                return
            incoming = to_incoming(message)
            try:
                await bridge.on_message(incoming)
            except SurfaceError:
                logger.warning("Could not answer message %s", message.id, exc_info=True)

        @client.event
        async def on_interaction(interaction: discord.Interaction) -> None:
            if interaction.type != discord.InteractionType.component:
                return
            press = DiscordButtonPress(interaction)
            try:
                await bridge.on_button(press)
            except SurfaceError:
                logger.warning("Could not handle button %s", press.custom_id, exc_info=True)

        self._client = client
        return client

    async def start(self) -> None:
        client = self._client or self.build_client()
        await client.start(self._token)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
        await self._bridge.drain()
