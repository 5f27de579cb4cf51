"""
discord.py implementation of ``MessagingGateway`` plus the conversions from
discord objects to the core's inbound event types.

Targets are plain ids: a channel id, or a user id for direct messages.
Message refs carry the id of the channel the message lives in, which for a
DM is the DM channel.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import discord
from discord import ui
from discord.ext import commands

from .constants import CUSTOM_ID_PREFIX
from .errors import ExternalGatewayError
from .models import ButtonRows, ChatKind, ContentKind, InboundAction, InboundMessage, MessageRef

log = logging.getLogger("tipline.discord")

T = TypeVar("T")

_STYLES = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "success": discord.ButtonStyle.success,
    "danger": discord.ButtonStyle.danger,
}


def build_view(buttons: Optional[ButtonRows]) -> Optional[ui.View]:
    """Persistent view whose buttons are answered by the ``on_interaction`` listener."""
    if not buttons:
        return None
    view = ui.View(timeout=None)
    for row, items in enumerate(buttons):
        for button in items:
            view.add_item(
                ui.Button(
                    label=button.label,
                    custom_id=CUSTOM_ID_PREFIX + button.token,
                    style=_STYLES.get(button.style, discord.ButtonStyle.secondary),
                    row=row,
                )
            )
    return view


def token_from_custom_id(custom_id: Optional[str]) -> Optional[str]:
    if not custom_id or not custom_id.startswith(CUSTOM_ID_PREFIX):
        return None
    return custom_id[len(CUSTOM_ID_PREFIX):]


def _attachment_kind(message: discord.Message) -> tuple[Optional[ContentKind], int]:
    if message.stickers:
        return ContentKind.STICKER, 0
    if not message.attachments:
        return None, 0
    attachment = message.attachments[0]
    size = max(a.size for a in message.attachments)
    content_type = (attachment.content_type or "").lower()
    if content_type == "image/gif":
        return ContentKind.ANIMATION, size
    if content_type.startswith("image/"):
        return ContentKind.PHOTO, size
    if content_type.startswith("video/"):
        return ContentKind.VIDEO, size
    if content_type.startswith("audio/"):
        return (ContentKind.VOICE if message.flags.voice else ContentKind.AUDIO), size
    return ContentKind.DOCUMENT, size


def to_inbound_message(message: discord.Message) -> InboundMessage:
    if isinstance(message.channel, discord.DMChannel):
        chat_kind = ChatKind.PRIVATE
    elif isinstance(message.channel, discord.TextChannel) and message.channel.is_news():
        chat_kind = ChatKind.CHANNEL
    else:
        chat_kind = ChatKind.GROUP

    kind, size = _attachment_kind(message)

    reply_to = None
    reply_to_text = None
    if message.reference is not None and message.reference.message_id is not None:
        reply_to = MessageRef(message.reference.channel_id, message.reference.message_id)
        if isinstance(message.reference.resolved, discord.Message):
            reply_to_text = message.reference.resolved.content

    return InboundMessage(
        sender_id=message.author.id,
        chat_id=message.channel.id,
        chat_kind=chat_kind,
        message_id=message.id,
        text=message.content or None,
        attachment_kind=kind,
        attachment_size=size,
        reply_to=reply_to,
        reply_to_text=reply_to_text,
        sender_username=message.author.name,
        sender_name=message.author.global_name or message.author.display_name,
        is_bot=message.author.bot,
    )


def to_inbound_action(
    interaction: discord.Interaction,
    token: str,
    *,
    action_id: str = "",
    argument: Optional[str] = None,
) -> InboundAction:
    surface = interaction.message
    if surface is not None:
        surface_ref = MessageRef(surface.channel.id, surface.id)
        surface_text = surface.content or ""
    else:
        surface_ref = MessageRef(interaction.channel_id or 0, 0)
        surface_text = ""
    return InboundAction(
        action_token=token,
        actor_id=interaction.user.id,
        surface_ref=surface_ref,
        action_id=action_id,
        surface_text=surface_text,
        argument=argument,
        actor_username=interaction.user.name,
        actor_name=interaction.user.global_name or interaction.user.display_name,
    )


async def safe_response(
    target: discord.Interaction | commands.Context,
    content: str | None = None,
    ephemeral: bool = True,
    **kwargs: Any,
) -> bool:
    """Respond to an interaction or context, logging instead of raising."""
    try:
        if isinstance(target, discord.Interaction):
            if target.response.is_done():
                await target.followup.send(content=content, ephemeral=ephemeral, **kwargs)
            else:
                await target.response.send_message(content=content, ephemeral=ephemeral, **kwargs)
        else:
            await target.reply(content=content, **kwargs)
        return True
    except discord.HTTPException as e:
        log.error("Failed to send response: %s", e)
        return False


class DiscordGateway:
    """Outbound calls go through ``_call``: transient failures are retried
    with backoff, then every failure is raised as ``ExternalGatewayError``."""

    def __init__(self, client: discord.Client, *, tries: int = 3) -> None:
        self.client = client
        self.tries = tries
        self._interactions: dict[str, discord.Interaction] = {}

    def track(self, interaction: discord.Interaction) -> str:
        """Remember ``interaction`` until it is acknowledged; returns its action id."""
        action_id = str(interaction.id)
        self._interactions[action_id] = interaction
        return action_id

    async def _retry(self, coro_fn: Callable[[], Awaitable[T]], *, tries: int) -> T:
        last: Optional[BaseException] = None
        for t in range(tries):
            try:
                return await coro_fn()
            except discord.HTTPException as e:
                # Client errors other than rate limits will not get better.
                if 400 <= e.status < 500 and e.status != 429:
                    raise
                last = e
            except asyncio.TimeoutError as e:
                last = e
            if t < tries - 1:
                await asyncio.sleep(0.5 * (2**t))
        raise last  # type: ignore[misc]

    async def _call(self, what: str, coro_fn: Callable[[], Awaitable[T]], *, tries: Optional[int] = None) -> T:
        try:
            return await self._retry(coro_fn, tries=tries or self.tries)
        except (discord.HTTPException, asyncio.TimeoutError) as e:
            raise ExternalGatewayError(detail=f"{what} failed: {e}") from e

    async def _messageable(self, target: int) -> discord.abc.Messageable:
        channel = self.client.get_channel(target)
        if channel is not None:
            return channel  # type: ignore[return-value]
        user = self.client.get_user(target)
        if user is not None:
            return user.dm_channel or await user.create_dm()
        try:
            return await self.client.fetch_channel(target)  # type: ignore[return-value]
        except (discord.NotFound, discord.Forbidden):
            fetched = await self.client.fetch_user(target)
            return await fetched.create_dm()

    async def _partial(self, ref: MessageRef) -> discord.PartialMessage:
        channel = await self._messageable(ref.chat_id)
        get_partial = getattr(channel, "get_partial_message", None)
        if get_partial is None:
            raise ExternalGatewayError(detail=f"channel {ref.chat_id} has no messages")
        return get_partial(ref.message_id)

    async def send_message(
        self,
        target: int,
        text: str,
        *,
        buttons: Optional[ButtonRows] = None,
        reply_to: Optional[MessageRef] = None,
        silent: bool = False,
    ) -> MessageRef:
        async def _do() -> discord.Message:
            channel = await self._messageable(target)
            kwargs: dict[str, Any] = {"silent": silent}
            view = build_view(buttons)
            if view is not None:
                kwargs["view"] = view
            if reply_to is not None:
                kwargs["reference"] = discord.MessageReference(
                    message_id=reply_to.message_id,
                    channel_id=reply_to.chat_id,
                    fail_if_not_exists=False,
                )
            return await channel.send(text, **kwargs)

        sent = await self._call(f"send to {target}", _do)
        return MessageRef(sent.channel.id, sent.id)

    async def edit_message(
        self,
        target: int,
        ref: MessageRef,
        text: str,
        *,
        buttons: Optional[ButtonRows] = None,
    ) -> None:
        async def _do() -> None:
            message = await self._partial(ref)
            await message.edit(content=text, view=build_view(buttons))

        await self._call(f"edit {ref.key}", _do)

    async def forward_message(self, destination: int, source: MessageRef, *, silent: bool = False) -> MessageRef:
        # Forwards cannot be sent silently; ``silent`` only applies to sends.
        async def _do() -> discord.Message:
            message = await self._partial(source)
            channel = await self._messageable(destination)
            return await message.forward(channel)

        forwarded = await self._call(f"forward {source.key} to {destination}", _do)
        return MessageRef(forwarded.channel.id, forwarded.id)

    async def acknowledge_action(self, action_id: str, *, text: Optional[str] = None, alert: bool = False) -> None:
        """Answer a component interaction. Discord has no alert popups, so
        alerts and notes are both sent as ephemeral followups."""
        interaction = self._interactions.pop(action_id, None)
        if interaction is None:
            log.debug("No pending interaction for action %s", action_id)
            return

        async def _do() -> None:
            if interaction.response.is_done():
                if text:
                    await interaction.followup.send(text, ephemeral=True)
            elif text:
                await interaction.response.send_message(text, ephemeral=True)
            else:
                await interaction.response.defer()

        if alert:
            log.debug("Acknowledging action %s with an error: %s", action_id, text)
        # Interaction tokens are single-use; no retries.
        await self._call(f"acknowledge {action_id}", _do, tries=1)

    async def delete_message(self, target: int, ref: MessageRef) -> None:
        async def _do() -> None:
            message = await self._partial(ref)
            await message.delete()

        await self._call(f"delete {ref.key}", _do)
