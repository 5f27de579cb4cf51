from __future__ import annotations

import logging

import discord
from discord import ui
from discord.ext import commands

from ..constants import ACTION_REJECT, MAX_REASON_LENGTH
from ..discord_gateway import to_inbound_action, to_inbound_message, token_from_custom_id

log = logging.getLogger("tipline.cogs.submissions")


class RejectReasonModal(ui.Modal, title="Reject submission"):
    """Collects the rejection reason before the reject action runs."""

    def __init__(self, bot: commands.Bot) -> None:
        super().__init__(timeout=300)
        self.bot = bot
        # Not required here so an empty reason reaches the dispatcher and is
        # answered with its validation message.
        self.reason = ui.TextInput(
            label="Reason",
            placeholder="Why is this submission rejected?",
            required=False,
            max_length=MAX_REASON_LENGTH,
            style=discord.TextStyle.paragraph,
        )
        self.add_item(self.reason)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        action_id = self.bot.gateway.track(interaction)  # type: ignore[attr-defined]
        try:
            await interaction.response.defer()
        except discord.HTTPException as e:
            log.warning("Could not defer reject modal: %s", e)
        action = to_inbound_action(interaction, ACTION_REJECT, action_id=action_id, argument=self.reason.value)
        await self.bot.router.handle_action(action)  # type: ignore[attr-defined]


class SubmissionsCog(commands.Cog):
    """Feeds DMs, review-channel messages and button presses to the router."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot  # type: ignore[assignment]

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return
        await self.bot.router.handle_message(to_inbound_message(message))  # type: ignore[attr-defined]

    @commands.Cog.listener()
    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.component:
            return
        token = token_from_custom_id((interaction.data or {}).get("custom_id"))  # type: ignore[arg-type]
        if token is None:
            return

        if token == ACTION_REJECT:
            await interaction.response.send_modal(RejectReasonModal(self.bot))
            return

        action_id = self.bot.gateway.track(interaction)  # type: ignore[attr-defined]
        try:
            await interaction.response.defer()
        except discord.HTTPException as e:
            log.warning("Could not defer interaction %s: %s", action_id, e)
        await self.bot.router.handle_action(to_inbound_action(interaction, token, action_id=action_id))  # type: ignore[attr-defined]
