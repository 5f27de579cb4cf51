from __future__ import annotations

import logging

import discord
from discord import app_commands
from discord.ext import commands

from .discord_gateway import safe_response
from .errors import TiplineError, categorize

log = logging.getLogger("tipline.error_handlers")


class ErrorHandler(commands.Cog):
    """Centralized error handling for commands."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.bot.tree.on_error = self.on_app_command_error  # type: ignore[method-assign]

    @commands.Cog.listener()
    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        # The bot has no prefix commands; "!ok" style text is handled by the router.
        if isinstance(error, commands.CommandNotFound):
            return
        log.exception("Unexpected error in command %s: %s", ctx.command, error)
        await safe_response(ctx, TiplineError.default_message)

    async def on_app_command_error(
        self,
        interaction: discord.Interaction,
        error: app_commands.AppCommandError,
    ) -> None:
        if isinstance(error, (app_commands.MissingPermissions, app_commands.CheckFailure)):
            await safe_response(interaction, "❌ You are not allowed to use this command.")
            return

        if isinstance(error, app_commands.CommandOnCooldown):
            await safe_response(interaction, f"This command is on cooldown. Try again in {error.retry_after:.1f}s")
            return

        original = getattr(error, "original", error)
        if isinstance(original, TiplineError):
            log.warning("Command /%s failed: %s", getattr(interaction.command, "name", "?"), original)
            counter = getattr(self.bot, "error_counter", None)
            if counter is not None:
                await counter.record(categorize(original))
            await safe_response(interaction, original.user_message)
            return

        log.error(
            "Unexpected error in app command %s",
            getattr(interaction.command, "name", "?"),
            exc_info=original,
        )
        await safe_response(interaction, TiplineError.default_message)


async def setup_error_handlers(bot: commands.Bot) -> None:
    await bot.add_cog(ErrorHandler(bot))
