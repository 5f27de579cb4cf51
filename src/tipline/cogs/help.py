from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from ..constants import MESSAGES, VERSION


class HelpCog(commands.Cog):
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @app_commands.command(name="help", description="How to send a submission.")
    async def help_cmd(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message(MESSAGES["welcome"], ephemeral=True)

    @app_commands.command(name="modhelp", description="Reply-commands for moderators in the review channel.")
    async def modhelp(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message(MESSAGES["moderator_help"], ephemeral=True)

    @app_commands.command(name="version", description="Show the bot version.")
    async def version(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message(MESSAGES["version"].format(version=VERSION), ephemeral=True)
