from __future__ import annotations

import logging

import discord
from discord import app_commands
from discord.ext import commands

from ..utils import format_timestamp, truncate

log = logging.getLogger("tipline.cogs.admin")

LIST_LIMIT = 20


def _is_admin(interaction: discord.Interaction) -> bool:
    settings = interaction.client.settings  # type: ignore[attr-defined]
    if settings.admin_id and interaction.user.id == settings.admin_id:
        return True
    perms = getattr(interaction.user, "guild_permissions", None)
    return bool(perms and perms.manage_guild)


class AdminCog(commands.Cog):
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot  # type: ignore[assignment]

    @app_commands.command(name="unban", description="Allow a blocked user to send submissions again.")
    @app_commands.describe(user_id="Discord id of the blocked user")
    @app_commands.check(_is_admin)
    async def unban(self, interaction: discord.Interaction, user_id: str) -> None:
        try:
            uid = int(user_id.strip())
        except ValueError:
            await interaction.response.send_message("❌ That is not a user id.", ephemeral=True)
            return
        removed = await self.bot.blacklist.unblock(uid)  # type: ignore[attr-defined]
        if removed:
            log.info("User %s unblocked by %s", uid, interaction.user.id)
            await interaction.response.send_message(f"✅ User `{uid}` can submit again.", ephemeral=True)
        else:
            await interaction.response.send_message(f"ℹ️ User `{uid}` is not blocked.", ephemeral=True)

    @app_commands.command(name="blacklist", description="List blocked users.")
    @app_commands.check(_is_admin)
    async def blacklist(self, interaction: discord.Interaction) -> None:
        entries = await self.bot.blacklist.list()  # type: ignore[attr-defined]
        if not entries:
            await interaction.response.send_message("Nobody is blocked.", ephemeral=True)
            return
        entries.sort(key=lambda e: e.blocked_at, reverse=True)
        lines = [
            f"`{e.user_id}` · {truncate(e.reason or 'no reason', 80)} · {format_timestamp(e.blocked_at)}"
            for e in entries[:LIST_LIMIT]
        ]
        if len(entries) > LIST_LIMIT:
            lines.append(f"…and {len(entries) - LIST_LIMIT} more")
        await interaction.response.send_message(f"🚫 Blocked users ({len(entries)}):\n" + "\n".join(lines), ephemeral=True)

    @app_commands.command(name="pending", description="List submissions waiting for review.")
    @app_commands.check(_is_admin)
    async def pending(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True, thinking=True)
        items = await self.bot.submissions.list_pending()  # type: ignore[attr-defined]
        if not items:
            await interaction.followup.send("✅ Nothing is waiting for review.", ephemeral=True)
            return
        items.sort(key=lambda s: s.created_at, reverse=True)
        lines = [
            f"`{s.id}` · {s.display_name} · {s.content_kind.value} · {format_timestamp(s.created_at)}"
            for s in items[:LIST_LIMIT]
        ]
        if len(items) > LIST_LIMIT:
            lines.append(f"…and {len(items) - LIST_LIMIT} more")
        await interaction.followup.send(f"⏳ Pending submissions ({len(items)}):\n" + "\n".join(lines), ephemeral=True)

    @app_commands.command(name="sweep", description="Drop abandoned submission and comment flows now.")
    @app_commands.check(_is_admin)
    async def sweep(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True, thinking=True)
        max_age = self.bot.settings.state_max_age_seconds  # type: ignore[attr-defined]
        removed = await self.bot.user_states.sweep_expired(max_age)  # type: ignore[attr-defined]
        await interaction.followup.send(f"🧹 Removed {removed} state(s) older than {max_age}s.", ephemeral=True)
