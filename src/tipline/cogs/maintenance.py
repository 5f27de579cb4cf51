from __future__ import annotations

import asyncio
import logging

from discord.ext import commands

log = logging.getLogger("tipline.cogs.maintenance")

MIN_INTERVAL_SECONDS = 30


class MaintenanceCog(commands.Cog):
    """Periodic sweep of abandoned user states. Off unless STATE_SWEEP_ENABLED."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot  # type: ignore[assignment]
        self._task: asyncio.Task | None = None

    async def cog_load(self) -> None:
        settings = self.bot.settings  # type: ignore[attr-defined]
        if not settings.state_sweep_enabled:
            log.info("State sweep disabled")
            return
        if self._task is None:
            self._task = asyncio.create_task(self._loop(), name="tipline-state-sweep")

    async def cog_unload(self) -> None:
        if self._task:
            self._task.cancel()

    async def run_sweep(self) -> int:
        max_age = self.bot.settings.state_max_age_seconds  # type: ignore[attr-defined]
        return await self.bot.user_states.sweep_expired(max_age)  # type: ignore[attr-defined]

    async def _loop(self) -> None:
        interval = max(MIN_INTERVAL_SECONDS, self.bot.settings.state_sweep_interval_seconds)  # type: ignore[attr-defined]
        while True:
            try:
                await asyncio.sleep(interval)
                await self.run_sweep()
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("State sweep iteration failed")
