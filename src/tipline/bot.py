from __future__ import annotations

import logging

import discord
from discord.ext import commands

from .config import Settings
from .database import initialize_database
from .discord_gateway import DiscordGateway
from .error_handlers import setup_error_handlers
from .errors import ErrorCategory
from .intake import SubmissionIntake
from .moderation.context import ReviewContextResolver
from .moderation.dispatcher import ModerationDispatcher
from .router import Router
from .services.blacklist_store import BlacklistRegistry
from .services.document_store import DocumentStore
from .services.error_counter import ErrorCounter
from .services.review_index_store import ReviewIndex
from .services.stats import RuntimeStats
from .services.submissions_store import SubmissionRegistry
from .services.user_state_store import UserStateManager
from .validation import SubmissionValidator

log = logging.getLogger("tipline.bot")


class TiplineBot(commands.Bot):
    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.default()
        intents.dm_messages = True
        # Needed to read submissions and reply-commands.
        intents.message_content = bool(settings.message_content_intent)

        log.info("INTENTS: guilds=%s dm_messages=%s message_content=%s", intents.guilds, intents.dm_messages, intents.message_content)

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            allowed_mentions=discord.AllowedMentions.none(),
            help_command=None,
        )

        self.settings = settings
        self.stats = RuntimeStats()

        self.store = DocumentStore(settings.sqlite_path, settings.cache_ttl_seconds, stats=self.stats)
        self.submissions = SubmissionRegistry(self.store)
        self.blacklist = BlacklistRegistry(self.store)
        self.user_states = UserStateManager(self.store)
        self.review_index = ReviewIndex(self.store)

        self.error_counter = ErrorCounter(
            threshold=settings.error_alert_threshold,
            window_seconds=settings.error_window_seconds,
            on_threshold=self._alert_operator,
        )
        self.gateway = DiscordGateway(self)
        validator = SubmissionValidator(settings.max_text_length, settings.max_attachment_bytes)

        self.intake = SubmissionIntake(
            settings=settings,
            gateway=self.gateway,
            submissions=self.submissions,
            blacklist=self.blacklist,
            user_states=self.user_states,
            review_index=self.review_index,
            validator=validator,
            error_counter=self.error_counter,
            stats=self.stats,
        )
        self.dispatcher = ModerationDispatcher(
            settings=settings,
            gateway=self.gateway,
            submissions=self.submissions,
            blacklist=self.blacklist,
            user_states=self.user_states,
            resolver=ReviewContextResolver(self.review_index),
            validator=validator,
            error_counter=self.error_counter,
            stats=self.stats,
        )
        self.router = Router(
            gateway=self.gateway,
            intake=self.intake,
            dispatcher=self.dispatcher,
            blacklist=self.blacklist,
            user_states=self.user_states,
            review_channel_id=settings.review_channel_id,
            error_counter=self.error_counter,
        )

    async def setup_hook(self) -> None:
        await initialize_database(self.settings.sqlite_path, [self.store])

        await setup_error_handlers(self)

        loaded: list[str] = []
        failed: list[str] = []

        async def _load_cog(import_path: str, class_name: str) -> None:
            try:
                log.info("Loading cog: %s.%s", import_path, class_name)
                mod = __import__(import_path, fromlist=[class_name])
                cls = getattr(mod, class_name)
                await self.add_cog(cls(self))
                loaded.append(f"{import_path}.{class_name}")
            except Exception as e:
                log.exception("Failed to load cog: %s.%s", import_path, class_name)
                failed.append(f"{import_path}.{class_name} ({type(e).__name__})")

        await _load_cog("tipline.cogs.submissions", "SubmissionsCog")
        await _load_cog("tipline.cogs.admin", "AdminCog")
        await _load_cog("tipline.cogs.maintenance", "MaintenanceCog")
        await _load_cog("tipline.cogs.help", "HelpCog")

        log.info("Startup cog load summary: loaded=%d failed=%d", len(loaded), len(failed))
        for name in failed:
            log.warning("Startup cog failed: %s", name)

        await self.tree.sync()
        cmds = self.tree.get_commands()
        log.info("Commands synced globally: %d", len(cmds))
        for c in cmds:
            log.info(" - /%s", c.name)

    async def on_ready(self) -> None:
        if self.user is not None:
            self.router.bot_user_id = self.user.id
        log.info("Logged in as %s (review=%s publish=%s)", self.user, self.settings.review_channel_id, self.settings.publish_channel_id)
        if not self.settings.review_channel_id:
            log.warning("REVIEW_CHANNEL_ID is not set; confirmed submissions will not reach moderators")
        if not self.settings.publish_channel_id:
            log.warning("PUBLISH_CHANNEL_ID is not set; approvals will fail")

    async def close(self) -> None:
        try:
            await self.store.close()
        finally:
            await super().close()

    async def _alert_operator(self, category: ErrorCategory, count: int) -> None:
        if not self.settings.admin_id:
            log.warning("No ADMIN_ID configured; dropping %s error alert", category.value)
            return
        minutes = max(1, self.settings.error_window_seconds // 60)
        await self.gateway.send_message(
            self.settings.admin_id,
            f"⚠️ {count} {category.value} errors in the last {minutes} minutes. Check the logs.",
        )
