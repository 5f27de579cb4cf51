"""
Event boundary.

Inbound events pass through plain functions (validate, extract, route) that
build an ``EventContext``, and the ``Router`` then hands the context to the
intake or the dispatcher. Nothing raised below the router escapes it: errors
are reported to the acting user where possible, logged, counted and dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .constants import (
    MESSAGES,
    MODERATOR_HELP_COMMAND,
    REPLY_COMMANDS,
    SUBMITTER_ACTIONS,
    VERSION,
    VERSION_COMMAND,
    WELCOME_COMMANDS,
)
from .errors import ErrorCategory, ExternalGatewayError, PersistenceError, TiplineError
from .intake import SubmissionIntake
from .interfaces import MessagingGateway
from .models import ActionOutcome, ChatKind, InboundAction, InboundMessage, UserStateKind
from .moderation.dispatcher import ModerationDispatcher
from .services.blacklist_store import BlacklistRegistry
from .services.error_counter import ErrorCounter
from .services.user_state_store import UserStateManager

log = logging.getLogger("tipline.router")


class Route(Enum):
    IGNORE = "ignore"
    SUBMISSION = "submission"
    PRIVATE_COMMAND = "private_command"
    MODERATOR_HELP = "moderator_help"
    REVIEW_COMMAND = "review_command"
    REVIEW_INPUT = "review_input"
    SUBMITTER_ACTION = "submitter_action"
    MODERATION_ACTION = "moderation_action"


@dataclass(frozen=True)
class EventContext:
    route: Route
    message: Optional[InboundMessage] = None
    action: Optional[InboundAction] = None


def validate_message(message: InboundMessage, *, bot_user_id: Optional[int] = None) -> bool:
    if message.is_bot:
        return False
    if bot_user_id is not None and message.sender_id == bot_user_id:
        return False
    return True


def parse_reply_command(message: InboundMessage) -> Optional[InboundAction]:
    """``!ok``/``!no``/``!ban``/``!echo`` sent as a reply to a review message."""
    text = (message.text or "").strip()
    if not text.startswith("!") or message.reply_to is None:
        return None
    command, _, rest = text.partition(" ")
    token = REPLY_COMMANDS.get(command.lower())
    if token is None:
        return None
    return InboundAction(
        action_token=token,
        actor_id=message.sender_id,
        surface_ref=message.reply_to,
        surface_text=message.reply_to_text or "",
        argument=rest.strip() or None,
        actor_username=message.sender_username,
        actor_name=message.sender_name,
    )


def _command_word(message: InboundMessage) -> str:
    return (message.text or "").strip().partition(" ")[0].lower()


def _looks_like_reply_command(message: InboundMessage) -> bool:
    return _command_word(message) in REPLY_COMMANDS


def private_command_reply(message: InboundMessage) -> Optional[str]:
    """Answer for ``/start``, ``/help`` and ``/version``; None for anything else."""
    command = _command_word(message)
    if command in WELCOME_COMMANDS:
        return MESSAGES["welcome"]
    if command == VERSION_COMMAND:
        return MESSAGES["version"].format(version=VERSION)
    return None


def route_message(message: InboundMessage, *, review_channel_id: int) -> EventContext:
    if message.chat_kind is ChatKind.PRIVATE:
        if message.is_command:
            if private_command_reply(message) is None:
                return EventContext(Route.IGNORE, message=message)
            return EventContext(Route.PRIVATE_COMMAND, message=message)
        return EventContext(Route.SUBMISSION, message=message)
    if review_channel_id and message.chat_id == review_channel_id:
        command = parse_reply_command(message)
        if command is not None:
            return EventContext(Route.REVIEW_COMMAND, message=message, action=command)
        if _command_word(message) == MODERATOR_HELP_COMMAND:
            return EventContext(Route.MODERATOR_HELP, message=message)
        return EventContext(Route.REVIEW_INPUT, message=message)
    return EventContext(Route.IGNORE, message=message)


def route_action(action: InboundAction) -> EventContext:
    if action.action_token in SUBMITTER_ACTIONS:
        return EventContext(Route.SUBMITTER_ACTION, action=action)
    return EventContext(Route.MODERATION_ACTION, action=action)


class Router:
    def __init__(
        self,
        *,
        gateway: MessagingGateway,
        intake: SubmissionIntake,
        dispatcher: ModerationDispatcher,
        blacklist: BlacklistRegistry,
        user_states: UserStateManager,
        review_channel_id: int,
        error_counter: Optional[ErrorCounter] = None,
        bot_user_id: Optional[int] = None,
    ) -> None:
        self.gateway = gateway
        self.intake = intake
        self.dispatcher = dispatcher
        self.blacklist = blacklist
        self.user_states = user_states
        self.review_channel_id = review_channel_id
        self.error_counter = error_counter
        self.bot_user_id = bot_user_id

    async def handle_message(self, message: InboundMessage) -> None:
        if not validate_message(message, bot_user_id=self.bot_user_id):
            return
        ctx = route_message(message, review_channel_id=self.review_channel_id)
        try:
            if ctx.route is Route.SUBMISSION:
                await self._submission(message)
            elif ctx.route is Route.PRIVATE_COMMAND:
                await self._reply(message, private_command_reply(message) or "")
            elif ctx.route is Route.MODERATOR_HELP:
                await self._reply(message, MESSAGES["moderator_help"])
            elif ctx.route is Route.REVIEW_COMMAND and ctx.action is not None:
                outcome = await self.dispatcher.dispatch(ctx.action)
                await self._reply(message, outcome.ack_text())
            elif ctx.route is Route.REVIEW_INPUT:
                if _looks_like_reply_command(message):
                    await self._reply(message, MESSAGES["not_a_review"])
                    return
                await self.dispatcher.handle_comment_input(message)
        except TiplineError as e:
            log.info("Message %s from %s failed: %s", message.ref.key, message.sender_id, e)
            await self._record(e.category)
            await self._reply(message, e.user_message)
        except Exception:
            log.exception("Unhandled error for message %s from %s", message.ref.key, message.sender_id)
            await self._record(ErrorCategory.UNKNOWN)

    async def handle_action(self, action: InboundAction) -> Optional[ActionOutcome]:
        ctx = route_action(action)
        try:
            if ctx.route is Route.SUBMITTER_ACTION:
                return await self.intake.handle_action(action)
            return await self.dispatcher.dispatch(action)
        except Exception as e:
            log.exception("Unhandled error for action %s from %s", action.action_token, action.actor_id)
            await self._record(ErrorCategory.UNKNOWN)
            if action.action_id:
                try:
                    await self.gateway.acknowledge_action(action.action_id, text=TiplineError.default_message, alert=True)
                except ExternalGatewayError:
                    log.warning("Could not acknowledge failed action %s", action.action_id)
            return ActionOutcome(ok=False, message=TiplineError.default_message, error=e)

    async def _submission(self, message: InboundMessage) -> None:
        try:
            state = await self.user_states.get_state(message.sender_id)
        except PersistenceError:
            log.warning("Unreadable state for user %s; staging over it", message.sender_id, exc_info=True)
            state = None
        if state is not None and state.state is UserStateKind.ADDING_COMMENT:
            await self._reply(message, MESSAGES["finish_flow_first"])
            return
        if await self.blacklist.is_blocked(message.sender_id):
            log.info("Blocked user %s tried to submit", message.sender_id)
            await self._reply(message, MESSAGES["blocked"])
            return
        await self.intake.receive(message)

    async def _reply(self, message: InboundMessage, text: str) -> None:
        if not text:
            return
        try:
            await self.gateway.send_message(message.chat_id, text, reply_to=message.ref)
        except ExternalGatewayError as e:
            log.warning("Could not reply in %s: %s", message.chat_id, e)

    async def _record(self, category: ErrorCategory) -> None:
        if self.error_counter is not None:
            await self.error_counter.record(category)
