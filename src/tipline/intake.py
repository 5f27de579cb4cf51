"""
Submitter side of the workflow.

A private, non-command message is staged as the user's pending submission
(one per user; a newer message replaces an unconfirmed older one). The user
then confirms it, possibly anonymously, which creates the durable
``Submission`` and posts it to the review channel.

Callers check the blacklist before ``stage``; ``confirm`` checks again since
a ban can land between staging and confirming.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

from .actions import run_action
from .config import Settings
from .constants import (
    ACTION_CANCEL_SUBMISSION,
    ACTION_CONFIRM,
    ACTION_CONFIRM_ANONYMOUS,
    ACTION_EDIT,
    MESSAGES,
)
from .errors import ExternalGatewayError, PersistenceError, StateError, ValidationError
from .interfaces import MessagingGateway
from .models import (
    ActionOutcome,
    ContentDescriptor,
    ContentKind,
    InboundAction,
    InboundMessage,
    MessageRef,
    PendingSubmissionPayload,
    Submission,
    UserStateKind,
)
from .moderation.render import confirm_keyboard, render_review, review_keyboard, submitted_at_night
from .services.blacklist_store import BlacklistRegistry
from .services.error_counter import ErrorCounter
from .services.review_index_store import ReviewIndex
from .services.stats import RuntimeStats
from .services.submissions_store import SubmissionRegistry, generate_submission_id
from .services.user_state_store import UserStateManager
from .utils import display_name, format_timestamp, truncate
from .validation import SubmissionValidator, sanitize_input

log = logging.getLogger("tipline.intake")

CREATE_ATTEMPTS = 3


def extract_content(message: InboundMessage) -> ContentDescriptor:
    text = message.text or message.caption or ""
    kind = message.attachment_kind or ContentKind.TEXT
    return ContentDescriptor(kind=kind, text=text, file_size=message.attachment_size or 0)


@dataclass(frozen=True)
class StageResult:
    pending: PendingSubmissionPayload
    # True when an unconfirmed submission was overwritten.
    replaced: bool = False


class SubmissionIntake:
    def __init__(
        self,
        *,
        settings: Settings,
        gateway: MessagingGateway,
        submissions: SubmissionRegistry,
        blacklist: BlacklistRegistry,
        user_states: UserStateManager,
        review_index: ReviewIndex,
        validator: Optional[SubmissionValidator] = None,
        error_counter: Optional[ErrorCounter] = None,
        stats: Optional[RuntimeStats] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.submissions = submissions
        self.blacklist = blacklist
        self.user_states = user_states
        self.review_index = review_index
        self.validator = validator or SubmissionValidator(settings.max_text_length, settings.max_attachment_bytes)
        self.error_counter = error_counter
        self.stats = stats or RuntimeStats()
        self._clock = clock

        # Users with a confirmation in progress in this process.
        self._confirming: set[int] = set()

    async def stage(self, message: InboundMessage) -> StageResult:
        """Validate ``message`` and store it as the sender's pending submission.

        Raises ``ValidationError`` without writing anything when the content
        is rejected.
        """
        content = extract_content(message)
        self.validator.validate_submission(content)

        normalized = ContentDescriptor(content.kind, sanitize_input(content.text), content.file_size)
        pending = PendingSubmissionPayload(
            submitter_id=message.sender_id,
            source_ref=message.ref,
            content=normalized.summary(),
            content_kind=content.kind,
            staged_at=self._clock(),
        )

        replaced = False
        try:
            previous = await self.user_states.get_state(message.sender_id)
        except PersistenceError:
            log.warning("Overwriting unreadable state for user %s", message.sender_id, exc_info=True)
            previous = None
        if previous is not None and previous.state is UserStateKind.PENDING_SUBMISSION:
            replaced = True
            log.warning("User %s restaged; their unconfirmed submission was replaced", message.sender_id)

        await self.user_states.set_state(message.sender_id, UserStateKind.PENDING_SUBMISSION, pending)
        self.stats.submissions_staged += 1
        return StageResult(pending=pending, replaced=replaced)

    async def receive(self, message: InboundMessage) -> StageResult:
        """Stage ``message`` and show the sender the confirmation prompt."""
        result = await self.stage(message)
        text = MESSAGES["staged"].format(preview=truncate(result.pending.content, 1000))
        if result.replaced:
            text = MESSAGES["replaced"] + "\n\n" + text
        await self.gateway.send_message(message.chat_id, text, buttons=confirm_keyboard(), reply_to=message.ref)
        return result

    async def handle_action(self, action: InboundAction) -> ActionOutcome:
        return await run_action(self._handle, action, gateway=self.gateway, error_counter=self.error_counter)

    async def _handle(self, action: InboundAction) -> ActionOutcome:
        token = action.action_token
        if token in (ACTION_CONFIRM, ACTION_CONFIRM_ANONYMOUS):
            name = display_name(action.actor_username, action.actor_name)
            _, warnings = await self.confirm(
                action.actor_id,
                name,
                anonymous=token == ACTION_CONFIRM_ANONYMOUS,
                surface_ref=action.surface_ref,
            )
            return ActionOutcome(ok=True, warnings=warnings)
        if token == ACTION_EDIT:
            await self.edit(action.actor_id, action.surface_ref)
            return ActionOutcome(ok=True)
        if token == ACTION_CANCEL_SUBMISSION:
            await self.cancel(action.actor_id, action.surface_ref)
            return ActionOutcome(ok=True)
        log.warning("Unknown submitter action %r from %s", token, action.actor_id)
        return ActionOutcome(ok=False, message=MESSAGES["unknown_action"])

    async def confirm(
        self,
        user_id: int,
        name: str,
        *,
        anonymous: bool = False,
        surface_ref: Optional[MessageRef] = None,
    ) -> tuple[Submission, list[str]]:
        """Turn the user's pending submission into a durable one and send it for review.

        Returns the submission and any warnings about delivery to moderators.
        """
        async with self._claim(user_id):
            state = await self.user_states.get_state(user_id)
            if state is None or state.state is not UserStateKind.PENDING_SUBMISSION:
                raise StateError(MESSAGES["session_expired"], detail=f"user {user_id} has no pending submission")
            if await self.blacklist.is_blocked(user_id):
                await self.user_states.clear_state(user_id)
                raise ValidationError(MESSAGES["blocked"], detail=f"user {user_id} is blocked")

            pending = state.payload
            if not isinstance(pending, PendingSubmissionPayload):
                raise StateError(MESSAGES["session_expired"], detail=f"user {user_id} has a malformed pending state")
            submission = await self._create(user_id, name, pending, anonymous)
            await self.user_states.clear_state(user_id)
        self.stats.submissions_created += 1

        if surface_ref is not None:
            receipt = MESSAGES["confirmed"].format(
                submission_id=submission.id,
                submitted_at=format_timestamp(submission.created_at),
            )
            try:
                await self.gateway.edit_message(surface_ref.chat_id, surface_ref, receipt, buttons=None)
            except ExternalGatewayError as e:
                log.warning("Could not update confirmation prompt for %s: %s", user_id, e)

        warnings = await self._send_to_review(submission)
        return submission, warnings

    async def edit(self, user_id: int, surface_ref: Optional[MessageRef] = None) -> None:
        await self.user_states.clear_state(user_id)
        if surface_ref is not None:
            await self.gateway.edit_message(surface_ref.chat_id, surface_ref, MESSAGES["edit"], buttons=None)

    async def cancel(self, user_id: int, surface_ref: Optional[MessageRef] = None) -> None:
        cleared = await self.user_states.clear_state(user_id)
        log.info("User %s cancelled their submission (had state: %s)", user_id, cleared)
        if surface_ref is not None:
            await self.gateway.edit_message(surface_ref.chat_id, surface_ref, MESSAGES["cancelled"], buttons=None)

    @asynccontextmanager
    async def _claim(self, user_id: int) -> AsyncIterator[None]:
        if user_id in self._confirming:
            raise StateError(MESSAGES["confirm_in_progress"], detail=f"user {user_id} is already confirming")
        self._confirming.add(user_id)
        try:
            yield
        finally:
            self._confirming.discard(user_id)

    async def _create(
        self,
        user_id: int,
        name: str,
        pending: PendingSubmissionPayload,
        anonymous: bool,
    ) -> Submission:
        attempt = 1
        while True:
            now = self._clock()
            submission = Submission(
                id=generate_submission_id(now),
                submitter_id=user_id,
                display_name=name,
                source_ref=pending.source_ref,
                content=pending.content,
                created_at=now,
                content_kind=pending.content_kind,
                anonymous=anonymous,
            )
            try:
                return await self.submissions.create(submission)
            except StateError:
                if attempt >= CREATE_ATTEMPTS:
                    raise
                log.warning("Submission id %s collided, regenerating (attempt %d)", submission.id, attempt)
                attempt += 1

    async def _send_to_review(self, submission: Submission) -> list[str]:
        channel_id = self.settings.review_channel_id
        if not channel_id:
            log.warning("REVIEW_CHANNEL_ID is not set; submission %s was not sent for review", submission.id)
            return []
        night = submitted_at_night(submission, self.settings)
        try:
            review_ref = await self.gateway.send_message(
                channel_id,
                render_review(submission, night),
                buttons=review_keyboard(),
                silent=night,
            )
            await self.review_index.link(review_ref, submission.id, submission.submitter_id)
            await self.gateway.forward_message(channel_id, submission.source_ref, silent=night)
        except ExternalGatewayError as e:
            log.warning("Submission %s could not be forwarded for review: %s", submission.id, e)
            return [MESSAGES["review_forward_failed"]]
        log.info("Submission %s sent for review as %s", submission.id, review_ref.key)
        return []
