"""
Moderator actions on submissions.

The dispatcher owns the one-way status rule: a submission leaves ``pending``
exactly once, to ``approved`` or ``rejected``. ``SubmissionRegistry`` stores
whatever it is told, so every transition below goes through
``_require_pending`` while holding an in-process claim on the submission id.

Failure policy: publishing is part of approval, so a gateway failure while
publishing aborts the action and the submission stays pending. Notifying the
submitter happens after the status change and only downgrades the outcome to
a warning.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from ..actions import ActionHandler, acknowledge, run_action
from ..config import Settings
from ..constants import (
    ACTION_APPROVE_COMMENT,
    ACTION_APPROVE_DIRECT,
    ACTION_APPROVE_MENU,
    ACTION_BAN,
    ACTION_CANCEL_COMMENT,
    ACTION_CANCEL_OPERATION,
    ACTION_ECHO,
    ACTION_REJECT,
    ACTION_REPLY,
    BAN_REASON_DEFAULT,
    BAN_REJECTION_REASON,
    MESSAGES,
)
from ..errors import ExternalGatewayError, NotFoundError, PersistenceError, StateError, TiplineError, ValidationError
from ..interfaces import MessagingGateway
from ..models import (
    ActionOutcome,
    ButtonRows,
    CommentFlowAction,
    CommentFlowPayload,
    InboundAction,
    InboundMessage,
    MessageRef,
    Submission,
    SubmissionStatus,
    UserStateKind,
)
from ..services.blacklist_store import BlacklistRegistry
from ..services.error_counter import ErrorCounter
from ..services.stats import RuntimeStats
from ..services.submissions_store import SubmissionRegistry
from ..services.user_state_store import UserStateManager
from ..utils import is_night_mode
from ..validation import SubmissionValidator
from .context import ReviewContext, ReviewContextResolver
from .render import (
    append_prompt,
    approve_menu_keyboard,
    cancel_keyboard,
    render_surface,
    replied_line,
    review_keyboard,
    strip_prompt,
    surface_buttons,
)

log = logging.getLogger("tipline.moderation")


class ModerationDispatcher:
    def __init__(
        self,
        *,
        settings: Settings,
        gateway: MessagingGateway,
        submissions: SubmissionRegistry,
        blacklist: BlacklistRegistry,
        user_states: UserStateManager,
        resolver: ReviewContextResolver,
        validator: Optional[SubmissionValidator] = None,
        error_counter: Optional[ErrorCounter] = None,
        stats: Optional[RuntimeStats] = None,
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.submissions = submissions
        self.blacklist = blacklist
        self.user_states = user_states
        self.resolver = resolver
        self.validator = validator or SubmissionValidator(settings.max_text_length, settings.max_attachment_bytes)
        self.error_counter = error_counter
        self.stats = stats or RuntimeStats()

        # Submission ids with a transition in progress in this process.
        self._in_flight: set[str] = set()

        self._handlers: dict[str, ActionHandler] = {
            ACTION_APPROVE_MENU: self.open_approve_menu,
            ACTION_APPROVE_DIRECT: self.approve_direct,
            ACTION_APPROVE_COMMENT: self.begin_approve_comment,
            ACTION_REJECT: self.reject,
            ACTION_BAN: self.ban,
            ACTION_REPLY: self.begin_reply,
            ACTION_ECHO: self.echo,
            ACTION_CANCEL_OPERATION: self.cancel,
            ACTION_CANCEL_COMMENT: self.cancel,
        }

    def handles(self, token: str) -> bool:
        return token in self._handlers

    async def dispatch(self, action: InboundAction) -> ActionOutcome:
        """Run the action named by ``action.action_token`` and acknowledge it."""
        handler = self._handlers.get(action.action_token)
        if handler is None:
            log.warning("Unknown moderation action %r from %s", action.action_token, action.actor_id)
            outcome = ActionOutcome(ok=False, message=MESSAGES["unknown_action"])
            await acknowledge(self.gateway, action, outcome)
            return outcome
        return await run_action(handler, action, gateway=self.gateway, error_counter=self.error_counter)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def open_approve_menu(self, action: InboundAction) -> ActionOutcome:
        ctx = await self._context(action)
        submission = await self._require_pending(ctx.submission_id)
        await self._edit_surface(action.surface_ref, render_surface(submission, self.settings), approve_menu_keyboard())
        return ActionOutcome(ok=True)

    async def approve_direct(self, action: InboundAction) -> ActionOutcome:
        ctx = await self._context(action)
        comment = None
        if action.argument and action.argument.strip():
            comment = self.validator.validate_comment(action.argument)
        return await self._approve(ctx.submission_id, action.surface_ref, comment)

    async def begin_approve_comment(self, action: InboundAction) -> ActionOutcome:
        ctx = await self._context(action)
        submission = await self._require_pending(ctx.submission_id)
        await self._begin_flow(action, submission, "approve_comment")
        return ActionOutcome(ok=True, message=MESSAGES["ack_send_comment"])

    async def reject(self, action: InboundAction) -> ActionOutcome:
        ctx = await self._context(action)
        reason = self.validator.validate_reason(action.argument)
        async with self._claim(ctx.submission_id):
            submission = await self._require_pending(ctx.submission_id)
            await self._transition(submission, SubmissionStatus.REJECTED, reason=reason)
            self.stats.submissions_rejected += 1
            log.info("Submission %s rejected by %s", submission.id, action.actor_id)

            await self._show_surface(action.surface_ref, submission)
            warnings = await self._notify(
                submission.submitter_id,
                MESSAGES["rejected_notice"].format(submission_id=submission.id, reason=reason),
            )
        return ActionOutcome(ok=True, message=MESSAGES["ack_rejected"], warnings=warnings)

    async def ban(self, action: InboundAction) -> ActionOutcome:
        ctx = await self._context(action)
        reason = BAN_REASON_DEFAULT
        if action.argument and action.argument.strip():
            reason = self.validator.validate_reason(action.argument)
        async with self._claim(ctx.submission_id):
            submission = await self._require_pending(ctx.submission_id)
            if ctx.submitter_id is not None and ctx.submitter_id != submission.submitter_id:
                log.warning(
                    "Review context names user %s but submission %s belongs to %s; banning the submitter",
                    ctx.submitter_id,
                    submission.id,
                    submission.submitter_id,
                )
            await self.blacklist.block(submission.submitter_id, reason)
            await self._transition(submission, SubmissionStatus.REJECTED, reason=BAN_REJECTION_REASON)
            self.stats.users_banned += 1
            self.stats.submissions_rejected += 1
            log.info("User %s banned by %s via submission %s", submission.submitter_id, action.actor_id, submission.id)

            await self._show_surface(action.surface_ref, submission)
            warnings = await self._notify(submission.submitter_id, MESSAGES["banned_notice"])
        return ActionOutcome(ok=True, message=MESSAGES["ack_banned"], warnings=warnings)

    async def begin_reply(self, action: InboundAction) -> ActionOutcome:
        ctx = await self._context(action)
        submission = await self._require_submission(ctx.submission_id)
        await self._begin_flow(action, submission, "reply")
        return ActionOutcome(ok=True, message=MESSAGES["ack_send_reply"])

    async def echo(self, action: InboundAction) -> ActionOutcome:
        """One-shot relay to the submitter without a side conversation."""
        ctx = await self._context(action)
        text = (action.argument or "").strip()
        if not text:
            raise ValidationError(MESSAGES["text_required"])
        submission = await self._require_submission(ctx.submission_id)
        await self._relay(submission, text, action.surface_ref)
        return ActionOutcome(ok=True, message=MESSAGES["ack_replied"])

    async def cancel(self, action: InboundAction) -> ActionOutcome:
        cleared = await self.user_states.clear_state(action.actor_id)
        log.debug("Cancel by %s (state cleared: %s)", action.actor_id, cleared)
        await self._restore_surface(action.surface_ref, action.surface_text)
        return ActionOutcome(ok=True, message=MESSAGES["ack_cancelled"])

    async def handle_comment_input(self, message: InboundMessage) -> bool:
        """Complete a pending comment/reply flow with ``message``.

        Returns True when the message belonged to a flow (whether or not the
        flow then succeeded) and must not be handled any further.
        """
        if message.is_bot or message.is_command:
            return False
        try:
            state = await self.user_states.get_state(message.sender_id)
        except PersistenceError:
            log.warning("Unreadable state for user %s; ignoring message", message.sender_id, exc_info=True)
            return False
        if state is None or state.state is not UserStateKind.ADDING_COMMENT:
            return False
        flow = state.payload
        if not isinstance(flow, CommentFlowPayload):
            return False
        # Only the chat that showed the prompt continues the flow.
        if message.chat_id != flow.surface_ref.chat_id:
            return False

        try:
            await self._complete_flow(message, flow)
        except TiplineError as e:
            log.info("Comment flow %s for %s failed: %s", flow.action, flow.submission_id, e)
            if self.error_counter is not None:
                await self.error_counter.record(e.category)
            await self._say(message.chat_id, e.user_message, reply_to=message.ref)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _complete_flow(self, message: InboundMessage, flow: CommentFlowPayload) -> None:
        text = (message.text or "").strip()
        if not text:
            raise ValidationError(MESSAGES["text_required"])

        if flow.action == "reply":
            submission = await self._require_submission(flow.submission_id)
            # State is kept on relay failure so the moderator can resend or cancel.
            await self._relay(submission, text, flow.surface_ref)
            await self.user_states.clear_state(message.sender_id)
            await self._delete_quietly(message.ref)
            return

        comment = self.validator.validate_comment(text)
        await self.user_states.clear_state(message.sender_id)
        await self._delete_quietly(message.ref)
        try:
            outcome = await self._approve(flow.submission_id, flow.surface_ref, comment)
        except TiplineError:
            await self._restore_surface(flow.surface_ref)
            raise
        for warning in outcome.warnings:
            await self._say(message.chat_id, warning)

    async def _approve(self, submission_id: str, surface_ref: MessageRef, comment: Optional[str]) -> ActionOutcome:
        async with self._claim(submission_id):
            submission = await self._require_pending(submission_id)
            warnings = await self._publish(submission, comment)
            await self._transition(submission, SubmissionStatus.APPROVED, comment=comment)
            self.stats.submissions_approved += 1
            log.info("Submission %s approved%s", submission.id, " with comment" if comment else "")

            await self._show_surface(surface_ref, submission)
            notice = MESSAGES["approved_notice"].format(submission_id=submission.id)
            if comment:
                notice += MESSAGES["comment_notice"].format(comment=comment)
            warnings += await self._notify(submission.submitter_id, notice)
        return ActionOutcome(ok=True, message=MESSAGES["ack_approved"], warnings=warnings)

    async def _publish(self, submission: Submission, comment: Optional[str]) -> list[str]:
        """Forward the submission to the publish channel, then post the editor's note.

        A failed note takes the forwarded copy down again and aborts. If the
        copy cannot be removed the content is live, so the approval goes
        ahead with a warning instead.
        """
        channel_id = self.settings.publish_channel_id
        if not channel_id:
            raise ExternalGatewayError(MESSAGES["publish_unconfigured"], detail="PUBLISH_CHANNEL_ID is not set")
        silent = is_night_mode(self.settings)
        try:
            published = await self.gateway.forward_message(channel_id, submission.source_ref, silent=silent)
        except ExternalGatewayError as e:
            log.error("Publishing submission %s failed, it stays pending: %s", submission.id, e)
            raise
        if not comment:
            return []

        try:
            await self.gateway.send_message(
                channel_id,
                MESSAGES["editor_note"].format(comment=comment),
                reply_to=published,
                silent=silent,
            )
        except ExternalGatewayError as e:
            try:
                await self.gateway.delete_message(channel_id, published)
            except ExternalGatewayError as cleanup:
                log.error(
                    "Editor's note for %s failed (%s) and %s could not be removed (%s); approving without the note",
                    submission.id,
                    e,
                    published.key,
                    cleanup,
                )
                return [MESSAGES["note_failed"]]
            log.error("Editor's note for %s failed, publication withdrawn and it stays pending: %s", submission.id, e)
            raise
        return []

    async def _transition(
        self,
        submission: Submission,
        status: SubmissionStatus,
        comment: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        if not await self.submissions.update_status(submission.id, status, comment=comment, reason=reason):
            raise NotFoundError(detail=f"submission {submission.id} disappeared during {status.value}")
        submission.status = status
        if comment:
            submission.moderator_comment = comment
        if reason:
            submission.rejection_reason = reason

    async def _notify(self, user_id: int, text: str) -> list[str]:
        try:
            await self.gateway.send_message(user_id, text)
        except ExternalGatewayError as e:
            log.warning("Could not notify user %s: %s", user_id, e)
            return [MESSAGES["notify_failed"]]
        return []

    async def _relay(self, submission: Submission, text: str, surface_ref: MessageRef) -> None:
        try:
            await self.gateway.send_message(
                submission.submitter_id,
                MESSAGES["reply_notice"].format(text=text, submission_id=submission.id),
            )
        except ExternalGatewayError as e:
            log.warning("Reply for submission %s not delivered: %s", submission.id, e)
            raise ExternalGatewayError(MESSAGES["reply_failed"].format(error=e.user_message), detail=str(e)) from e
        self.stats.replies_relayed += 1
        log.info("Relayed a reply to user %s for submission %s", submission.submitter_id, submission.id)
        await self._edit_surface_quietly(
            surface_ref,
            render_surface(submission, self.settings) + replied_line(text),
            surface_buttons(submission),
        )

    async def _begin_flow(self, action: InboundAction, submission: Submission, flow: CommentFlowAction) -> None:
        payload = CommentFlowPayload(
            action=flow,
            submission_id=submission.id,
            surface_ref=action.surface_ref,
            target_user_id=submission.submitter_id,
        )
        await self.user_states.set_state(action.actor_id, UserStateKind.ADDING_COMMENT, payload)
        await self._edit_surface(
            action.surface_ref,
            append_prompt(render_surface(submission, self.settings), flow),
            cancel_keyboard(),
        )

    async def _restore_surface(self, surface_ref: MessageRef, surface_text: str = "") -> None:
        """Put the review message back to how it looks outside any flow."""
        ctx = await self.resolver.resolve(surface_ref, surface_text)
        submission = None
        if ctx is not None:
            try:
                submission = await self.submissions.get(ctx.submission_id)
            except PersistenceError:
                log.warning("Could not load %s to restore its review message", ctx.submission_id, exc_info=True)
        if submission is not None:
            text, buttons = render_surface(submission, self.settings), surface_buttons(submission)
        else:
            text, buttons = strip_prompt(surface_text), review_keyboard()
        if text:
            await self._edit_surface_quietly(surface_ref, text, buttons)

    async def _context(self, action: InboundAction) -> ReviewContext:
        ctx = await self.resolver.resolve(action.surface_ref, action.surface_text)
        if ctx is None:
            raise NotFoundError(detail=f"no submission behind {action.surface_ref.key}")
        return ctx

    async def _require_submission(self, submission_id: str) -> Submission:
        submission = await self.submissions.get(submission_id)
        if submission is None:
            raise NotFoundError(detail=f"submission {submission_id} not found")
        return submission

    async def _require_pending(self, submission_id: str) -> Submission:
        submission = await self._require_submission(submission_id)
        if not submission.is_pending:
            raise StateError(detail=f"submission {submission_id} is already {submission.status.value}")
        return submission

    @asynccontextmanager
    async def _claim(self, submission_id: str) -> AsyncIterator[None]:
        if submission_id in self._in_flight:
            raise StateError(MESSAGES["in_progress"], detail=f"submission {submission_id} is being processed")
        self._in_flight.add(submission_id)
        try:
            yield
        finally:
            self._in_flight.discard(submission_id)

    async def _show_surface(self, surface_ref: MessageRef, submission: Submission) -> None:
        await self._edit_surface_quietly(surface_ref, render_surface(submission, self.settings), surface_buttons(submission))

    async def _edit_surface(self, surface_ref: MessageRef, text: str, buttons: Optional[ButtonRows]) -> None:
        await self.gateway.edit_message(surface_ref.chat_id, surface_ref, text, buttons=buttons)

    async def _edit_surface_quietly(self, surface_ref: MessageRef, text: str, buttons: Optional[ButtonRows]) -> None:
        try:
            await self._edit_surface(surface_ref, text, buttons)
        except ExternalGatewayError as e:
            log.warning("Could not update review message %s: %s", surface_ref.key, e)

    async def _delete_quietly(self, ref: MessageRef) -> None:
        try:
            await self.gateway.delete_message(ref.chat_id, ref)
        except ExternalGatewayError as e:
            log.warning("Could not delete message %s: %s", ref.key, e)

    async def _say(self, chat_id: int, text: str, reply_to: Optional[MessageRef] = None) -> None:
        try:
            await self.gateway.send_message(chat_id, text, reply_to=reply_to)
        except ExternalGatewayError as e:
            log.warning("Could not send to %s: %s", chat_id, e)
