from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

import pytest

from tipline import intake as intake_module
from tipline.constants import ACTION_CANCEL_SUBMISSION, ACTION_CONFIRM, ACTION_CONFIRM_ANONYMOUS, MESSAGES
from tipline.errors import ErrorCategory, StateError, ValidationError
from tipline.intake import SubmissionIntake
from tipline.models import ContentKind, InboundAction, MessageRef, SubmissionStatus, UserStateKind
from tipline.moderation.context import extract_submission_id
from tipline.moderation.render import confirm_keyboard, review_keyboard
from tipline.services.blacklist_store import BlacklistRegistry
from tipline.services.review_index_store import ReviewIndex
from tipline.services.submissions_store import SubmissionRegistry
from tipline.services.user_state_store import UserStateManager
from tipline.testing.fakes import RecordingGateway

from conftest import REVIEW_CHANNEL, SUBMITTER, SUBMITTER_DM


@pytest.mark.asyncio
async def test_stage_then_confirm_sends_submission_for_review(h):
    message = h.dm("Hello world")
    result = await h.intake.stage(message)
    assert result.replaced is False

    state = await h.user_states.get_state(SUBMITTER)
    assert state is not None
    assert state.state is UserStateKind.PENDING_SUBMISSION
    assert state.payload.content == "Hello world"

    submission, warnings = await h.intake.confirm(SUBMITTER, "@alice")
    assert warnings == []
    assert submission.status is SubmissionStatus.PENDING
    assert submission.source_ref == message.ref
    assert await h.user_states.get_state(SUBMITTER) is None

    stored = await h.submissions.get(submission.id)
    assert stored is not None and stored.content == "Hello world"

    review = h.gateway.sent_to(REVIEW_CHANNEL)
    assert len(review) == 1
    assert review[0].buttons == review_keyboard()
    assert extract_submission_id(review[0].text) == submission.id

    link = await h.review_index.lookup(review[0].result)
    assert link is not None and link.submission_id == submission.id

    forwards = h.gateway.calls_to("forward_message")
    assert [(c.target, c.ref) for c in forwards] == [(REVIEW_CHANNEL, message.ref)]
    assert h.stats.submissions_created == 1


@pytest.mark.asyncio
async def test_receive_prompts_for_confirmation(h):
    message = h.dm("Hello world")
    await h.intake.receive(message)

    prompt = h.gateway.sent_to(SUBMITTER_DM)[-1]
    assert prompt.buttons == confirm_keyboard()
    assert prompt.reply_to == message.ref
    assert "Hello world" in prompt.text


@pytest.mark.asyncio
async def test_restaging_replaces_the_unconfirmed_submission(h, caplog):
    await h.intake.receive(h.dm("first"))
    with caplog.at_level(logging.WARNING, logger="tipline.intake"):
        result = await h.intake.receive(h.dm("second"))

    assert result.replaced is True
    assert "replaced" in caplog.text
    state = await h.user_states.get_state(SUBMITTER)
    assert state is not None and state.payload.content == "second"
    assert h.gateway.sent_to(SUBMITTER_DM)[-1].text.startswith(MESSAGES["replaced"])


@pytest.mark.asyncio
async def test_invalid_content_writes_nothing(h):
    with pytest.raises(ValidationError):
        await h.intake.stage(h.dm("   "))
    with pytest.raises(ValidationError):
        await h.intake.stage(h.dm("click bit.ly/free"))
    assert await h.user_states.count() == 0


@pytest.mark.asyncio
async def test_attachment_is_staged_with_placeholder_content(h):
    await h.intake.stage(h.dm(None, attachment_kind=ContentKind.PHOTO, attachment_size=2048))
    state = await h.user_states.get_state(SUBMITTER)
    assert state is not None
    assert state.payload.content_kind is ContentKind.PHOTO
    assert state.payload.content == "[photo]"


@pytest.mark.asyncio
async def test_caption_is_used_as_text(h):
    await h.intake.stage(h.dm(None, attachment_kind=ContentKind.VIDEO, caption="  look   at this  "))
    state = await h.user_states.get_state(SUBMITTER)
    assert state is not None and state.payload.content == "look at this"


@pytest.mark.asyncio
async def test_confirm_without_pending_submission(h):
    with pytest.raises(StateError) as exc:
        await h.intake.confirm(SUBMITTER, "@alice")
    assert exc.value.user_message == MESSAGES["session_expired"]
    assert await h.submissions.count() == 0


@pytest.mark.asyncio
async def test_ban_between_stage_and_confirm(h):
    await h.intake.stage(h.dm("Hello world"))
    await h.blacklist.block(SUBMITTER, "spam")

    with pytest.raises(ValidationError):
        await h.intake.confirm(SUBMITTER, "@alice")
    assert await h.submissions.count() == 0
    assert await h.user_states.get_state(SUBMITTER) is None


@pytest.mark.asyncio
async def test_anonymous_confirmation_via_button(h):
    message = h.dm("Hello world")
    await h.intake.receive(message)
    prompt_ref = h.gateway.sent_to(SUBMITTER_DM)[-1].result

    outcome = await h.intake.handle_action(
        InboundAction(ACTION_CONFIRM_ANONYMOUS, SUBMITTER, prompt_ref, action_id="cb-9", actor_username="alice")
    )

    assert outcome.ok
    [submission] = await h.submissions.list_by_user(SUBMITTER)
    assert submission.anonymous is True
    assert "Anonymous" in h.gateway.sent_to(REVIEW_CHANNEL)[-1].text
    receipt = h.gateway.last_edit(prompt_ref)
    assert receipt is not None and submission.id in receipt.text and receipt.buttons is None
    assert [(a.action_id, a.alert) for a in h.gateway.acks()] == [("cb-9", False)]


@pytest.mark.asyncio
async def test_cancel_button_discards_the_pending_submission(h):
    await h.intake.receive(h.dm("Hello world"))
    prompt_ref = h.gateway.sent_to(SUBMITTER_DM)[-1].result

    outcome = await h.intake.handle_action(InboundAction(ACTION_CANCEL_SUBMISSION, SUBMITTER, prompt_ref, action_id="cb"))

    assert outcome.ok
    assert await h.user_states.get_state(SUBMITTER) is None
    assert h.gateway.last_edit(prompt_ref).text == MESSAGES["cancelled"]


@pytest.mark.asyncio
async def test_expired_session_is_acknowledged_with_alert(h):
    outcome = await h.intake.handle_action(
        InboundAction(ACTION_CONFIRM_ANONYMOUS, SUBMITTER, MessageRef(SUBMITTER_DM, 5), action_id="cb")
    )
    assert not outcome.ok
    assert isinstance(outcome.error, StateError)
    [ack] = h.gateway.acks()
    assert ack.alert is True and ack.text == MESSAGES["session_expired"]
    assert h.counter.count(ErrorCategory.STATE) == 1


@pytest.mark.asyncio
async def test_review_delivery_failure_keeps_the_submission(h):
    h.gateway.fail_targets.add(REVIEW_CHANNEL)
    await h.intake.stage(h.dm("Hello world"))

    submission, warnings = await h.intake.confirm(SUBMITTER, "@alice")

    assert warnings == [MESSAGES["review_forward_failed"]]
    stored = await h.submissions.get(submission.id)
    assert stored is not None and stored.is_pending


@pytest.mark.asyncio
async def test_id_collision_is_retried(h, monkeypatch):
    await h.intake.stage(h.dm("first"))
    taken, _ = await h.intake.confirm(SUBMITTER, "@alice")

    ids = iter([taken.id, "1700000000000_fresh"])
    monkeypatch.setattr(intake_module, "generate_submission_id", lambda now=None: next(ids))

    await h.intake.stage(h.dm("second"))
    submission, _ = await h.intake.confirm(SUBMITTER, "@alice")
    assert submission.id == "1700000000000_fresh"
    assert await h.submissions.count() == 2


@pytest.mark.asyncio
async def test_missing_review_channel_only_logs(settings, store, dm, caplog):
    gateway = RecordingGateway()
    intake = SubmissionIntake(
        settings=replace(settings, review_channel_id=0),
        gateway=gateway,
        submissions=SubmissionRegistry(store),
        blacklist=BlacklistRegistry(store),
        user_states=UserStateManager(store),
        review_index=ReviewIndex(store),
    )

    await intake.stage(dm("hi"))
    with caplog.at_level(logging.WARNING, logger="tipline.intake"):
        _, warnings = await intake.confirm(SUBMITTER, "@alice")

    assert warnings == []
    assert gateway.calls == []
    assert "REVIEW_CHANNEL_ID" in caplog.text


@pytest.mark.asyncio
async def test_double_confirm_creates_one_submission(h):
    await h.intake.receive(h.dm("Hello world"))
    prompt_ref = h.gateway.sent_to(SUBMITTER_DM)[-1].result

    outcomes = await asyncio.gather(
        h.intake.handle_action(InboundAction(ACTION_CONFIRM, SUBMITTER, prompt_ref, action_id="c1")),
        h.intake.handle_action(InboundAction(ACTION_CONFIRM, SUBMITTER, prompt_ref, action_id="c2")),
    )

    assert sorted(o.ok for o in outcomes) == [False, True]
    [failed] = [o for o in outcomes if not o.ok]
    assert isinstance(failed.error, StateError)
    assert len(await h.submissions.list_by_user(SUBMITTER)) == 1
    assert len(h.gateway.sent_to(REVIEW_CHANNEL)) == 1
    assert sorted(a.alert for a in h.gateway.acks()) == [False, True]


@pytest.mark.asyncio
async def test_confirm_after_a_finished_confirm_finds_no_session(h):
    await h.intake.stage(h.dm("Hello world"))
    await h.intake.confirm(SUBMITTER, "@alice")

    with pytest.raises(StateError) as exc:
        await h.intake.confirm(SUBMITTER, "@alice")
    assert exc.value.user_message == MESSAGES["session_expired"]
    assert await h.submissions.count() == 1
