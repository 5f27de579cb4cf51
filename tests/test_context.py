from __future__ import annotations

import logging

import pytest

from tipline.constants import BAN_REJECTION_REASON, PROMPT_SEPARATOR
from tipline.models import ContentKind, MessageRef, Submission, SubmissionStatus
from tipline.moderation.context import ReviewContextResolver, extract_submission_id, extract_user_id
from tipline.moderation.render import (
    append_prompt,
    render_review,
    render_surface,
    status_line,
    strip_prompt,
    surface_buttons,
)
from tipline.services.review_index_store import ReviewIndex


def _submission(**kwargs) -> Submission:
    defaults = dict(
        id="1700000000000_0f3a9c",
        submitter_id=7,
        display_name="@alice",
        source_ref=MessageRef(7007, 1),
        content="Hello world",
        created_at=1_700_000_000.0,
    )
    defaults.update(kwargs)
    return Submission(**defaults)


def test_rendered_review_carries_recoverable_ids():
    text = render_review(_submission())
    assert extract_submission_id(text) == "1700000000000_0f3a9c"
    assert extract_user_id(text) == 7
    assert "@alice" in text
    assert "Hello world" in text


def test_anonymous_review_hides_the_name_but_keeps_the_user_id():
    text = render_review(_submission(anonymous=True))
    assert "Anonymous" in text
    assert "@alice" not in text
    assert extract_user_id(text) == 7


def test_backticked_ids_are_recognised():
    text = "📝 Submission ID: `1700000000000_0f3a9c`\n🆔 User ID: `7`"
    assert extract_submission_id(text) == "1700000000000_0f3a9c"
    assert extract_user_id(text) == 7


@pytest.mark.parametrize(
    "text",
    [None, "", "no markers here", "📝 Submission ID:", "📝 Submission ID: NOT-AN-ID", "📝 Submission ID: 123"],
)
def test_extraction_of_malformed_text_returns_none(text):
    assert extract_submission_id(text) is None


def test_prompt_is_appended_once_and_stripped():
    base = render_review(_submission())
    prompted = append_prompt(append_prompt(base, "reply"), "approve_comment")
    assert prompted.count(PROMPT_SEPARATOR) == 1
    assert strip_prompt(prompted) == base


def test_status_line_follows_the_stored_status():
    assert status_line(_submission()) == ""
    approved = _submission(status=SubmissionStatus.APPROVED, moderator_comment="nice")
    assert "Approved" in status_line(approved) and "nice" in status_line(approved)
    rejected = _submission(status=SubmissionStatus.REJECTED, rejection_reason="off topic")
    assert "off topic" in status_line(rejected)
    banned = _submission(status=SubmissionStatus.REJECTED, rejection_reason=BAN_REJECTION_REASON)
    assert "banned" in status_line(banned)


def test_surface_keeps_buttons_only_while_pending(settings):
    pending = _submission(content_kind=ContentKind.PHOTO)
    assert surface_buttons(pending) is not None
    assert "photo" in render_surface(pending, settings)
    assert surface_buttons(_submission(status=SubmissionStatus.APPROVED)) is None


@pytest.mark.asyncio
async def test_index_wins_over_text(store, caplog):
    index = ReviewIndex(store)
    surface = MessageRef(500, 1001)
    await index.link(surface, "1_indexed", 7)
    resolver = ReviewContextResolver(index)

    with caplog.at_level(logging.WARNING, logger="tipline.moderation.context"):
        ctx = await resolver.resolve(surface, render_review(_submission()))

    assert ctx is not None
    assert (ctx.submission_id, ctx.submitter_id, ctx.source) == ("1_indexed", 7, "index")
    assert "using index" in caplog.text


@pytest.mark.asyncio
async def test_text_is_the_fallback(store):
    resolver = ReviewContextResolver(ReviewIndex(store))
    ctx = await resolver.resolve(MessageRef(500, 1), render_review(_submission()))
    assert ctx is not None
    assert (ctx.submission_id, ctx.submitter_id, ctx.source) == ("1700000000000_0f3a9c", 7, "text")


@pytest.mark.asyncio
async def test_nothing_to_resolve(store):
    resolver = ReviewContextResolver(ReviewIndex(store))
    assert await resolver.resolve(MessageRef(500, 1), "random chatter") is None
