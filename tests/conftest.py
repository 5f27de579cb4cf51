from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import pytest

from tipline.config import Settings
from tipline.intake import SubmissionIntake
from tipline.models import ChatKind, ContentKind, InboundAction, InboundMessage, MessageRef, Submission
from tipline.moderation.context import ReviewContextResolver
from tipline.moderation.dispatcher import ModerationDispatcher
from tipline.router import Router
from tipline.services.blacklist_store import BlacklistRegistry
from tipline.services.document_store import DocumentStore
from tipline.services.error_counter import ErrorCounter
from tipline.services.review_index_store import ReviewIndex
from tipline.services.stats import RuntimeStats
from tipline.services.submissions_store import SubmissionRegistry
from tipline.services.user_state_store import UserStateManager
from tipline.testing.fakes import RecordingGateway

REVIEW_CHANNEL = 500
PUBLISH_CHANNEL = 600
MODERATOR = 42
SUBMITTER = 7
SUBMITTER_DM = 7007


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        token="test-token",
        admin_id=1,
        publish_channel_id=PUBLISH_CHANNEL,
        review_channel_id=REVIEW_CHANNEL,
        sqlite_path=str(tmp_path / "tipline.sqlite3"),
    )


@pytest.fixture
async def store(settings: Settings):
    s = DocumentStore(settings.sqlite_path, settings.cache_ttl_seconds)
    await s.init()
    yield s
    await s.close()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def counter() -> ErrorCounter:
    return ErrorCounter(threshold=10, window_seconds=3600)


@pytest.fixture
def message_ids() -> Iterator[int]:
    return itertools.count(1)


@pytest.fixture
def dm(message_ids) -> Callable[..., InboundMessage]:
    """Build a private message from a submitter."""

    def _make(
        text: Optional[str] = "Hello world",
        *,
        sender_id: int = SUBMITTER,
        chat_id: int = SUBMITTER_DM,
        attachment_kind: Optional[ContentKind] = None,
        attachment_size: int = 0,
        caption: Optional[str] = None,
        is_bot: bool = False,
    ) -> InboundMessage:
        return InboundMessage(
            sender_id=sender_id,
            chat_id=chat_id,
            chat_kind=ChatKind.PRIVATE,
            message_id=next(message_ids),
            text=text,
            caption=caption,
            attachment_kind=attachment_kind,
            attachment_size=attachment_size,
            sender_username="alice",
            is_bot=is_bot,
        )

    return _make


@pytest.fixture
def review_message(message_ids) -> Callable[..., InboundMessage]:
    """Build a message posted in the review channel."""

    def _make(
        text: Optional[str],
        *,
        sender_id: int = MODERATOR,
        reply_to: Optional[MessageRef] = None,
        reply_to_text: Optional[str] = None,
        chat_id: int = REVIEW_CHANNEL,
    ) -> InboundMessage:
        return InboundMessage(
            sender_id=sender_id,
            chat_id=chat_id,
            chat_kind=ChatKind.GROUP,
            message_id=next(message_ids),
            text=text,
            reply_to=reply_to,
            reply_to_text=reply_to_text,
            sender_username="mod",
        )

    return _make


@dataclass
class Harness:
    settings: Settings
    store: DocumentStore
    gateway: RecordingGateway
    counter: ErrorCounter
    stats: RuntimeStats
    submissions: SubmissionRegistry
    blacklist: BlacklistRegistry
    user_states: UserStateManager
    review_index: ReviewIndex
    intake: SubmissionIntake
    dispatcher: ModerationDispatcher
    router: Router
    dm: Callable[..., InboundMessage]

    async def submit(self, text: str = "Hello world", *, sender_id: int = SUBMITTER) -> tuple[Submission, MessageRef]:
        """Stage and confirm a submission; returns it with its review message ref."""
        await self.intake.stage(self.dm(text, sender_id=sender_id))
        submission, _ = await self.intake.confirm(sender_id, "@alice")
        review_ref = self.gateway.sent_to(REVIEW_CHANNEL)[-1].result
        assert review_ref is not None
        return submission, review_ref

    def action(
        self,
        token: str,
        surface: MessageRef,
        *,
        actor_id: int = MODERATOR,
        argument: Optional[str] = None,
        surface_text: str = "",
        action_id: str = "cb-1",
    ) -> InboundAction:
        return InboundAction(
            action_token=token,
            actor_id=actor_id,
            surface_ref=surface,
            action_id=action_id,
            surface_text=surface_text,
            argument=argument,
        )


@pytest.fixture
async def h(settings: Settings, store: DocumentStore, gateway: RecordingGateway, counter: ErrorCounter, dm) -> Harness:
    stats = RuntimeStats()
    submissions = SubmissionRegistry(store)
    blacklist = BlacklistRegistry(store)
    user_states = UserStateManager(store)
    review_index = ReviewIndex(store)
    intake = SubmissionIntake(
        settings=settings,
        gateway=gateway,
        submissions=submissions,
        blacklist=blacklist,
        user_states=user_states,
        review_index=review_index,
        error_counter=counter,
        stats=stats,
    )
    dispatcher = ModerationDispatcher(
        settings=settings,
        gateway=gateway,
        submissions=submissions,
        blacklist=blacklist,
        user_states=user_states,
        resolver=ReviewContextResolver(review_index),
        error_counter=counter,
        stats=stats,
    )
    router = Router(
        gateway=gateway,
        intake=intake,
        dispatcher=dispatcher,
        blacklist=blacklist,
        user_states=user_states,
        review_channel_id=settings.review_channel_id,
        error_counter=counter,
        bot_user_id=999,
    )
    return Harness(
        settings=settings,
        store=store,
        gateway=gateway,
        counter=counter,
        stats=stats,
        submissions=submissions,
        blacklist=blacklist,
        user_states=user_states,
        review_index=review_index,
        intake=intake,
        dispatcher=dispatcher,
        router=router,
        dm=dm,
    )
