from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional, Union


class ChatKind(Enum):
    PRIVATE = "private"
    GROUP = "group"
    CHANNEL = "channel"


class ContentKind(Enum):
    TEXT = "text"
    PHOTO = "photo"
    VIDEO = "video"
    DOCUMENT = "document"
    AUDIO = "audio"
    VOICE = "voice"
    STICKER = "sticker"
    ANIMATION = "animation"
    OTHER = "other"


class SubmissionStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class UserStateKind(Enum):
    PENDING_SUBMISSION = "pending_submission"
    ADDING_COMMENT = "adding_comment"


CommentFlowAction = Literal["approve_comment", "reply"]


@dataclass(frozen=True)
class MessageRef:
    """Pointer to one message in one chat."""

    chat_id: int
    message_id: int

    @property
    def key(self) -> str:
        return f"{self.chat_id}:{self.message_id}"

    def to_dict(self) -> dict[str, int]:
        return {"chat_id": self.chat_id, "message_id": self.message_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MessageRef":
        return cls(int(data["chat_id"]), int(data["message_id"]))


@dataclass(frozen=True)
class ContentDescriptor:
    kind: ContentKind
    text: str = ""
    file_size: int = 0

    def summary(self) -> str:
        if self.text:
            return self.text
        return f"[{self.kind.value}]"


@dataclass(frozen=True)
class Button:
    label: str
    token: str
    style: Literal["primary", "secondary", "success", "danger"] = "secondary"


ButtonRows = tuple[tuple[Button, ...], ...]


@dataclass(frozen=True)
class InboundMessage:
    """Normalized chat message handed to the core."""

    sender_id: int
    chat_id: int
    chat_kind: ChatKind
    message_id: int
    text: Optional[str] = None
    caption: Optional[str] = None
    attachment_kind: Optional[ContentKind] = None
    attachment_size: int = 0
    reply_to: Optional[MessageRef] = None
    # Text of the replied-to message, when the transport resolved it.
    reply_to_text: Optional[str] = None
    sender_username: Optional[str] = None
    sender_name: Optional[str] = None
    is_bot: bool = False

    @property
    def ref(self) -> MessageRef:
        return MessageRef(self.chat_id, self.message_id)

    @property
    def is_command(self) -> bool:
        return bool(self.text) and self.text.lstrip().startswith("/")


@dataclass(frozen=True)
class InboundAction:
    """A button press (or equivalent) on a message the bot rendered."""

    action_token: str
    actor_id: int
    surface_ref: MessageRef
    action_id: str = ""
    surface_text: str = ""
    argument: Optional[str] = None
    actor_username: Optional[str] = None
    actor_name: Optional[str] = None


@dataclass
class Submission:
    id: str
    submitter_id: int
    display_name: str
    source_ref: MessageRef
    content: str
    created_at: float
    content_kind: ContentKind = ContentKind.TEXT
    status: SubmissionStatus = SubmissionStatus.PENDING
    anonymous: bool = False
    moderator_comment: Optional[str] = None
    rejection_reason: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status is SubmissionStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "submitter_id": self.submitter_id,
            "display_name": self.display_name,
            "source_ref": self.source_ref.to_dict(),
            "content": self.content,
            "content_kind": self.content_kind.value,
            "created_at": self.created_at,
            "status": self.status.value,
            "anonymous": self.anonymous,
            "moderator_comment": self.moderator_comment,
            "rejection_reason": self.rejection_reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Submission":
        return cls(
            id=str(data["id"]),
            submitter_id=int(data["submitter_id"]),
            display_name=str(data.get("display_name") or ""),
            source_ref=MessageRef.from_dict(data["source_ref"]),
            content=str(data.get("content") or ""),
            created_at=float(data["created_at"]),
            content_kind=ContentKind(data.get("content_kind", "text")),
            status=SubmissionStatus(data.get("status", "pending")),
            anonymous=bool(data.get("anonymous", False)),
            moderator_comment=data.get("moderator_comment"),
            rejection_reason=data.get("rejection_reason"),
        )


@dataclass(frozen=True)
class PendingSubmissionPayload:
    submitter_id: int
    source_ref: MessageRef
    content: str
    content_kind: ContentKind
    staged_at: float

    kind = UserStateKind.PENDING_SUBMISSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "submitter_id": self.submitter_id,
            "source_ref": self.source_ref.to_dict(),
            "content": self.content,
            "content_kind": self.content_kind.value,
            "staged_at": self.staged_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingSubmissionPayload":
        return cls(
            submitter_id=int(data["submitter_id"]),
            source_ref=MessageRef.from_dict(data["source_ref"]),
            content=str(data["content"]),
            content_kind=ContentKind(data.get("content_kind", "text")),
            staged_at=float(data["staged_at"]),
        )


@dataclass(frozen=True)
class CommentFlowPayload:
    action: CommentFlowAction
    submission_id: str
    surface_ref: MessageRef
    target_user_id: Optional[int] = None

    kind = UserStateKind.ADDING_COMMENT

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "action": self.action,
            "submission_id": self.submission_id,
            "surface_ref": self.surface_ref.to_dict(),
            "target_user_id": self.target_user_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CommentFlowPayload":
        target = data.get("target_user_id")
        return cls(
            action=data["action"],
            submission_id=str(data["submission_id"]),
            surface_ref=MessageRef.from_dict(data["surface_ref"]),
            target_user_id=int(target) if target is not None else None,
        )


StatePayload = Union[PendingSubmissionPayload, CommentFlowPayload]


@dataclass(frozen=True)
class UserState:
    user_id: int
    state: UserStateKind
    payload: StatePayload
    updated_at: float


@dataclass(frozen=True)
class BlacklistEntry:
    user_id: int
    blocked_at: float
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "reason": self.reason, "blocked_at": self.blocked_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BlacklistEntry":
        return cls(
            user_id=int(data["user_id"]),
            blocked_at=float(data["blocked_at"]),
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class DocumentRecord:
    id: str
    payload: dict[str, Any]
    stored_at: float

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "payload": self.payload, "storedAt": self.stored_at}


@dataclass
class ActionOutcome:
    """What happened when a moderation or submitter action ran."""

    ok: bool
    message: str = ""
    warnings: list[str] = field(default_factory=list)
    error: Optional[Exception] = None

    def ack_text(self) -> str:
        return "\n".join(part for part in [self.message, *self.warnings] if part)
