from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from ..config import Settings
from ..constants import (
    ACTION_APPROVE_COMMENT,
    ACTION_APPROVE_DIRECT,
    ACTION_APPROVE_MENU,
    ACTION_BAN,
    ACTION_CANCEL_COMMENT,
    ACTION_CANCEL_OPERATION,
    ACTION_CANCEL_SUBMISSION,
    ACTION_CONFIRM,
    ACTION_CONFIRM_ANONYMOUS,
    ACTION_EDIT,
    ACTION_REJECT,
    ACTION_REPLY,
    BAN_REJECTION_REASON,
    MESSAGES,
    PROMPT_SEPARATOR,
    REVIEW_PREVIEW_LENGTH,
    SUBMISSION_ID_LABEL,
    USER_ID_LABEL,
)
from ..models import Button, ButtonRows, CommentFlowAction, Submission, SubmissionStatus
from ..utils import format_timestamp, is_night_mode, submitter_label, truncate


def render_review(submission: Submission, night: bool = False) -> str:
    """Text of the review message moderators act on.

    The id and user-id lines are parsed back by ``moderation.context``; keep
    their labels in ``constants`` if the layout changes.
    """
    header = "🌙 Night submission" if night else "📨 New submission"
    lines = [
        header,
        "",
        f"👤 From: {submitter_label(submission.display_name, submission.anonymous)}",
        f"{USER_ID_LABEL} {submission.submitter_id}",
        f"{SUBMISSION_ID_LABEL} {submission.id}",
        f"📅 Submitted: {format_timestamp(submission.created_at)}",
        f"📎 Type: {submission.content_kind.value}",
        "",
        truncate(submission.content, REVIEW_PREVIEW_LENGTH),
    ]
    return "\n".join(lines)


def strip_prompt(text: str) -> str:
    """Drop a "please send…" suffix added when a comment/reply flow started."""
    return (text or "").split(PROMPT_SEPARATOR, 1)[0]


def append_prompt(text: str, action: CommentFlowAction) -> str:
    key = "prompt_comment" if action == "approve_comment" else "prompt_reply"
    return strip_prompt(text) + MESSAGES[key]


def approved_line(comment: str | None = None) -> str:
    line = MESSAGES["outcome_approved"]
    if comment:
        line += MESSAGES["outcome_comment"].format(comment=comment)
    return line


def rejected_line(reason: str) -> str:
    return MESSAGES["outcome_rejected"].format(reason=reason)


def banned_line() -> str:
    return MESSAGES["outcome_banned"]


def replied_line(text: str) -> str:
    return MESSAGES["outcome_replied"].format(text=truncate(text, 200))


def review_keyboard() -> ButtonRows:
    return (
        (
            Button("✅ Approve", ACTION_APPROVE_MENU, "success"),
            Button("❌ Reject", ACTION_REJECT, "danger"),
        ),
        (
            Button("🚫 Ban", ACTION_BAN, "danger"),
            Button("💬 Reply", ACTION_REPLY, "secondary"),
        ),
    )


def approve_menu_keyboard() -> ButtonRows:
    return (
        (
            Button("✅ Approve", ACTION_APPROVE_DIRECT, "success"),
            Button("💬 Approve with comment", ACTION_APPROVE_COMMENT, "primary"),
        ),
        (Button("↩️ Cancel", ACTION_CANCEL_OPERATION, "secondary"),),
    )


def cancel_keyboard() -> ButtonRows:
    return ((Button("↩️ Cancel", ACTION_CANCEL_COMMENT, "secondary"),),)


def confirm_keyboard() -> ButtonRows:
    return (
        (
            Button("✅ Submit", ACTION_CONFIRM, "success"),
            Button("🕶️ Submit anonymously", ACTION_CONFIRM_ANONYMOUS, "primary"),
        ),
        (
            Button("✏️ Edit", ACTION_EDIT, "secondary"),
            Button("🗑️ Cancel", ACTION_CANCEL_SUBMISSION, "danger"),
        ),
    )


def status_line(submission: Submission) -> str:
    """Outcome line matching the submission's stored status; empty while pending."""
    if submission.status is SubmissionStatus.APPROVED:
        return approved_line(submission.moderator_comment)
    if submission.status is SubmissionStatus.REJECTED:
        if submission.rejection_reason == BAN_REJECTION_REASON:
            return banned_line()
        return rejected_line(submission.rejection_reason or "")
    return ""


def submitted_at_night(submission: Submission, settings: Settings) -> bool:
    return is_night_mode(settings, datetime.fromtimestamp(submission.created_at, tz=timezone.utc))


def render_surface(submission: Submission, settings: Settings) -> str:
    return render_review(submission, submitted_at_night(submission, settings)) + status_line(submission)


def surface_buttons(submission: Submission) -> Optional[ButtonRows]:
    return review_keyboard() if submission.is_pending else None
