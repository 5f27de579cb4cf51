from __future__ import annotations

import re
from typing import Final

# Content limits
MAX_TEXT_LENGTH: Final[int] = 4096
MAX_ATTACHMENT_BYTES: Final[int] = 50 * 1024 * 1024
MAX_COMMENT_LENGTH: Final[int] = 1000
MAX_REASON_LENGTH: Final[int] = 500

# Storage
CACHE_TTL_SECONDS: Final[int] = 60
STATE_MAX_AGE_SECONDS: Final[int] = 3600

COLLECTION_SUBMISSIONS: Final[str] = "submissions"
COLLECTION_USER_STATES: Final[str] = "user_states"
COLLECTION_BLACKLIST: Final[str] = "blacklist"
COLLECTION_REVIEW_MESSAGES: Final[str] = "review_messages"

# Error alerting
ERROR_ALERT_THRESHOLD: Final[int] = 10
ERROR_WINDOW_SECONDS: Final[int] = 3600

# Denylist applied to submission text
SENSITIVE_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"bit\.ly|tinyurl\.com|short\.link", re.IGNORECASE),
    re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
)

SUBMISSION_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\d+_[a-z0-9]+$")

# Markers embedded in the review text. Context recovery parses these, so the
# renderer and the extractor must both use them.
SUBMISSION_ID_LABEL: Final[str] = "📝 Submission ID:"
USER_ID_LABEL: Final[str] = "🆔 User ID:"
PROMPT_SEPARATOR: Final[str] = "\n\n💬 Please send"

BAN_REASON_DEFAULT: Final[str] = "Banned for rule-violating submissions"
BAN_REJECTION_REASON: Final[str] = "user banned"

ANONYMOUS_NAME: Final[str] = "Anonymous"
UNKNOWN_NAME: Final[str] = "Unknown user"

VERSION: Final[str] = "1.0.0"

# User-facing messages
MESSAGES = {
    "blocked": "❌ You are blocked and cannot send submissions.",
    "staged": "📨 Got it! Please confirm your submission:\n\n{preview}",
    "replaced": "♻️ Your previous unconfirmed submission was replaced by this one.",
    "confirmed": (
        "✅ Submission received!\n\n"
        "📝 Submission ID: {submission_id}\n"
        "📅 Submitted: {submitted_at}\n"
        "⏳ Status: pending review\n\n"
        "Moderators will review it soon."
    ),
    "edit": "✏️ Please send the new content for your submission.",
    "cancelled": "🗑️ Submission cancelled.",
    "session_expired": "⌛ Your submission session expired. Please send your content again.",
    "approved_notice": "✅ Your submission was approved and published!\n\n📝 Submission ID: {submission_id}",
    "comment_notice": "\n💬 Editor's note: {comment}",
    "rejected_notice": "❌ Sorry, your submission was not accepted.\n\n📝 Submission ID: {submission_id}\nReason: {reason}",
    "banned_notice": "🚫 You have been blocked from sending submissions. Contact an administrator if you think this is a mistake.",
    "reply_notice": "💬 Message from the moderators:\n\n{text}\n\nSubmission ID: {submission_id}",
    "editor_note": "📝 Editor's note: {comment}",
    "prompt_comment": "\n\n💬 Please send your comment for this submission:",
    "prompt_reply": "\n\n💬 Please send the message to relay to the submitter:",
    "outcome_approved": "\n\n✅ Approved and published",
    "outcome_comment": "\n💬 Comment: {comment}",
    "outcome_rejected": "\n\n❌ Rejected: {reason}",
    "outcome_banned": "\n\n🚫 User banned",
    "outcome_replied": "\n\n💬 Replied: {text}",
    "ack_approved": "Submission approved.",
    "ack_rejected": "Submission rejected.",
    "ack_banned": "User banned.",
    "ack_send_comment": "Send your comment in this channel.",
    "ack_send_reply": "Send your reply in this channel.",
    "ack_cancelled": "Cancelled.",
    "ack_replied": "Reply sent.",
    "notify_failed": "⚠️ The submitter could not be notified.",
    "text_required": "❌ Please send a text message.",
    "reply_failed": "❌ Could not deliver the reply: {error}",
    "unknown_action": "Unknown action.",
}
MESSAGES.update(
    {
        "review_forward_failed": "⚠️ Your submission was saved but could not be delivered to the moderators yet.",
        "publish_unconfigured": "❌ The publish channel is not configured.",
        "in_progress": "⏳ This submission is already being processed.",
        "not_a_review": "❌ Reply to a submission's review message to use this command.",
        "finish_flow_first": "💬 You are writing a comment or reply in the review channel. Finish or cancel it first.",
        "note_failed": "⚠️ Published, but the editor's note could not be posted.",
        "confirm_in_progress": "⏳ Your submission is already being sent.",
        "version": "tipline {version}",
        "welcome": (
            "👋 Send me a message, photo, video or file and I will pass it on to the moderators.\n\n"
            "You can confirm it under your name or anonymously before it is sent. "
            "You will get a message when it is approved or rejected."
        ),
        "moderator_help": (
            "🛠️ Moderator commands (reply to a submission's review message):\n"
            "`!ok [comment]` approve, with an editor's note when given\n"
            "`!no <reason>` reject with a reason\n"
            "`!ban [reason]` block the submitter and reject\n"
            "`!echo <text>` send one message to the submitter\n"
            "`!help` show this list"
        ),
    }
)

# Action tokens. Buttons carry them in their custom_id behind CUSTOM_ID_PREFIX;
# reply-commands in the review channel map onto the same tokens.
CUSTOM_ID_PREFIX: Final[str] = "tipline:"

ACTION_APPROVE_MENU: Final[str] = "approve:submission"
ACTION_APPROVE_DIRECT: Final[str] = "approve:direct"
ACTION_APPROVE_COMMENT: Final[str] = "approve:with_comment"
ACTION_REJECT: Final[str] = "reject:submission"
ACTION_BAN: Final[str] = "ban:user"
ACTION_REPLY: Final[str] = "reply:user"
ACTION_ECHO: Final[str] = "echo:user"
ACTION_CANCEL_OPERATION: Final[str] = "cancel:operation"
ACTION_CANCEL_COMMENT: Final[str] = "cancel:comment"

ACTION_CONFIRM: Final[str] = "confirm:submission"
ACTION_CONFIRM_ANONYMOUS: Final[str] = "confirm:anonymous"
ACTION_EDIT: Final[str] = "edit:submission"
ACTION_CANCEL_SUBMISSION: Final[str] = "cancel:submission"

SUBMITTER_ACTIONS: Final[frozenset[str]] = frozenset(
    {ACTION_CONFIRM, ACTION_CONFIRM_ANONYMOUS, ACTION_EDIT, ACTION_CANCEL_SUBMISSION}
)

REPLY_COMMANDS: Final[dict[str, str]] = {
    "!ok": ACTION_APPROVE_DIRECT,
    "!no": ACTION_REJECT,
    "!ban": ACTION_BAN,
    "!echo": ACTION_ECHO,
}
MODERATOR_HELP_COMMAND: Final[str] = "!help"

# Text commands answered in direct messages.
WELCOME_COMMANDS: Final[frozenset[str]] = frozenset({"/start", "/help"})
VERSION_COMMAND: Final[str] = "/version"

# Review text is capped below the platform's message limit; the original
# message is forwarded alongside it.
REVIEW_PREVIEW_LENGTH: Final[int] = 1500
