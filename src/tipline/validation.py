from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from .constants import (
    MAX_ATTACHMENT_BYTES,
    MAX_COMMENT_LENGTH,
    MAX_REASON_LENGTH,
    MAX_TEXT_LENGTH,
    SENSITIVE_PATTERNS,
    SUBMISSION_ID_PATTERN,
)
from .errors import ValidationError
from .models import ContentDescriptor, ContentKind

log = logging.getLogger("tipline.validation")

_WHITESPACE_RUN = re.compile(r"\s+")
_ZERO_WIDTH = re.compile(r"[\u200b-\u200d\ufeff]")


def sanitize_input(text: str) -> str:
    """Trim, collapse whitespace runs to one space and drop zero-width characters."""
    cleaned = _ZERO_WIDTH.sub("", text or "")
    return _WHITESPACE_RUN.sub(" ", cleaned).strip()


def contains_sensitive_content(text: str, patterns: Iterable[re.Pattern[str]] = SENSITIVE_PATTERNS) -> bool:
    return any(p.search(text) for p in patterns)


def is_valid_submission_id(submission_id: str) -> bool:
    return bool(SUBMISSION_ID_PATTERN.match(submission_id or ""))


@dataclass
class ValidationIssue:
    field: str
    message: str
    severity: str  # "error" | "warning"


class ValidationResult:
    def __init__(self) -> None:
        self.errors: List[ValidationIssue] = []
        self.warnings: List[ValidationIssue] = []

    def add_error(self, field: str, message: str) -> None:
        self.errors.append(ValidationIssue(field, message, "error"))

    def add_warning(self, field: str, message: str) -> None:
        self.warnings.append(ValidationIssue(field, message, "warning"))

    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def raise_for_errors(self) -> None:
        if self.errors:
            first = self.errors[0]
            raise ValidationError(f"❌ {first.message}", detail=f"{first.field}: {first.message}")


class SubmissionValidator:
    """Input rules for submissions, comments and rejection reasons."""

    def __init__(
        self,
        max_text_length: int = MAX_TEXT_LENGTH,
        max_attachment_bytes: int = MAX_ATTACHMENT_BYTES,
        patterns: Sequence[re.Pattern[str]] = SENSITIVE_PATTERNS,
    ) -> None:
        self.max_text_length = max_text_length
        self.max_attachment_bytes = max_attachment_bytes
        self.patterns = tuple(patterns)

    def check_submission(self, content: ContentDescriptor) -> ValidationResult:
        result = ValidationResult()
        text = content.text or ""

        if content.kind is ContentKind.TEXT and not sanitize_input(text):
            result.add_error("content", "Submission content cannot be empty")
        if len(text) > self.max_text_length:
            result.add_error("content", f"Submission is too long (max {self.max_text_length} characters)")
        if content.file_size > self.max_attachment_bytes:
            mb = self.max_attachment_bytes // (1024 * 1024)
            result.add_error("attachment", f"File is too large (max {mb}MB)")
        if text and contains_sensitive_content(text, self.patterns):
            result.add_error("content", "Submission contains forbidden content")
        if content.kind is ContentKind.OTHER:
            result.add_warning("content", "Unrecognised content type")
        return result

    def validate_submission(self, content: ContentDescriptor) -> None:
        result = self.check_submission(content)
        for issue in result.warnings:
            log.warning("Submission %s: %s (%s)", issue.field, issue.message, content.kind.value)
        result.raise_for_errors()

    def validate_comment(self, comment: str | None) -> str:
        cleaned = (comment or "").strip()
        if not cleaned:
            raise ValidationError("❌ Comment cannot be empty")
        if len(cleaned) > MAX_COMMENT_LENGTH:
            raise ValidationError(f"❌ Comment is too long (max {MAX_COMMENT_LENGTH} characters)")
        return cleaned

    def validate_reason(self, reason: str | None) -> str:
        cleaned = (reason or "").strip()
        if not cleaned:
            raise ValidationError("❌ A rejection reason is required")
        if len(cleaned) > MAX_REASON_LENGTH:
            raise ValidationError(f"❌ Reason is too long (max {MAX_REASON_LENGTH} characters)")
        return cleaned
