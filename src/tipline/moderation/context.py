"""
Recovering which submission a review message is about.

The review index (written when the review message is posted) is the primary
source. Text extraction from the rendered review is the fallback for messages
posted before the index existed or whose index entry was lost.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Literal, Optional

from ..constants import SUBMISSION_ID_LABEL, USER_ID_LABEL
from ..errors import PersistenceError
from ..models import MessageRef
from ..services.review_index_store import ReviewIndex
from ..validation import is_valid_submission_id

log = logging.getLogger("tipline.moderation.context")

_SUBMISSION_ID_RE = re.compile(re.escape(SUBMISSION_ID_LABEL) + r"\s*`?([^\s`]+)`?")
_USER_ID_RE = re.compile(re.escape(USER_ID_LABEL) + r"\s*`?(\d+)`?")


def extract_submission_id(text: Optional[str]) -> Optional[str]:
    """Submission id after the id label, or None. Never raises."""
    if not text:
        return None
    match = _SUBMISSION_ID_RE.search(text)
    if not match:
        return None
    candidate = match.group(1)
    return candidate if is_valid_submission_id(candidate) else None


def extract_user_id(text: Optional[str]) -> Optional[int]:
    if not text:
        return None
    match = _USER_ID_RE.search(text)
    if not match:
        return None
    return int(match.group(1))


@dataclass(frozen=True)
class ReviewContext:
    submission_id: str
    submitter_id: Optional[int]
    source: Literal["index", "text"]


class ReviewContextResolver:
    def __init__(self, review_index: ReviewIndex) -> None:
        self.review_index = review_index

    async def resolve(self, surface_ref: MessageRef, surface_text: str = "") -> Optional[ReviewContext]:
        try:
            link = await self.review_index.lookup(surface_ref)
        except PersistenceError:
            log.warning("Review index lookup failed for %s; using text", surface_ref.key, exc_info=True)
            link = None

        text_id = extract_submission_id(surface_text)

        if link is not None:
            if text_id and text_id != link.submission_id:
                log.warning(
                    "Review %s: index says %s but text says %s; using index",
                    surface_ref.key,
                    link.submission_id,
                    text_id,
                )
            return ReviewContext(link.submission_id, link.submitter_id, "index")

        if text_id:
            log.warning("No review index entry for %s; recovered %s from text", surface_ref.key, text_id)
            return ReviewContext(text_id, extract_user_id(surface_text), "text")

        return None
