from __future__ import annotations

import secrets
import time
from typing import Any, Optional

from ..constants import COLLECTION_SUBMISSIONS
from ..errors import StateError
from ..models import Submission, SubmissionStatus
from .base import BaseService


def generate_submission_id(now: Optional[float] = None) -> str:
    """``<epoch-ms>_<16 hex>``; 64 random bits, unique in practice but not guaranteed."""
    ms = int((time.time() if now is None else now) * 1000)
    return f"{ms}_{secrets.token_hex(8)}"


class SubmissionRegistry(BaseService[Submission]):
    """Durable submissions. Stores status changes but does not guard them."""

    collection = COLLECTION_SUBMISSIONS

    def _from_payload(self, payload: dict[str, Any]) -> Submission:
        return Submission.from_dict(payload)

    async def create(self, submission: Submission) -> Submission:
        if await self._store.exists(self.collection, submission.id):
            raise StateError("Duplicate submission id, please try again.", detail=f"id {submission.id} exists")
        submission.status = SubmissionStatus.PENDING
        submission.moderator_comment = None
        submission.rejection_reason = None
        await self._store.put(self.collection, submission.id, submission.to_dict())
        self._logger.info("Created submission %s for user %s", submission.id, submission.submitter_id)
        return submission

    async def get(self, submission_id: str) -> Optional[Submission]:
        return await self._load(submission_id)

    async def update_status(
        self,
        submission_id: str,
        status: SubmissionStatus,
        comment: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> bool:
        submission = await self._load(submission_id)
        if submission is None:
            return False
        submission.status = status
        if comment:
            submission.moderator_comment = comment
        if reason:
            submission.rejection_reason = reason
        await self._store.put(self.collection, submission_id, submission.to_dict())
        self._logger.info("Submission %s -> %s", submission_id, status.value)
        return True

    async def list_pending(self) -> list[Submission]:
        return [s for s in await self._load_all() if s.is_pending]

    async def list_by_user(self, user_id: int) -> list[Submission]:
        return [s for s in await self._load_all() if s.submitter_id == int(user_id)]

    async def delete(self, submission_id: str) -> bool:
        return await self._store.delete(self.collection, submission_id)
