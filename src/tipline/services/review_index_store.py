from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional

from ..constants import COLLECTION_REVIEW_MESSAGES
from ..models import MessageRef
from .base import BaseService


@dataclass(frozen=True)
class ReviewLink:
    surface_key: str
    submission_id: str
    submitter_id: int
    created_at: float


class ReviewIndex(BaseService[ReviewLink]):
    """Maps a review message to the submission it displays."""

    collection = COLLECTION_REVIEW_MESSAGES

    def _from_payload(self, payload: dict[str, Any]) -> ReviewLink:
        return ReviewLink(
            surface_key=str(payload["surface_key"]),
            submission_id=str(payload["submission_id"]),
            submitter_id=int(payload["submitter_id"]),
            created_at=float(payload["created_at"]),
        )

    async def link(self, surface: MessageRef, submission_id: str, submitter_id: int) -> ReviewLink:
        entry = ReviewLink(surface.key, submission_id, int(submitter_id), time.time())
        await self._store.put(
            self.collection,
            surface.key,
            {
                "surface_key": entry.surface_key,
                "submission_id": entry.submission_id,
                "submitter_id": entry.submitter_id,
                "created_at": entry.created_at,
            },
        )
        return entry

    async def lookup(self, surface: MessageRef) -> Optional[ReviewLink]:
        return await self._load(surface.key)

    async def unlink(self, surface: MessageRef) -> bool:
        return await self._store.delete(self.collection, surface.key)
