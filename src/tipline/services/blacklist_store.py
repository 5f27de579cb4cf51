from __future__ import annotations

import time
from typing import Any, Optional

from ..constants import COLLECTION_BLACKLIST
from ..models import BlacklistEntry
from .base import BaseService


class BlacklistRegistry(BaseService[BlacklistEntry]):
    """Blocked users. A user is blocked iff their id has an entry."""

    collection = COLLECTION_BLACKLIST

    def _from_payload(self, payload: dict[str, Any]) -> BlacklistEntry:
        return BlacklistEntry.from_dict(payload)

    async def block(self, user_id: int, reason: Optional[str] = None) -> BlacklistEntry:
        entry = BlacklistEntry(user_id=int(user_id), blocked_at=time.time(), reason=reason or None)
        await self._store.put(self.collection, str(entry.user_id), entry.to_dict())
        self._logger.info("Blocked user %s (%s)", entry.user_id, reason or "no reason")
        return entry

    async def unblock(self, user_id: int) -> bool:
        removed = await self._store.delete(self.collection, str(int(user_id)))
        if removed:
            self._logger.info("Unblocked user %s", user_id)
        return removed

    async def is_blocked(self, user_id: int) -> bool:
        return await self._store.exists(self.collection, str(int(user_id)))

    async def get(self, user_id: int) -> Optional[BlacklistEntry]:
        return await self._load(str(int(user_id)))

    async def list(self) -> list[BlacklistEntry]:
        return await self._load_all()
