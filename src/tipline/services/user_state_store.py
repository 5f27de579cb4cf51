from __future__ import annotations

import time
from typing import Any, Callable, Optional

from ..constants import COLLECTION_USER_STATES
from ..errors import PersistenceError
from ..models import CommentFlowPayload, PendingSubmissionPayload, StatePayload, UserState, UserStateKind
from .base import BaseService
from .document_store import DocumentStore

_PAYLOAD_TYPES: dict[UserStateKind, type] = {
    UserStateKind.PENDING_SUBMISSION: PendingSubmissionPayload,
    UserStateKind.ADDING_COMMENT: CommentFlowPayload,
}


class UserStateManager(BaseService[UserState]):
    """One workflow state per user id.

    Absent users have no record. ``set_state`` overwrites whatever is there;
    checking that a transition makes sense is the caller's job.
    """

    collection = COLLECTION_USER_STATES

    def __init__(self, store: DocumentStore, clock: Callable[[], float] = time.time) -> None:
        super().__init__(store)
        self._clock = clock

    def _from_payload(self, payload: dict[str, Any]) -> UserState:
        try:
            state = UserStateKind(payload["state"])
            data = payload["payload"]
            if data.get("kind") != state.value:
                raise ValueError(f"payload kind {data.get('kind')!r} does not match state {state.value!r}")
            parsed = _PAYLOAD_TYPES[state].from_dict(data)
            return UserState(
                user_id=int(payload["user_id"]),
                state=state,
                payload=parsed,
                updated_at=float(payload["updated_at"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(detail=f"malformed user state: {e}") from e

    async def set_state(self, user_id: int, state: UserStateKind, payload: StatePayload) -> UserState:
        expected = _PAYLOAD_TYPES[state]
        if not isinstance(payload, expected):
            raise TypeError(f"{state.value} requires {expected.__name__}, got {type(payload).__name__}")
        record = UserState(user_id=int(user_id), state=state, payload=payload, updated_at=self._clock())
        await self._store.put(
            self.collection,
            str(record.user_id),
            {
                "user_id": record.user_id,
                "state": state.value,
                "payload": payload.to_dict(),
                "updated_at": record.updated_at,
            },
        )
        self._logger.debug("Saved state for user %s: %s", user_id, state.value)
        return record

    async def get_state(self, user_id: int) -> Optional[UserState]:
        return await self._load(str(int(user_id)))

    async def clear_state(self, user_id: int) -> bool:
        return await self._store.delete(self.collection, str(int(user_id)))

    async def sweep_expired(self, max_age_seconds: float) -> int:
        """Delete states older than ``max_age_seconds``. Returns how many were removed."""
        cutoff = self._clock() - max_age_seconds
        removed = 0
        for raw in await self._store.list(self.collection):
            try:
                updated_at = float(raw["updated_at"])
                user_id = int(raw["user_id"])
            except (KeyError, TypeError, ValueError):
                self._logger.warning("Skipping malformed user state during sweep: %r", raw)
                continue
            if updated_at < cutoff and await self.clear_state(user_id):
                removed += 1
        if removed:
            self._logger.info("Swept %d expired user states", removed)
        return removed
