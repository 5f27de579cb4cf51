from __future__ import annotations

import copy
import json
import logging
import time
from typing import Any, Callable, Optional

import aiosqlite

from ..constants import CACHE_TTL_SECONDS
from ..errors import PersistenceError
from ..models import DocumentRecord
from .cache import SnapshotCache
from .stats import RuntimeStats
from .write_queue import WriteQueue

log = logging.getLogger("tipline.store")


class DocumentStore:
    """Keyed collections of JSON documents kept in one SQLite file.

    Every collection lives in the same ``documents`` table, partitioned by the
    ``collection`` column. Mutations are funnelled through one FIFO
    ``WriteQueue``; reads are served from a per-collection snapshot until its
    TTL runs out and then re-read from disk, so edits made to the file by
    other tools show up without a restart.

    There is no atomicity across keys or collections: two related ``put``
    calls are two independent queued writes.
    """

    def __init__(
        self,
        sqlite_path: str,
        cache_ttl_seconds: int = CACHE_TTL_SECONDS,
        *,
        stats: Optional[RuntimeStats] = None,
        clock: Callable[[], float] = time.time,
        cache_clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._path = sqlite_path
        self._clock = clock
        self._cache = SnapshotCache(ttl_seconds=cache_ttl_seconds, clock=cache_clock)
        self._queue = WriteQueue(stats)
        self._initialized = False
        # Bumped after every committed write; a reload that overlapped a
        # write is returned but not cached.
        self._generation: dict[str, int] = {}

    @property
    def path(self) -> str:
        return self._path

    async def init(self) -> None:
        try:
            async with aiosqlite.connect(self._path) as db:
                await db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS documents (
                      collection TEXT NOT NULL,
                      id TEXT NOT NULL,
                      payload TEXT NOT NULL,
                      stored_at REAL NOT NULL,
                      PRIMARY KEY (collection, id)
                    )
                    """
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(detail=f"cannot initialize {self._path}: {e}") from e
        self._initialized = True

    async def close(self) -> None:
        await self._queue.stop()

    def invalidate(self, collection: Optional[str] = None) -> None:
        self._cache.invalidate(collection)

    # -- writes ----------------------------------------------------------

    async def put(self, collection: str, record_id: str, payload: dict[str, Any]) -> None:
        # Serialize up front so a bad payload fails in the caller, not the queue.
        try:
            raw = json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise PersistenceError(detail=f"put {collection}/{record_id}: payload is not JSON: {e}") from e
        record = DocumentRecord(id=str(record_id), payload=json.loads(raw), stored_at=self._clock())

        async def _write() -> None:
            await self._ensure_init()
            try:
                async with aiosqlite.connect(self._path) as db:
                    await db.execute(
                        """
                        INSERT INTO documents (collection, id, payload, stored_at) VALUES (?, ?, ?, ?)
                        ON CONFLICT(collection, id) DO UPDATE SET payload=excluded.payload, stored_at=excluded.stored_at
                        """,
                        (collection, record.id, raw, record.stored_at),
                    )
                    await db.commit()
            except aiosqlite.Error as e:
                raise PersistenceError(detail=f"put {collection}/{record.id} failed: {e}") from e
            self._bump(collection)
            self._cache.put_record(collection, record)

        await self._queue.submit(_write)

    async def delete(self, collection: str, record_id: str) -> bool:
        record_id = str(record_id)

        async def _write() -> bool:
            await self._ensure_init()
            try:
                async with aiosqlite.connect(self._path) as db:
                    cur = await db.execute(
                        "DELETE FROM documents WHERE collection = ? AND id = ?",
                        (collection, record_id),
                    )
                    await db.commit()
                    removed = cur.rowcount > 0
            except aiosqlite.Error as e:
                raise PersistenceError(detail=f"delete {collection}/{record_id} failed: {e}") from e
            self._bump(collection)
            self._cache.drop_record(collection, record_id)
            return removed

        return bool(await self._queue.submit(_write))

    # -- reads -----------------------------------------------------------

    async def get(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        records = await self._records(collection)
        record = records.get(str(record_id))
        return copy.deepcopy(record.payload) if record else None

    async def get_record(self, collection: str, record_id: str) -> Optional[DocumentRecord]:
        records = await self._records(collection)
        record = records.get(str(record_id))
        if record is None:
            return None
        return DocumentRecord(record.id, copy.deepcopy(record.payload), record.stored_at)

    async def list(self, collection: str) -> list[dict[str, Any]]:
        records = await self._records(collection)
        return [copy.deepcopy(r.payload) for r in records.values()]

    async def exists(self, collection: str, record_id: str) -> bool:
        records = await self._records(collection)
        return str(record_id) in records

    async def count(self, collection: str) -> int:
        records = await self._records(collection)
        return len(records)

    async def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        """Every collection as ``{name: [{id, payload, storedAt}, ...]}`` read straight from disk."""
        await self._ensure_init()
        out: dict[str, list[dict[str, Any]]] = {}
        try:
            async with aiosqlite.connect(self._path) as db:
                async with db.execute(
                    "SELECT collection, id, payload, stored_at FROM documents ORDER BY collection, stored_at"
                ) as cur:
                    rows = await cur.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(detail=f"snapshot failed: {e}") from e
        for collection, record_id, raw, stored_at in rows:
            record = DocumentRecord(str(record_id), self._decode(collection, record_id, raw), float(stored_at))
            out.setdefault(collection, []).append(record.to_dict())
        return out

    async def _records(self, collection: str) -> dict[str, DocumentRecord]:
        cached = self._cache.get(collection)
        if cached is not None:
            return cached
        await self._ensure_init()
        generation = self._generation.get(collection, 0)
        try:
            async with aiosqlite.connect(self._path) as db:
                async with db.execute(
                    "SELECT id, payload, stored_at FROM documents WHERE collection = ?",
                    (collection,),
                ) as cur:
                    rows = await cur.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(detail=f"read {collection} failed: {e}") from e
        records = {
            str(record_id): DocumentRecord(str(record_id), self._decode(collection, record_id, raw), float(stored_at))
            for record_id, raw, stored_at in rows
        }
        if self._generation.get(collection, 0) == generation:
            self._cache.load(collection, records)
        return records

    def _bump(self, collection: str) -> None:
        self._generation[collection] = self._generation.get(collection, 0) + 1

    async def _ensure_init(self) -> None:
        if not self._initialized:
            await self.init()

    @staticmethod
    def _decode(collection: str, record_id: str, raw: str) -> dict[str, Any]:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(detail=f"corrupt document {collection}/{record_id}: {e}") from e
