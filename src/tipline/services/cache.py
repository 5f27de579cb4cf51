from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..models import DocumentRecord


@dataclass
class _Snapshot:
    records: dict[str, DocumentRecord]
    expires_at: float


@dataclass
class SnapshotCache:
    """Per-collection snapshot of the backing file, valid for a fixed TTL.

    A snapshot is the full set of records of one collection as last read from
    disk, patched in place by writes made through this process.
    """

    ttl_seconds: int = 60
    clock: Callable[[], float] = field(default=time.monotonic)
    _snapshots: dict[str, _Snapshot] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.ttl_seconds = max(0, int(self.ttl_seconds))

    def get(self, collection: str) -> Optional[dict[str, DocumentRecord]]:
        snap = self._snapshots.get(collection)
        if snap is None:
            return None
        if snap.expires_at <= self.clock():
            self._snapshots.pop(collection, None)
            return None
        return snap.records

    def load(self, collection: str, records: dict[str, DocumentRecord]) -> None:
        self._snapshots[collection] = _Snapshot(records=records, expires_at=self.clock() + self.ttl_seconds)

    def put_record(self, collection: str, record: DocumentRecord) -> None:
        # Only patch live snapshots; an expired one is reloaded on next read.
        records = self.get(collection)
        if records is not None:
            records[record.id] = record

    def drop_record(self, collection: str, record_id: str) -> None:
        records = self.get(collection)
        if records is not None:
            records.pop(record_id, None)

    def invalidate(self, collection: Optional[str] = None) -> None:
        if collection is None:
            self._snapshots.clear()
        else:
            self._snapshots.pop(collection, None)
