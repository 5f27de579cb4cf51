from __future__ import annotations

import asyncio
import json

import aiosqlite
import pytest

from tipline.errors import PersistenceError
from tipline.services.document_store import DocumentStore
from tipline.services.stats import RuntimeStats


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "docs.sqlite3")


@pytest.mark.asyncio
async def test_put_then_get_survives_restart(db_path):
    store = DocumentStore(db_path)
    await store.init()
    await store.put("things", "a", {"n": 1, "tags": ["x", "y"]})
    assert await store.get("things", "a") == {"n": 1, "tags": ["x", "y"]}
    await store.close()

    reopened = DocumentStore(db_path)
    assert await reopened.get("things", "a") == {"n": 1, "tags": ["x", "y"]}
    await reopened.close()


@pytest.mark.asyncio
async def test_missing_record_and_collection(db_path):
    store = DocumentStore(db_path)
    assert await store.get("nothing", "a") is None
    assert await store.list("nothing") == []
    assert await store.count("nothing") == 0
    assert not await store.exists("nothing", "a")
    await store.close()


@pytest.mark.asyncio
async def test_put_overwrites_existing_key(db_path):
    store = DocumentStore(db_path)
    await store.put("things", "a", {"n": 1})
    await store.put("things", "a", {"n": 2})
    assert await store.get("things", "a") == {"n": 2}
    assert await store.count("things") == 1
    await store.close()


@pytest.mark.asyncio
async def test_delete_reports_whether_something_was_removed(db_path):
    store = DocumentStore(db_path)
    await store.put("things", "a", {"n": 1})
    assert await store.exists("things", "a")
    assert await store.delete("things", "a") is True
    assert await store.delete("things", "a") is False
    assert not await store.exists("things", "a")
    await store.close()


@pytest.mark.asyncio
async def test_collections_are_independent(db_path):
    store = DocumentStore(db_path)
    await store.put("one", "k", {"v": "one"})
    await store.put("two", "k", {"v": "two"})
    assert await store.get("one", "k") == {"v": "one"}
    assert await store.get("two", "k") == {"v": "two"}
    await store.delete("one", "k")
    assert await store.get("two", "k") == {"v": "two"}
    await store.close()


@pytest.mark.asyncio
async def test_returned_payloads_are_copies(db_path):
    store = DocumentStore(db_path)
    await store.put("things", "a", {"items": [1]})
    got = await store.get("things", "a")
    got["items"].append(2)
    listed = await store.list("things")
    listed[0]["items"].append(3)
    assert await store.get("things", "a") == {"items": [1]}
    await store.close()


@pytest.mark.asyncio
async def test_concurrent_writes_apply_in_submission_order(db_path):
    stats = RuntimeStats()
    store = DocumentStore(db_path, stats=stats)
    await store.init()
    await asyncio.gather(*(store.put("things", "a", {"n": i}) for i in range(10)))
    assert await store.get("things", "a") == {"n": 9}
    assert stats.writes_executed == 10
    assert stats.writes_failed == 0

    store.invalidate()
    assert await store.get("things", "a") == {"n": 9}
    await store.close()


@pytest.mark.asyncio
async def test_external_edits_show_up_after_cache_expiry(db_path, clock):
    store = DocumentStore(db_path, cache_ttl_seconds=60, cache_clock=clock)
    await store.put("things", "a", {"n": 1})
    assert await store.get("things", "a") == {"n": 1}

    async with aiosqlite.connect(db_path) as db:
        await db.execute(
            "UPDATE documents SET payload = ? WHERE collection = ? AND id = ?",
            (json.dumps({"n": 99}), "things", "a"),
        )
        await db.commit()

    clock.advance(30)
    assert await store.get("things", "a") == {"n": 1}
    clock.advance(31)
    assert await store.get("things", "a") == {"n": 99}
    await store.close()


@pytest.mark.asyncio
async def test_zero_ttl_always_reads_from_disk(db_path):
    store = DocumentStore(db_path, cache_ttl_seconds=0)
    await store.put("things", "a", {"n": 1})

    async with aiosqlite.connect(db_path) as db:
        await db.execute(
            "INSERT INTO documents (collection, id, payload, stored_at) VALUES (?, ?, ?, ?)",
            ("things", "b", json.dumps({"n": 2}), 0.0),
        )
        await db.commit()

    assert await store.count("things") == 2
    await store.close()


@pytest.mark.asyncio
async def test_snapshot_lists_every_collection_with_storage_time(db_path):
    store = DocumentStore(db_path, clock=lambda: 1234.5)
    await store.put("one", "a", {"v": 1})
    await store.put("two", "b", {"v": 2})

    snap = await store.snapshot()
    assert snap == {
        "one": [{"id": "a", "payload": {"v": 1}, "storedAt": 1234.5}],
        "two": [{"id": "b", "payload": {"v": 2}, "storedAt": 1234.5}],
    }
    record = await store.get_record("one", "a")
    assert record is not None and record.stored_at == 1234.5
    await store.close()


@pytest.mark.asyncio
async def test_unserializable_payload_fails_in_caller(db_path):
    store = DocumentStore(db_path)
    with pytest.raises(PersistenceError):
        await store.put("things", "a", {"bad": object()})
    assert await store.count("things") == 0
    await store.close()
