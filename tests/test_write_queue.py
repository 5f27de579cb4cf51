from __future__ import annotations

import asyncio

import pytest

from tipline.errors import PersistenceError
from tipline.services.stats import RuntimeStats
from tipline.services.write_queue import WriteQueue


@pytest.mark.asyncio
async def test_writes_run_one_at_a_time_in_order():
    queue = WriteQueue()
    log: list[tuple[str, int]] = []

    def make(i: int):
        async def _write() -> int:
            log.append(("start", i))
            await asyncio.sleep(0)
            log.append(("end", i))
            return i

        return _write

    results = await asyncio.gather(*(queue.submit(make(i)) for i in range(5)))

    assert results == [0, 1, 2, 3, 4]
    expected = []
    for i in range(5):
        expected += [("start", i), ("end", i)]
    assert log == expected
    await queue.stop()


@pytest.mark.asyncio
async def test_failed_write_reaches_its_caller_only():
    stats = RuntimeStats()
    queue = WriteQueue(stats)

    async def boom() -> None:
        raise ValueError("disk on fire")

    async def fine() -> str:
        return "ok"

    first, second = await asyncio.gather(queue.submit(boom), queue.submit(fine), return_exceptions=True)

    assert isinstance(first, ValueError)
    assert second == "ok"
    assert stats.writes_failed == 1
    assert stats.writes_executed == 1
    assert stats.writes_enqueued == 2
    await queue.stop()


@pytest.mark.asyncio
async def test_stop_drains_and_restarts_on_next_submit():
    queue = WriteQueue()

    async def one() -> int:
        return 1

    assert await queue.submit(one) == 1
    assert queue.running
    await queue.stop()
    assert not queue.running

    assert await queue.submit(one) == 1
    await queue.stop()


@pytest.mark.asyncio
async def test_full_queue_refuses_new_writes():
    queue = WriteQueue(max_queue_size=1)
    gate = asyncio.Event()

    async def blocked() -> None:
        await gate.wait()

    first = asyncio.create_task(queue.submit(blocked))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    # The runner holds ``blocked``; this one fills the single slot.
    second = asyncio.create_task(queue.submit(blocked))
    await asyncio.sleep(0)

    with pytest.raises(PersistenceError):
        await queue.submit(blocked)

    gate.set()
    await asyncio.gather(first, second)
    await queue.stop()
