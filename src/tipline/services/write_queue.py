from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..errors import PersistenceError
from .stats import RuntimeStats

log = logging.getLogger("tipline.queue")

WriteFn = Callable[[], Awaitable[Any]]


class WriteQueue:
    """Single-runner FIFO queue for store mutations.

    Every write submitted to one queue runs to completion before the next one
    starts, in submission order. Callers await the result of their own write;
    a failed write is reported to its caller only.
    """

    def __init__(self, stats: Optional[RuntimeStats] = None, max_queue_size: int = 10_000) -> None:
        self._stats = stats or RuntimeStats()
        self._max_queue_size = max_queue_size
        self._q: Optional[asyncio.Queue[Optional[tuple[WriteFn, asyncio.Future[Any]]]]] = None
        self._runner: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def start(self) -> None:
        if self.running:
            return
        self._q = asyncio.Queue(maxsize=self._max_queue_size)
        self._runner = asyncio.create_task(self._run(), name="tipline-write-queue")
        log.debug("WriteQueue started (max_size=%s)", self._max_queue_size)

    async def stop(self) -> None:
        if not self.running or self._q is None:
            return
        await self._q.put(None)
        await self._runner  # type: ignore[misc]
        self._runner = None
        log.debug("WriteQueue stopped")

    def size(self) -> int:
        return self._q.qsize() if self._q is not None else 0

    async def submit(self, fn: WriteFn) -> Any:
        self.start()
        assert self._q is not None
        fut: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        try:
            self._q.put_nowait((fn, fut))
        except asyncio.QueueFull as e:
            raise PersistenceError(detail="WriteQueue is full; refusing to enqueue more writes") from e
        self._stats.writes_enqueued += 1
        return await fut

    async def _run(self) -> None:
        assert self._q is not None
        while True:
            item = await self._q.get()
            try:
                if item is None:
                    return
                fn, fut = item
                try:
                    result = await fn()
                except Exception as e:
                    self._stats.writes_failed += 1
                    log.exception("Queued write failed")
                    if not fut.done():
                        fut.set_exception(e)
                else:
                    self._stats.writes_executed += 1
                    if not fut.done():
                        fut.set_result(result)
            finally:
                self._q.task_done()
