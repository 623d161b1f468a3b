"""
Serial task queue — runs coroutine factories one at a time, in enqueue order.

enqueue() hands back a future for the task's result. clear() resolves every
queued task that has not started with None; the running task is left alone.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger("dinodivision.serial_queue")

TaskFactory = Callable[[], Awaitable[Any]]


class SerialTaskQueue:
    def __init__(self, name: str = "queue"):
        self.name = name
        self._pending: deque[tuple[TaskFactory, asyncio.Future]] = deque()
        self._worker: Optional[asyncio.Task] = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, factory: TaskFactory) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending.append((factory, future))
        if not self.running:
            self._worker = loop.create_task(self._drain(), name=f"serial-queue:{self.name}")
        return future

    def clear(self) -> int:
        """Resolve every not-yet-started task with None. Returns how many."""
        cleared = 0
        while self._pending:
            _, future = self._pending.popleft()
            if not future.done():
                future.set_result(None)
            cleared += 1
        if cleared:
            logger.info("[serial_queue.clear] %s: dropped %d queued task(s)", self.name, cleared)
        return cleared

    async def join(self) -> None:
        while self.running:
            await asyncio.shield(self._worker)

    async def _drain(self) -> None:
        while self._pending:
            factory, future = self._pending.popleft()
            if future.done():
                continue
            try:
                result = await factory()
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
