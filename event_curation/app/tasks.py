# event_curation/app/tasks.py

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable

logger = logging.getLogger(__name__)


class SideEffects:
    """
    Non-critical work started after the primary state change is committed.

    Failures are logged and swallowed. `drain()` waits for everything that was
    spawned so nothing outlives the invocation that started it.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable, *, name: str) -> asyncio.Task:
        task = asyncio.create_task(self._guard(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(coro: Awaitable, name: str) -> None:
        try:
            await coro
        except Exception:
            logger.exception("Background task %s failed (ignored)", name)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
