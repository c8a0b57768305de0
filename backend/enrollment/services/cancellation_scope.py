"""Cancellation Scope — owns every outstanding task of one workflow instance.

Invariants:
    - Every task spawned through the scope is tracked until it finishes
    - close() cancels all tracked tasks and waits for them; it runs its body once
    - spawn() after close() raises RuntimeError (no work can outlive the scope)
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class CancellationScope:

    def __init__(self, name: str):
        self.name = name
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        if self._closed:
            coro.close()
            raise RuntimeError(f"Scope '{self.name}' is closed")
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Scope '%s' closed (%d task(s) cancelled)", self.name, len(tasks))
