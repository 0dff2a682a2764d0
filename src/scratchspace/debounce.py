"""Per-key debounce timers on the running asyncio loop.

    timers = TimerRegistry(delay=1.0)
    timers.schedule(doc_id, flush)   # cancels any pending timer for doc_id
    timers.cancel_all()              # dispose: nothing pending is flushed

The callback is a coroutine function; it runs as a task once the delay
elapses and the registry keeps a reference to the task until it finishes.
Failures are logged, never raised into the loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger("scratchspace.debounce")


class TimerRegistry:
    def __init__(self, delay: float) -> None:
        self.delay = delay
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def __contains__(self, key: str) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def keys(self) -> list[str]:
        return list(self._handles)

    def schedule(self, key: str, callback: Callable[[], Awaitable[None]]) -> None:
        """(Re)start the timer for key. The last scheduled callback wins."""
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(self.delay, self._fire, key, callback)

    def cancel(self, key: str) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def wait_idle(self) -> None:
        """Wait until every fired callback has finished. Pending timers are left alone."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self, key: str, callback: Callable[[], Awaitable[None]]) -> None:
        self._handles.pop(key, None)
        task = asyncio.ensure_future(self._run(key, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, key: str, callback: Callable[[], Awaitable[None]]) -> None:
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("debounced flush failed: %s", key)
