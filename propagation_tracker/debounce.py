"""Keyed debounce timers on the running asyncio loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

_LOGGER = logging.getLogger(__name__)

Work = Callable[[], Awaitable[object]]


class DebounceScheduler:
    """Run at most one piece of work per key once its input has gone quiet.

    Each call to :meth:`schedule` replaces the pending timer for the key, so
    only the last registered work runs. Timers are cancelled; work that has
    already started is left to finish and is tracked so teardown can cancel it.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self.logger = logger or _LOGGER

    def schedule(self, key: str, delay: float, work: Work) -> None:
        """Run ``work`` after ``delay`` seconds without another call for ``key``."""

        loop = asyncio.get_running_loop()
        self.cancel(key)
        self._timers[key] = loop.call_later(max(0.0, float(delay)), self._fire, key, work)

    def cancel(self, key: str) -> bool:
        """Cancel the pending timer for ``key``; return whether one existed."""

        handle = self._timers.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def pending(self, key: str) -> bool:
        return key in self._timers

    def cancel_all(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    @property
    def running(self) -> int:
        """Number of fired work items that have not completed yet."""

        return len(self._tasks)

    async def async_wait_idle(self) -> None:
        """Wait for every started work item to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def async_shutdown(self) -> None:
        """Cancel timers and started work, then wait for the cancellations to land."""

        self.cancel_all()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def _fire(self, key: str, work: Work) -> None:
        self._timers.pop(key, None)
        task = asyncio.get_running_loop().create_task(self._run(key, work), name=f"debounce:{key}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, key: str, work: Work) -> None:
        try:
            await work()
        except asyncio.CancelledError:
            raise
        except Exception:
            self.logger.exception("Debounced work for %s failed", key)
