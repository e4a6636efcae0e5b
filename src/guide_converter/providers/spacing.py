"""Process-wide request spacing for rate-limited providers."""

from __future__ import annotations

import asyncio
import threading
import time
import weakref
from collections.abc import Awaitable, Callable
from typing import ClassVar, TypeVar

T = TypeVar("T")


class RequestSpacer:
    """Serializes requests through one FIFO queue with a minimum gap between starts.

    ``run()`` waits its turn on a fair lock, sleeps until the next free slot,
    then awaits the request before the next caller may start. Slots are
    recorded under a thread lock when a request starts, so the gap also holds
    for callers on other event loops.

    ``RequestSpacer.shared()`` returns the process singleton. It is created on
    the first call; the ``min_delay_s`` given to later calls is ignored.
    Tests build their own instance with a fake clock and sleep, or call
    ``reset_shared()``.
    """

    _shared: ClassVar["RequestSpacer | None"] = None
    _shared_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self,
        min_delay_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._min_delay_s = max(0.0, min_delay_s)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_dispatch: float | None = None
        self._queues: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock] = weakref.WeakKeyDictionary()

    @property
    def min_delay_s(self) -> float:
        return self._min_delay_s

    def reserve(self) -> float:
        """Claim the next dispatch slot and return how long to wait for it."""

        with self._lock:
            now = self._clock()
            slot = now
            if self._last_dispatch is not None:
                slot = max(now, self._last_dispatch + self._min_delay_s)
            self._last_dispatch = slot
            return slot - now

    def _queue(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        with self._lock:
            queue = self._queues.get(loop)
            if queue is None:
                queue = self._queues[loop] = asyncio.Lock()
            return queue

    async def run(self, func: Callable[[], Awaitable[T]]) -> T:
        async with self._queue():
            wait = self.reserve()
            if wait > 0:
                await self._sleep(wait)
            return await func()

    @classmethod
    def shared(cls, min_delay_s: float) -> "RequestSpacer":
        with cls._shared_lock:
            if cls._shared is None:
                cls._shared = cls(min_delay_s)
            return cls._shared

    @classmethod
    def reset_shared(cls) -> None:
        with cls._shared_lock:
            cls._shared = None


__all__ = ["RequestSpacer"]
