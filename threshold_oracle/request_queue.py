# threshold_oracle/request_queue.py
"""
Priority request queue with rate limiting.

Protects the upstream price feed: exactly one request runs at a time, and
consecutive requests start at least request_interval seconds apart. Queued
HIGH requests always go before queued LOW requests; each tier is FIFO. A
request that has already started is never preempted.

Each submission gets its own future, which resolves or raises exactly as the
submitted operation does. A failing request is logged, fails its own future,
and the queue moves on to the next item.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional

from threshold_oracle.models import Priority, QueueItem

log = logging.getLogger("thold.queue")


class RequestQueue:
    def __init__(self, request_interval: float = 0.5, tick_interval: float = 1.0):
        self.request_interval = request_interval
        self.tick_interval = tick_interval
        self._high: Deque[QueueItem] = deque()
        self._low: Deque[QueueItem] = deque()
        self._lock = asyncio.Lock()
        self._busy = False
        self._last_dispatch: Optional[float] = None
        self._worker: Optional[asyncio.Task] = None
        self._ticker: Optional[asyncio.Task] = None

    @property
    def size(self) -> int:
        return len(self._high) + len(self._low)

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def is_running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def submit(
        self,
        operation: Callable[[], Awaitable[Any]],
        priority: Priority = Priority.LOW,
    ) -> "asyncio.Future[Any]":
        """Queue an operation and return a future for its result."""
        priority = Priority(priority)
        loop = asyncio.get_running_loop()
        item = QueueItem(
            operation=operation,
            priority=priority,
            enqueued_at=time.time(),
            future=loop.create_future(),
        )
        if priority is Priority.HIGH:
            self._high.append(item)
        else:
            self._low.append(item)

        log.debug(f"enqueued {priority.value} priority request, queue size: {self.size}")
        self._kick()
        return item.future

    def start(self):
        """Run the periodic tick that keeps the queue draining."""
        if self.is_running:
            log.warning("request queue processor already running")
            return
        log.info("starting request queue processor")
        self._ticker = asyncio.get_running_loop().create_task(self._tick())
        if self.size:
            self._kick()

    def stop(self):
        """Stop the periodic tick. An in-flight request is left to finish."""
        if self._ticker is None:
            return
        self._ticker.cancel()
        self._ticker = None
        log.info("stopped request queue processor")

    async def join(self):
        """Wait until every queued request has been dispatched and finished."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    async def close(self):
        """Stop everything and cancel requests that never started."""
        self.stop()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        for tier in (self._high, self._low):
            while tier:
                tier.popleft().future.cancel()

    # ------------------------------------------------------------------
    def _kick(self):
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain())

    async def _tick(self):
        while True:
            await asyncio.sleep(self.tick_interval)
            if self.size and not self._busy:
                self._kick()

    async def _drain(self):
        while self._high or self._low:
            await self._dispatch_next()

    def _pop(self) -> Optional[QueueItem]:
        for tier in (self._high, self._low):
            while tier:
                item = tier.popleft()
                if not item.future.cancelled():
                    return item
        return None

    async def _throttle(self):
        if self._last_dispatch is None:
            return
        wait = self.request_interval - (time.monotonic() - self._last_dispatch)
        if wait > 0:
            await asyncio.sleep(wait)

    async def _dispatch_next(self):
        async with self._lock:
            self._busy = True
            try:
                await self._throttle()
                # Pick after the wait so late HIGH arrivals still jump ahead.
                item = self._pop()
                if item is None:
                    return
                self._last_dispatch = time.monotonic()
                log.debug(f"dispatching {item.priority.value} priority request, queue size: {self.size}")
                try:
                    result = await item.operation()
                except asyncio.CancelledError:
                    item.future.cancel()
                    raise
                except Exception as e:
                    log.error(f"{item.priority.value} priority request failed: {e}")
                    if not item.future.done():
                        item.future.set_exception(e)
                else:
                    if not item.future.done():
                        item.future.set_result(result)
            finally:
                self._busy = False
