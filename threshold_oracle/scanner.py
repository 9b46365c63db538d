# threshold_oracle/scanner.py
"""
Gap scanner.

Walks the stored price history window by window, newest window first, looks
for stretches with no samples, and backfills them from the upstream feed
through the request queue at LOW priority, so live price polling always
goes first.

Each missing stretch is split into markers on a fixed grid of gap_size seconds.
A marker whose fetch keeps failing, whatever the error, is retried max_retries
times with a linearly growing delay, then recorded as failed and skipped until
the process restarts. Storage failures still abort the scan.

Only one scan runs at a time; calling scan() while a scan is running does
nothing. stop() asks a running scan to exit at the next window or batch
boundary.
"""

import asyncio
import logging
import math
from typing import FrozenSet, List, Optional, Set

from threshold_oracle.feeds.base import PriceFetcher
from threshold_oracle.models import Priority
from threshold_oracle.request_queue import RequestQueue
from threshold_oracle.store import PriceStore
from threshold_oracle.util import align, format_date, now

log = logging.getLogger("thold.scanner")

MAX_RETRIES = 3
RETRY_DELAY = 1.0
FETCH_DELAY = 0.1


class PriceScanner:
    def __init__(
        self,
        store: PriceStore,
        fetcher: PriceFetcher,
        queue: RequestQueue,
        window_size: int,
        gap_size: Optional[int] = None,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        fetch_delay: float = FETCH_DELAY,
        batch_size: int = 10,
        max_queue_depth: int = 50,
        backpressure_delay: float = 1.0,
    ):
        self._store = store
        self._fetcher = fetcher
        self._queue = queue
        self.window_size = window_size
        self.gap_size = gap_size or window_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.fetch_delay = fetch_delay
        self.batch_size = batch_size
        self.max_queue_depth = max_queue_depth
        self.backpressure_delay = backpressure_delay

        self._failed: Set[int] = set()
        self._scanning = False
        self._running = False
        self.scan_count = 0

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    @property
    def failed(self) -> FrozenSet[int]:
        return frozenset(self._failed)

    def stop(self):
        if self._scanning:
            log.info("stopping price scanner")
        self._running = False

    async def scan(self, start_stamp: int, end_stamp: Optional[int] = None) -> bool:
        """Scan [start_stamp, end_stamp) for gaps. Returns True if every window was processed."""
        end_stamp = now() if end_stamp is None else end_stamp

        if self._scanning:
            log.warning("price scan already in progress, skipping")
            return False
        if start_stamp >= end_stamp:
            log.info(
                f"invalid time range: start ({format_date(start_stamp)}) >= end ({format_date(end_stamp)})"
            )
            return False

        self._scanning = True
        self._running = True
        try:
            completed = await self._scan_windows(start_stamp, end_stamp)
        finally:
            self._scanning = False
            self._running = False

        if completed:
            self.scan_count += 1
            log.info(f"completed scan from {format_date(start_stamp)} to {format_date(end_stamp)}")
        else:
            log.info(f"scan from {format_date(start_stamp)} to {format_date(end_stamp)} was stopped early")
        return completed

    def find_gaps(self, window_start: int, window_end: int) -> List[int]:
        """Return the start stamps of missing gap_size stretches inside [window_start, window_end)."""
        gaps: List[int] = []
        expected = window_start

        for point in self._store.range(window_start, window_end):
            if point.stamp >= window_end:
                break
            if point.stamp - expected > self.gap_size:
                log.info(
                    f"found gap of {(point.stamp - expected) / 3600:.1f} hours "
                    f"from {format_date(expected)} to {format_date(point.stamp)}"
                )
                gaps.extend(self._markers(expected, point.stamp))
            expected = point.stamp + self.gap_size

        if window_end - expected >= self.gap_size:
            log.info(
                f"found gap of {(window_end - expected) / 3600:.1f} hours "
                f"at end of window from {format_date(expected)} to {format_date(window_end)}"
            )
            gaps.extend(self._markers(expected, window_end))

        return gaps

    # ------------------------------------------------------------------
    def _markers(self, start: int, stop: int) -> List[int]:
        # Markers sit on a fixed gap_size grid so failed ones match across scans.
        first = align(start, self.gap_size)
        return [t for t in range(first, stop, self.gap_size) if t not in self._failed]

    async def _scan_windows(self, start_stamp: int, end_stamp: int) -> bool:
        window_count = math.ceil((end_stamp - start_stamp) / self.window_size)
        log.info(
            f"running scan from {format_date(start_stamp)} to {format_date(end_stamp)} "
            f"(total windows: {window_count})"
        )

        processed = 0
        window_end = end_stamp
        while window_end > start_stamp:
            if not self._running:
                return False

            window_start = max(window_end - self.window_size, start_stamp)
            processed += 1
            log.debug(
                f"checking window {processed}/{window_count} from {format_date(window_start)} "
                f"to {format_date(window_end)} ({processed / window_count * 100:.1f}% complete)"
            )

            gaps = self.find_gaps(window_start, window_end)
            if gaps:
                log.info(f"queueing {len(gaps)} gaps for fetching")
                if not await self._fill_gaps(gaps):
                    return False

            await asyncio.sleep(self.fetch_delay)
            window_end -= self.window_size

        return True

    async def _fill_gaps(self, gaps: List[int]) -> bool:
        for i in range(0, len(gaps), self.batch_size):
            if not self._running:
                return False
            await self._wait_for_queue()
            batch = gaps[i:i + self.batch_size]
            await asyncio.gather(*(self._fill_gap(gap) for gap in batch))
            await asyncio.sleep(self.fetch_delay)
        return True

    async def _wait_for_queue(self):
        while self._running and self._queue.size >= self.max_queue_depth:
            log.info(f"request queue at {self._queue.size} items, pausing scan")
            await asyncio.sleep(self.backpressure_delay)

    async def _fill_gap(self, gap_start: int) -> bool:
        gap_end = gap_start + self.gap_size

        for attempt in range(1, self.max_retries + 1):
            try:
                points = await self._queue.submit(
                    lambda: self._fetcher.history(gap_start, gap_end),
                    Priority.LOW,
                )
            except Exception as e:
                log.warning(
                    f"failed to fetch gap at {format_date(gap_start)}: {e} "
                    f"(retry {attempt}/{self.max_retries})"
                )
                if attempt >= self.max_retries:
                    self._failed.add(gap_start)
                    log.error(f"giving up on gap at {gap_start} after {attempt} attempts")
                    return False
                await asyncio.sleep(attempt * self.retry_delay)
                continue

            stored = self._store.insert_many(points)
            if stored:
                log.info(f"retrieved {len(stored)} price points for gap starting at {format_date(gap_start)}")
            return True

        return False
