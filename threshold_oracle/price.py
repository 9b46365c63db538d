# threshold_oracle/price.py
"""
Price oracle service.

Owns the price store, the upstream fetcher, the request queue and the gap
scanner. Lookups read the store first and fall back to a HIGH priority fetch
through the queue, storing whatever comes back. Upstream failures are logged
and reported as "no data".

start() runs two background tasks until stop():
  - poll:  fetch the latest price every price interval
  - scan:  backfill gaps from genesis to now, once or every scan_interval
"""

import asyncio
import logging
from typing import List, Optional

from threshold_oracle.config import OracleConfig
from threshold_oracle.errors import FetchError, QuoteError, StorageError, ValidationError
from threshold_oracle.feeds.base import PriceFetcher
from threshold_oracle.models import PricePoint, Priority, StopPriceData, StopPriceQuery
from threshold_oracle.request_queue import RequestQueue
from threshold_oracle.scanner import PriceScanner
from threshold_oracle.store import PriceStore
from threshold_oracle.util import now

log = logging.getLogger("thold.oracle")


class PriceOracle:
    def __init__(
        self,
        config: OracleConfig,
        fetcher: PriceFetcher,
        store: Optional[PriceStore] = None,
        queue: Optional[RequestQueue] = None,
        clock=now,
    ):
        self.config = config
        self.ival = config.price_ival
        self.fetcher = fetcher
        self.store = store or PriceStore(config.db_path, config.price_ival)
        self.queue = queue or RequestQueue(config.queue_interval, config.queue_tick)
        self.scanner = PriceScanner(
            self.store,
            fetcher,
            self.queue,
            window_size=config.window_size,
            gap_size=config.gap_size,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            fetch_delay=config.fetch_delay,
            batch_size=config.batch_size,
            max_queue_depth=config.max_queue_depth,
            backpressure_delay=config.backpressure_delay,
        )
        self.overrides = tuple(
            PricePoint(price=p.price, stamp=self.store.align(p.stamp)) for p in config.overrides
        )
        self._clock = clock
        self._poll_task: Optional[asyncio.Task] = None
        self._scan_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    # ── Lookups ───────────────────────────────────────────────────────────────

    async def latest_price(self, now_stamp: Optional[int] = None) -> Optional[PricePoint]:
        now_stamp = self._clock() if now_stamp is None else now_stamp
        latest = self.store.latest()
        if latest is not None and latest.stamp >= now_stamp - self.ival:
            return latest

        try:
            point = await self.queue.submit(self.fetcher.latest, Priority.HIGH)
        except FetchError as e:
            log.error(f"error fetching latest price: {e}")
            return None
        return self.store.insert(point.price, point.stamp)

    async def price_history(self, start_stamp: int, end_stamp: int) -> List[PricePoint]:
        start = self.store.align(start_stamp)
        end = self.store.align(end_stamp)
        log.debug(f"getting price history from {start} to {end}")
        try:
            points = await self.queue.submit(lambda: self.fetcher.history(start, end), Priority.HIGH)
        except FetchError as e:
            log.error(f"error fetching price history: {e}")
            return []
        return self.store.insert_many(points)

    async def price_at(self, stamp: int) -> Optional[PricePoint]:
        query_stamp = self.store.align(stamp)

        override = self._override_at(query_stamp)
        if override is not None:
            log.info(f"returning price override for stamp: {query_stamp}")
            return override

        point = self.store.at(query_stamp)
        if point is not None:
            return point

        points = await self.price_history(query_stamp - self.ival, query_stamp + self.ival)
        if not points:
            return None
        for p in points:
            if p.stamp == query_stamp:
                return p
        return points[0]

    async def get_stop_price(self, query: StopPriceQuery) -> StopPriceData:
        now_stamp = self._clock()
        curr_stamp = now_stamp if query.curr_stamp is None else query.curr_stamp
        start_stamp = query.start_stamp
        thold_price = query.thold_price

        if start_stamp > curr_stamp:
            raise ValidationError(f"start stamp {start_stamp} is after current stamp {curr_stamp}")

        if start_stamp >= now_stamp:
            start_point = await self.latest_price(now_stamp)
        else:
            start_point = await self.price_at(start_stamp)
        if start_point is None:
            raise QuoteError(f"price point not found for start stamp: {start_stamp}")

        if curr_stamp == start_stamp:
            close_point = start_point
        elif curr_stamp >= now_stamp:
            close_point = await self.latest_price(now_stamp)
        else:
            close_point = await self.price_at(curr_stamp)
        if close_point is None:
            raise QuoteError(f"price point not found for current stamp: {curr_stamp}")

        # A threshold at or above an observed price stops at that point.
        if thold_price >= start_point.price:
            stop_point = start_point
        elif thold_price >= close_point.price:
            stop_point = close_point
        else:
            stop_point = self._override_below(thold_price, start_stamp, curr_stamp)
            if stop_point is None:
                stop_point = self.store.first_below(thold_price, start_stamp, curr_stamp)

        return StopPriceData(
            start_price=start_point.price,
            start_stamp=start_point.stamp,
            close_price=close_point.price,
            close_stamp=close_point.stamp,
            stop_price=stop_point.price if stop_point else None,
            stop_stamp=stop_point.stamp if stop_point else None,
        )

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self):
        if self.is_running:
            log.warning("price polling already running")
            return
        loop = asyncio.get_running_loop()
        log.info(f"starting price polling every {self.ival}s")
        self._poll_task = loop.create_task(self._poll_loop())
        self._scan_task = loop.create_task(self._scan_loop())
        self.queue.start()

    async def stop(self):
        if not self.is_running and self._scan_task is None:
            return
        self.scanner.stop()
        for task in (self._poll_task, self._scan_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._poll_task = None
        self._scan_task = None
        self.queue.stop()
        log.info("stopped price polling")

    async def _poll_loop(self):
        while True:
            try:
                point = await self.latest_price()
            except StorageError as e:
                log.error(f"price poll failed: {e}")
            else:
                if point is not None:
                    log.debug(f"polled price {point.price} at {point.stamp}")
            await asyncio.sleep(self.ival)

    async def _scan_loop(self):
        while True:
            try:
                await self.scanner.scan(self.config.genesis_stamp, self._clock())
            except StorageError as e:
                log.error(f"price scan failed: {e}")
            if not self.config.scan_interval:
                return
            await asyncio.sleep(self.config.scan_interval)

    # ── Overrides ─────────────────────────────────────────────────────────────

    def _override_at(self, stamp: int) -> Optional[PricePoint]:
        for p in self.overrides:
            if p.stamp == stamp:
                return p
        return None

    def _override_below(self, thold_price: int, start: int, end: int) -> Optional[PricePoint]:
        for p in sorted(self.overrides, key=lambda p: p.stamp):
            if start <= p.stamp <= end and p.price <= thold_price:
                log.info(f"returning stop price override for thold: {thold_price}")
                return p
        return None
