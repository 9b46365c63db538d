"""Tests for the gap scanner."""
import asyncio

import pytest

from tests.fakes import FakeFetcher, every_ival
from threshold_oracle.errors import StorageError
from threshold_oracle.request_queue import RequestQueue
from threshold_oracle.scanner import PriceScanner
from threshold_oracle.store import PriceStore

HOUR = 3600
DAY = 24 * HOUR


def make_scanner(store, fetcher, **kwargs):
    params = dict(
        window_size=DAY,
        gap_size=HOUR,
        retry_delay=0.0,
        fetch_delay=0.0,
        backpressure_delay=0.01,
    )
    params.update(kwargs)
    return PriceScanner(store, fetcher, RequestQueue(request_interval=0.0), **params)


def test_find_gaps_around_single_point(store):
    store.insert(50_000, 12 * HOUR)
    scanner = make_scanner(store, FakeFetcher())

    gaps = scanner.find_gaps(0, DAY)

    before = [g for g in gaps if g < 12 * HOUR]
    after = [g for g in gaps if g > 12 * HOUR]
    assert before == [h * HOUR for h in range(0, 12)]
    assert after == [h * HOUR for h in range(13, 24)]
    # no marker covers the hour holding the stored point
    assert 12 * HOUR not in gaps
    assert all(not (g < 12 * HOUR < g + HOUR) for g in gaps)


def test_find_gaps_on_empty_window(store):
    scanner = make_scanner(store, FakeFetcher())
    assert scanner.find_gaps(0, DAY) == [h * HOUR for h in range(24)]


def test_find_gaps_on_dense_window(store):
    for t in range(0, DAY, 300):
        store.insert(50_000, t)
    scanner = make_scanner(store, FakeFetcher())
    assert scanner.find_gaps(0, DAY) == []


def test_gap_size_defaults_to_window_size(store):
    scanner = PriceScanner(store, FakeFetcher(), RequestQueue(), window_size=DAY)
    assert scanner.gap_size == DAY
    assert scanner.find_gaps(0, DAY) == [0]


@pytest.mark.asyncio
async def test_scan_backfills_gaps(store):
    fetcher = FakeFetcher(history=every_ival(42_000))
    scanner = make_scanner(store, fetcher)

    assert await scanner.scan(0, 2 * DAY) is True

    assert scanner.scan_count == 1
    assert store.count() == 2 * DAY // 300
    assert store.at(DAY + 600).price == 42_000
    assert scanner.find_gaps(0, DAY) == []
    assert scanner.find_gaps(DAY, 2 * DAY) == []


@pytest.mark.asyncio
async def test_scan_walks_newest_window_first(store):
    fetcher = FakeFetcher(history=every_ival())
    scanner = make_scanner(store, fetcher, gap_size=DAY)

    await scanner.scan(0, 3 * DAY)

    assert [start for start, _ in fetcher.history_calls] == [2 * DAY, DAY, 0]


@pytest.mark.asyncio
async def test_concurrent_scan_is_a_no_op(store):
    release = asyncio.Event()
    started = asyncio.Event()

    def history(start, end):
        return []

    class BlockingFetcher(FakeFetcher):
        async def history(self, start, end=None):
            started.set()
            await release.wait()
            return await super().history(start, end)

    scanner = make_scanner(store, BlockingFetcher(history=history))

    first = asyncio.ensure_future(scanner.scan(0, DAY))
    await started.wait()
    assert scanner.is_scanning

    assert await scanner.scan(0, DAY) is False
    assert scanner.scan_count == 0

    release.set()
    assert await first is True
    assert scanner.scan_count == 1
    assert not scanner.is_scanning


@pytest.mark.asyncio
async def test_failed_gap_is_retried_then_skipped(store):
    fetcher = FakeFetcher(fail=True)
    scanner = make_scanner(store, fetcher, gap_size=DAY, max_retries=3)

    assert await scanner.scan(0, DAY) is True

    assert fetcher.history_calls == [(0, DAY)] * 3
    assert scanner.failed == frozenset({0})
    assert scanner.find_gaps(0, DAY) == []


@pytest.mark.asyncio
async def test_invalid_range_is_rejected(store):
    fetcher = FakeFetcher()
    scanner = make_scanner(store, fetcher)

    assert await scanner.scan(DAY, DAY) is False
    assert await scanner.scan(DAY, 0) is False
    assert scanner.scan_count == 0
    assert fetcher.history_calls == []


@pytest.mark.asyncio
async def test_stop_ends_scan_early(store):
    scanner = None

    class StoppingFetcher(FakeFetcher):
        async def history(self, start, end=None):
            scanner.stop()
            return await super().history(start, end)

    fetcher = StoppingFetcher(history=every_ival())
    scanner = make_scanner(store, fetcher, gap_size=DAY)

    assert await scanner.scan(0, 3 * DAY) is False
    assert scanner.scan_count == 0
    assert len(fetcher.history_calls) == 1
    assert not scanner.is_scanning


@pytest.mark.asyncio
async def test_scan_waits_for_queue_backpressure(store):
    fetcher = FakeFetcher(history=every_ival())
    scanner = make_scanner(store, fetcher, gap_size=DAY, max_queue_depth=1)
    queue = scanner._queue

    blocker = asyncio.Event()

    async def hold():
        await blocker.wait()

    queue.submit(hold)
    queue.submit(hold)
    await asyncio.sleep(0)
    assert queue.size >= 1

    scan = asyncio.ensure_future(scanner.scan(0, DAY))
    await asyncio.sleep(0.05)
    assert fetcher.history_calls == []

    blocker.set()
    assert await scan is True
    assert fetcher.history_calls == [(0, DAY)]


@pytest.mark.asyncio
async def test_failed_gaps_stay_skipped_when_scan_end_moves(store):
    fetcher = FakeFetcher(fail=True)
    scanner = make_scanner(store, fetcher, max_retries=3)

    assert await scanner.scan(0, DAY) is True
    assert len(fetcher.history_calls) == 24 * 3
    assert scanner.failed == frozenset(h * HOUR for h in range(24))

    fetcher.history_calls.clear()
    assert await scanner.scan(0, DAY + 300) is True

    # only the hour past the old end is new
    assert fetcher.history_calls == [(DAY, DAY + HOUR)] * 3
    assert DAY in scanner.failed


def test_markers_sit_on_gap_grid(store):
    scanner = make_scanner(store, FakeFetcher())
    assert scanner.find_gaps(300, 4 * HOUR + 300) == [0, HOUR, 2 * HOUR, 3 * HOUR, 4 * HOUR]


@pytest.mark.asyncio
async def test_unexpected_fetch_error_is_retried_not_raised(store):
    class BrokenFetcher(FakeFetcher):
        async def history(self, start, end=None):
            self.history_calls.append((start, end))
            raise ValueError("bad payload")

    fetcher = BrokenFetcher()
    scanner = make_scanner(store, fetcher, gap_size=DAY, max_retries=2)

    assert await scanner.scan(0, 3 * DAY) is True

    assert [start for start, _ in fetcher.history_calls] == [2 * DAY, 2 * DAY, DAY, DAY, 0, 0]
    assert scanner.failed == frozenset({0, DAY, 2 * DAY})
    assert scanner.scan_count == 1


@pytest.mark.asyncio
async def test_storage_error_aborts_scan():
    broken = PriceStore(":memory:", 300)
    broken.close()
    scanner = make_scanner(broken, FakeFetcher())

    with pytest.raises(StorageError):
        await scanner.scan(0, DAY)
    assert not scanner.is_scanning
    assert scanner.scan_count == 0
