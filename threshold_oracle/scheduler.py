# threshold_oracle/scheduler.py
"""
Price collection scheduler.

Runs the poll and gap-scan lifecycle without the HTTP server, filling the
price store so that a server started later has history to quote from.

Usage:
  python -m threshold_oracle.scheduler          # run forever
  python -m threshold_oracle.scheduler --once   # fetch latest + one scan, then exit
"""

import asyncio
import logging
import sys

from threshold_oracle.config import OracleConfig
from threshold_oracle.feeds import build_fetcher
from threshold_oracle.price import PriceOracle
from threshold_oracle.util import format_stamp, now

log = logging.getLogger("thold.scheduler")


async def run_once(oracle: PriceOracle) -> bool:
    """Fetch the latest price and backfill gaps once."""
    log.info("=== Price scheduler: single run ===")
    point = await oracle.latest_price()
    if point is None:
        log.error("Failed to fetch latest price")
    else:
        log.info(f"Price: {point.price} at {format_stamp(point.stamp)}")

    completed = await oracle.scanner.scan(oracle.config.genesis_stamp, now())
    failed = len(oracle.scanner.failed)
    log.info(f"Scan {'completed' if completed else 'incomplete'}, {oracle.store.count()} points stored, {failed} failed gaps")
    return completed


async def run_loop(oracle: PriceOracle):
    """Poll and scan until cancelled."""
    log.info("=== Price scheduler: starting loop ===")
    oracle.start()
    try:
        await asyncio.Event().wait()
    finally:
        await oracle.stop()


async def _main(once: bool):
    config = OracleConfig.from_env()
    logging.getLogger().setLevel(config.log_level)
    oracle = PriceOracle(config, build_fetcher(config))
    try:
        if once:
            await run_once(oracle)
        else:
            await run_loop(oracle)
    finally:
        await oracle.queue.close()
        await oracle.fetcher.aclose()
        oracle.store.close()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    try:
        asyncio.run(_main("--once" in sys.argv))
    except KeyboardInterrupt:
        log.info("Scheduler interrupted, exiting")


if __name__ == "__main__":
    main()
