# threshold_oracle/feeds/__init__.py
"""
Price fetchers.

The oracle talks to its upstream through the PriceFetcher interface. Two
implementations exist: GeckoFetcher for live market data and SimulatedFetcher
for the deterministic simulator. One is picked at startup by build_fetcher and
kept for the lifetime of the process.
"""

from threshold_oracle.feeds.base import PriceFetcher
from threshold_oracle.feeds.gecko import GeckoFetcher
from threshold_oracle.feeds.simulated import SimulatedFetcher


def build_fetcher(config) -> PriceFetcher:
    if config.fetcher == "simulated":
        return SimulatedFetcher(config.gen_config)
    return GeckoFetcher(
        api_host=config.api_host,
        api_key=config.api_key,
        coin_id=config.coin_id,
        vs_currency=config.vs_currency,
    )


__all__ = ["PriceFetcher", "GeckoFetcher", "SimulatedFetcher", "build_fetcher"]
