# threshold_oracle/feeds/simulated.py
"""
Simulated price feed backed by PriceSimulator.

Serves the same fetch interface as the live feed, and also answers stop-price
queries directly so quotes can be produced without a store or network.
"""

import logging
from collections import deque
from typing import List, Optional

from threshold_oracle.errors import FetchError
from threshold_oracle.feeds.base import PriceFetcher
from threshold_oracle.models import PricePoint, StopPriceData, StopPriceQuery
from threshold_oracle.simulator import PriceGenConfig, PriceSimulator
from threshold_oracle.util import now

log = logging.getLogger("thold.fetcher")


class SimulatedFetcher(PriceFetcher):
    name = "simulated"

    def __init__(self, config: Optional[PriceGenConfig] = None, clock=now):
        self.simulator = PriceSimulator(config)
        self._clock = clock

    async def latest(self) -> PricePoint:
        last = deque(self.simulator.walk(self._clock()), maxlen=1)
        if not last:
            raise FetchError("simulation has not started yet")
        return last[0]

    async def history(self, start: int, end: Optional[int] = None) -> List[PricePoint]:
        end = self._clock() if end is None else end
        points = [p for p in self.simulator.walk(end) if p.stamp >= start]
        log.debug(f"simulated history: {len(points)} points from {start} to {end}")
        return points

    async def get_stop_price(self, query: StopPriceQuery) -> StopPriceData:
        if query.curr_stamp is None:
            query = StopPriceQuery(
                start_stamp=query.start_stamp,
                thold_price=query.thold_price,
                curr_stamp=self._clock(),
            )
        return self.simulator.simulate(query)
