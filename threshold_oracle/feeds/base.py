# threshold_oracle/feeds/base.py
from typing import List, Optional

from threshold_oracle.models import PricePoint


class PriceFetcher:
    """
    Abstract upstream price feed.

    Requirements:
    - latest() -> PricePoint
    - history(start, end=None) -> list of PricePoint, oldest first
    Both raise FetchError when the upstream fails.
    """

    name = "abstract"

    async def latest(self) -> PricePoint:
        raise NotImplementedError

    async def history(self, start: int, end: Optional[int] = None) -> List[PricePoint]:
        raise NotImplementedError

    async def aclose(self):
        pass
