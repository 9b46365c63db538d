# threshold_oracle/feeds/gecko.py
"""
CoinGecko price feed.

  latest:   GET /simple/price
  history:  GET /coins/{coin}/market_chart/range  (precision=0)

Prices are rounded to whole units. History stamps come back in milliseconds
and are converted to seconds. Any transport, status or parse failure is raised
as FetchError.
"""

import logging
from typing import List, Optional

import httpx

from threshold_oracle.errors import FetchError
from threshold_oracle.feeds.base import PriceFetcher
from threshold_oracle.models import PricePoint
from threshold_oracle.util import now, round_half_up

log = logging.getLogger("thold.fetcher")

TIMEOUT = 10


class GeckoFetcher(PriceFetcher):
    name = "gecko"

    def __init__(
        self,
        api_host: str,
        api_key: Optional[str],
        coin_id: str = "bitcoin",
        vs_currency: str = "usd",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_host = api_host.rstrip("/")
        self.coin_id = coin_id
        self.vs_currency = vs_currency
        self._headers = {"accept": "application/json"}
        if api_key:
            self._headers["x-cg-pro-api-key"] = api_key
        self._transport = transport

    async def latest(self) -> PricePoint:
        params = {
            "ids": self.coin_id,
            "vs_currencies": self.vs_currency,
            "include_last_updated_at": "true",
        }
        data = await self._get_json("/simple/price", params)
        try:
            entry = data[self.coin_id]
            point = PricePoint(
                price=round_half_up(float(entry[self.vs_currency])),
                stamp=int(entry["last_updated_at"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise FetchError(f"malformed latest price response: {e}") from e
        log.info(f"latest price: {point.price} at {point.stamp}")
        return point

    async def history(self, start: int, end: Optional[int] = None) -> List[PricePoint]:
        end = now() if end is None else end
        params = {
            "vs_currency": self.vs_currency,
            "from": str(start),
            "to": str(end),
            "precision": "0",
        }
        data = await self._get_json(f"/coins/{self.coin_id}/market_chart/range", params)
        try:
            points = [
                PricePoint(price=round_half_up(float(price)), stamp=int(stamp_ms) // 1000)
                for stamp_ms, price in data["prices"]
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise FetchError(f"malformed price history response: {e}") from e
        log.info(f"price history: {len(points)} points from {start} to {end}")
        return points

    async def _get_json(self, path: str, params: dict):
        url = f"{self.api_host}{path}"
        log.debug(f"fetching {url}")
        try:
            async with httpx.AsyncClient(timeout=TIMEOUT, transport=self._transport) as client:
                r = await client.get(url, params=params, headers=self._headers)
        except httpx.HTTPError as e:
            raise FetchError(f"request to {path} failed: {e}") from e
        if r.status_code != 200:
            raise FetchError(f"{path} returned {r.status_code}: {r.text[:200]}")
        try:
            return r.json()
        except ValueError as e:
            raise FetchError(f"{path} returned invalid JSON: {e}") from e
