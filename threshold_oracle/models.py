# threshold_oracle/models.py
"""
Data structures shared across the oracle.
"""

import asyncio
import enum
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Optional


class Priority(str, enum.Enum):
    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class PricePoint:
    price: float
    stamp: int

    def to_dict(self) -> dict:
        return {"price": self.price, "stamp": self.stamp}


@dataclass
class QueueItem:
    operation: Callable[[], Awaitable[Any]]
    priority: Priority
    enqueued_at: float
    future: "asyncio.Future[Any]"


@dataclass(frozen=True)
class StopPriceQuery:
    start_stamp: int
    thold_price: int
    curr_stamp: Optional[int] = None


@dataclass(frozen=True)
class StopPriceData:
    start_price: float
    start_stamp: int
    close_price: float
    close_stamp: int
    stop_price: Optional[float] = None
    stop_stamp: Optional[int] = None

    @property
    def is_stopped(self) -> bool:
        return self.stop_price is not None


@dataclass(frozen=True)
class Quote:
    """
    Signed attestation over a price trajectory and a threshold.

    thold_hash commits to the threshold secret. thold_key reveals it, and is
    only present once the price has been seen at or below the threshold.
    """

    oracle_pk: str
    curr_price: float
    curr_stamp: int
    quote_price: float
    quote_stamp: int
    stop_price: Optional[float]
    stop_stamp: Optional[int]
    thold_price: int
    thold_hash: str
    thold_key: Optional[str]
    is_expired: bool
    req_id: str = field(default="")
    req_sig: str = field(default="")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Quote":
        return cls(
            oracle_pk=data["oracle_pk"],
            curr_price=data["curr_price"],
            curr_stamp=data["curr_stamp"],
            quote_price=data["quote_price"],
            quote_stamp=data["quote_stamp"],
            stop_price=data.get("stop_price"),
            stop_stamp=data.get("stop_stamp"),
            thold_price=data["thold_price"],
            thold_hash=data["thold_hash"],
            thold_key=data.get("thold_key"),
            is_expired=bool(data["is_expired"]),
            req_id=data.get("req_id", ""),
            req_sig=data.get("req_sig", ""),
        )
