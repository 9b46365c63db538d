# threshold_oracle/util.py
import math
import time
from datetime import datetime, timezone
from typing import Optional


def now() -> int:
    """Current unix time in whole seconds."""
    return int(time.time())


def align(stamp: int, ival: int) -> int:
    """Floor a timestamp to the nearest multiple of the alignment interval."""
    if ival <= 0:
        raise ValueError(f"alignment interval must be positive, got {ival}")
    return (int(stamp) // ival) * ival


def parse_uint(value) -> Optional[int]:
    """Parse an unsigned integer from a query string value, or return None."""
    if value is None:
        return None
    try:
        text = str(value).strip()
        uint = int(text)
    except (TypeError, ValueError):
        return None
    if uint < 0:
        return None
    return uint


def format_date(stamp: int) -> str:
    return datetime.fromtimestamp(stamp, tz=timezone.utc).strftime("%Y-%m-%d")


def format_stamp(stamp: int) -> str:
    return datetime.fromtimestamp(stamp, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)
