# threshold_oracle/simulator.py
"""
Deterministic synthetic price feed.

The walk is a pure function of the configuration: the RNG is seeded from
initial_stamp and reset, together with momentum, for every walk. Two identical
queries against identical configs always produce identical results.

Each step combines:
  - a uniform random move scaled by volatility
  - a constant trend
  - momentum carried over from the previous random move
  - an occasional shock
  - a scheduled crash every crash_interval steps
and is clamped to [min_price, max_price].
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple

from threshold_oracle.errors import ConfigurationError, ValidationError
from threshold_oracle.models import PricePoint, StopPriceData, StopPriceQuery
from threshold_oracle.util import now, round_half_up

log = logging.getLogger("thold.simulator")

UINT32 = 0xFFFFFFFF
ZERO_SEED = 0x9E3779B9  # xorshift never leaves an all-zero state


@dataclass(frozen=True)
class PriceGenConfig:
    initial_stamp: int = field(default_factory=lambda: now() - 100_000)
    initial_price: float = 50_000
    min_price: float = 25_000
    max_price: float = 200_000
    volatility: float = 0.03
    time_step: int = 5
    trend_strength: float = 0.0005
    momentum_factor: float = 0.3
    shock_probability: float = 0.01
    shock_magnitude: float = 0.1
    crash_interval: int = 100
    crash_magnitude: float = 0.15
    verbose: bool = False

    def validate(self):
        if self.initial_price < self.min_price:
            raise ConfigurationError("Initial price below minimum")
        if self.initial_price > self.max_price:
            raise ConfigurationError("Initial price above maximum")
        if self.time_step <= 0:
            raise ConfigurationError("Time step must be positive")
        if self.volatility < 0:
            raise ConfigurationError("Volatility must be non-negative")
        if not 0 <= self.shock_probability <= 1:
            raise ConfigurationError("Shock probability must be between 0 and 1")
        if self.crash_interval <= 0:
            raise ConfigurationError("Crash interval must be positive")
        if not 0 <= self.crash_magnitude <= 1:
            raise ConfigurationError("Crash magnitude must be between 0 and 1")


class XorShift32:
    """32-bit xorshift generator returning floats in [0, 1]."""

    def __init__(self, seed: int):
        self.seed = (seed & UINT32) or ZERO_SEED
        self.state = self.seed

    def reset(self):
        self.state = self.seed

    def next(self) -> float:
        x = self.state
        x ^= (x << 13) & UINT32
        x ^= x >> 17
        x ^= (x << 5) & UINT32
        self.state = x
        return x / UINT32

    def uniform(self) -> float:
        """Uniform draw in [-1, 1]."""
        return (self.next() - 0.5) * 2


class PriceSimulator:
    def __init__(self, config: Optional[PriceGenConfig] = None):
        self.config = config or PriceGenConfig()
        self.config.validate()
        self._rng = XorShift32(self.config.initial_stamp)
        self._momentum = 0.0
        if self.config.verbose:
            log.info(f"start price: {self.start_price}, start time: {self.start_time}")

    @property
    def start_price(self) -> float:
        return self.config.initial_price

    @property
    def start_time(self) -> int:
        return self.config.initial_stamp

    def walk(self, until: int) -> Iterator[PricePoint]:
        """Yield every simulated point from initial_stamp up to and including until."""
        for stamp, price in self.raw_walk(until):
            yield PricePoint(price=round_half_up(price), stamp=stamp)

    def raw_walk(self, until: int) -> Iterator[Tuple[int, float]]:
        """Same walk as walk(), with unrounded prices."""
        cfg = self.config
        self._rng.reset()
        self._momentum = 0.0

        steps = (until - cfg.initial_stamp) // cfg.time_step
        price = float(cfg.initial_price)
        for i in range(steps + 1):
            stamp = cfg.initial_stamp + i * cfg.time_step
            price = self._next_price(price, i, stamp)
            yield stamp, price

    def simulate(self, query: StopPriceQuery) -> StopPriceData:
        start_stamp = query.start_stamp
        curr_stamp = now() if query.curr_stamp is None else query.curr_stamp

        if start_stamp < self.start_time:
            raise ValidationError("Start time must not precede the simulation start")
        if curr_stamp < self.start_time:
            raise ValidationError("Current time must not precede the simulation start")
        if start_stamp > curr_stamp:
            raise ValidationError("Start time must not be after the current time")

        if self.config.verbose:
            log.info(f"simulate start: {start_stamp}, threshold: {query.thold_price}, end: {curr_stamp}")

        closest = None
        min_diff = None
        stopped = None
        last = None
        for point in self.walk(curr_stamp):
            diff = abs(point.stamp - start_stamp)
            if min_diff is None or diff < min_diff:
                min_diff = diff
                closest = point
            # Compared on the rounded price, the same value published in the quote.
            if stopped is None and point.stamp > start_stamp and point.price <= query.thold_price:
                stopped = point
            last = point

        return StopPriceData(
            start_price=closest.price,
            start_stamp=closest.stamp,
            close_price=last.price,
            close_stamp=last.stamp,
            stop_price=stopped.price if stopped else None,
            stop_stamp=stopped.stamp if stopped else None,
        )

    def _next_price(self, price: float, step: int, stamp: int) -> float:
        cfg = self.config
        rng = self._rng

        random_move = rng.uniform() * cfg.volatility * price
        trend = price * cfg.trend_strength
        momentum_effect = self._momentum * cfg.momentum_factor
        self._momentum = random_move

        shock = 0.0
        if rng.next() < cfg.shock_probability:
            shock = rng.uniform() * price * cfg.shock_magnitude

        is_crash = step > 0 and step % cfg.crash_interval == 0
        crash = -price * cfg.crash_magnitude if is_crash else 0.0

        new_price = price + random_move + trend + momentum_effect + shock + crash
        new_price = max(cfg.min_price, min(cfg.max_price, new_price))

        if cfg.verbose and (step < 10 or is_crash):
            log.debug(
                f"step {step} @ {stamp}: price {round_half_up(new_price)} "
                f"(random {random_move:.0f}, trend {trend:.0f}, momentum {momentum_effect:.0f}, "
                f"shock {shock:.0f}, crash {crash:.0f})"
            )
        return new_price
