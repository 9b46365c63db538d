"""Tests for the deterministic price simulator."""
import random

import pytest

from threshold_oracle.errors import ConfigurationError, ValidationError
from threshold_oracle.models import PricePoint, StopPriceQuery
from threshold_oracle.simulator import PriceGenConfig, PriceSimulator, XorShift32
from threshold_oracle.util import round_half_up

T0 = 1_700_000_000


def make_sim(**kwargs) -> PriceSimulator:
    params = dict(initial_stamp=T0)
    params.update(kwargs)
    return PriceSimulator(PriceGenConfig(**params))


class TestXorShift32:
    def test_sequence_is_reproducible(self):
        a, b = XorShift32(12345), XorShift32(12345)
        assert [a.next() for _ in range(50)] == [b.next() for _ in range(50)]

    def test_reset_restarts_sequence(self):
        rng = XorShift32(T0)
        first = [rng.next() for _ in range(10)]
        rng.reset()
        assert [rng.next() for _ in range(10)] == first

    def test_zero_seed_still_advances(self):
        rng = XorShift32(0)
        values = [rng.next() for _ in range(10)]
        assert all(v > 0 for v in values)
        assert len(set(values)) == 10

    def test_draws_stay_in_range(self):
        rng = XorShift32(987654321)
        for _ in range(10_000):
            assert 0.0 <= rng.next() <= 1.0
            assert -1.0 <= rng.uniform() <= 1.0


class TestSimulate:
    def test_identical_queries_give_identical_results(self):
        query = StopPriceQuery(start_stamp=T0 + 1000, thold_price=49_000, curr_stamp=T0 + 20_000)
        first = make_sim().simulate(query)
        second = make_sim().simulate(query)
        assert first == second

        sim = make_sim()
        assert sim.simulate(query) == sim.simulate(query)

    def test_start_is_the_closest_point(self):
        data = make_sim().simulate(StopPriceQuery(T0 + 52, 1, T0 + 500))
        assert data.start_stamp == T0 + 50

    def test_close_is_the_last_point(self):
        data = make_sim().simulate(StopPriceQuery(T0 + 50, 1, T0 + 503))
        assert data.close_stamp == T0 + 500

    def test_stop_is_first_point_after_start_at_or_below_threshold(self):
        sim = make_sim()
        data = sim.simulate(StopPriceQuery(T0 + 50, 200_000, T0 + 500))
        assert data.is_stopped
        assert data.stop_stamp == T0 + 55

        walk = {p.stamp: p.price for p in sim.walk(T0 + 500)}
        assert data.stop_price == walk[T0 + 55]
        assert data.start_price == walk[T0 + 50]
        assert data.close_price == walk[T0 + 500]

    def test_unreachable_threshold_never_stops(self):
        data = make_sim().simulate(StopPriceQuery(T0, 1, T0 + 5000))
        assert not data.is_stopped
        assert data.stop_price is None
        assert data.stop_stamp is None

    def test_stop_matches_walk(self):
        sim = make_sim(volatility=0.05)
        points = list(sim.walk(T0 + 10_000))
        thold = sorted(p.price for p in points)[len(points) // 4]

        data = sim.simulate(StopPriceQuery(T0, thold, T0 + 10_000))
        expected = next(p for p in points if p.stamp > T0 and p.price <= thold)
        assert (data.stop_price, data.stop_stamp) == (expected.price, expected.stamp)

    @pytest.mark.parametrize(
        "start,curr",
        [(T0 - 1, T0 + 100), (T0, T0 - 1), (T0 + 200, T0 + 100)],
    )
    def test_invalid_query_raises(self, start, curr):
        with pytest.raises(ValidationError):
            make_sim().simulate(StopPriceQuery(start, 50_000, curr))


def test_prices_stay_within_bounds_for_random_configs():
    rng = random.Random(2024)
    for _ in range(1000):
        min_price = rng.randint(1_000, 50_000)
        max_price = rng.randint(min_price, 250_000)
        cfg = PriceGenConfig(
            initial_stamp=rng.randint(1, 2**31),
            initial_price=rng.randint(min_price, max_price),
            min_price=min_price,
            max_price=max_price,
            volatility=rng.uniform(0, 0.5),
            time_step=rng.randint(1, 60),
            trend_strength=rng.uniform(-0.01, 0.01),
            momentum_factor=rng.uniform(0, 1),
            shock_probability=rng.uniform(0, 1),
            shock_magnitude=rng.uniform(0, 1),
            crash_interval=rng.randint(1, 50),
            crash_magnitude=rng.uniform(0, 1),
        )
        sim = PriceSimulator(cfg)
        for point in sim.walk(cfg.initial_stamp + cfg.time_step * 100):
            assert min_price <= point.price <= max_price


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(initial_price=10_000, min_price=25_000),
        dict(initial_price=300_000, max_price=200_000),
        dict(time_step=0),
        dict(volatility=-0.1),
        dict(shock_probability=1.5),
        dict(crash_interval=0),
        dict(crash_magnitude=2),
    ],
)
def test_invalid_config_raises(kwargs):
    with pytest.raises(ConfigurationError):
        make_sim(**kwargs)


def test_walk_starts_at_initial_stamp():
    sim = make_sim(time_step=10)
    points = list(sim.walk(T0 + 95))
    assert [p.stamp for p in points] == [T0 + 10 * i for i in range(10)]
    assert all(isinstance(p.price, int) for p in points)
    assert list(sim.walk(T0 - 1)) == []


def test_stop_compares_rounded_price():
    sim = make_sim()
    until = T0 + 5000
    # first point whose unrounded price lies strictly between its rounded value and +0.5
    stamp, price = next(
        (s, p) for s, p in list(sim.raw_walk(until))[1:] if 0 < p - round_half_up(p) < 0.5
    )
    thold = round_half_up(price)
    assert price > thold

    data = sim.simulate(StopPriceQuery(stamp - sim.config.time_step, thold, until))

    assert data.stop_stamp == stamp
    assert data.stop_price == thold


def test_raw_walk_rounds_to_walk():
    sim = make_sim()
    raw = list(sim.raw_walk(T0 + 1000))
    assert [PricePoint(round_half_up(p), s) for s, p in raw] == list(sim.walk(T0 + 1000))
