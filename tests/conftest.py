import pytest
from ecdsa import SECP256k1, SigningKey

from tests.fakes import HMAC_SECRET, IVAL, SIGN_SECRET
from threshold_oracle.config import OracleConfig
from threshold_oracle.store import PriceStore


@pytest.fixture
def store():
    s = PriceStore(":memory:", IVAL)
    yield s
    s.close()


@pytest.fixture
def signing_key():
    return SigningKey.from_string(SIGN_SECRET, curve=SECP256k1)


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides) -> OracleConfig:
        params = dict(
            hmac_secret=HMAC_SECRET,
            sign_secret=SIGN_SECRET,
            key_path=str(tmp_path / "oracle.key"),
            fetcher="simulated",
            db_path=":memory:",
            price_ival=IVAL,
            queue_interval=0.0,
            queue_tick=0.01,
            retry_delay=0.0,
            fetch_delay=0.0,
            backpressure_delay=0.01,
        )
        params.update(overrides)
        return OracleConfig(**params)

    return _make
