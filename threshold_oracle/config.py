# threshold_oracle/config.py
"""
Oracle configuration.

Everything the oracle needs is read once, at process entry, into an immutable
OracleConfig that is then passed to each component. Nothing else in the
package reads the environment.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple

from threshold_oracle.errors import ConfigurationError
from threshold_oracle.models import PricePoint
from threshold_oracle.simulator import PriceGenConfig
from threshold_oracle.util import now

# ── Defaults ──────────────────────────────────────────────────────────────────

DEFAULT_PORT = 8082
DEFAULT_DOMAIN = "exchange/quote"
DEFAULT_API_HOST = "https://pro-api.coingecko.com/api/v3"
PRICE_IVAL = 60 * 5               # 5 minutes
WINDOW_SIZE = 60 * 60 * 24        # 1 day
GAP_SIZE = 60 * 60                # 1 hour
QUEUE_INTERVAL = 0.5              # seconds between upstream requests
GENESIS_DAYS = 90

FETCHERS = ("gecko", "simulated")


@dataclass(frozen=True)
class OracleConfig:
    hmac_secret: bytes = field(repr=False)
    sign_secret: Optional[bytes] = field(default=None, repr=False)
    key_path: Optional[str] = None

    fetcher: str = "gecko"
    api_host: str = DEFAULT_API_HOST
    api_key: Optional[str] = field(default=None, repr=False)
    coin_id: str = "bitcoin"
    vs_currency: str = "usd"

    db_path: str = "data/prices.sqlite"
    server_host: str = "0.0.0.0"
    server_port: int = DEFAULT_PORT
    domain_label: str = DEFAULT_DOMAIN

    price_ival: int = PRICE_IVAL
    window_size: int = WINDOW_SIZE
    gap_size: int = GAP_SIZE
    genesis_stamp: int = field(default_factory=lambda: now() - 60 * 60 * 24 * GENESIS_DAYS)
    scan_interval: Optional[float] = None

    queue_interval: float = QUEUE_INTERVAL
    queue_tick: float = 1.0

    max_retries: int = 3
    retry_delay: float = 1.0
    fetch_delay: float = 0.1
    batch_size: int = 10
    max_queue_depth: int = 50
    backpressure_delay: float = 1.0

    overrides: Tuple[PricePoint, ...] = ()
    gen_config: Optional[PriceGenConfig] = None
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.hmac_secret:
            raise ConfigurationError("hmac secret must not be empty")
        if self.fetcher not in FETCHERS:
            raise ConfigurationError(f"unknown fetcher {self.fetcher!r}, expected one of {FETCHERS}")
        if self.fetcher == "gecko" and not self.api_key:
            raise ConfigurationError("ORACLE_API_KEY is required for the gecko fetcher")
        for name in ("price_ival", "window_size", "gap_size"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.queue_interval < 0:
            raise ConfigurationError("queue interval must be non-negative")
        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be at least 1")
        if self.batch_size < 1 or self.max_queue_depth < 1:
            raise ConfigurationError("batch size and queue depth must be at least 1")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "OracleConfig":
        env = os.environ if environ is None else environ

        hmac_hex = env.get("HMAC_SECRET")
        if not hmac_hex:
            raise ConfigurationError("HMAC_SECRET variable is undefined.")
        hmac_secret = _hex_bytes("HMAC_SECRET", hmac_hex)

        sign_hex = env.get("SIGN_SECRET")
        sign_secret = _hex_bytes("SIGN_SECRET", sign_hex) if sign_hex else None

        kwargs = dict(
            hmac_secret=hmac_secret,
            sign_secret=sign_secret,
            key_path=env.get("ORACLE_KEY_PATH"),
            fetcher=env.get("ORACLE_FETCHER", "gecko"),
            api_host=env.get("ORACLE_API_HOST", DEFAULT_API_HOST),
            api_key=env.get("ORACLE_API_KEY"),
            db_path=env.get("ORACLE_DB_PATH", "data/prices.sqlite"),
            server_host=env.get("SERVER_HOST", "0.0.0.0"),
            server_port=_int(env, "SERVER_PORT", DEFAULT_PORT),
            price_ival=_int(env, "PRICE_IVAL", PRICE_IVAL),
            window_size=_int(env, "WINDOW_SIZE", WINDOW_SIZE),
            gap_size=_int(env, "GAP_SIZE", GAP_SIZE),
            queue_interval=_float(env, "QUEUE_INTERVAL", QUEUE_INTERVAL),
            genesis_stamp=now() - 60 * 60 * 24 * _int(env, "GENESIS_DAYS", GENESIS_DAYS),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )

        if env.get("SCAN_INTERVAL"):
            kwargs["scan_interval"] = _float(env, "SCAN_INTERVAL", 0.0)
        if env.get("PRICE_OVERRIDES"):
            kwargs["overrides"] = load_overrides(env["PRICE_OVERRIDES"])
        if env.get("PRICEGEN_CONFIG"):
            kwargs["gen_config"] = load_gen_config(env["PRICEGEN_CONFIG"])

        return cls(**kwargs)


def load_overrides(path) -> Tuple[PricePoint, ...]:
    """Load a JSON list of {"price", "stamp"} objects that take precedence over stored prices."""
    data = _read_json(path)
    if not isinstance(data, list):
        raise ConfigurationError(f"price overrides in {path} must be a JSON list")
    try:
        return tuple(PricePoint(price=e["price"], stamp=int(e["stamp"])) for e in data)
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"malformed price override in {path}: {e}") from e


def load_gen_config(path) -> PriceGenConfig:
    data = _read_json(path)
    if not isinstance(data, dict):
        raise ConfigurationError(f"simulator config in {path} must be a JSON object")
    try:
        return PriceGenConfig(**data)
    except TypeError as e:
        raise ConfigurationError(f"unknown simulator parameter in {path}: {e}") from e


def _read_json(path):
    try:
        with open(Path(path)) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"cannot read {path}: {e}") from e


def _hex_bytes(name: str, value: str) -> bytes:
    try:
        return bytes.fromhex(value.strip())
    except ValueError as e:
        raise ConfigurationError(f"{name} must be hex encoded") from e


def _int(env, name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _float(env, name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e
