"""
Threshold Price Oracle

Keeps an interval-aligned BTC price history and issues signed quotes that
prove whether the price crossed a threshold between two timestamps.
"""

from threshold_oracle.config import OracleConfig
from threshold_oracle.errors import (
    ConfigurationError,
    CryptoError,
    FetchError,
    OracleError,
    QuoteError,
    StorageError,
    ValidationError,
)
from threshold_oracle.models import PricePoint, Priority, Quote, StopPriceData, StopPriceQuery
from threshold_oracle.price import PriceOracle
from threshold_oracle.quote import QuoteSigner, verify_quote
from threshold_oracle.request_queue import RequestQueue
from threshold_oracle.scanner import PriceScanner
from threshold_oracle.simulator import PriceGenConfig, PriceSimulator
from threshold_oracle.store import PriceStore

__version__ = "1.0.0"

__all__ = [
    "ConfigurationError",
    "CryptoError",
    "FetchError",
    "OracleConfig",
    "OracleError",
    "PriceGenConfig",
    "PriceOracle",
    "PricePoint",
    "PriceScanner",
    "PriceSimulator",
    "PriceStore",
    "Priority",
    "Quote",
    "QuoteError",
    "QuoteSigner",
    "RequestQueue",
    "StopPriceData",
    "StopPriceQuery",
    "StorageError",
    "ValidationError",
    "verify_quote",
]
