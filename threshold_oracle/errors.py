# threshold_oracle/errors.py
"""
Error taxonomy for the threshold oracle.

Lookups that find nothing return None or an empty list. Only the quote path
turns a missing price point into a hard QuoteError.
"""


class OracleError(Exception):
    """Base class for every error raised by the oracle core."""


class ConfigurationError(OracleError):
    """Bad configuration or simulator parameters. Fatal at construction."""


class StorageError(OracleError):
    """The backing price store failed."""


class FetchError(OracleError):
    """The upstream price feed failed or returned something unusable."""


class ValidationError(OracleError):
    """A malformed query: inverted range, out-of-bound threshold and so on."""


class QuoteError(OracleError):
    """A quote could not be produced, usually for lack of a price point."""


class CryptoError(OracleError):
    """Signing failed. Should not happen with valid key material."""
