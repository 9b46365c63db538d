# threshold_oracle/keys/__init__.py
"""
secp256k1 signing key for the oracle.

SIGN_SECRET from the configuration wins. Without it, a key is generated once
and persisted next to this file (or at ORACLE_KEY_PATH) so that consumers can
pin the oracle's public key across restarts.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from ecdsa import SECP256k1, SigningKey

from threshold_oracle.errors import ConfigurationError

log = logging.getLogger("thold.keys")

KEYS_DIR = Path(__file__).parent
KEY_PATH = KEYS_DIR / "oracle_secp256k1.key"


def load_or_create_key(key_path: Optional[Path] = None) -> SigningKey:
    """Load existing secp256k1 key or generate a new persistent one."""
    path = Path(key_path) if key_path else KEY_PATH
    if path.exists():
        sk_hex = path.read_text().strip()
        return _from_secret(bytes.fromhex(sk_hex), str(path))

    sk = SigningKey.generate(curve=SECP256k1)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(sk.to_string().hex())
    os.chmod(str(path), 0o600)
    log.info(f"generated new oracle key at {path}")
    return sk


def load_signing_key(config) -> SigningKey:
    if config.sign_secret:
        return _from_secret(config.sign_secret, "SIGN_SECRET")
    return load_or_create_key(config.key_path)


def _from_secret(secret: bytes, origin: str) -> SigningKey:
    try:
        return SigningKey.from_string(secret, curve=SECP256k1)
    except Exception as e:
        raise ConfigurationError(f"invalid secp256k1 secret in {origin}: {e}") from e
