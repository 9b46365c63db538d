# threshold_oracle/crypto.py
"""
Hashing and secp256k1 helpers used by the quote protocol.

Signatures are ECDSA over a 32-byte digest, RFC 6979 deterministic nonces,
DER encoded with a low S value.
"""

import hashlib
import hmac

from cryptography.hazmat.primitives import hashes
from ecdsa import SECP256k1, BadSignatureError, MalformedPointError, SigningKey, VerifyingKey
from ecdsa.der import UnexpectedDER
from ecdsa.util import sigdecode_der, sigencode_der_canonize

from threshold_oracle.errors import CryptoError


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def ripemd160(data: bytes) -> bytes:
    h = hashes.Hash(hashes.RIPEMD160())
    h.update(data)
    return h.finalize()


def hash160(*data: bytes) -> str:
    """RIPEMD160(SHA256(data)) as hex."""
    return ripemd160(sha256(b"".join(data))).hex()


def hmac256(secret: bytes, *data: bytes) -> bytes:
    return hmac.new(secret, b"".join(data), hashlib.sha256).digest()


def get_pubkey(sk: SigningKey) -> str:
    """Compressed public key (33 bytes) as hex."""
    return sk.get_verifying_key().to_string("compressed").hex()


def sign_ecdsa(sk: SigningKey, digest_hex: str) -> str:
    try:
        digest = bytes.fromhex(digest_hex)
        sig = sk.sign_digest_deterministic(
            digest,
            hashfunc=hashlib.sha256,
            sigencode=sigencode_der_canonize,
        )
    except Exception as e:
        raise CryptoError(f"signing failed: {e}") from e
    return sig.hex()


def verify_ecdsa(pubkey_hex: str, digest_hex: str, sig_hex: str) -> bool:
    try:
        vk = VerifyingKey.from_string(bytes.fromhex(pubkey_hex), curve=SECP256k1)
        return vk.verify_digest(bytes.fromhex(sig_hex), bytes.fromhex(digest_hex), sigdecode=sigdecode_der)
    except (BadSignatureError, MalformedPointError, UnexpectedDER, ValueError):
        return False
