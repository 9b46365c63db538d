# threshold_oracle/quote.py
"""
Threshold quotes: commitment and reveal over a price trajectory.

For a (start price, start stamp, threshold) triple the oracle derives a secret

    secret = HMAC-SHA256(hmac_secret, label | be4(price) | be4(stamp) | be4(thold))

and always publishes its commitment, thold_hash = hash160(secret). The secret
itself (thold_key) is only revealed once the price has been seen at or below
the threshold. The same triple always yields the same secret, so repeated
quotes for it are linkable to one commitment.

Every quote is bound by req_id, the SHA-256 of a fixed-order JSON preimage,
and signed with the oracle's secp256k1 key. Anyone holding the oracle public
key can check a quote with verify_quote().
"""

import dataclasses
import json
import logging
from typing import Optional

from ecdsa import SigningKey

from threshold_oracle.config import DEFAULT_DOMAIN
from threshold_oracle.crypto import get_pubkey, hash160, hmac256, sha256, sign_ecdsa, verify_ecdsa
from threshold_oracle.errors import ValidationError
from threshold_oracle.models import Quote, StopPriceData, StopPriceQuery
from threshold_oracle.util import now, round_half_up

log = logging.getLogger("thold.quote")

UINT32_MAX = 0xFFFFFFFF


def _num(value):
    """Integral floats become ints so the JSON preimage is the same for 100 and 100.0."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _be4(name: str, value) -> bytes:
    n = value if isinstance(value, int) else round_half_up(value)
    if not 0 <= n <= UINT32_MAX:
        raise ValidationError(f"{name} {value} does not fit in 4 bytes")
    return n.to_bytes(4, "big")


def get_threshold_key(
    secret: bytes,
    price,
    stamp: int,
    thold: int,
    label: str = DEFAULT_DOMAIN,
) -> bytes:
    return hmac256(
        secret,
        label.encode("utf-8"),
        _be4("price", price),
        _be4("stamp", stamp),
        _be4("threshold", thold),
    )


def serialize_preimage(quote: Quote, label: str = DEFAULT_DOMAIN) -> bytes:
    preimage = [
        label,
        quote.oracle_pk,
        _num(quote.curr_price),
        quote.curr_stamp,
        _num(quote.quote_price),
        quote.quote_stamp,
        _num(quote.stop_price),
        quote.stop_stamp,
        quote.thold_hash,
        quote.thold_key,
        quote.thold_price,
    ]
    return json.dumps(preimage, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def get_request_id(quote: Quote, label: str = DEFAULT_DOMAIN) -> str:
    return sha256(serialize_preimage(quote, label)).hex()


def build_quote(
    sk: SigningKey,
    hmac_secret: bytes,
    data: StopPriceData,
    thold_price: int,
    label: str = DEFAULT_DOMAIN,
) -> Quote:
    secret = get_threshold_key(hmac_secret, data.start_price, data.start_stamp, thold_price, label)
    is_expired = data.stop_price is not None

    quote = Quote(
        oracle_pk=get_pubkey(sk),
        curr_price=_num(data.close_price),
        curr_stamp=data.close_stamp,
        quote_price=_num(data.start_price),
        quote_stamp=data.start_stamp,
        stop_price=_num(data.stop_price),
        stop_stamp=data.stop_stamp,
        thold_price=thold_price,
        thold_hash=hash160(secret),
        thold_key=secret.hex() if is_expired else None,
        is_expired=is_expired,
    )
    req_id = get_request_id(quote, label)
    return dataclasses.replace(quote, req_id=req_id, req_sig=sign_ecdsa(sk, req_id))


def verify_quote(quote: Quote, label: str = DEFAULT_DOMAIN, expected_pk: Optional[str] = None) -> bool:
    if expected_pk is not None and quote.oracle_pk != expected_pk:
        return False
    if quote.is_expired != (quote.stop_price is not None):
        return False
    if get_request_id(quote, label) != quote.req_id:
        return False
    if not verify_ecdsa(quote.oracle_pk, quote.req_id, quote.req_sig):
        return False
    if quote.is_expired:
        if quote.thold_key is None:
            return False
        try:
            key = bytes.fromhex(quote.thold_key)
        except ValueError:
            return False
        return hash160(key) == quote.thold_hash
    return quote.thold_key is None


class QuoteSigner:
    """Produces signed quotes from any source exposing get_stop_price()."""

    def __init__(self, signing_key: SigningKey, hmac_secret: bytes, domain_label: str = DEFAULT_DOMAIN):
        self._sk = signing_key
        self._hmac_secret = hmac_secret
        self.domain_label = domain_label
        self.oracle_pk = get_pubkey(signing_key)

    @classmethod
    def from_config(cls, config, signing_key: SigningKey) -> "QuoteSigner":
        return cls(signing_key, config.hmac_secret, config.domain_label)

    async def quote(
        self,
        source,
        thold_price: int,
        req_stamp: int,
        curr_stamp: Optional[int] = None,
    ) -> Quote:
        curr_stamp = now() if curr_stamp is None else curr_stamp
        if isinstance(thold_price, bool) or not isinstance(thold_price, int):
            raise ValidationError(f"invalid threshold: {thold_price!r}")
        _be4("threshold", thold_price)

        # Never query the future.
        query_stamp = min(req_stamp, curr_stamp)
        data = await source.get_stop_price(
            StopPriceQuery(start_stamp=query_stamp, thold_price=thold_price, curr_stamp=curr_stamp)
        )
        quote = build_quote(self._sk, self._hmac_secret, data, thold_price, self.domain_label)
        log.info(
            f"quote {quote.req_id[:16]} thold={thold_price} start={data.start_price}@{data.start_stamp} "
            f"expired={quote.is_expired}"
        )
        return quote
