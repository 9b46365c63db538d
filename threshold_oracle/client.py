# threshold_oracle/client.py
"""
Threshold oracle reference client.

Requests a quote from an oracle server and checks it without trusting the
server's database:
  1. recompute req_id from the disclosed fields
  2. verify req_sig against the oracle public key
  3. for an expired quote, check hash160(thold_key) == thold_hash

Usage:
  python -m threshold_oracle.client http://127.0.0.1:8082 --th 40000 [--ts STAMP] [--cs STAMP] [--pubkey HEX]
"""

import argparse
import sys
from typing import Optional

import requests

from threshold_oracle.config import DEFAULT_DOMAIN
from threshold_oracle.models import Quote
from threshold_oracle.quote import verify_quote

TIMEOUT = 15


def fetch_quote(
    base_url: str,
    thold_price: int,
    start_stamp: Optional[int] = None,
    curr_stamp: Optional[int] = None,
    session: Optional[requests.Session] = None,
) -> Quote:
    params = {"th": thold_price}
    if start_stamp is not None:
        params["ts"] = start_stamp
    if curr_stamp is not None:
        params["cs"] = curr_stamp

    http = session or requests
    resp = http.get(f"{base_url.rstrip('/')}/api/quote", params=params, timeout=TIMEOUT)
    if resp.status_code != 200:
        raise RuntimeError(f"oracle returned {resp.status_code}: {resp.text}")
    return Quote.from_dict(resp.json())


def resolve_quote(
    base_url: str,
    thold_price: int,
    start_stamp: Optional[int] = None,
    curr_stamp: Optional[int] = None,
    expected_pk: Optional[str] = None,
    label: str = DEFAULT_DOMAIN,
    session: Optional[requests.Session] = None,
) -> Quote:
    quote = fetch_quote(base_url, thold_price, start_stamp, curr_stamp, session)
    if not verify_quote(quote, label, expected_pk):
        raise RuntimeError("Quote verification failed")
    return quote


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Fetch and verify a threshold quote")
    parser.add_argument("url", help="oracle base url, e.g. http://127.0.0.1:8082")
    parser.add_argument("--th", type=int, required=True, help="threshold price")
    parser.add_argument("--ts", type=int, default=None, help="start stamp")
    parser.add_argument("--cs", type=int, default=None, help="current stamp")
    parser.add_argument("--pubkey", default=None, help="expected oracle public key (hex)")
    parser.add_argument("--label", default=DEFAULT_DOMAIN, help="quote domain label")
    args = parser.parse_args(argv)

    print("=" * 80)
    print("THRESHOLD ORACLE CLIENT v1")
    print("=" * 80)

    try:
        quote = resolve_quote(args.url, args.th, args.ts, args.cs, args.pubkey, args.label)
    except (requests.RequestException, RuntimeError, KeyError, ValueError) as e:
        print(f"  ✗ Quote failed: {e}")
        return 1

    print(f"  Oracle:     {quote.oracle_pk}")
    print(f"  Start:      {quote.quote_price} at {quote.quote_stamp}")
    print(f"  Close:      {quote.curr_price} at {quote.curr_stamp}")
    print(f"  Threshold:  {quote.thold_price}")
    print(f"  Commitment: {quote.thold_hash}")
    if quote.is_expired:
        print(f"  Stopped:    {quote.stop_price} at {quote.stop_stamp}")
        print(f"  Revealed:   {quote.thold_key}")
    else:
        print("  Stopped:    not reached")
    print(f"  Request id: {quote.req_id}")
    print("  ✓ Signature: VALID")
    return 0


if __name__ == "__main__":
    sys.exit(main())
