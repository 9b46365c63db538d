# threshold_oracle/server.py
"""
Threshold Price Oracle HTTP server

Endpoints:
  GET /api/quote?ts=<start>&cs=<current>&th=<threshold>   signed threshold quote
  GET /api/price/latest                                   latest known price
  GET /health                                             status and oracle pubkey

Usage:
  python -m threshold_oracle.server [port]
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from threshold_oracle.config import OracleConfig
from threshold_oracle.errors import OracleError, ValidationError
from threshold_oracle.feeds import SimulatedFetcher, build_fetcher
from threshold_oracle.keys import load_signing_key
from threshold_oracle.price import PriceOracle
from threshold_oracle.quote import QuoteSigner
from threshold_oracle.util import now, parse_uint

log = logging.getLogger("thold.server")

VERSION = "v1"


def create_app(config: OracleConfig, oracle: Optional[PriceOracle] = None) -> FastAPI:
    signer = QuoteSigner.from_config(config, load_signing_key(config))

    if oracle is None:
        fetcher = build_fetcher(config)
        if isinstance(fetcher, SimulatedFetcher):
            source = fetcher
        else:
            oracle = PriceOracle(config, fetcher)
            source = oracle
    else:
        fetcher = oracle.fetcher
        source = oracle

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if oracle is not None:
            oracle.start()
        yield
        if oracle is not None:
            await oracle.stop()
            await oracle.queue.close()
            await oracle.fetcher.aclose()
            oracle.store.close()

    app = FastAPI(
        title="Threshold Price Oracle",
        description="Signed commitment/reveal quotes on price threshold crossings",
        version=VERSION,
        lifespan=lifespan,
    )
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET"], allow_headers=["*"])
    app.state.config = config
    app.state.signer = signer
    app.state.oracle = oracle

    @app.get("/api/quote")
    async def get_quote(ts: Optional[str] = None, cs: Optional[str] = None, th: Optional[str] = None):
        curr_stamp = parse_uint(cs)
        if curr_stamp is None:
            curr_stamp = now()
        req_stamp = parse_uint(ts)
        if req_stamp is None:
            req_stamp = curr_stamp
        thold = parse_uint(th)
        if thold is None:
            return PlainTextResponse(f"invalid threshold: {th}", status_code=400)

        try:
            quote = await signer.quote(source, thold, req_stamp, curr_stamp)
        except ValidationError as e:
            return PlainTextResponse(str(e), status_code=400)
        except Exception as e:
            log.exception(f"quote failed for th={thold} ts={req_stamp} cs={curr_stamp}")
            return PlainTextResponse(str(e), status_code=500)
        return JSONResponse(quote.to_dict())

    @app.get("/api/price/latest")
    async def get_latest_price():
        try:
            if oracle is not None:
                point = await oracle.latest_price()
            else:
                point = await fetcher.latest()
        except OracleError as e:
            return PlainTextResponse(str(e), status_code=500)
        if point is None:
            return JSONResponse({"error": "no price available"}, status_code=404)
        return point.to_dict()

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "version": VERSION,
            "fetcher": fetcher.name,
            "pubkey": signer.oracle_pk,
            "polling": oracle.is_running if oracle is not None else False,
        }

    return app


def main():
    config = OracleConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    port = int(sys.argv[1]) if len(sys.argv) > 1 else config.server_port
    app = create_app(config)
    log.info(f"Threshold Price Oracle {VERSION} starting on :{port}")
    log.info(f"  Public key: {app.state.signer.oracle_pk}")
    log.info(f"  Fetcher:    {config.fetcher}")
    uvicorn.run(app, host=config.server_host, port=port)


if __name__ == "__main__":
    main()
