"""
FastAPI application for tfl-arrivals.

Lifespan manages httpx client, TfL client, cache, and fetch coordinator.
Routes: /v1/arrivals (alias /next-bus), /health.
Optional API key authentication on the arrivals endpoints.
"""

from __future__ import annotations

import logging
import math
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Response, Security
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader

from tfl_arrivals.cache import FreshnessCache
from tfl_arrivals.config import AppConfig, load_config
from tfl_arrivals.coordinator import FetchCoordinator
from tfl_arrivals.errors import ServingError
from tfl_arrivals.models import (
    ArrivalOut,
    ArrivalsResponse,
    ErrorResponse,
    UpstreamErrorKind,
)
from tfl_arrivals.tfl_client import TflClient, UpstreamCredentials

logger = logging.getLogger(__name__)

# Global references set during lifespan
_coordinator: Optional[FetchCoordinator] = None
_config: Optional[AppConfig] = None


def configure_logging() -> None:
    log_level = os.environ.get("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_coordinator(
    config: AppConfig, http_client: httpx.AsyncClient
) -> FetchCoordinator:
    """Wire TfL client, cache and coordinator from config."""
    tfl = TflClient(
        http_client=http_client,
        credentials=UpstreamCredentials(
            stop_id=config.stop_id,
            app_id=config.app_id,
            app_key=config.app_key,
        ),
        base_url=config.tfl_base_url,
        timeout=config.request_timeout,
        rate_limit_backoff=config.rate_limit_backoff,
    )
    cache = FreshnessCache(freshness_window=config.freshness_window)
    return FetchCoordinator(
        client=tfl,
        cache=cache,
        retry_attempts=config.retry_attempts,
        retry_base_delay=config.retry_base_delay,
        retry_max_delay=config.retry_max_delay,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: load config (unless preloaded), create HTTP client and coordinator."""
    global _coordinator, _config

    configure_logging()

    if _config is None:
        _config = load_config()
    logger.info(
        "Loaded config: stop=%s, freshness_window=%.0fs, retry_attempts=%d",
        _config.stop_id,
        _config.freshness_window,
        _config.retry_attempts,
    )

    async with httpx.AsyncClient() as http_client:
        _coordinator = build_coordinator(_config, http_client)
        logger.info("TfL arrivals proxy ready")
        yield

    _coordinator = None
    _config = None


app = FastAPI(
    title="TfL Arrivals API",
    version="1.0.0",
    description="""
Republishes live TfL arrival predictions for one preconfigured stop.

## Features

- **Cached**: upstream is called at most once per freshness window
- **Coalesced**: concurrent requests share a single upstream call
- **Resilient**: serves last known good data (flagged `stale`) when TfL is unreachable

## Authentication

Optional API key via `X-API-Key` header. The `/health` endpoint is always unauthenticated.
    """.strip(),
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "arrivals",
            "description": "Arrival predictions for the configured stop",
        },
        {
            "name": "health",
            "description": "Service health check",
        },
    ],
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Authentication dependency
# ---------------------------------------------------------------------------

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> None:
    """Check API key if one is configured."""
    if _config is None or _config.api_key is None:
        return  # No auth configured
    if api_key != _config.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _error_response(exc: ServingError) -> JSONResponse:
    """Map a ServingError to 503/502 without leaking upstream details."""
    headers = {"Cache-Control": "no-store"}
    if exc.kind == UpstreamErrorKind.unavailable or exc.rate_limited:
        body = ErrorResponse(
            error="upstream_unavailable",
            message="Arrival data is temporarily unavailable, try again shortly",
        )
        if exc.retry_after is not None:
            headers["Retry-After"] = str(math.ceil(exc.retry_after))
        status_code = 503
    else:
        body = ErrorResponse(
            error="upstream_error",
            message="The transit data provider returned an unusable response",
        )
        status_code = 502
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    tags=["health"],
    summary="Health check",
    response_description="Service is healthy",
)
async def health():
    """
    Health check endpoint for monitoring and container health checks.

    Always returns HTTP 200. No authentication required.
    """
    return {"status": "healthy"}


@app.get(
    "/next-bus",
    response_model=ArrivalsResponse,
    dependencies=[Depends(verify_api_key)],
    include_in_schema=False,
)
@app.get(
    "/v1/arrivals",
    response_model=ArrivalsResponse,
    dependencies=[Depends(verify_api_key)],
    tags=["arrivals"],
    summary="Get arrivals",
    response_description="Upcoming arrivals, soonest first",
    responses={
        200: {"description": "Fresh data, or last known good data flagged `stale`"},
        502: {
            "model": ErrorResponse,
            "description": "TfL returned an unusable response and nothing is cached",
        },
        503: {
            "model": ErrorResponse,
            "description": "TfL is unreachable or rate limiting and nothing is cached",
        },
    },
)
async def get_arrivals(
    response: Response,
    route: Optional[str] = Query(
        default=None, description="Only return arrivals for this line (case-insensitive)"
    ),
):
    """
    Return upcoming arrivals at the configured stop.

    Ordered by `secondsToArrival`, then line, then destination.
    `stale: true` means TfL is failing and this is the last successful fetch.
    """
    if _coordinator is None or _config is None:
        raise HTTPException(status_code=503, detail="Service not ready")

    try:
        served = await _coordinator.get()
    except ServingError as exc:
        return _error_response(exc)

    arrival_set = served.arrivals
    if route:
        arrival_set = arrival_set.filter_line(route)

    response.headers["X-Cache-Status"] = "stale" if served.stale else "fresh"
    return ArrivalsResponse(
        stop_id=_config.stop_id,
        stale=served.stale,
        fetched_at=served.fetched_at,
        arrivals=[ArrivalOut.from_prediction(a) for a in arrival_set.arrivals],
    )
