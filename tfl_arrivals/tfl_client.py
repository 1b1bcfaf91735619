"""
Async TfL Unified API client.

Thin wrapper around httpx. Fetches arrival predictions for one StopPoint
and classifies failures into UpstreamError subclasses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from tfl_arrivals.errors import (
    UpstreamCorrupt,
    UpstreamRejected,
    UpstreamUnavailable,
)
from tfl_arrivals.models import ArrivalSet
from tfl_arrivals.parsing import build_arrival_set, parse_retry_after

logger = logging.getLogger(__name__)

TFL_BASE_URL = "https://api.tfl.gov.uk"
USER_AGENT = "tfl-arrivals/1.0"
DEFAULT_RATE_LIMIT_BACKOFF = 30.0


@dataclass(frozen=True)
class UpstreamCredentials:
    """TfL application credentials and the stop they are used for."""

    stop_id: str
    app_id: str
    app_key: str

    def __repr__(self) -> str:
        return f"UpstreamCredentials(stop_id={self.stop_id!r}, app_id={self.app_id!r})"


class TflClient:
    """Async client for TfL StopPoint arrivals."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        credentials: UpstreamCredentials,
        base_url: str = TFL_BASE_URL,
        timeout: float = 5.0,
        rate_limit_backoff: float = DEFAULT_RATE_LIMIT_BACKOFF,
    ) -> None:
        self._http = http_client
        self._credentials = credentials
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._rate_limit_backoff = rate_limit_backoff

    @property
    def stop_id(self) -> str:
        return self._credentials.stop_id

    def arrivals_url(self) -> str:
        return f"{self._base_url}/StopPoint/{quote(self.stop_id, safe='')}/Arrivals"

    def _params(self) -> dict[str, str]:
        return {
            "app_id": self._credentials.app_id,
            "app_key": self._credentials.app_key,
        }

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "User-Agent": USER_AGENT}

    async def fetch(self) -> ArrivalSet:
        """
        Fetch and parse arrivals for the configured stop.

        Makes exactly one request. Raises UpstreamUnavailable,
        UpstreamRejected or UpstreamCorrupt on failure.
        """
        url = self.arrivals_url()
        try:
            response = await self._http.get(
                url,
                params=self._params(),
                headers=self._headers(),
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("TfL request failed for stop %s: %r", self.stop_id, exc)
            raise UpstreamUnavailable(f"Connection error: {exc!r}") from exc

        status = response.status_code
        if status in (420, 429):
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            if retry_after is None:
                retry_after = self._rate_limit_backoff
            logger.warning(
                "Rate limited by TfL for stop %s, retry after %.1fs",
                self.stop_id,
                retry_after,
            )
            raise UpstreamRejected(
                "Rate limited by TfL", status_code=status, retry_after=retry_after
            )

        if 400 <= status < 500:
            logger.warning("TfL rejected request for stop %s: HTTP %d", self.stop_id, status)
            raise UpstreamRejected(f"TfL returned {status}", status_code=status)

        if status >= 500:
            logger.warning("TfL server error for stop %s: HTTP %d", self.stop_id, status)
            raise UpstreamUnavailable(f"TfL returned {status}", status_code=status)

        if not 200 <= status < 300:
            logger.warning("Unexpected TfL status for stop %s: HTTP %d", self.stop_id, status)
            raise UpstreamCorrupt(f"Unexpected TfL status {status}", status_code=status)

        try:
            body = response.json()
        except ValueError as exc:
            logger.warning("TfL returned invalid JSON for stop %s", self.stop_id)
            raise UpstreamCorrupt("Invalid JSON from TfL", status_code=status) from exc

        try:
            return build_arrival_set(body)
        except UpstreamCorrupt as exc:
            exc.status_code = status
            logger.warning("TfL response for stop %s has wrong shape: %s", self.stop_id, exc)
            raise
