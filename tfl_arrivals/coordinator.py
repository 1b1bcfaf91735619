"""
Fetch coordinator: ties the TfL client and the freshness cache together.

Serves fresh cache hits directly. Otherwise runs one refresh at a time,
shared by every concurrent caller, retries transient failures with
exponential backoff, and falls back to stale data when TfL is down.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from tfl_arrivals.cache import CacheState, FreshnessCache
from tfl_arrivals.errors import (
    ServingError,
    UpstreamError,
    UpstreamRejected,
    UpstreamUnavailable,
)
from tfl_arrivals.models import ArrivalSet
from tfl_arrivals.parsing import compute_backoff
from tfl_arrivals.tfl_client import TflClient

logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    idle = "idle"
    fetching = "fetching"


@dataclass(frozen=True)
class ServedArrivals:
    """Result of FetchCoordinator.get()."""

    arrivals: ArrivalSet
    fetched_at: datetime
    stale: bool = False


class FetchCoordinator:
    """
    Single entry point for the HTTP layer.

    At most one upstream refresh is in flight; callers that need a refresh
    while one is running await the same task instead of starting another.
    """

    def __init__(
        self,
        client: TflClient,
        cache: FreshnessCache,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.5,
        retry_max_delay: float = 4.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._cache = cache
        self._retry_attempts = max(1, retry_attempts)
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._clock = clock
        self._sleep = sleep
        self._pending: Optional[asyncio.Task] = None
        # Set after a rate-limit response; no upstream calls before this instant.
        self._hold_until: Optional[float] = None
        self._hold_status: Optional[int] = None

    @property
    def refresh_state(self) -> RefreshState:
        if self._pending is not None and not self._pending.done():
            return RefreshState.fetching
        return RefreshState.idle

    async def get(self) -> ServedArrivals:
        """
        Return the current arrivals.

        Raises ServingError only when nothing has ever been cached and the
        refresh failed.
        """
        entry = self._cache.read()
        if entry.state == CacheState.fresh:
            return ServedArrivals(arrivals=entry.arrivals, fetched_at=entry.fetched_at)

        if self._pending is None:
            self._pending = asyncio.create_task(self._refresh())
            self._pending.add_done_callback(self._refresh_done)

        # shield: a cancelled caller stops waiting without cancelling the
        # refresh for everyone else.
        return await asyncio.shield(self._pending)

    def _refresh_done(self, task: asyncio.Task) -> None:
        if self._pending is task:
            self._pending = None
        if not task.cancelled():
            # Mark the exception retrieved even if every waiter went away.
            task.exception()

    async def _refresh(self) -> ServedArrivals:
        """One refresh attempt: IDLE -> FETCHING -> SUCCEEDED | FAILED."""
        try:
            arrivals = await self._fetch_with_retry()
        except UpstreamError as exc:
            return self._fallback(exc)

        self._cache.write(arrivals)
        entry = self._cache.read()
        logger.info(
            "Refreshed arrivals for stop %s: %d predictions",
            self._client.stop_id,
            len(arrivals),
        )
        return ServedArrivals(arrivals=arrivals, fetched_at=entry.fetched_at)

    async def _fetch_with_retry(self) -> ArrivalSet:
        held = self._held_error()
        if held is not None:
            logger.info(
                "Skipping TfL call for stop %s: rate-limit hold active",
                self._client.stop_id,
            )
            raise held

        last_error: Optional[UpstreamUnavailable] = None
        for attempt in range(self._retry_attempts):
            if attempt > 0:
                delay = compute_backoff(
                    attempt - 1, self._retry_base_delay, self._retry_max_delay
                )
                logger.info(
                    "TfL unavailable (attempt %d/%d), retrying in %.2fs",
                    attempt,
                    self._retry_attempts,
                    delay,
                )
                await self._sleep(delay)
            try:
                return await self._client.fetch()
            except UpstreamUnavailable as exc:
                last_error = exc
            except UpstreamError as exc:
                # Rejected / Corrupt end the refresh immediately.
                if exc.retry_after is not None:
                    self._hold_until = self._clock() + exc.retry_after
                    self._hold_status = exc.status_code
                raise

        raise last_error

    def _held_error(self) -> Optional[UpstreamError]:
        """A new rejection carrying the time left on the hold, or None."""
        if self._hold_until is None:
            return None
        remaining = self._hold_until - self._clock()
        if remaining <= 0:
            self._hold_until = None
            self._hold_status = None
            return None
        return UpstreamRejected(
            "rate-limit hold active",
            status_code=self._hold_status,
            retry_after=remaining,
        )

    def _fallback(self, exc: UpstreamError) -> ServedArrivals:
        """Serve stale data if any fetch ever succeeded, else raise ServingError."""
        entry = self._cache.read()
        if entry.state != CacheState.empty:
            logger.warning(
                "Serving stale arrivals for stop %s (fetched %s) after %s failure",
                self._client.stop_id,
                entry.fetched_at.isoformat(),
                exc.kind.value,
            )
            return ServedArrivals(
                arrivals=entry.arrivals, fetched_at=entry.fetched_at, stale=True
            )

        logger.error(
            "No cached arrivals for stop %s and TfL %s: %s",
            self._client.stop_id,
            exc.kind.value,
            exc,
        )
        raise ServingError.from_upstream(exc) from exc
