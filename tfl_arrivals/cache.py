"""
Single-entry freshness cache for the configured stop.

Holds the last successfully fetched ArrivalSet and when it was fetched.
FRESH/STALE is derived from the entry's age at read time.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from tfl_arrivals.models import ArrivalSet


class CacheState(str, Enum):
    empty = "empty"
    fresh = "fresh"
    stale = "stale"


@dataclass(frozen=True)
class CacheEntry:
    """Point-in-time snapshot of the cache."""

    arrivals: Optional[ArrivalSet]
    stored_at: Optional[float]  # clock() value when stored
    fetched_at: Optional[datetime]  # wall-clock UTC when stored
    state: CacheState

    def age(self, now: Optional[float] = None) -> Optional[float]:
        """Seconds since this entry was stored, None when empty."""
        if self.stored_at is None:
            return None
        if now is None:
            now = time.monotonic()
        return now - self.stored_at


EMPTY_ENTRY = CacheEntry(arrivals=None, stored_at=None, fetched_at=None, state=CacheState.empty)


class FreshnessCache:
    """
    In-memory cache holding at most one ArrivalSet.

    - read(): consistent snapshot, never blocks on an upstream fetch.
    - write(): replaces the stored set and timestamp together.

    Entries are only ever replaced by a newer successful fetch.
    """

    def __init__(
        self,
        freshness_window: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = freshness_window
        self._clock = clock  # overridable for testing
        self._lock = threading.Lock()
        self._stored: Optional[tuple[ArrivalSet, float, datetime]] = None

    @property
    def freshness_window(self) -> float:
        return self._window

    def read(self) -> CacheEntry:
        with self._lock:
            stored = self._stored
        if stored is None:
            return EMPTY_ENTRY

        arrivals, stored_at, fetched_at = stored
        age = self._clock() - stored_at
        state = CacheState.fresh if age < self._window else CacheState.stale
        return CacheEntry(
            arrivals=arrivals, stored_at=stored_at, fetched_at=fetched_at, state=state
        )

    def write(self, arrivals: ArrivalSet, timestamp: Optional[float] = None) -> None:
        if timestamp is None:
            timestamp = self._clock()
        stored = (arrivals, timestamp, datetime.now(timezone.utc))
        with self._lock:
            self._stored = stored
