"""
Error types for tfl-arrivals.

Upstream errors are raised by the TfL client and absorbed by the fetch
coordinator. ServingError is the only error the HTTP layer ever sees.
"""

from __future__ import annotations

from typing import Optional

from tfl_arrivals.models import UpstreamErrorKind


class UpstreamError(Exception):
    """Raised when a TfL API call fails."""

    kind: UpstreamErrorKind = UpstreamErrorKind.unavailable

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def rate_limited(self) -> bool:
        return self.status_code in (420, 429)


class UpstreamUnavailable(UpstreamError):
    """Network failure, timeout or 5xx. Transient."""

    kind = UpstreamErrorKind.unavailable


class UpstreamRejected(UpstreamError):
    """4xx: bad credentials, unknown stop, rate limited."""

    kind = UpstreamErrorKind.rejected


class UpstreamCorrupt(UpstreamError):
    """Response body does not match the expected schema."""

    kind = UpstreamErrorKind.corrupt


class ServingError(Exception):
    """No usable arrival data: upstream failed and nothing is cached."""

    def __init__(
        self,
        kind: UpstreamErrorKind,
        rate_limited: bool = False,
        retry_after: Optional[float] = None,
    ):
        super().__init__(f"no cached arrivals and upstream {kind.value}")
        self.kind = kind
        self.rate_limited = rate_limited
        self.retry_after = retry_after

    @classmethod
    def from_upstream(cls, exc: UpstreamError) -> "ServingError":
        return cls(exc.kind, rate_limited=exc.rate_limited, retry_after=exc.retry_after)
