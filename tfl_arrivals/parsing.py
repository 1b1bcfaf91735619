"""
Pure parsing helpers for TfL arrival data.

No I/O. Turns raw StopPoint/{id}/Arrivals records into ArrivalPrediction
objects and holds the small header/backoff calculations the client and
coordinator share.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tfl_arrivals.errors import UpstreamCorrupt
from tfl_arrivals.models import ArrivalPrediction, ArrivalSet

logger = logging.getLogger(__name__)


class TflArrivalRecord(BaseModel):
    """The subset of a TfL Prediction record that we rely on."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    line_name: str = Field(alias="lineName", min_length=1)
    destination_name: str = Field(alias="destinationName", min_length=1)
    time_to_station: int = Field(alias="timeToStation")
    platform_name: Optional[str] = Field(default=None, alias="platformName")
    direction: Optional[str] = None
    vehicle_id: Optional[str] = Field(default=None, alias="vehicleId")
    expected_arrival: Optional[str] = Field(default=None, alias="expectedArrival")


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp, assuming UTC when no offset is given."""
    if not raw:
        return None
    try:
        ts = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def parse_arrival_record(raw: Any) -> Optional[ArrivalPrediction]:
    """
    Map one upstream record to an ArrivalPrediction.

    Returns None when the record is not an object or lacks a required field.
    """
    if not isinstance(raw, dict):
        return None
    try:
        record = TflArrivalRecord.model_validate(raw)
    except ValidationError:
        return None

    return ArrivalPrediction(
        line=record.line_name,
        destination=record.destination_name,
        platform=_blank_to_none(record.platform_name),
        direction=_blank_to_none(record.direction),
        seconds_to_arrival=max(record.time_to_station, 0),
        expected_arrival=parse_timestamp(record.expected_arrival),
        vehicle_id=_blank_to_none(record.vehicle_id),
    )


def build_arrival_set(body: Any) -> ArrivalSet:
    """
    Build a sorted ArrivalSet from a decoded response body.

    Raises UpstreamCorrupt if the body is not a JSON array. Individual bad
    records are dropped.
    """
    if not isinstance(body, list):
        raise UpstreamCorrupt(
            f"Expected a JSON array of predictions, got {type(body).__name__}"
        )

    predictions = []
    for raw in body:
        prediction = parse_arrival_record(raw)
        if prediction is None:
            logger.debug("Dropping malformed arrival record: %r", raw)
            continue
        predictions.append(prediction)

    return ArrivalSet.from_predictions(predictions)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header (delta-seconds or HTTP-date) into seconds."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    delta = parsed - datetime.now(timezone.utc)
    return max(0.0, delta.total_seconds())


def compute_backoff(attempt: int, base: float, maximum: float) -> float:
    """Delay before retry number `attempt + 1`: base doubled per attempt, capped."""
    return min(maximum, base * (2**attempt))
