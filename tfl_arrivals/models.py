"""
Pydantic models for tfl-arrivals.

Internal data model (ArrivalPrediction, ArrivalSet) plus the JSON response
models served by the HTTP layer.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class UpstreamErrorKind(str, Enum):
    unavailable = "unavailable"
    rejected = "rejected"
    corrupt = "corrupt"


class ArrivalPrediction(BaseModel):
    """One predicted vehicle arrival at the configured stop."""

    model_config = ConfigDict(frozen=True)

    line: str
    destination: str
    platform: Optional[str] = None
    direction: Optional[str] = None
    seconds_to_arrival: int = Field(ge=0)
    expected_arrival: Optional[datetime] = None
    vehicle_id: Optional[str] = None

    def sort_key(self) -> tuple[int, str, str]:
        return (self.seconds_to_arrival, self.line, self.destination)


class ArrivalSet(BaseModel):
    """
    Ordered, immutable set of predictions from one upstream response.

    Always sorted by time-to-arrival, then line, then destination.
    """

    model_config = ConfigDict(frozen=True)

    arrivals: tuple[ArrivalPrediction, ...] = ()

    @classmethod
    def from_predictions(cls, predictions) -> "ArrivalSet":
        return cls(arrivals=tuple(sorted(predictions, key=ArrivalPrediction.sort_key)))

    def filter_line(self, line: str) -> "ArrivalSet":
        """Return a new set holding only predictions for `line` (case-insensitive)."""
        wanted = line.strip().lower()
        return ArrivalSet(
            arrivals=tuple(a for a in self.arrivals if a.line.lower() == wanted)
        )

    def __len__(self) -> int:
        return len(self.arrivals)


# ---------------------------------------------------------------------------
# HTTP response models
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ArrivalOut(_CamelModel):
    """A single upcoming arrival as served to local consumers."""

    line: str = Field(description="Line / route name, e.g. '73'")
    destination: str = Field(description="Destination shown on the vehicle")
    platform: Optional[str] = Field(default=None, description="Stop letter or platform name")
    direction: Optional[str] = Field(default=None, description="inbound / outbound")
    seconds_to_arrival: int = Field(ge=0, description="Seconds until arrival, as of fetchedAt")
    expected_arrival: Optional[datetime] = Field(
        default=None, description="Predicted arrival time (ISO 8601)"
    )
    vehicle_id: Optional[str] = Field(default=None, description="Vehicle registration")

    @classmethod
    def from_prediction(cls, prediction: ArrivalPrediction) -> "ArrivalOut":
        return cls.model_validate(prediction.model_dump())


class ArrivalsResponse(_CamelModel):
    """Top-level response for GET /v1/arrivals."""

    stop_id: str
    stale: bool = Field(description="True when upstream is failing and this is last known good data")
    fetched_at: datetime = Field(description="When the data was fetched from upstream")
    arrivals: list[ArrivalOut]


class ErrorResponse(BaseModel):
    """Body returned with 502 / 503."""

    error: str
    message: str
