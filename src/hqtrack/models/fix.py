"""Decoded positions and persisted fixes."""

from __future__ import annotations

import math
from enum import StrEnum

from pydantic import Field, field_validator

from hqtrack.models._base import TrackerBaseModel, UtcDatetime


class FrameKind(StrEnum):
    HQ = "hq"
    NMEA = "nmea"
    UNKNOWN = "unknown"


def is_valid_coordinate(lat: float, lon: float) -> bool:
    """Return ``True`` when *lat*/*lon* are finite and inside WGS84 bounds."""
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


class Position(TrackerBaseModel):
    """A single decoded GPS observation, before vehicle and ride assignment.

    Parameters
    ----------
    device_id : str
        Identifier the tracker reported (used for device resolution).
    ts : datetime
        UTC instant of the fix (receipt time when the frame had no usable time).
    lat, lon : float
        Decimal degrees.
    speed_kph : float or None
        Ground speed in km/h, ``None`` when the frame carried none.
    course : float or None
        Heading in degrees.
    kind : FrameKind
        Frame variant the position was decoded from.
    raw : str
        The frame text.
    """

    device_id: str
    ts: UtcDatetime
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    speed_kph: float | None = None
    course: float | None = None
    kind: FrameKind = FrameKind.HQ
    raw: str = ""


class Fix(TrackerBaseModel):
    """A position assigned to a vehicle and a ride."""

    vehicle_id: str
    ride_id: str
    ts: UtcDatetime
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    speed_kph: float | None = None
    course: float | None = None

    @field_validator("lat", "lon")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinate must be finite")
        return value

    @classmethod
    def from_position(cls, position: Position, *, vehicle_id: str, ride_id: str) -> Fix:
        return cls(
            vehicle_id=vehicle_id,
            ride_id=ride_id,
            ts=position.ts,
            lat=position.lat,
            lon=position.lon,
            speed_kph=position.speed_kph,
            course=position.course,
        )
