"""Data models for hqtrack records."""

from hqtrack.models._base import TrackerBaseModel, UtcDatetime, ensure_utc, format_utc
from hqtrack.models.fix import Fix, FrameKind, Position, is_valid_coordinate
from hqtrack.models.record import SinkRecord
from hqtrack.models.vehicle import ActiveRide, Ride, Vehicle

__all__ = [
    "ActiveRide",
    "Fix",
    "FrameKind",
    "Position",
    "Ride",
    "SinkRecord",
    "TrackerBaseModel",
    "UtcDatetime",
    "Vehicle",
    "ensure_utc",
    "format_utc",
    "is_valid_coordinate",
]
