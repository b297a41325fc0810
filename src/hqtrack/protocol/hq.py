"""HQ text protocol (``*HQ,<id>,<ver>,<hhmmss>,<A|V>,<lat>,<N|S>,<lon>,<E|W>,<knots>,<course>,<ddmmyy>,...#``)."""

from __future__ import annotations

from datetime import datetime

from hqtrack.exceptions import DecodeError
from hqtrack.models.fix import FrameKind, Position, is_valid_coordinate
from hqtrack.protocol.normalize import dm_to_decimal, knots_to_kph, parse_fix_timestamp, safe_float

_F_MARKER = 0
_F_DEVICE = 1
_F_TIME = 3
_F_FIX = 4
_F_LAT = 5
_F_LAT_HEMI = 6
_F_LON = 7
_F_LON_HEMI = 8
_F_SPEED = 9
_F_COURSE = 10
_F_DATE = 11

# Fields up to and including the longitude hemisphere are mandatory.
_MIN_FIELDS = _F_LON_HEMI + 1


def split_hq_fields(frame: str) -> list[str]:
    """Strip the ``*`` prefix and ``#`` suffix and split on commas."""
    body = frame.strip().lstrip("*")
    if body.endswith("#"):
        body = body[:-1]
    return body.split(",")


def _field(fields: list[str], index: int) -> str | None:
    return fields[index] if index < len(fields) else None


class HqDecoder:
    """Decoder for HQ frames."""

    kind = FrameKind.HQ

    def decode(self, frame: str, *, received_at: datetime, device_hint: str | None = None) -> Position:
        fields = split_hq_fields(frame)
        if fields[_F_MARKER] != "HQ":
            raise DecodeError("not an HQ frame", frame=frame)
        device_id = _field(fields, _F_DEVICE)
        device_id = device_id.strip() if device_id is not None else None
        if len(fields) < _MIN_FIELDS:
            raise DecodeError("truncated frame", frame=frame, device_id=device_id)
        if fields[_F_FIX] != "A":
            raise DecodeError("no gps fix", frame=frame, device_id=device_id)

        lat = dm_to_decimal(fields[_F_LAT], fields[_F_LAT_HEMI])
        lon = dm_to_decimal(fields[_F_LON], fields[_F_LON_HEMI])
        if not is_valid_coordinate(lat, lon):
            raise DecodeError("coordinate out of range", frame=frame, device_id=device_id)

        return Position(
            device_id=device_id or "",
            ts=parse_fix_timestamp(fields[_F_TIME], _field(fields, _F_DATE), fallback=received_at),
            lat=lat,
            lon=lon,
            speed_kph=knots_to_kph(_field(fields, _F_SPEED)),
            course=safe_float(_field(fields, _F_COURSE)),
            kind=FrameKind.HQ,
            raw=frame,
        )
