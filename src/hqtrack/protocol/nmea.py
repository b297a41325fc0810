"""NMEA 0183 RMC sentences (``$GPRMC``, ``$GNRMC``, ...).

NMEA carries no device identifier, so a sentence is only usable on a
connection whose device already identified itself with an HQ frame.
"""

from __future__ import annotations

from datetime import datetime

from hqtrack.exceptions import DecodeError
from hqtrack.models.fix import FrameKind, Position, is_valid_coordinate
from hqtrack.protocol.normalize import dm_to_decimal, knots_to_kph, nmea_checksum, parse_fix_timestamp, safe_float


def verify_sentence(sentence: str) -> str:
    """Return the body between ``$`` and ``*``, checking the checksum when present."""
    text = sentence.strip()
    if not text.startswith("$"):
        raise DecodeError("not an NMEA sentence", frame=sentence)
    body, star, checksum = text[1:].partition("*")
    if star and checksum.strip().upper() != nmea_checksum(body):
        raise DecodeError("checksum mismatch", frame=sentence)
    return body


class NmeaDecoder:
    """Decoder for recommended-minimum (RMC) sentences."""

    kind = FrameKind.NMEA

    def decode(self, frame: str, *, received_at: datetime, device_hint: str | None = None) -> Position:
        fields = verify_sentence(frame).split(",")
        if len(fields[0]) != 5 or not fields[0].endswith("RMC"):
            raise DecodeError(f"unsupported sentence {fields[0]!r}", frame=frame)
        if len(fields) < 10:
            raise DecodeError("truncated frame", frame=frame)
        if not device_hint:
            raise DecodeError("unidentified device", frame=frame)
        if fields[2] != "A":
            raise DecodeError("no gps fix", frame=frame)

        lat = dm_to_decimal(fields[3], fields[4])
        lon = dm_to_decimal(fields[5], fields[6])
        if not is_valid_coordinate(lat, lon):
            raise DecodeError("coordinate out of range", frame=frame)

        # RMC time may carry fractional seconds ("123519.00").
        hhmmss = fields[1].partition(".")[0]
        return Position(
            device_id=device_hint,
            ts=parse_fix_timestamp(hhmmss, fields[9], fallback=received_at),
            lat=lat,
            lon=lon,
            speed_kph=knots_to_kph(fields[7]),
            course=safe_float(fields[8]),
            kind=FrameKind.NMEA,
            raw=frame,
        )
