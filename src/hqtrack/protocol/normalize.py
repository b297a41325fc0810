"""Normalization helpers.

Centralizes defensive parsing of tracker field values. Every helper
returns ``None`` or NaN for unusable input instead of raising, so the
decoders decide what is fatal.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any

from hqtrack._constants import KNOTS_TO_KPH


def safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def dm_to_decimal(dm: str | None, hemisphere: str | None) -> float:
    """Convert a degrees/minutes field (``DDDMM.mmmm``) to decimal degrees.

    The last two digits before the decimal point and the fraction are
    minutes; everything before them is degrees. ``S`` and ``W`` negate the
    result. Returns NaN when the field is not in that shape.

    >>> round(dm_to_decimal("3612.8854", "N"), 6)
    36.214757
    """
    if not dm:
        return math.nan
    text = dm.strip()
    point = text.find(".")
    if point < 3:
        return math.nan
    deg_str = text[: point - 2]
    min_int = text[point - 2 : point]
    fraction = text[point + 1 :]
    if not (deg_str.isdigit() and min_int.isdigit()):
        return math.nan
    if fraction and not fraction.isdigit():
        return math.nan
    decimal = int(deg_str) + float(f"{min_int}.{fraction or '0'}") / 60.0
    if (hemisphere or "").strip().upper() in {"S", "W"}:
        decimal = -decimal
    return decimal


def _six_digits(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    if len(text) == 6 and text.isdigit():
        return text
    return None


def parse_fix_timestamp(hhmmss: str | None, ddmmyy: str | None, *, fallback: datetime) -> datetime:
    """Combine ``hhmmss`` and ``ddmmyy`` (UTC, year ``2000 + yy``) into an instant.

    Either field failing the six-digit check, or naming an impossible
    date/time, yields *fallback* instead.
    """
    time_part = _six_digits(hhmmss)
    date_part = _six_digits(ddmmyy)
    if time_part is None or date_part is None:
        return fallback
    try:
        return datetime(
            2000 + int(date_part[4:6]),
            int(date_part[2:4]),
            int(date_part[0:2]),
            int(time_part[0:2]),
            int(time_part[2:4]),
            int(time_part[4:6]),
            tzinfo=UTC,
        )
    except ValueError:
        return fallback


def knots_to_kph(value: Any) -> float | None:
    """Knots to km/h; ``None`` when the field does not parse as a number."""
    knots = safe_float(value)
    if knots is None:
        return None
    return knots * KNOTS_TO_KPH


def nmea_checksum(body: str) -> str:
    """XOR of all characters of *body* as two upper-case hex digits."""
    checksum = 0
    for char in body:
        checksum ^= ord(char)
    return f"{checksum:02X}"
