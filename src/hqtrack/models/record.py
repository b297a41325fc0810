"""Payload delivered to the downstream ingestion sink."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import field_serializer

from hqtrack._constants import SOURCE_TAG
from hqtrack.models._base import TrackerBaseModel, UtcDatetime, format_utc
from hqtrack.models.fix import Position

# Keys always present on the wire, even when ``None``.
_ALWAYS_SENT = frozenset({"lat", "lon", "timestamp"})


class SinkRecord(TrackerBaseModel):
    """One write to the sink's ``/ping`` route.

    Decoded fixes carry coordinates; diagnostic records carry
    ``debug=True``, null coordinates and the undecodable input in ``raw``.
    """

    lat: float | None = None
    lon: float | None = None
    timestamp: UtcDatetime
    imei: str | None = None
    speed_kph: float | None = None
    raw: str | None = None
    debug: bool | None = None
    reason: str | None = None
    source: str = SOURCE_TAG

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_utc(value)

    @property
    def is_diagnostic(self) -> bool:
        return bool(self.debug)

    @classmethod
    def from_position(cls, position: Position) -> SinkRecord:
        return cls(
            lat=position.lat,
            lon=position.lon,
            timestamp=position.ts,
            imei=position.device_id,
            speed_kph=position.speed_kph,
            raw=position.raw or None,
        )

    @classmethod
    def diagnostic(
        cls,
        raw: str,
        *,
        received_at: datetime,
        imei: str | None = None,
        reason: str | None = None,
    ) -> SinkRecord:
        return cls(timestamp=received_at, imei=imei, raw=raw, debug=True, reason=reason)

    def to_payload(self) -> dict[str, Any]:
        """JSON body for the sink; optional keys are omitted when unset."""
        dumped = self.to_json_dict()
        return {key: value for key, value in dumped.items() if value is not None or key in _ALWAYS_SENT}
