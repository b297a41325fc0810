"""Frames and test doubles shared by the test modules."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from hqtrack.exceptions import TrackerTransportError

HQ_FRAME = "*HQ,9170000001,V1,132707,A,3612.8854,N,08140.0735,W,0.00,0,110825,FFFFFBFF,310,260,0,0,6#"
HQ_NO_FIX = "*HQ,9170000001,V1,132707,V,3612.8854,N,08140.0735,W,0.00,0,110825,FFFFFBFF,310,260,0,0,6#"
RECEIVED_AT = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


def hq_frame(
    *,
    device: str = "9170000001",
    hhmmss: str = "132707",
    flag: str = "A",
    lat: str = "3612.8854",
    lat_hemi: str = "N",
    lon: str = "08140.0735",
    lon_hemi: str = "W",
    speed: str = "0.00",
    course: str = "0",
    ddmmyy: str = "110825",
) -> str:
    fields = ["HQ", device, "V1", hhmmss, flag, lat, lat_hemi, lon, lon_hemi, speed, course, ddmmyy, "FFFFFBFF"]
    return "*" + ",".join(fields) + "#"


@dataclass
class FakeTransport:
    """Records every POST; fails while ``failures`` is positive."""

    failures: int = 0
    status: int = 200
    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    async def post_json(self, url: str, payload: Mapping[str, Any], *, timeout: float) -> int:
        self.calls.append((url, dict(payload)))
        if self.failures > 0:
            self.failures -= 1
            raise TrackerTransportError("connection refused", url=url)
        return self.status

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [payload for _url, payload in self.calls]
