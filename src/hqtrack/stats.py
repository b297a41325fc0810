"""Process-wide ingestion counters read by the health surface."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from hqtrack.models._base import format_utc


@dataclass
class ServiceStats:
    """Counters shared by every connection.

    Only mutated from the event loop thread, so plain integers suffice.
    """

    connections_total: int = 0
    connections_open: int = 0
    packets_received: int = 0
    packets_parsed: int = 0
    packets_forwarded: int = 0
    decode_failures: int = 0
    errors: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def as_dict(self) -> dict[str, Any]:
        return {
            "connectionsTotal": self.connections_total,
            "connectionsOpen": self.connections_open,
            "packetsReceived": self.packets_received,
            "packetsParsed": self.packets_parsed,
            "packetsForwarded": self.packets_forwarded,
            "decodeFailures": self.decode_failures,
            "errors": self.errors,
            "startTime": format_utc(self.started_at),
        }
