"""Decoder interface over frame variants.

Each frame variant (:class:`~hqtrack.models.fix.FrameKind`) has one
:class:`FrameDecoder`. Decoders raise :class:`~hqtrack.exceptions.DecodeError`
for frames they reject; :class:`DecoderRegistry` turns that into a
:class:`DecodeFailure` value so one bad frame never interrupts a connection.
Support for a new device protocol is added by registering another decoder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from pydantic import ValidationError

from hqtrack.exceptions import DecodeError
from hqtrack.models.fix import FrameKind, Position
from hqtrack.protocol.framing import RawFrame
from hqtrack.protocol.hq import HqDecoder
from hqtrack.protocol.nmea import NmeaDecoder

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DecodeFailure:
    """A frame that produced no position, kept for diagnostics."""

    kind: FrameKind
    reason: str
    frame: str
    device_id: str | None = None


DecodeResult = Position | DecodeFailure


class FrameDecoder(Protocol):
    """Structural interface implemented by every frame variant decoder."""

    kind: FrameKind

    def decode(self, frame: str, *, received_at: datetime, device_hint: str | None = None) -> Position:
        ...


class UnknownDecoder:
    """Rejects frames nobody else understands."""

    kind = FrameKind.UNKNOWN

    def decode(self, frame: str, *, received_at: datetime, device_hint: str | None = None) -> Position:
        raise DecodeError("unrecognized frame format", frame=frame)


class DecoderRegistry:
    """Dispatch frames to the decoder registered for their kind."""

    def __init__(self, decoders: list[FrameDecoder] | None = None) -> None:
        self._decoders: dict[FrameKind, FrameDecoder] = {}
        self._fallback: FrameDecoder = UnknownDecoder()
        for decoder in decoders or []:
            self.register(decoder)

    @classmethod
    def default(cls) -> DecoderRegistry:
        return cls([HqDecoder(), NmeaDecoder()])

    def register(self, decoder: FrameDecoder) -> None:
        self._decoders[decoder.kind] = decoder

    def decode(
        self,
        frame: RawFrame,
        *,
        received_at: datetime,
        device_hint: str | None = None,
    ) -> DecodeResult:
        """Decode *frame*; never raises for bad input."""
        decoder = self._decoders.get(frame.kind, self._fallback)
        try:
            return decoder.decode(frame.text, received_at=received_at, device_hint=device_hint)
        except DecodeError as exc:
            _logger.debug("Rejected %s frame (%s): %r", frame.kind, exc.reason, frame.text)
            return DecodeFailure(
                kind=frame.kind,
                reason=exc.reason,
                frame=frame.text,
                device_id=exc.device_id or device_hint,
            )
        except ValidationError as exc:
            _logger.debug("Invalid %s position: %s", frame.kind, exc)
            return DecodeFailure(kind=frame.kind, reason="invalid position", frame=frame.text, device_id=device_hint)
