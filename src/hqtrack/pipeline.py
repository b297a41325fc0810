"""Per-chunk ingestion: frames, decoding, vehicle/ride assignment, forwarding.

:class:`IngestPipeline` holds everything shared between connections
(resolver, segmenter, storage, forwarder, counters).
:class:`ConnectionSession` holds what belongs to one connection (frame
buffer, last known device id, counters for the summary log).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from hqtrack._constants import ACK_DECODED, ACK_UNDECODED, LOG_PREVIEW_CHARS
from hqtrack.config import TrackerConfig
from hqtrack.exceptions import StorageError
from hqtrack.forwarder import Forwarder, ForwardOutcome
from hqtrack.models.fix import Fix, FrameKind, Position
from hqtrack.models.record import SinkRecord
from hqtrack.protocol.decoder import DecodeFailure, DecoderRegistry
from hqtrack.protocol.framing import FrameExtractor, RawFrame, decode_chunk
from hqtrack.resolver import DeviceResolver
from hqtrack.segmenter import RideSegmenter
from hqtrack.stats import ServiceStats
from hqtrack.storage.base import Storage

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class ConnectionSession:
    """State owned by a single tracker connection."""

    peer: str
    extractor: FrameExtractor
    device_id: str | None = None
    packets: int = 0
    fixes: int = 0
    started: float = field(default_factory=time.monotonic)

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)


@dataclass(frozen=True)
class ChunkResult:
    """What one chunk produced, and the token to send back (if any)."""

    frames: int
    fixes: list[Fix]
    failures: list[DecodeFailure]
    ack: bytes | None


class IngestPipeline:
    """Process chunks for any number of connections.

    Forwards run as background tasks so a slow sink never delays the
    acknowledgment; :meth:`drain` waits for them during shutdown.
    """

    def __init__(
        self,
        config: TrackerConfig,
        *,
        storage: Storage,
        forwarder: Forwarder,
        stats: ServiceStats | None = None,
        decoders: DecoderRegistry | None = None,
        resolver: DeviceResolver | None = None,
        segmenter: RideSegmenter | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._storage = storage
        self._forwarder = forwarder
        self._stats = stats if stats is not None else forwarder.stats
        self._decoders = decoders or DecoderRegistry.default()
        self._resolver = resolver or DeviceResolver(storage, cache_size=config.resolver_cache_size)
        self._segmenter = segmenter or RideSegmenter(
            storage,
            gap=timedelta(seconds=config.ride_gap_seconds),
            max_vehicles=config.max_tracked_vehicles,
        )
        self._clock = clock
        self._pending: set[asyncio.Task[ForwardOutcome]] = set()

    @property
    def stats(self) -> ServiceStats:
        return self._stats

    def open_session(self, peer: str) -> ConnectionSession:
        return ConnectionSession(peer=peer, extractor=FrameExtractor(max_pending=self._config.max_frame_length))

    # ------------------------------------------------------------------
    # Chunk processing
    # ------------------------------------------------------------------

    async def process_chunk(self, session: ConnectionSession, chunk: bytes) -> ChunkResult:
        """Feed one read into the session and return the acknowledgment to send.

        ``OK`` when at least one fix was decoded, ``ACK`` when complete
        frames (or pure noise) produced none, ``None`` while a partial frame
        waits for more data.
        """
        session.packets += 1
        self._stats.packets_received += 1
        received_at = self._clock()
        text = decode_chunk(chunk)
        _logger.debug(
            "Packet #%d from %s: len=%d data=%r",
            session.packets,
            session.peer,
            len(chunk),
            text[:LOG_PREVIEW_CHARS],
        )

        frames = session.extractor.feed(text)
        if not frames:
            if session.extractor.pending:
                return ChunkResult(frames=0, fixes=[], failures=[], ack=None)
            noise = text.strip()
            if not noise:
                return ChunkResult(frames=0, fixes=[], failures=[], ack=ACK_UNDECODED)
            # Nothing recognizable at all: hand the raw chunk to operators.
            unknown = self._decoders.decode(
                RawFrame(FrameKind.UNKNOWN, noise),
                received_at=received_at,
                device_hint=session.device_id,
            )
            rejected = [unknown] if isinstance(unknown, DecodeFailure) else []
            for item in rejected:
                self._reject(session, item, received_at)
            return ChunkResult(frames=0, fixes=[], failures=rejected, ack=ACK_UNDECODED)

        fixes: list[Fix] = []
        failures: list[DecodeFailure] = []
        for frame in frames:
            result = self._decoders.decode(frame, received_at=received_at, device_hint=session.device_id)
            if isinstance(result, DecodeFailure):
                if result.kind == FrameKind.HQ and result.device_id:
                    session.device_id = result.device_id
                failures.append(result)
                self._reject(session, result, received_at)
                continue

            if result.kind == FrameKind.HQ and result.device_id:
                session.device_id = result.device_id
            self._stats.packets_parsed += 1
            try:
                fix = await self.ingest_position(result)
            except StorageError as exc:
                self._stats.errors += 1
                _logger.error(
                    "Storage failure for %s fix from %s (retryable=%s): %s",
                    result.device_id,
                    session.peer,
                    exc.retryable,
                    exc,
                )
            else:
                fixes.append(fix)
                session.fixes += 1
                _logger.debug("Parsed: lat=%s lon=%s ts=%s", fix.lat, fix.lon, fix.ts.isoformat())
            self._schedule_forward(SinkRecord.from_position(result))

        decoded = len(frames) - len(failures)
        ack = ACK_DECODED if decoded else ACK_UNDECODED
        return ChunkResult(frames=len(frames), fixes=fixes, failures=failures, ack=ack)

    async def ingest_position(self, position: Position) -> Fix:
        """Resolve the vehicle, assign a ride and persist the fix.

        Raises
        ------
        StorageError
            Propagated from the resolver, segmenter or storage; retryable.
        """
        vehicle_id = await self._resolver.resolve(position.device_id)
        ride_id = await self._segmenter.assign(vehicle_id, position.ts)
        fix = Fix.from_position(position, vehicle_id=vehicle_id, ride_id=ride_id)
        await self._storage.append_fix(fix)
        return fix

    def _reject(self, session: ConnectionSession, failure: DecodeFailure, received_at: datetime) -> None:
        self._stats.decode_failures += 1
        _logger.warning(
            "Undecodable %s frame from %s (%s); forwarding raw for analysis",
            failure.kind,
            session.peer,
            failure.reason,
        )
        record = SinkRecord.diagnostic(
            failure.frame,
            received_at=received_at,
            imei=failure.device_id,
            reason=failure.reason,
        )
        self._schedule_forward(record)

    # ------------------------------------------------------------------
    # Background forwarding
    # ------------------------------------------------------------------

    def _schedule_forward(self, record: SinkRecord) -> None:
        task = asyncio.create_task(self._forwarder.forward(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight forwards (up to *timeout* seconds)."""
        if not self._pending:
            return
        pending = list(self._pending)
        _done, not_done = await asyncio.wait(pending, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            _logger.warning("Cancelled %d forwards still in flight at shutdown", len(not_done))
