"""Stream framing for tracker connections.

TCP delivers an unbounded byte stream; a read may hold several frames, a
fragment of one, or noise. :func:`extract_frames` turns
``(buffer, chunk)`` into ``(frames, remainder)`` and is a pure function.
:class:`FrameExtractor` keeps the remainder between reads for a single
connection.

Recognized frames:

* HQ: ``*HQ,<fields>#`` with one or more leading ``*``
* NMEA: ``$<talker><type>,...[*hh]`` terminated by ``\\n`` (``\\r`` is stripped)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from hqtrack._constants import DEFAULT_MAX_FRAME_LENGTH
from hqtrack.models.fix import FrameKind

_logger = logging.getLogger(__name__)

_HQ_MARKER = "HQ"
_HQ_TERMINATOR = "#"
_NMEA_START = "$"
_NMEA_TERMINATOR = "\n"

# Talker and sentence id, e.g. "$GPRMC,". A bare "$" is common in binary packets.
_NMEA_HEADER = re.compile(r"\$[A-Z0-9]{5},")
_NMEA_HEADER_PREFIX = re.compile(r"\$[A-Z0-9]{0,5}")


@dataclass(frozen=True, slots=True)
class RawFrame:
    """One complete frame as received (delimiters included for HQ)."""

    kind: FrameKind
    text: str


def decode_chunk(chunk: bytes | str) -> str:
    """Bytes to text, one character per byte so fragments never split a character."""
    if isinstance(chunk, str):
        return chunk
    return chunk.decode("latin-1")


def _next_start(data: str, pos: int) -> int:
    star = data.find("*", pos)
    dollar = data.find(_NMEA_START, pos)
    if star == -1:
        return dollar
    if dollar == -1:
        return star
    return min(star, dollar)


def _nmea_header(data: str, start: int) -> bool | None:
    """Whether the ``$`` at *start* opens an NMEA sentence; ``None`` until enough data arrived."""
    if _NMEA_HEADER.match(data, start):
        return True
    if _NMEA_HEADER_PREFIX.fullmatch(data, start):
        return None
    return False


def _find_restart(data: str, lo: int, hi: int) -> int:
    """Earliest new frame start inside ``data[lo:hi]``, or -1.

    A ``*HQ`` restart is reported at the first ``*`` of its run.
    """
    candidates = []
    dollar = data.find(_NMEA_START, lo, hi)
    while dollar != -1:
        if _NMEA_HEADER.match(data, dollar):
            candidates.append(dollar)
            break
        dollar = data.find(_NMEA_START, dollar + 1, hi)
    hq = data.find("*" + _HQ_MARKER, lo, hi)
    if hq != -1:
        while hq > lo and data[hq - 1] == "*":
            hq -= 1
        candidates.append(hq)
    return min(candidates) if candidates else -1


def extract_frames(
    buffer: str,
    chunk: bytes | str,
    *,
    max_pending: int = DEFAULT_MAX_FRAME_LENGTH,
) -> tuple[list[RawFrame], str]:
    """Split ``buffer + chunk`` into complete frames and an unconsumed remainder.

    Bytes outside any frame are discarded. A partial frame is kept as the
    remainder unless it grows beyond *max_pending* characters, in which case
    it is dropped and scanning resumes at the next start marker.
    """
    data = buffer + decode_chunk(chunk)
    frames: list[RawFrame] = []
    pos = 0

    while True:
        start = _next_start(data, pos)
        if start == -1:
            return frames, ""

        if data[start] == "*":
            marker = start
            while marker < len(data) and data[marker] == "*":
                marker += 1
            head = data[marker : marker + len(_HQ_MARKER)]
            if len(head) < len(_HQ_MARKER):
                if _HQ_MARKER.startswith(head):
                    # One "*" (plus a partial "H") is enough to resume; a longer run is noise.
                    return frames, data[marker - 1 :]
                pos = marker
                continue
            if head != _HQ_MARKER:
                pos = marker
                continue

            body_start = marker + len(_HQ_MARKER)
            end = data.find(_HQ_TERMINATOR, body_start)
            restart = _find_restart(data, body_start, end if end != -1 else len(data))
            if restart != -1:
                _logger.debug("Discarding truncated HQ frame: %r", data[start:restart])
                pos = restart
                continue
            if end == -1:
                if len(data) - start > max_pending:
                    _logger.debug("Dropping %d buffered characters without a terminator", len(data) - start)
                    pos = marker
                    continue
                return frames, data[start:]
            frames.append(RawFrame(FrameKind.HQ, data[start : end + 1]))
            pos = end + 1
            continue

        header = _nmea_header(data, start)
        if header is None:
            return frames, data[start:]
        if not header:
            pos = start + 1
            continue

        end = data.find(_NMEA_TERMINATOR, start)
        restart = _find_restart(data, start + 1, end if end != -1 else len(data))
        if restart != -1:
            _logger.debug("Discarding truncated NMEA sentence: %r", data[start:restart])
            pos = restart
            continue
        if end == -1:
            if len(data) - start > max_pending:
                _logger.debug("Dropping %d buffered characters without a terminator", len(data) - start)
                pos = start + 1
                continue
            return frames, data[start:]
        sentence = data[start:end].rstrip("\r")
        if len(sentence) > 1:
            frames.append(RawFrame(FrameKind.NMEA, sentence))
        pos = end + 1


class FrameExtractor:
    """Per-connection frame buffer.

    Not shared between connections; all calls for one connection must come
    from the same handler in arrival order.
    """

    def __init__(self, *, max_pending: int = DEFAULT_MAX_FRAME_LENGTH) -> None:
        self._max_pending = max_pending
        self._buffer = ""

    @property
    def pending(self) -> bool:
        """``True`` while a partial frame waits for more data."""
        return bool(self._buffer)

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes | str) -> list[RawFrame]:
        frames, self._buffer = extract_frames(self._buffer, chunk, max_pending=self._max_pending)
        return frames

    def reset(self) -> None:
        self._buffer = ""
