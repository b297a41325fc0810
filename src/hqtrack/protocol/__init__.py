"""Tracker wire protocol: stream framing and frame decoding."""

from hqtrack.protocol.decoder import DecodeFailure, DecodeResult, DecoderRegistry, FrameDecoder, UnknownDecoder
from hqtrack.protocol.framing import FrameExtractor, RawFrame, extract_frames
from hqtrack.protocol.hq import HqDecoder
from hqtrack.protocol.nmea import NmeaDecoder
from hqtrack.protocol.normalize import dm_to_decimal, parse_fix_timestamp

__all__ = [
    "DecodeFailure",
    "DecodeResult",
    "DecoderRegistry",
    "FrameDecoder",
    "FrameExtractor",
    "HqDecoder",
    "NmeaDecoder",
    "RawFrame",
    "UnknownDecoder",
    "dm_to_decimal",
    "extract_frames",
    "parse_fix_timestamp",
]
