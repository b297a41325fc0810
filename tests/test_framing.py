from __future__ import annotations

import pytest

from hqtrack.models.fix import FrameKind
from hqtrack.protocol.framing import FrameExtractor, RawFrame, extract_frames

FRAME = "*HQ,9170000001,V1,132707,A,3612.8854,N,08140.0735,W,0.00,0,110825,FFFFFBFF#"
SENTENCE = "$GPRMC,123519,A,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W*6A"


def test_single_frame_in_one_chunk() -> None:
    frames, rest = extract_frames("", FRAME.encode())
    assert frames == [RawFrame(FrameKind.HQ, FRAME)]
    assert rest == ""


def test_frame_split_at_every_offset_yields_same_frame() -> None:
    data = FRAME.encode()
    for offset in range(len(data) + 1):
        extractor = FrameExtractor()
        frames = extractor.feed(data[:offset]) + extractor.feed(data[offset:])
        assert frames == [RawFrame(FrameKind.HQ, FRAME)], offset
        assert not extractor.pending


def test_frame_split_into_single_bytes() -> None:
    extractor = FrameExtractor()
    frames: list[RawFrame] = []
    for byte in FRAME.encode():
        frames.extend(extractor.feed(bytes([byte])))
    assert frames == [RawFrame(FrameKind.HQ, FRAME)]


def test_several_frames_in_one_chunk_keep_order() -> None:
    second = FRAME.replace("132707", "132717")
    frames, rest = extract_frames("", (FRAME + "\r\n" + second).encode())
    assert [frame.text for frame in frames] == [FRAME, second]
    assert rest == ""


def test_repeated_leading_stars_are_kept() -> None:
    frames, _rest = extract_frames("", "**" + FRAME)
    assert frames == [RawFrame(FrameKind.HQ, "**" + FRAME)]


def test_noise_around_frames_is_discarded() -> None:
    frames, rest = extract_frames("", "garbage\x00*junk" + FRAME + "trailing noise")
    assert frames == [RawFrame(FrameKind.HQ, FRAME)]
    assert rest == ""


def test_partial_frame_is_kept_as_remainder() -> None:
    frames, rest = extract_frames("", FRAME[:20])
    assert frames == []
    assert rest == FRAME[:20]


@pytest.mark.parametrize(("tail", "kept"), [("*", "*"), ("**", "*"), ("*H", "*H"), ("***H", "*H")])
def test_partial_start_marker_is_kept(tail: str, kept: str) -> None:
    frames, rest = extract_frames("", "noise" + tail)
    assert frames == []
    assert rest == kept


def test_stream_of_stars_stays_bounded() -> None:
    extractor = FrameExtractor(max_pending=64)
    for _ in range(100):
        assert extractor.feed(b"*" * 100) == []
    assert extractor.buffered <= 64
    assert extractor.feed(FRAME[1:]) == [RawFrame(FrameKind.HQ, FRAME)]


def test_truncated_frame_is_dropped_when_a_new_frame_starts() -> None:
    extractor = FrameExtractor()
    assert extractor.feed("*HQ,123,V1,1327") == []
    assert extractor.pending
    frames = extractor.feed(FRAME)
    assert frames == [RawFrame(FrameKind.HQ, FRAME)]
    assert not extractor.pending


def test_oversized_partial_frame_is_dropped() -> None:
    extractor = FrameExtractor(max_pending=64)
    assert extractor.feed("*HQ," + "x" * 100) == []
    assert not extractor.pending
    assert extractor.feed(FRAME) == [RawFrame(FrameKind.HQ, FRAME)]


def test_nmea_sentence_terminated_by_newline() -> None:
    frames, rest = extract_frames("", SENTENCE + "\r\n")
    assert frames == [RawFrame(FrameKind.NMEA, SENTENCE)]
    assert rest == ""


def test_nmea_sentence_waits_for_newline() -> None:
    extractor = FrameExtractor()
    assert extractor.feed(SENTENCE[:30]) == []
    assert extractor.feed(SENTENCE[30:]) == []
    assert extractor.pending
    assert extractor.feed("\r\n") == [RawFrame(FrameKind.NMEA, SENTENCE)]


def test_mixed_hq_and_nmea_frames() -> None:
    frames, _rest = extract_frames("", FRAME + SENTENCE + "\n")
    assert [frame.kind for frame in frames] == [FrameKind.HQ, FrameKind.NMEA]


def test_reset_clears_buffer() -> None:
    extractor = FrameExtractor()
    extractor.feed(FRAME[:10])
    assert extractor.buffered == 10
    extractor.reset()
    assert not extractor.pending


def test_dollar_without_sentence_header_is_noise() -> None:
    # Binary location packets also start with "$".
    frames, rest = extract_frames("", b"$\x91\x70\x00\x01\x13\x27\x07\x11\x08\x25\x36\x12")
    assert frames == []
    assert rest == ""


@pytest.mark.parametrize("tail", ["$", "$GP", "$GPRMC"])
def test_partial_sentence_header_is_kept(tail: str) -> None:
    frames, rest = extract_frames("", "noise" + tail)
    assert frames == []
    assert rest == tail


def test_binary_dollar_inside_hq_frame_does_not_truncate_it() -> None:
    frame = FRAME.replace("FFFFFBFF", "FF$FFBFF")
    frames, _rest = extract_frames("", frame)
    assert frames == [RawFrame(FrameKind.HQ, frame)]
