import pytest

from esprouter.proto import FrameParser, encode_frame, read_frame, write_frame
from esprouter.ringbuf import RingBuffer, RingBufferEmpty, RingBufferFull

PAYLOADS = [b"", b"hello", bytes([0x7D, 0x7E, 0x7F]), bytes(range(256))]


def test_encode_escapes_special_bytes():
    assert encode_frame(b"\x01\x7e") == bytes([0x7E, 0x01, 0x7D, 0x5E, 0x7F])


@pytest.mark.parametrize("payload", PAYLOADS)
def test_encode_then_parse_round_trip(payload):
    parser = FrameParser(1024)
    parser.feed(encode_frame(payload))
    assert parser.data == payload


@pytest.mark.parametrize("payload", PAYLOADS)
def test_ring_round_trip(payload):
    ring = RingBuffer(1024)
    written = write_frame(ring, payload)
    assert written == len(encode_frame(payload))
    assert read_frame(ring, 1024) == payload
    assert len(ring) == 0


def test_callback_receives_frame():
    seen = []
    parser = FrameParser(64, seen.append)
    parser.feed(encode_frame(b"abc") + encode_frame(b"de"))
    assert seen == [b"abc", b"de"]


def test_bytes_outside_frame_ignored():
    parser = FrameParser(64)
    parser.feed(b"noise" + encode_frame(b"xy"))
    assert parser.data == b"xy"


def test_feed_byte_reports_end():
    parser = FrameParser(8)
    results = [parser.feed_byte(b) for b in encode_frame(b"q")]
    assert results[-1] is True
    assert not any(results[:-1])


def test_payload_truncated_to_capacity():
    parser = FrameParser(2)
    parser.feed(encode_frame(b"abcd"))
    assert parser.data == b"ab"


def test_read_frame_truncates():
    ring = RingBuffer(64)
    write_frame(ring, b"abcdef")
    assert read_frame(ring, 3) == b"abc"


def test_read_frame_empty_raises():
    with pytest.raises(RingBufferEmpty):
        read_frame(RingBuffer(16), 16)


def test_read_frame_incomplete_raises():
    ring = RingBuffer(16)
    for b in encode_frame(b"abc")[:-1]:
        ring.put(b)
    with pytest.raises(RingBufferEmpty):
        read_frame(ring, 16)


def test_write_frame_full_raises():
    ring = RingBuffer(4)
    with pytest.raises(RingBufferFull):
        write_frame(ring, b"abcdef")


def test_consecutive_frames_read_in_order():
    ring = RingBuffer(64)
    write_frame(ring, b"one")
    write_frame(ring, b"two")
    assert read_frame(ring, 64) == b"one"
    assert read_frame(ring, 64) == b"two"