"""Byte-stuffed framing: 0x7E starts a frame, 0x7F ends it, 0x7D escapes."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from .ringbuf import RingBuffer, RingBufferEmpty

FRAME_ESCAPE = 0x7D
FRAME_BEGIN = 0x7E
FRAME_END = 0x7F
_ESCAPE_XOR = 0x20
_SPECIAL = frozenset((FRAME_ESCAPE, FRAME_BEGIN, FRAME_END))


class FrameParser:
    """Incremental decoder for stuffed frames, keeping at most ``capacity`` bytes."""

    def __init__(
        self,
        capacity: int,
        on_complete: Optional[Callable[[bytes], None]] = None,
    ) -> None:
        self.capacity = capacity
        self.on_complete = on_complete
        self._buf = bytearray()
        self._escaped = False
        self._in_frame = False

    @property
    def data(self) -> bytes:
        """Bytes collected for the current (or just finished) frame."""
        return bytes(self._buf)

    def feed_byte(self, value: int) -> bool:
        """Process one byte; return True when it ended a frame."""
        if value == FRAME_ESCAPE:
            self._escaped = True
        elif value == FRAME_BEGIN:
            self._buf.clear()
            self._escaped = False
            self._in_frame = True
        elif value == FRAME_END:
            if self.on_complete is not None:
                self.on_complete(self.data)
            self._in_frame = False
            return True
        elif self._in_frame:
            if self._escaped:
                value ^= _ESCAPE_XOR
                self._escaped = False
            if len(self._buf) < self.capacity:
                self._buf.append(value)
        return False

    def feed(self, data: Iterable[int]) -> None:
        """Process every byte of ``data``."""
        for value in data:
            self.feed_byte(value)


def _stuff(packet: bytes) -> Iterable[int]:
    yield FRAME_BEGIN
    for value in packet:
        if value in _SPECIAL:
            yield FRAME_ESCAPE
            yield value ^ _ESCAPE_XOR
        else:
            yield value
    yield FRAME_END


def encode_frame(packet: bytes) -> bytes:
    """Return ``packet`` wrapped and escaped as one frame."""
    return bytes(_stuff(packet))


def write_frame(ring: RingBuffer, packet: bytes) -> int:
    """Write ``packet`` as a frame into ``ring``; return the bytes written.

    Raises RingBufferFull if the ring runs out of room part way.
    """
    written = 0
    for value in _stuff(packet):
        ring.put(value)
        written += 1
    return written


def read_frame(ring: RingBuffer, max_len: int) -> bytes:
    """Consume bytes from ``ring`` until a frame ends and return its payload.

    Payload beyond ``max_len`` bytes is dropped. Raises RingBufferEmpty if the
    ring is drained before a frame end is seen.
    """
    parser = FrameParser(max_len)
    while len(ring):
        if parser.feed_byte(ring.get()):
            return parser.data
    raise RingBufferEmpty("no complete frame in ring buffer")