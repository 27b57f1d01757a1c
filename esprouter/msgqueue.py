"""Queue of whole messages stored as frames in a byte ring buffer."""

from __future__ import annotations

from .proto import read_frame, write_frame
from .ringbuf import RingBuffer


class MessageQueue:
    """FIFO of byte messages sharing one fixed-size ring buffer."""

    def __init__(self, size: int) -> None:
        self.ring = RingBuffer(size)

    def put(self, message: bytes) -> int:
        """Queue ``message``; return bytes used. Raises RingBufferFull."""
        return write_frame(self.ring, message)

    def get(self, max_len: int) -> bytes:
        """Take the oldest message, at most ``max_len`` bytes. Raises RingBufferEmpty."""
        return read_frame(self.ring, max_len)

    def is_empty(self) -> bool:
        """True when no bytes are queued."""
        return len(self.ring) <= 0