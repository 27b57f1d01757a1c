"""Fixed-size byte ring buffer."""

from __future__ import annotations

from collections import deque


class RingBufferFull(Exception):
    """Raised when a byte is put into a full ring buffer."""


class RingBufferEmpty(Exception):
    """Raised when a byte is taken from an empty ring buffer."""


class RingBuffer:
    """A bounded FIFO of bytes that refuses writes once full."""

    def __init__(self, size: int) -> None:
        if size < 2:
            raise ValueError("ring buffer size must be at least 2")
        self.size = size
        self._data: deque[int] = deque()

    def put(self, byte: int) -> None:
        """Append one byte; raise RingBufferFull if there is no room."""
        if len(self._data) >= self.size:
            raise RingBufferFull("ring buffer is full")
        self._data.append(byte & 0xFF)

    def get(self) -> int:
        """Remove and return the oldest byte; raise RingBufferEmpty if none."""
        if not self._data:
            raise RingBufferEmpty("ring buffer is empty")
        return self._data.popleft()

    def __len__(self) -> int:
        return len(self._data)