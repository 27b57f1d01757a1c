import pytest

from esprouter.ringbuf import RingBuffer, RingBufferEmpty, RingBufferFull


def test_fifo_order():
    ring = RingBuffer(8)
    for value in (1, 2, 3):
        ring.put(value)
    assert [ring.get() for _ in range(3)] == [1, 2, 3]


def test_length_tracks_fill():
    ring = RingBuffer(4)
    ring.put(9)
    ring.put(8)
    assert len(ring) == 2
    ring.get()
    assert len(ring) == 1


def test_full_raises():
    ring = RingBuffer(2)
    ring.put(1)
    ring.put(2)
    with pytest.raises(RingBufferFull):
        ring.put(3)
    assert len(ring) == 2


def test_empty_raises():
    ring = RingBuffer(2)
    with pytest.raises(RingBufferEmpty):
        ring.get()


def test_wraparound_keeps_order():
    ring = RingBuffer(3)
    out = []
    for value in range(10):
        ring.put(value)
        if len(ring) == 3:
            out.append(ring.get())
    while len(ring):
        out.append(ring.get())
    assert out == list(range(10))


def test_too_small_size_rejected():
    with pytest.raises(ValueError):
        RingBuffer(1)