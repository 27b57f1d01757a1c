"""Sequential writes of firmware images into sector-erased flash memory."""

from __future__ import annotations

DEFAULT_SECTOR_SIZE = 0x1000
CHECKSUM_INIT = 0xEF
_ERASED = 0xFF
_WORD = 4


def calc_checksum(data: bytes) -> int:
    """XOR every byte of ``data`` into a checksum seeded with CHECKSUM_INIT."""
    checksum = CHECKSUM_INIT
    for value in data:
        checksum ^= value
    return checksum


class MemoryFlash:
    """In-memory NOR flash: erasing sets a sector to 0xFF, writing can only clear bits."""

    def __init__(self, size: int, sector_size: int = DEFAULT_SECTOR_SIZE) -> None:
        if sector_size <= 0 or size <= 0 or size % sector_size:
            raise ValueError("flash size must be a positive multiple of the sector size")
        self.size = size
        self.sector_size = sector_size
        self._data = bytearray([_ERASED]) * size

    def _check_range(self, address: int, length: int) -> None:
        if address < 0 or length < 0 or address + length > self.size:
            raise ValueError(
                f"range 0x{address:08X}+{length} is outside the flash of {self.size} bytes"
            )

    def read(self, address: int, length: int) -> bytes:
        """Return ``length`` bytes starting at ``address``."""
        self._check_range(address, length)
        return bytes(self._data[address:address + length])

    def write(self, address: int, data: bytes) -> None:
        """Program ``data`` at ``address``; each stored byte becomes old AND new."""
        self._check_range(address, len(data))
        for offset, value in enumerate(data, start=address):
            self._data[offset] &= value

    def erase_sector(self, sector: int) -> None:
        """Reset every byte of sector number ``sector`` to 0xFF."""
        start = sector * self.sector_size
        self._check_range(start, self.sector_size)
        self._data[start:start + self.sector_size] = bytes([_ERASED]) * self.sector_size


class FlashWriter:
    """Streams data into flash from ``start_addr``, erasing sectors as it goes.

    Data is written in whole 4-byte words; up to three trailing bytes are held
    back until more data arrives or ``end`` is called.
    """

    def __init__(self, flash: MemoryFlash, start_addr: int) -> None:
        self.flash = flash
        self.address = start_addr
        self.start_sector = start_addr // flash.sector_size
        self.last_sector_erased = self.start_sector - 1
        self._extra = b""

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet written."""
        return self._extra

    def write(self, data: bytes) -> None:
        """Write the next chunk of data; a chunk should be at most one sector."""
        if not data:
            return
        buffer = self._extra + bytes(data)
        length = len(buffer) - len(buffer) % _WORD
        self._extra = buffer[length:]
        if not length:
            return

        last_sector = (self.address + length - 1) // self.flash.sector_size
        while last_sector > self.last_sector_erased:
            self.last_sector_erased += 1
            self.flash.erase_sector(self.last_sector_erased)

        self.flash.write(self.address, buffer[:length])
        self.address += length

    def end(self) -> None:
        """Flush held-back bytes, padded to a whole word with 0xFF."""
        if self._extra:
            padded = self._extra + bytes([_ERASED]) * (_WORD - len(self._extra))
            self._extra = b""
            self.write(padded)