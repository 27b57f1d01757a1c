"""Raw data blobs in flash sectors and the RF calibration init block."""

from __future__ import annotations

from enum import IntEnum

from .rboot import MemoryFlash

FLASH_BLOCK_NO = 0x60

RF_INIT_DATA = (
    b"\x05\x08\x04\x02\x05\x05\x05\x02\x05\x00\x04\x05\x05\x04\x05\x05"
    b"\x04\xFE\xFD\xFF\xF0\xF0\xF0\xE0\xE0\xE0\xE1\x0A\xFF\xFF\xF8\x00"
    b"\xF8\xF8\x4E\x4A\x46\x40\x3C\x38\x00\x00\x01\x01\x02\x03\x04\x05"
    b"\x01\x00\x00\x00\x00\x00\x02\x00\x00\x00\x00\x00\x00\x00\x00\x00"
    b"\xE1\x0A\x00\x00\x00\x00\x00\x00\x00\x00\x01\x93\x43\x00\x00\x00"
    b"\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00"
    b"\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\xFF\x00\x00\x00\x00"
    b"\x00\x00\x01\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00"
    b"\x00"
)


class FlashSizeMap(IntEnum):
    """Flash chip size and partition layout."""

    FLASH_SIZE_4M_MAP_256_256 = 0
    FLASH_SIZE_2M = 1
    FLASH_SIZE_8M_MAP_512_512 = 2
    FLASH_SIZE_16M_MAP_512_512 = 3
    FLASH_SIZE_32M_MAP_512_512 = 4
    FLASH_SIZE_16M_MAP_1024_1024 = 5
    FLASH_SIZE_32M_MAP_1024_1024 = 6


_RF_CAL_SECTORS = {
    FlashSizeMap.FLASH_SIZE_4M_MAP_256_256: 128 - 5,
    FlashSizeMap.FLASH_SIZE_8M_MAP_512_512: 256 - 5,
    FlashSizeMap.FLASH_SIZE_16M_MAP_512_512: 512 - 5,
    FlashSizeMap.FLASH_SIZE_16M_MAP_1024_1024: 512 - 5,
    FlashSizeMap.FLASH_SIZE_32M_MAP_512_512: 1024 - 5,
    FlashSizeMap.FLASH_SIZE_32M_MAP_1024_1024: 1024 - 5,
}


def rf_calibration_sector(size_map: FlashSizeMap) -> int:
    """Sector of the RF calibration area for a flash layout; 0 if unknown."""
    return _RF_CAL_SECTORS.get(size_map, 0)


def ensure_rf_init_data(flash: MemoryFlash, size_map: FlashSizeMap) -> bool:
    """Rewrite the RF init block if it differs from the default; True if rewritten."""
    cal_sector = rf_calibration_sector(size_map)
    address = (cal_sector + 1) * flash.sector_size
    if flash.read(address, len(RF_INIT_DATA)) == RF_INIT_DATA:
        return False
    for sector in range(cal_sector, cal_sector + 3):
        flash.erase_sector(sector)
    flash.write(address, RF_INIT_DATA)
    return True


class BlobStore:
    """Numbered blobs, each in its own sector after the configuration block."""

    def __init__(self, flash: MemoryFlash) -> None:
        self.flash = flash

    @staticmethod
    def sector_of(blob_no: int) -> int:
        """Flash sector holding blob ``blob_no``."""
        return FLASH_BLOCK_NO + 1 + blob_no

    def _address(self, blob_no: int) -> int:
        return self.sector_of(blob_no) * self.flash.sector_size

    def save(self, blob_no: int, data: bytes) -> None:
        """Erase the blob's sector and store ``data`` at its start."""
        self.flash.erase_sector(self.sector_of(blob_no))
        self.flash.write(self._address(blob_no), bytes(data))

    def load(self, blob_no: int, length: int) -> bytes:
        """Read ``length`` bytes of a blob."""
        return self.flash.read(self._address(blob_no), length)

    def zero(self, blob_no: int, length: int) -> None:
        """Erase the blob's sector and fill its first ``length`` bytes with zeros."""
        self.save(blob_no, bytes(length))