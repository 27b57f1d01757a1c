"""Small parsing helpers for addresses and hexadecimal numbers."""

from __future__ import annotations

from typing import Optional

_HEX_DIGITS = "0123456789abcdefABCDEF"


def is_ipv4(text: Optional[str]) -> bool:
    """True if ``text`` is a dotted quad of four 0-255 decimal segments."""
    if text is None:
        return False
    segments = 0
    digits = 0
    accum = 0
    for ch in text:
        if ch == ".":
            if digits == 0:
                return False
            segments += 1
            if segments == 4:
                return False
            digits = accum = 0
            continue
        if not "0" <= ch <= "9":
            return False
        accum = accum * 10 + ord(ch) - ord("0")
        if accum > 255:
            return False
        digits += 1
    return segments == 3 and digits > 0


def str_to_ip(text: str) -> Optional[bytes]:
    """Parse a dotted address into four bytes, or return None if malformed.

    Segments may be empty (read as 0); anything may follow the fourth segment.
    """
    chars = iter(text)
    octets = bytearray()
    for index in range(4):
        value = 0
        for ch in chars:
            if "0" <= ch <= "9":
                value = value * 10 + ord(ch) - ord("0")
            elif (index < 3 and ch == ".") or index == 3:
                break
            else:
                return None
        else:
            if index < 3:
                return None
        if value >= 256:
            return None
        octets.append(value)
    return bytes(octets)


def atoh(text: str) -> int:
    """Read leading hexadecimal digits of ``text`` as an unsigned 32-bit value."""
    value = 0
    for ch in text:
        if ch not in _HEX_DIGITS:
            break
        value = ((value << 4) | int(ch, 16)) & 0xFFFFFFFF
    return value