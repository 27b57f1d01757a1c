"""Packet access-control lists matched against Ethernet/IPv4 frames.

Addresses and masks are 32-bit integers in numeric dotted-quad order, as given
by ``int(ipaddress.IPv4Address(...))``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

MAX_NO_ACLS = 4
MAX_ACL_ENTRIES = 16

ACL_DENY = 0x0
ACL_ALLOW = 0x1
ACL_MONITOR = 0x2

ETHTYPE_IP = 0x0800
ETHTYPE_ARP = 0x0806

IP_PROTO_ICMP = 1
IP_PROTO_TCP = 6
IP_PROTO_UDP = 17

_ETH_HDR_LEN = 14
_IP_HDR_LEN = 20
_UDP_HDR_LEN = 8
_TCP_HDR_LEN = 20

DenyCallback = Callable[[int, int, int, int, int, int], int]


@dataclass
class AclEntry:
    """One rule; zero in any field means "any"."""

    src: int
    s_mask: int
    dest: int
    d_mask: int
    proto: int
    s_port: int
    d_port: int
    allow: int
    hit_count: int = 0

    def matches(self, proto: int, src: int, dest: int, s_port: int, d_port: int) -> bool:
        return (
            (self.proto == 0 or self.proto == proto)
            and (self.src == 0 or self.src == (src & self.s_mask))
            and (self.dest == 0 or self.dest == (dest & self.d_mask))
            and (self.s_port == 0 or self.s_port == s_port)
            and (self.d_port == 0 or self.d_port == d_port)
        )


def addr_to_str(addr: int, mask: int) -> str:
    """Render an address and mask as ``any``, ``a.b.c.d`` or ``a.b.c.d/n``."""
    addr = int(addr)
    mask = int(mask) & 0xFFFFFFFF
    if addr == 0 and mask == 0:
        return "any"
    prefix = 0
    while mask:
        mask = (mask << 1) & 0xFFFFFFFF
        prefix += 1
    dotted = ".".join(str(b) for b in addr.to_bytes(4, "big"))
    return f"{dotted}/{prefix}" if prefix < 32 else dotted


def port_to_str(port: int) -> str:
    """Render a port, with 0 shown as ``any``."""
    return "any" if port == 0 else str(port)


class AclTable:
    """A fixed set of numbered ACLs with global allow and deny counters."""

    def __init__(self) -> None:
        self.acls: List[List[AclEntry]] = [[] for _ in range(MAX_NO_ACLS)]
        self.allow_count = 0
        self.deny_count = 0
        self._deny_cb: Optional[DenyCallback] = None

    @staticmethod
    def _valid(acl_no: int) -> bool:
        return 0 <= acl_no < MAX_NO_ACLS

    def is_empty(self, acl_no: int) -> bool:
        """True if the ACL has no rules; out-of-range numbers count as empty."""
        return not self._valid(acl_no) or not self.acls[acl_no]

    def clear(self, acl_no: int) -> None:
        """Remove every rule from one ACL."""
        if not self._valid(acl_no):
            return
        self.acls[acl_no].clear()
        self.clear_stats(acl_no)

    def clear_stats(self, acl_no: int) -> None:
        """Reset hit counters of one ACL; this also drops the deny callback."""
        if not self._valid(acl_no):
            return
        self._deny_cb = None
        for entry in self.acls[acl_no]:
            entry.hit_count = 0

    def add(
        self,
        acl_no: int,
        src: int,
        s_mask: int,
        dest: int,
        d_mask: int,
        proto: int,
        s_port: int,
        d_port: int,
        allow: int,
    ) -> AclEntry:
        """Append a rule and return it; raise ValueError if invalid or full."""
        if not self._valid(acl_no):
            raise ValueError(f"no such ACL: {acl_no}")
        rules = self.acls[acl_no]
        if len(rules) >= MAX_ACL_ENTRIES:
            raise ValueError(f"ACL {acl_no} is full")
        s_mask, d_mask = int(s_mask), int(d_mask)
        entry = AclEntry(
            src=int(src) & s_mask,
            s_mask=s_mask,
            dest=int(dest) & d_mask,
            d_mask=d_mask,
            proto=proto,
            s_port=s_port,
            d_port=d_port,
            allow=allow,
        )
        rules.append(entry)
        return entry

    def check_packet(self, acl_no: int, frame: bytes) -> int:
        """Return the ACL verdict bits for an Ethernet frame."""
        if not self._valid(acl_no) or len(frame) < _ETH_HDR_LEN:
            return ACL_DENY

        ethertype = int.from_bytes(frame[12:14], "big")
        if ethertype == ETHTYPE_ARP:
            self.allow_count += 1
            return ACL_ALLOW
        if ethertype != ETHTYPE_IP or len(frame) < _ETH_HDR_LEN + _IP_HDR_LEN:
            self.deny_count += 1
            return ACL_DENY

        ip_start = _ETH_HDR_LEN
        l4_start = ip_start + _IP_HDR_LEN
        proto = frame[ip_start + 9]
        src = int.from_bytes(frame[ip_start + 12:ip_start + 16], "big")
        dest = int.from_bytes(frame[ip_start + 16:ip_start + 20], "big")

        if proto in (IP_PROTO_UDP, IP_PROTO_TCP):
            header_len = _UDP_HDR_LEN if proto == IP_PROTO_UDP else _TCP_HDR_LEN
            if len(frame) < l4_start + header_len:
                return ACL_DENY
            s_port = int.from_bytes(frame[l4_start:l4_start + 2], "big")
            d_port = int.from_bytes(frame[l4_start + 2:l4_start + 4], "big")
        elif proto == IP_PROTO_ICMP:
            s_port = d_port = 0
        else:
            self.deny_count += 1
            return ACL_DENY

        allow = ACL_DENY
        for entry in self.acls[acl_no]:
            if entry.matches(proto, src, dest, s_port, d_port):
                allow = entry.allow
                entry.hit_count += 1
                break

        if not allow & ACL_ALLOW and self._deny_cb is not None:
            allow = self._deny_cb(proto, src, s_port, dest, d_port, allow)
        if allow & ACL_ALLOW:
            self.allow_count += 1
        else:
            self.deny_count += 1
        return allow

    def set_deny_callback(self, callback: Optional[DenyCallback]) -> None:
        """Install a hook consulted for denied packets; it returns new verdict bits."""
        self._deny_cb = callback

    def show(self, acl_no: int) -> str:
        """Return one line per rule describing it and its hit count."""
        if not self._valid(acl_no):
            return ""
        lines = []
        for entry in self.acls[acl_no]:
            src = addr_to_str(entry.src, entry.s_mask)
            dest = addr_to_str(entry.dest, entry.d_mask)
            action = "allow" if entry.allow & ACL_ALLOW else "deny"
            if entry.allow & ACL_MONITOR:
                action += "_monitor"
            if entry.proto != 0:
                name = "TCP" if entry.proto == IP_PROTO_TCP else "UDP"
                lines.append(
                    f"{name} {src}:{port_to_str(entry.s_port)} "
                    f"{dest}:{port_to_str(entry.d_port)} "
                    f"{action} ({entry.hit_count} hits)\r\n"
                )
            else:
                lines.append(f"IP {src} {dest} {action} ({entry.hit_count} hits)\r\n")
        return "".join(lines)