from ipaddress import IPv4Address

import pytest

from esprouter.acl import (
    ACL_ALLOW,
    ACL_DENY,
    ACL_MONITOR,
    ETHTYPE_ARP,
    ETHTYPE_IP,
    IP_PROTO_ICMP,
    IP_PROTO_TCP,
    IP_PROTO_UDP,
    MAX_ACL_ENTRIES,
    AclTable,
    addr_to_str,
    port_to_str,
)


def _ip(text):
    return int(IPv4Address(text))


def _frame(ethertype=ETHTYPE_IP, proto=IP_PROTO_UDP, src="10.0.0.1",
           dst="10.0.0.2", sport=1000, dport=53, l4_len=8):
    eth = bytes(12) + ethertype.to_bytes(2, "big")
    ip = bytearray(20)
    ip[0] = 0x45
    ip[9] = proto
    ip[12:16] = IPv4Address(src).packed
    ip[16:20] = IPv4Address(dst).packed
    l4 = sport.to_bytes(2, "big") + dport.to_bytes(2, "big") + bytes(max(l4_len - 4, 0))
    return eth + bytes(ip) + l4[:l4_len]


def test_arp_always_allowed():
    table = AclTable()
    assert table.check_packet(0, _frame(ethertype=ETHTYPE_ARP)) == ACL_ALLOW
    assert table.allow_count == 1


def test_non_ip_denied_and_counted():
    table = AclTable()
    assert table.check_packet(0, _frame(ethertype=0x86DD)) == ACL_DENY
    assert table.deny_count == 1


def test_short_frame_denied_without_counting():
    table = AclTable()
    assert table.check_packet(0, b"\x00" * 10) == ACL_DENY
    assert table.check_packet(0, _frame(l4_len=4)) == ACL_DENY
    assert (table.allow_count, table.deny_count) == (0, 0)


def test_empty_acl_denies_ip():
    table = AclTable()
    assert table.check_packet(0, _frame()) == ACL_DENY
    assert table.deny_count == 1


def test_matching_rule_allows_and_counts_hit():
    table = AclTable()
    entry = table.add(0, 0, 0, 0, 0, IP_PROTO_UDP, 0, 53, ACL_ALLOW)
    assert table.check_packet(0, _frame()) == ACL_ALLOW
    assert entry.hit_count == 1
    assert table.check_packet(0, _frame(dport=54)) == ACL_DENY
    assert entry.hit_count == 1


def test_first_match_wins():
    table = AclTable()
    table.add(0, _ip("10.0.0.0"), _ip("255.0.0.0"), 0, 0, 0, 0, 0, ACL_DENY)
    table.add(0, 0, 0, 0, 0, 0, 0, 0, ACL_ALLOW)
    assert table.check_packet(0, _frame(src="10.1.2.3")) == ACL_DENY
    assert table.check_packet(0, _frame(src="192.168.4.2")) == ACL_ALLOW


def test_tcp_and_icmp_ports():
    table = AclTable()
    table.add(1, 0, 0, 0, 0, IP_PROTO_TCP, 0, 80, ACL_ALLOW)
    table.add(1, 0, 0, 0, 0, IP_PROTO_ICMP, 0, 0, ACL_ALLOW | ACL_MONITOR)
    assert table.check_packet(1, _frame(proto=IP_PROTO_TCP, dport=80, l4_len=20)) == ACL_ALLOW
    assert table.check_packet(1, _frame(proto=IP_PROTO_ICMP)) == ACL_ALLOW | ACL_MONITOR


def test_unknown_protocol_denied():
    table = AclTable()
    table.add(0, 0, 0, 0, 0, 0, 0, 0, ACL_ALLOW)
    assert table.check_packet(0, _frame(proto=47)) == ACL_DENY


def test_deny_callback_can_override():
    table = AclTable()
    calls = []

    def hook(proto, saddr, s_port, daddr, d_port, allow):
        calls.append((proto, saddr, s_port, daddr, d_port, allow))
        return ACL_ALLOW

    table.set_deny_callback(hook)
    assert table.check_packet(0, _frame()) == ACL_ALLOW
    assert calls == [(IP_PROTO_UDP, _ip("10.0.0.1"), 1000, _ip("10.0.0.2"), 53, ACL_DENY)]


def test_clear_stats_drops_callback_and_hits():
    table = AclTable()
    entry = table.add(0, 0, 0, 0, 0, 0, 0, 0, ACL_DENY)
    table.set_deny_callback(lambda *args: ACL_ALLOW)
    table.check_packet(0, _frame())
    table.clear_stats(0)
    assert entry.hit_count == 0
    assert table.check_packet(0, _frame()) == ACL_DENY


def test_is_empty_and_clear():
    table = AclTable()
    assert table.is_empty(0)
    assert table.is_empty(99)
    table.add(0, 0, 0, 0, 0, 0, 0, 0, ACL_ALLOW)
    assert not table.is_empty(0)
    table.clear(0)
    assert table.is_empty(0)


def test_add_rejects_full_and_invalid():
    table = AclTable()
    for _ in range(MAX_ACL_ENTRIES):
        table.add(2, 0, 0, 0, 0, 0, 0, 0, ACL_ALLOW)
    with pytest.raises(ValueError):
        table.add(2, 0, 0, 0, 0, 0, 0, 0, ACL_ALLOW)
    with pytest.raises(ValueError):
        table.add(99, 0, 0, 0, 0, 0, 0, 0, ACL_ALLOW)


def test_invalid_acl_denies_without_counting():
    table = AclTable()
    assert table.check_packet(99, _frame()) == ACL_DENY
    assert table.deny_count == 0


def test_add_masks_source():
    table = AclTable()
    entry = table.add(0, _ip("192.168.4.77"), _ip("255.255.255.0"), 0, 0, 0, 0, 0, ACL_ALLOW)
    assert entry.src == _ip("192.168.4.0")


def test_addr_to_str():
    assert addr_to_str(0, 0) == "any"
    assert addr_to_str(_ip("192.168.4.0"), _ip("255.255.255.0")) == "192.168.4.0/24"
    assert addr_to_str(_ip("10.0.0.1"), 0xFFFFFFFF) == "10.0.0.1"


def test_port_to_str():
    assert port_to_str(0) == "any"
    assert port_to_str(8080) == "8080"


def test_show_lists_rules():
    table = AclTable()
    table.add(0, 0, 0, 0, 0, IP_PROTO_UDP, 0, 53, ACL_ALLOW)
    table.add(0, 0, 0, 0, 0, 0, 0, 0, ACL_DENY | ACL_MONITOR)
    table.check_packet(0, _frame())
    assert table.show(0) == (
        "UDP any:any any:53 allow (1 hits)\r\n"
        "IP any any deny_monitor (0 hits)\r\n"
    )
    assert table.show(99) == ""