import pytest

from esprouter.mqtt_msg import (
    ConnectInfo,
    ConnectReturnCode,
    MessageBuilder,
    MessageType,
    ProtocolVersion,
    get_connect_return_code,
    get_dup,
    get_id,
    get_publish_data,
    get_publish_topic,
    get_qos,
    get_retain,
    get_total_length,
    get_type,
)


@pytest.fixture
def builder():
    return MessageBuilder(1024, ProtocolVersion.V311)


def test_pingreq_wire_bytes(builder):
    packet = builder.pingreq()
    assert packet == b"\xc0\x00"
    assert get_type(packet) == MessageType.PINGREQ


def test_pingresp_and_disconnect_types(builder):
    assert get_type(builder.pingresp()) == MessageType.PINGRESP
    assert get_type(builder.disconnect()) == MessageType.DISCONNECT
    assert len(builder.disconnect()) == 2


def test_puback_wire_bytes(builder):
    packet = builder.puback(0x1234)
    assert packet == b"\x40\x02\x12\x34"
    assert get_id(packet) == 0x1234


@pytest.mark.parametrize(
    "method, msg_type, qos",
    [
        ("pubrec", MessageType.PUBREC, 0),
        ("pubrel", MessageType.PUBREL, 1),
        ("pubcomp", MessageType.PUBCOMP, 0),
    ],
)
def test_ack_packets(builder, method, msg_type, qos):
    packet = getattr(builder, method)(77)
    assert get_type(packet) == msg_type
    assert get_qos(packet) == qos
    assert get_id(packet) == 77
    assert get_total_length(packet) == len(packet)


def test_publish_qos0_round_trip(builder):
    packet, message_id = builder.publish("a/b", b"hello", 0, 0)
    assert message_id == 0
    assert get_type(packet) == MessageType.PUBLISH
    assert get_publish_topic(packet) == b"a/b"
    assert get_publish_data(packet) == b"hello"
    assert get_total_length(packet) == len(packet)
    assert get_id(packet) == 0


def test_publish_qos1_assigns_increasing_ids(builder):
    first, id1 = builder.publish("t", b"x", 1, 0)
    second, id2 = builder.publish("t", b"y", 1, 0)
    assert id1 == 1
    assert id2 == 2
    assert get_id(first) == id1
    assert get_id(second) == id2
    assert get_qos(second) == 1
    assert get_publish_data(second) == b"y"


def test_publish_retain_flag(builder):
    packet, _ = builder.publish("t", b"x", 0, 1)
    assert get_retain(packet) == 1
    assert get_dup(packet) == 0


def test_message_id_skips_zero_on_wrap(builder):
    builder.message_id = 0xFFFF
    _, message_id = builder.publish("t", b"x", 1, 0)
    assert message_id == 1


def test_publish_large_payload_uses_two_length_bytes(builder):
    payload = bytes(range(256)) * 2
    packet, _ = builder.publish("topic", payload, 0, 0)
    assert packet[1] & 0x80
    assert get_total_length(packet) == len(packet)
    assert get_publish_data(packet) == payload
    assert get_publish_topic(packet) == b"topic"


def test_publish_data_limited_to_first_packet(builder):
    first, _ = builder.publish("one", b"first", 0, 0)
    second, _ = builder.publish("two", b"second", 0, 0)
    joined = first + second
    assert get_publish_data(joined) == b"first"
    assert get_total_length(joined) == len(first)


def test_publish_empty_topic_raises(builder):
    with pytest.raises(ValueError):
        builder.publish("", b"x", 0, 0)


def test_publish_too_large_raises():
    small = MessageBuilder(16)
    with pytest.raises(ValueError):
        small.publish("topic", b"x" * 20, 0, 0)


def test_subscribe_packet(builder):
    packet, message_id = builder.subscribe("sensors/#", 1)
    assert get_type(packet) == MessageType.SUBSCRIBE
    assert get_qos(packet) == 1
    assert get_id(packet) == message_id
    assert packet[-1] == 1
    assert b"sensors/#" in packet


def test_unsubscribe_packet(builder):
    packet, message_id = builder.unsubscribe("sensors/#")
    assert message_id == 1
    assert get_type(packet) == MessageType.UNSUBSCRIBE
    assert packet.endswith(b"sensors/#")
    # UNSUBSCRIBE is not among the types whose id get_id reads.
    assert get_id(packet) == 0


def test_subscribe_empty_topic_raises(builder):
    with pytest.raises(ValueError):
        builder.subscribe("", 0)


def test_connect_v311_header(builder):
    info = ConnectInfo(client_id="dev", keepalive=120, clean_session=True)
    packet = builder.connect(info)
    assert get_type(packet) == MessageType.CONNECT
    assert packet[2:9] == b"\x00\x04MQTT\x04"
    flags = packet[9]
    assert flags & 0x02
    assert int.from_bytes(packet[10:12], "big") == 120
    assert packet[12:] == len(b"dev").to_bytes(2, "big") + b"dev"
    assert get_total_length(packet) == len(packet)


def test_connect_v31_header():
    builder = MessageBuilder(1024, ProtocolVersion.V31)
    packet = builder.connect(ConnectInfo(client_id="dev"))
    assert packet[2:11] == b"\x00\x06MQIsdp\x03"
    assert packet.endswith(b"dev")


def test_connect_flags_with_credentials_and_will(builder):
    password = "password"
    info = ConnectInfo(
        client_id="dev",
        username="user",
        password=password,
        will_topic="last/will",
        will_message="gone",
        will_qos=1,
        will_retain=True,
    )
    packet = builder.connect(info)
    flags = packet[9]
    assert flags & 0x80
    assert flags & 0x40
    assert flags & 0x20
    assert flags & 0x04
    assert (flags >> 3) & 3 == 1
    assert not flags & 0x02
    assert packet.endswith(b"user" + len(b"password").to_bytes(2, "big") + b"password")
    assert b"last/will" in packet and b"gone" in packet


def test_connect_without_client_id_raises(builder):
    with pytest.raises(ValueError):
        builder.connect(ConnectInfo(client_id=None))


def test_connect_empty_client_id_v31_raises():
    builder = MessageBuilder(1024, ProtocolVersion.V31)
    with pytest.raises(ValueError):
        builder.connect(ConnectInfo(client_id=""))


def test_connect_empty_client_id_v311(builder):
    packet = builder.connect(ConnectInfo(client_id="", clean_session=True))
    assert packet.endswith(b"\x00\x02\x00\x00")


def test_connect_buffer_too_small_raises():
    with pytest.raises(ValueError):
        MessageBuilder(8).connect(ConnectInfo(client_id="dev"))


def test_connect_return_code():
    connack = bytes((MessageType.CONNACK << 4, 2, 0, ConnectReturnCode.REFUSE_NOT_AUTHORIZED))
    assert get_connect_return_code(connack) == ConnectReturnCode.REFUSE_NOT_AUTHORIZED
    assert get_type(connack) == MessageType.CONNACK


def test_get_id_of_empty_buffer():
    assert get_id(b"") == 0


def test_truncated_publish_has_no_topic_or_data(builder):
    packet, _ = builder.publish("long/topic", b"payload", 0, 0)
    truncated = packet[:5]
    assert get_publish_topic(truncated) is None
    assert get_publish_data(truncated) is None