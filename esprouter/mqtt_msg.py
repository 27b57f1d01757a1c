"""Building and inspecting MQTT 3.1 / 3.1.1 control packets."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Tuple, Union

Text = Union[str, bytes, bytearray]

_FIXED_HEADER_SIZE = 3

_FLAG_USERNAME = 1 << 7
_FLAG_PASSWORD = 1 << 6
_FLAG_WILL_RETAIN = 1 << 5
_FLAG_WILL = 1 << 2
_FLAG_CLEAN_SESSION = 1 << 1


class MessageType(IntEnum):
    """Control packet types carried in the high nibble of the first byte."""

    CONNECT = 1
    CONNACK = 2
    PUBLISH = 3
    PUBACK = 4
    PUBREC = 5
    PUBREL = 6
    PUBCOMP = 7
    SUBSCRIBE = 8
    SUBACK = 9
    UNSUBSCRIBE = 10
    UNSUBACK = 11
    PINGREQ = 12
    PINGRESP = 13
    DISCONNECT = 14


class ConnectReturnCode(IntEnum):
    """Return codes of a CONNACK packet."""

    ACCEPTED = 0
    REFUSE_PROTOCOL = 1
    REFUSE_ID_REJECTED = 2
    REFUSE_SERVER_UNAVAILABLE = 3
    REFUSE_BAD_USERNAME = 4
    REFUSE_NOT_AUTHORIZED = 5


class ProtocolVersion(Enum):
    """Protocol name and level written into CONNECT."""

    V31 = (b"MQIsdp", 3)
    V311 = (b"MQTT", 4)

    @property
    def protocol_name(self) -> bytes:
        return self.value[0]

    @property
    def level(self) -> int:
        return self.value[1]


@dataclass
class ConnectInfo:
    """Parameters of a CONNECT packet."""

    client_id: Optional[Text] = None
    username: Optional[Text] = None
    password: Optional[Text] = None
    will_topic: Optional[Text] = None
    will_message: Optional[Text] = None
    keepalive: int = 0
    will_qos: int = 0
    will_retain: bool = False
    clean_session: bool = False


def _to_bytes(value: Optional[Text]) -> bytes:
    if value is None:
        return b""
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


class MessageBuilder:
    """Encodes packets that must fit in a buffer of ``buffer_length`` bytes.

    Three bytes of every buffer are reserved for the fixed header. Building a
    packet that does not fit, or that lacks a required field, raises ValueError.
    """

    def __init__(
        self,
        buffer_length: int = 1024,
        protocol: ProtocolVersion = ProtocolVersion.V311,
    ) -> None:
        self.buffer_length = buffer_length
        self.protocol = protocol
        self.message_id = 0

    def _check_room(self, body: bytearray, extra: int) -> None:
        if _FIXED_HEADER_SIZE + len(body) + extra > self.buffer_length:
            raise ValueError("message does not fit in buffer")

    def _append_string(self, body: bytearray, value: Optional[Text]) -> None:
        data = _to_bytes(value)
        self._check_room(body, len(data) + 2)
        body += (len(data) & 0xFFFF).to_bytes(2, "big")
        body += data

    def _append_message_id(self, body: bytearray, message_id: int) -> int:
        while message_id == 0:
            self.message_id = (self.message_id + 1) & 0xFFFF
            message_id = self.message_id
        self._check_room(body, 2)
        body += message_id.to_bytes(2, "big")
        return message_id

    @staticmethod
    def _finish(
        msg_type: MessageType, body: bytes, dup: int = 0, qos: int = 0, retain: int = 0
    ) -> bytes:
        first = ((msg_type & 0x0F) << 4) | ((dup & 1) << 3) | ((qos & 3) << 1) | (retain & 1)
        remaining = len(body)
        if remaining > 127:
            header = bytes((first, 0x80 | (remaining % 128), (remaining // 128) & 0xFF))
        else:
            header = bytes((first, remaining))
        return header + bytes(body)

    def connect(self, info: ConnectInfo) -> bytes:
        """Encode CONNECT from ``info``."""
        name = self.protocol.protocol_name
        header_size = 2 + len(name) + 4
        body = bytearray()
        self._check_room(body, header_size)

        flags = _FLAG_CLEAN_SESSION if info.clean_session else 0
        body += len(name).to_bytes(2, "big") + name
        body.append(self.protocol.level)
        flags_at = len(body)
        body.append(0)
        body += bytes(((info.keepalive >> 8) & 0xFF, info.keepalive & 0xFF))

        if info.client_id is None:
            raise ValueError("client id is required")
        client_id = _to_bytes(info.client_id)
        if not client_id:
            if self.protocol is not ProtocolVersion.V311:
                raise ValueError("empty client id needs protocol 3.1.1")
            # Written as a length of two followed by two zero bytes; dropped
            # silently when the buffer has no room for it.
            if _FIXED_HEADER_SIZE + len(body) + 4 <= self.buffer_length:
                body += b"\x00\x02\x00\x00"
        else:
            self._append_string(body, client_id)

        if info.will_topic:
            self._append_string(body, info.will_topic)
            self._append_string(body, info.will_message)
            flags |= _FLAG_WILL
            if info.will_retain:
                flags |= _FLAG_WILL_RETAIN
            flags |= (info.will_qos & 3) << 3

        if info.username:
            self._append_string(body, info.username)
            flags |= _FLAG_USERNAME

        if info.password:
            self._append_string(body, info.password)
            flags |= _FLAG_PASSWORD

        body[flags_at] = flags
        return self._finish(MessageType.CONNECT, body)

    def publish(
        self, topic: Text, data: Text, qos: int = 0, retain: int = 0
    ) -> Tuple[bytes, int]:
        """Encode PUBLISH; return the packet and its message id (0 for QoS 0)."""
        topic_bytes = _to_bytes(topic)
        if not topic_bytes:
            raise ValueError("topic is required")
        body = bytearray()
        self._append_string(body, topic_bytes)
        message_id = self._append_message_id(body, 0) if qos > 0 else 0
        payload = _to_bytes(data)
        self._check_room(body, len(payload))
        body += payload
        return self._finish(MessageType.PUBLISH, body, 0, qos, retain), message_id

    def _ack(self, msg_type: MessageType, message_id: int, qos: int = 0) -> bytes:
        body = bytearray()
        self._append_message_id(body, message_id)
        return self._finish(msg_type, body, 0, qos, 0)

    def puback(self, message_id: int) -> bytes:
        """Encode PUBACK."""
        return self._ack(MessageType.PUBACK, message_id)

    def pubrec(self, message_id: int) -> bytes:
        """Encode PUBREC."""
        return self._ack(MessageType.PUBREC, message_id)

    def pubrel(self, message_id: int) -> bytes:
        """Encode PUBREL (sent with QoS 1 as the protocol requires)."""
        return self._ack(MessageType.PUBREL, message_id, qos=1)

    def pubcomp(self, message_id: int) -> bytes:
        """Encode PUBCOMP."""
        return self._ack(MessageType.PUBCOMP, message_id)

    def subscribe(self, topic: Text, qos: int = 0) -> Tuple[bytes, int]:
        """Encode SUBSCRIBE for one topic; return the packet and its message id."""
        topic_bytes = _to_bytes(topic)
        if not topic_bytes:
            raise ValueError("topic is required")
        body = bytearray()
        message_id = self._append_message_id(body, 0)
        self._append_string(body, topic_bytes)
        self._check_room(body, 1)
        body.append(qos & 0xFF)
        return self._finish(MessageType.SUBSCRIBE, body, 0, 1, 0), message_id

    def unsubscribe(self, topic: Text) -> Tuple[bytes, int]:
        """Encode UNSUBSCRIBE for one topic; return the packet and its message id."""
        topic_bytes = _to_bytes(topic)
        if not topic_bytes:
            raise ValueError("topic is required")
        body = bytearray()
        message_id = self._append_message_id(body, 0)
        self._append_string(body, topic_bytes)
        return self._finish(MessageType.UNSUBSCRIBE, body, 0, 1, 0), message_id

    def pingreq(self) -> bytes:
        """Encode PINGREQ."""
        return self._finish(MessageType.PINGREQ, b"")

    def pingresp(self) -> bytes:
        """Encode PINGRESP."""
        return self._finish(MessageType.PINGRESP, b"")

    def disconnect(self) -> bytes:
        """Encode DISCONNECT."""
        return self._finish(MessageType.DISCONNECT, b"")


def get_type(buffer: bytes) -> int:
    """Packet type from the first byte."""
    return (buffer[0] & 0xF0) >> 4


def get_connect_return_code(buffer: bytes) -> int:
    """Return code of a CONNACK packet."""
    return buffer[3]


def get_dup(buffer: bytes) -> int:
    """DUP flag from the first byte."""
    return (buffer[0] & 0x08) >> 3


def get_qos(buffer: bytes) -> int:
    """QoS level from the first byte."""
    return (buffer[0] & 0x06) >> 1


def get_retain(buffer: bytes) -> int:
    """RETAIN flag from the first byte."""
    return buffer[0] & 0x01


def _decode_remaining(buffer: bytes) -> Tuple[int, int]:
    """Return the remaining length and the offset just past its encoding."""
    length = len(buffer)
    total = 0
    i = 1
    while i < length:
        total += (buffer[i] & 0x7F) << (7 * (i - 1))
        i += 1
        if not buffer[i - 1] & 0x80:
            break
    return total, i


def get_total_length(buffer: bytes) -> int:
    """Length of the whole packet at the start of ``buffer``, header included."""
    remaining, offset = _decode_remaining(buffer)
    return remaining + offset


def get_publish_topic(buffer: bytes) -> Optional[bytes]:
    """Topic of a PUBLISH packet, or None if the buffer is too short."""
    length = len(buffer)
    _, i = _decode_remaining(buffer)
    if i + 2 >= length:
        return None
    topic_len = (buffer[i] << 8) | buffer[i + 1]
    i += 2
    if i + topic_len > length:
        return None
    return bytes(buffer[i:i + topic_len])


def get_publish_data(buffer: bytes) -> Optional[bytes]:
    """Payload of the PUBLISH packet at the start of ``buffer``, or None."""
    length = len(buffer)
    remaining, i = _decode_remaining(buffer)
    total = remaining + i
    if i + 2 >= length:
        return None
    topic_len = (buffer[i] << 8) | buffer[i + 1]
    i += 2
    if i + topic_len >= length:
        return None
    i += topic_len
    if get_qos(buffer) > 0:
        if i + 2 >= length:
            return None
        i += 2
    if total < i:
        return None
    end = total if total <= length else length
    return bytes(buffer[i:end])


_ID_AFTER_HEADER = frozenset(
    (
        MessageType.PUBACK,
        MessageType.PUBREC,
        MessageType.PUBREL,
        MessageType.PUBCOMP,
        MessageType.SUBACK,
        MessageType.UNSUBACK,
        MessageType.SUBSCRIBE,
    )
)


def get_id(buffer: bytes) -> int:
    """Message id of a packet, or 0 when it has none or cannot be read."""
    length = len(buffer)
    if length < 1:
        return 0
    msg_type = get_type(buffer)
    if msg_type == MessageType.PUBLISH:
        _, i = _decode_remaining(buffer)
        if i + 2 >= length:
            return 0
        topic_len = (buffer[i] << 8) | buffer[i + 1]
        i += 2
        if i + topic_len >= length:
            return 0
        i += topic_len
        if get_qos(buffer) == 0 or i + 2 >= length:
            return 0
        return (buffer[i] << 8) | buffer[i + 1]
    if msg_type in _ID_AFTER_HEADER:
        # Only a one-byte remaining length is supported here.
        if length >= 4 and not buffer[1] & 0x80:
            return (buffer[2] << 8) | buffer[3]
    return 0