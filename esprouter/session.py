"""State shared by an MQTT client: connection settings, outgoing queue and callbacks."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Any, Callable, Optional

from .msgqueue import MessageQueue
from .mqtt_msg import ConnectInfo, MessageBuilder, ProtocolVersion, Text
from .ringbuf import RingBufferEmpty, RingBufferFull

log = logging.getLogger(__name__)

MQTT_BUF_SIZE = 1024
QUEUE_BUFFER_SIZE = 2048
MQTT_SEND_TIMEOUT = 5
MQTT_RECONNECT_TIMEOUT = 5

SEC_NONSSL = 0
SEC_SSL = 1


class ConnState(IntEnum):
    """Connection state machine of a client."""

    WIFI_INIT = 0
    WIFI_CONNECTING = 1
    WIFI_CONNECTING_ERROR = 2
    WIFI_CONNECTED = 3
    DNS_RESOLVE = 4
    TCP_DISCONNECTING = 5
    TCP_DISCONNECTED = 6
    TCP_RECONNECT_DISCONNECTING = 7
    TCP_RECONNECT_REQ = 8
    TCP_RECONNECT = 9
    TCP_CONNECTING = 10
    TCP_CONNECTING_ERROR = 11
    TCP_CONNECTED = 12
    MQTT_CONNECT_SEND = 13
    MQTT_CONNECT_SENDING = 14
    MQTT_SUBSCIBE_SEND = 15
    MQTT_SUBSCIBE_SENDING = 16
    MQTT_DATA = 17
    MQTT_KEEPALIVE_SEND = 18
    MQTT_PUBLISH_RECV = 19
    MQTT_PUBLISHING = 20
    MQTT_DELETING = 21
    MQTT_DELETED = 22


class Transport(ABC):
    """Byte stream to the broker used by a client."""

    @abstractmethod
    def connect(self, host: str, port: int, secure: bool) -> None:
        """Start connecting to ``host``:``port``, over TLS when ``secure``."""

    @abstractmethod
    def send(self, data: bytes) -> bool:
        """Send ``data``; return True if it was accepted for sending."""

    @abstractmethod
    def disconnect(self) -> None:
        """Close the connection gracefully."""

    def abort(self) -> None:
        """Drop the connection at once."""
        self.disconnect()


SessionCallback = Callable[["MqttSession"], Any]
DataCallback = Callable[["MqttSession", bytes, bytes], Any]


class MqttSession:
    """Connection settings, message queue and callbacks of one MQTT client."""

    def __init__(self, host: str, port: int = 1883, security: bool = False) -> None:
        log.debug("MQTT: init connection")
        self.host = host
        self.port = port
        self.security = bool(security)
        self.protocol = ProtocolVersion.V311

        self.connect_info = ConnectInfo()
        self.builder: Optional[MessageBuilder] = None
        self.queue: Optional[MessageQueue] = None
        self.transport: Optional[Transport] = None

        self.conn_state = ConnState.WIFI_INIT
        self.keepalive_tick = 0
        self.reconnect_tick = 0
        self.send_timeout = 0
        self.pending_msg_type = 0
        self.pending_msg_id = 0
        self.outbound_message: Optional[bytes] = None
        self.task_pending = False
        self.user_data: Any = None

        self.on_connected: Optional[SessionCallback] = None
        self.on_disconnected: Optional[SessionCallback] = None
        self.on_published: Optional[SessionCallback] = None
        self.on_timeout: Optional[SessionCallback] = None
        self.on_data: Optional[DataCallback] = None

    def _post(self) -> None:
        """Ask for the client task to run."""
        self.task_pending = True

    def configure(
        self,
        client_id: Optional[Text],
        username: Optional[Text] = None,
        password: Optional[Text] = None,
        keepalive: int = 120,
        clean_session: bool = True,
    ) -> None:
        """Set the login details and allocate the builder and outgoing queue.

        A missing client id is only allowed with protocol 3.1.1 and a clean
        session; otherwise ValueError is raised.
        """
        log.debug("MQTT: init client")
        if client_id is None:
            if self.protocol is not ProtocolVersion.V311:
                raise ValueError("client id required for protocol 3.1")
            if not clean_session:
                raise ValueError("clean session must be set to use an empty client id")
            client_id = ""

        self.connect_info = ConnectInfo(
            client_id=client_id,
            username=username,
            password=password,
            keepalive=keepalive,
            clean_session=bool(clean_session),
        )
        self.builder = MessageBuilder(MQTT_BUF_SIZE, self.protocol)
        self.queue = MessageQueue(QUEUE_BUFFER_SIZE)
        self._post()

    def set_last_will(
        self,
        will_topic: Text,
        will_message: Text,
        will_qos: int = 0,
        will_retain: bool = False,
    ) -> None:
        """Set the last-will message sent with CONNECT."""
        self.connect_info.will_topic = will_topic
        self.connect_info.will_message = will_message
        self.connect_info.will_qos = will_qos
        self.connect_info.will_retain = bool(will_retain)

    def _require_configured(self) -> tuple[MessageBuilder, MessageQueue]:
        if self.builder is None or self.queue is None:
            raise RuntimeError("session is not configured")
        return self.builder, self.queue

    def _enqueue(self, packet: bytes) -> None:
        """Queue ``packet``, dropping the oldest messages until it fits."""
        _, queue = self._require_configured()
        while True:
            try:
                queue.put(packet)
                break
            except RingBufferFull:
                log.debug("MQTT: queue full")
                try:
                    queue.get(MQTT_BUF_SIZE)
                except RingBufferEmpty:
                    raise BufferError("message does not fit in the queue") from None
        self._post()

    def publish(
        self, topic: Text, data: Text, qos: int = 0, retain: bool = False
    ) -> int:
        """Queue a PUBLISH; return its message id (0 for QoS 0)."""
        builder, _ = self._require_configured()
        packet, message_id = builder.publish(topic, data, qos, int(retain))
        self.outbound_message = packet
        self.pending_msg_id = message_id
        log.debug("MQTT: queuing publish, length: %d", len(packet))
        self._enqueue(packet)
        return message_id

    def subscribe(self, topic: Text, qos: int = 0) -> int:
        """Queue a SUBSCRIBE; return its message id."""
        builder, _ = self._require_configured()
        packet, message_id = builder.subscribe(topic, qos)
        self.outbound_message = packet
        self.pending_msg_id = message_id
        log.debug("MQTT: queue subscribe, topic %r, id: %d", topic, message_id)
        self._enqueue(packet)
        return message_id

    def unsubscribe(self, topic: Text) -> int:
        """Queue an UNSUBSCRIBE; return its message id."""
        builder, _ = self._require_configured()
        packet, message_id = builder.unsubscribe(topic)
        self.outbound_message = packet
        self.pending_msg_id = message_id
        log.debug("MQTT: queue unsubscribe, topic %r, id: %d", topic, message_id)
        self._enqueue(packet)
        return message_id

    def ping(self) -> None:
        """Queue a PINGREQ."""
        builder, _ = self._require_configured()
        packet = builder.pingreq()
        self.outbound_message = packet
        self._enqueue(packet)