"""MQTT client state machine driven by transport events, a 1 s tick and a task loop."""

from __future__ import annotations

import logging
from typing import Optional

from .mqtt_msg import (
    ConnectReturnCode,
    MessageBuilder,
    MessageType,
    get_connect_return_code,
    get_id,
    get_publish_data,
    get_publish_topic,
    get_qos,
    get_total_length,
    get_type,
)
from .ringbuf import RingBufferEmpty, RingBufferFull
from .session import (
    MQTT_BUF_SIZE,
    MQTT_RECONNECT_TIMEOUT,
    MQTT_SEND_TIMEOUT,
    ConnState,
    MqttSession,
    Transport,
)

log = logging.getLogger(__name__)

_DISCONNECT_STATES = frozenset(
    (
        ConnState.MQTT_DELETING,
        ConnState.TCP_DISCONNECTING,
        ConnState.TCP_RECONNECT_DISCONNECTING,
    )
)
_DATA_STATES = frozenset((ConnState.MQTT_DATA, ConnState.MQTT_KEEPALIVE_SEND))


class MqttClient(MqttSession):
    """An MQTT session that reacts to transport events and runs its own task.

    The transport reports events by calling the ``handle_*`` methods; ``tick``
    is to be called once a second while the timer is armed, and ``run_task``
    whenever ``task_pending`` is set.
    """

    timer_armed = False

    # -- connection management -------------------------------------------

    def _drop_transport(self) -> None:
        if self.transport is not None:
            log.debug("TCP: free connection")
            self.transport.abort()
            self.transport = None

    def connect(self, transport: Optional[Transport] = None) -> None:
        """Start connecting to the broker over ``transport`` (or the current one)."""
        if transport is None:
            transport = self.transport
        if transport is None:
            raise RuntimeError("no transport to connect with")
        if self.transport is not None:
            self._drop_transport()
        self.transport = transport
        self.keepalive_tick = 0
        self.reconnect_tick = 0
        self.timer_armed = True
        log.debug("TCP: connect to %s:%d", self.host, self.port)
        transport.connect(self.host, self.port, self.security)
        self.conn_state = ConnState.TCP_CONNECTING

    def disconnect(self) -> None:
        """Ask for the connection to be closed and stop the timer."""
        self.conn_state = ConnState.TCP_DISCONNECTING
        self._post()
        self.timer_armed = False

    def delete(self) -> None:
        """Ask for the client to be torn down and stop the timer."""
        self.conn_state = ConnState.MQTT_DELETED
        self._post()
        self.timer_armed = False

    def _destroy(self) -> None:
        self._drop_transport()
        self.builder = None
        self.queue = None
        self.outbound_message = None
        self.user_data = None
        self.conn_state = ConnState.WIFI_INIT
        self.on_connected = None
        self.on_disconnected = None
        self.on_published = None
        self.on_timeout = None
        self.on_data = None
        log.debug("MQTT: client deleted")

    def _send(self, packet: bytes) -> bool:
        self.pending_msg_type = get_type(packet)
        self.pending_msg_id = get_id(packet)
        self.send_timeout = MQTT_SEND_TIMEOUT
        log.debug(
            "MQTT: sending, type: %d, id: %04X", self.pending_msg_type, self.pending_msg_id
        )
        if self.transport is None:
            return False
        return bool(self.transport.send(packet))

    def _queue_reply(self, packet: bytes) -> None:
        _, queue = self._require_configured()
        try:
            queue.put(packet)
        except RingBufferFull:
            log.debug("MQTT: queue full")

    # -- transport events ------------------------------------------------

    def handle_connected(self) -> None:
        """TCP is up: send CONNECT."""
        self._require_configured()
        log.debug("MQTT: connected to broker %s:%d", self.host, self.port)
        self.builder = MessageBuilder(MQTT_BUF_SIZE, self.protocol)
        packet = self.builder.connect(self.connect_info)
        self.outbound_message = packet
        self._send(packet)
        self.outbound_message = None
        self.conn_state = ConnState.MQTT_CONNECT_SENDING
        self._post()

    def _deliver_publish(self, packet: bytes) -> None:
        topic = get_publish_topic(packet)
        payload = get_publish_data(packet)
        if self.on_data is not None:
            self.on_data(self, topic or b"", payload or b"")

    def handle_received(self, data: bytes) -> None:
        """Process bytes received from the broker."""
        self.keepalive_tick = 0
        data = bytes(data)
        while True:
            if not 0 < len(data) < MQTT_BUF_SIZE:
                log.debug("ERROR: message too long")
                break
            msg_type = get_type(data)
            if self.conn_state == ConnState.MQTT_CONNECT_SENDING:
                if msg_type == MessageType.CONNACK:
                    self._handle_connack(data)
                break
            if self.conn_state not in _DATA_STATES:
                break
            total = get_total_length(data)
            self._handle_data_packet(data, msg_type)
            if msg_type == MessageType.PUBLISH and total < len(data):
                log.debug("MQTT: another published message follows")
                data = data[total:]
                continue
            break
        self._post()

    def _handle_connack(self, data: bytes) -> None:
        if self.pending_msg_type != MessageType.CONNECT:
            log.debug("MQTT: invalid packet")
            if self.transport is not None:
                self.transport.disconnect()
            return
        code = get_connect_return_code(data) if len(data) >= 4 else None
        if code == ConnectReturnCode.ACCEPTED:
            log.debug("MQTT: connected to %s:%d", self.host, self.port)
            self.conn_state = ConnState.MQTT_DATA
            if self.on_connected is not None:
                self.on_connected(self)
            return
        log.debug("MQTT: connection refused, reason code: %s", code)
        if self.transport is not None:
            self.transport.disconnect()

    def _handle_data_packet(self, data: bytes, msg_type: int) -> None:
        builder, _ = self._require_configured()
        msg_id = get_id(data)
        if msg_type == MessageType.PUBLISH:
            qos = get_qos(data)
            if qos in (1, 2):
                reply = builder.puback(msg_id) if qos == 1 else builder.pubrec(msg_id)
                self.outbound_message = reply
                log.debug("MQTT: queue response QoS: %d", qos)
                self._queue_reply(reply)
            self._deliver_publish(data)
        elif msg_type == MessageType.PUBREC:
            self.outbound_message = builder.pubrel(msg_id)
            self._queue_reply(self.outbound_message)
        elif msg_type == MessageType.PUBREL:
            self.outbound_message = builder.pubcomp(msg_id)
            self._queue_reply(self.outbound_message)
        elif msg_type == MessageType.PINGREQ:
            self.outbound_message = builder.pingresp()
            self._queue_reply(self.outbound_message)
        elif msg_type in (MessageType.SUBACK, MessageType.UNSUBACK,
                          MessageType.PUBACK, MessageType.PUBCOMP):
            log.debug("MQTT: received type %d for id %d", msg_type, msg_id)

    def handle_sent(self) -> None:
        """The last send has completed."""
        self.send_timeout = 0
        self.keepalive_tick = 0
        if (
            self.conn_state in _DATA_STATES
            and self.pending_msg_type == MessageType.PUBLISH
            and self.on_published is not None
        ):
            self.on_published(self)
        self._post()

    def handle_disconnected(self) -> None:
        """The transport has closed."""
        if self.conn_state == ConnState.TCP_DISCONNECTING:
            self.conn_state = ConnState.TCP_DISCONNECTED
        elif self.conn_state == ConnState.MQTT_DELETING:
            self.conn_state = ConnState.MQTT_DELETED
        else:
            self.conn_state = ConnState.TCP_RECONNECT_REQ
        if self.on_disconnected is not None:
            self.on_disconnected(self)
        self._post()

    def handle_reconnect(self) -> None:
        """The transport failed and asks for a reconnect."""
        log.debug("TCP: reconnect to %s:%d", self.host, self.port)
        self.conn_state = ConnState.TCP_RECONNECT_REQ
        self._post()

    # -- periodic work ---------------------------------------------------

    def send_keepalive(self) -> None:
        """Send PINGREQ directly, bypassing the queue."""
        builder, _ = self._require_configured()
        packet = builder.pingreq()
        self.outbound_message = packet
        ok = self._send(packet)
        self.outbound_message = None
        if ok:
            self.keepalive_tick = 0
            self.conn_state = ConnState.MQTT_DATA
        else:
            self.conn_state = ConnState.TCP_RECONNECT_DISCONNECTING
        self._post()

    def tick(self) -> None:
        """Advance the one-second timer."""
        if self.conn_state == ConnState.MQTT_DATA:
            self.keepalive_tick += 1
            if self.keepalive_tick > self.connect_info.keepalive // 2:
                self.conn_state = ConnState.MQTT_KEEPALIVE_SEND
                self._post()
        elif self.conn_state == ConnState.TCP_RECONNECT_REQ:
            self.reconnect_tick += 1
            if self.reconnect_tick > MQTT_RECONNECT_TIMEOUT:
                self.reconnect_tick = 0
                self.conn_state = ConnState.TCP_RECONNECT
                self._post()
                if self.on_timeout is not None:
                    self.on_timeout(self)
        if self.send_timeout > 0:
            self.send_timeout -= 1

    def run_task(self) -> None:
        """Run one step of the client task for the current state."""
        self.task_pending = False
        state = self.conn_state
        if state == ConnState.TCP_RECONNECT:
            transport = self.transport
            self._drop_transport()
            self.connect(transport)
            self.conn_state = ConnState.TCP_CONNECTING
        elif state in _DISCONNECT_STATES:
            if self.transport is not None:
                self.transport.disconnect()
        elif state == ConnState.TCP_DISCONNECTED:
            log.debug("MQTT: disconnected")
            self._drop_transport()
        elif state == ConnState.MQTT_DELETED:
            self._destroy()
        elif state == ConnState.MQTT_KEEPALIVE_SEND:
            self.send_keepalive()
        elif state == ConnState.MQTT_DATA:
            self._send_next_queued()

    def _send_next_queued(self) -> None:
        if self.queue is None or self.queue.is_empty() or self.send_timeout != 0:
            return
        try:
            packet = self.queue.get(MQTT_BUF_SIZE)
        except RingBufferEmpty:
            return
        if not packet:
            return
        self._send(packet)
        self.outbound_message = None