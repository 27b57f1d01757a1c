# esprouter

Pure-Python building blocks for a small Wi-Fi router or MQTT device. The
package has no dependencies outside the standard library.

| Module | What it provides |
| --- | --- |
| `esprouter.ringbuf` | `RingBuffer`, a fixed-size byte FIFO. `put` raises `RingBufferFull` and `get` raises `RingBufferEmpty`. |
| `esprouter.proto` | Byte-stuffed framing: `0x7E` starts a frame, `0x7F` ends it and `0x7D` escapes the next byte (XOR `0x20`). Provides `encode_frame`, `write_frame`, `read_frame` and the incremental `FrameParser`. |
| `esprouter.msgqueue` | `MessageQueue`, a queue of whole messages stored as frames in one `RingBuffer`. |
| `esprouter.utils` | `is_ipv4`, `str_to_ip` and `atoh`. |
| `esprouter.acl` | `AclTable`, up to 4 ACLs of 16 rules each, matched against Ethernet/IPv4 frames. Also `AclEntry`, `addr_to_str` and `port_to_str`. |
| `esprouter.mqtt_msg` | `MessageBuilder`, which encodes MQTT 3.1 and 3.1.1 control packets, with `ConnectInfo`, `MessageType`, `ConnectReturnCode` and `ProtocolVersion`. Also the parsers `get_type`, `get_qos`, `get_dup`, `get_retain`, `get_id`, `get_total_length`, `get_connect_return_code`, `get_publish_topic` and `get_publish_data`. |
| `esprouter.rboot` | `MemoryFlash`, an in-memory sector-erased flash, and `FlashWriter`, which streams an image into it in 4-byte words. Also `calc_checksum`. |
| `esprouter.storage` | `BlobStore`, which keeps numbered blobs one per sector, and the RF init helpers `FlashSizeMap`, `rf_calibration_sector` and `ensure_rf_init_data`. |
| `esprouter.session`, `esprouter.client` | `MqttClient`, an MQTT client state machine over a `Transport` that you supply. |

## Install

```
pip install .
```

To install the test dependencies as well:

```
pip install .[test]
```

## Examples

### Framed message queue

```python
from esprouter.msgqueue import MessageQueue

queue = MessageQueue(64)
queue.put(b"\x7e hello")          # special bytes are escaped inside the ring
assert queue.get(64) == b"\x7e hello"
assert queue.is_empty()
```

`put` raises `RingBufferFull` if the frame does not fit. `get` raises
`RingBufferEmpty` if the ring holds no complete frame.

### MQTT packets

```python
from esprouter.mqtt_msg import MessageBuilder, get_publish_topic, get_publish_data, get_id

builder = MessageBuilder(1024)
packet, message_id = builder.publish("sensors/temp", b"21.5", qos=1, retain=0)
assert get_publish_topic(packet) == b"sensors/temp"
assert get_publish_data(packet) == b"21.5"
assert get_id(packet) == message_id
```

`MessageBuilder` raises `ValueError` when a packet would not fit in
`buffer_length` bytes, or when a required topic or client id is missing.

### Packet ACLs

```python
from esprouter.acl import AclTable, ACL_ALLOW, IP_PROTO_UDP

table = AclTable()
table.add(0, 0, 0, 0, 0, IP_PROTO_UDP, 0, 53, ACL_ALLOW)   # allow UDP to port 53
print(table.show(0))    # "UDP any:any any:53 allow (0 hits)"
```

`check_packet(acl_no, frame)` takes a raw Ethernet frame and returns its
verdict bits. ARP is always allowed. Any other non-IPv4 frame is denied, and so
is any IPv4 protocol other than TCP, UDP or ICMP. When no rule matches, the
packet is denied. A callback installed with `set_deny_callback` is asked about
every packet that would be denied and may change the verdict. Note that
`clear_stats` and `clear` also remove that callback. The table counts allowed
and denied packets in `allow_count` and `deny_count`.

### Flash writing and blobs

```python
from esprouter.rboot import MemoryFlash, FlashWriter
from esprouter.storage import BlobStore, FlashSizeMap, ensure_rf_init_data

flash = MemoryFlash(0x100000)            # 1 MiB, 4 KiB sectors
writer = FlashWriter(flash, 0x2000)
writer.write(b"abcdef")                  # "ef" is held back until end()
writer.end()                             # padded with 0xFF to a whole word
assert flash.read(0x2000, 8) == b"abcdef\xff\xff"

blobs = BlobStore(flash)
blobs.save(0, b"hi")
assert blobs.load(0, 2) == b"hi"

assert ensure_rf_init_data(flash, FlashSizeMap.FLASH_SIZE_8M_MAP_512_512) is True
assert ensure_rf_init_data(flash, FlashSizeMap.FLASH_SIZE_8M_MAP_512_512) is False
```

`MemoryFlash.write` can only clear bits: each stored byte becomes the old
value AND the new one. Erase a sector before you write to it.

### MQTT client

`MqttClient` does no I/O of its own. You pass it a `Transport` subclass that
implements `connect`, `send` and `disconnect`. `abort` is optional and calls
`disconnect` by default. You then feed the client events:

- Call `handle_connected`, `handle_received`, `handle_sent`,
  `handle_disconnected` and `handle_reconnect` when the transport reports them.
- Call `tick()` once a second while `timer_armed` is true. It drives the
  keepalive and the reconnect delay.
- Call `run_task()` whenever `task_pending` is set. It sends queued packets,
  sends keepalives, and carries out reconnects, disconnects and deletion.

```python
from esprouter.client import MqttClient
from esprouter.session import Transport


class RecordingTransport(Transport):
    def __init__(self):
        self.sent = []

    def connect(self, host, port, secure):
        pass

    def send(self, data):
        self.sent.append(data)
        return True

    def disconnect(self):
        pass


client = MqttClient("broker.example.com", 1883)
client.configure("device-1", keepalive=60)
client.on_data = lambda c, topic, payload: print(topic, payload)

transport = RecordingTransport()
client.connect(transport)
client.handle_connected()                      # sends CONNECT
client.handle_sent()
client.handle_received(b"\x20\x02\x00\x00")    # CONNACK, accepted

client.subscribe("cmd/#", qos=1)               # queued
client.run_task()                              # sends the SUBSCRIBE
assert len(transport.sent) == 2
```

`publish`, `subscribe` and `unsubscribe` queue the packet and return its
message id. When the queue is full, the oldest queued messages are dropped to
make room. `BufferError` is raised only if the packet cannot fit even in an
empty queue. Calling these methods before `configure` raises `RuntimeError`.
Incoming QoS 1 and QoS 2 publishes are answered with PUBACK or PUBREC. Incoming
PUBREC, PUBREL and PINGREQ packets are answered with PUBREL, PUBCOMP and
PINGRESP. `disconnect()` and `delete()` stop the timer. The following
`run_task()` call then closes the transport or tears the client down.

## What the package does not do

- It opens no sockets and resolves no host names. The broker connection, TLS
  included, is whatever `Transport` you provide.
- `MemoryFlash` is a simulation held in memory. Nothing here reads or writes a
  real flash chip, so data lasts only as long as the object.
- There is no device configuration record with load, save or defaults, and
  there is no over-the-air firmware download. `FlashWriter` only writes the
  bytes you pass it.
- No command-line program is installed.