from __future__ import annotations

from mqttcodec import (
    AtLeastOnce,
    MQTTPublishPacket,
    decode_packet,
    encode_packet,
)

data = encode_packet(
    MQTTPublishPacket(topic="sensors/temp", payload="21.5", qos=AtLeastOnce(1))
)
rest, packet = decode_packet(data)
print(f"Decoded {packet!r}, {len(rest)} bytes left over")
