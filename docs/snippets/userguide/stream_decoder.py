from __future__ import annotations

import socket

from mqttcodec import MQTTConnectPacket, PacketDecoder, encode_packet

decoder = PacketDecoder(max_packet_size=1_000_000, skip_unrecognized=True)
with socket.create_connection(("localhost", 1883)) as sock:
    sock.sendall(encode_packet(MQTTConnectPacket(client_id="example")))
    while chunk := sock.recv(65536):
        for packet in decoder.feed(chunk):
            print(f"Received: {packet!r}")
