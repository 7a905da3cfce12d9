from __future__ import annotations

import socket

from mqttcodec import MQTTConnectPacket, read_packet, write_packet

with socket.create_connection(("localhost", 1883)) as sock:
    with sock.makefile("rwb") as stream:
        write_packet(stream, MQTTConnectPacket(client_id="example", keep_alive=60))
        stream.flush()
        print(f"Received: {read_packet(stream)!r}")
