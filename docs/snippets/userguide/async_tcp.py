from __future__ import annotations

import asyncio

from anyio import connect_tcp

from mqttcodec import MQTTConnectPacket, receive_packet, send_packet


async def main() -> None:
    async with await connect_tcp("localhost", 1883) as stream:
        await send_packet(stream, MQTTConnectPacket(client_id="example"))
        print(f"Received: {await receive_packet(stream)!r}")


asyncio.run(main())
