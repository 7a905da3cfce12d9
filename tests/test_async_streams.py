from __future__ import annotations

import pytest
from anyio import EndOfStream
from anyio.abc import ByteReceiveStream, ByteSendStream

from mqttcodec import (
    InsufficientData,
    MQTTConnectPacket,
    MQTTPacketTooLarge,
    MQTTPublishAckPacket,
    MQTTPublishPacket,
    encode_packet,
    receive_packet,
    send_packet,
)

pytestmark = pytest.mark.anyio


class ChunkedReceiveStream(ByteReceiveStream):
    def __init__(self, data: bytes, chunk_size: int = 65536):
        self.data = data
        self.chunk_size = chunk_size

    async def receive(self, max_bytes: int = 65536) -> bytes:
        if not self.data:
            raise EndOfStream

        size = min(max_bytes, self.chunk_size)
        chunk, self.data = self.data[:size], self.data[size:]
        return chunk

    async def aclose(self) -> None:
        pass


class CollectingSendStream(ByteSendStream):
    def __init__(self) -> None:
        self.data = bytearray()

    async def send(self, item: bytes) -> None:
        self.data.extend(item)

    async def aclose(self) -> None:
        pass


@pytest.mark.parametrize("chunk_size", [1, 3, 65536])
async def test_receive_sequence(chunk_size: int) -> None:
    connect = MQTTConnectPacket(client_id="tëst", username="user", password="pass")
    publish = MQTTPublishPacket(topic="foo", payload=b"x" * 300)
    stream = ChunkedReceiveStream(
        encode_packet(connect) + encode_packet(publish), chunk_size
    )
    assert await receive_packet(stream) == connect
    assert await receive_packet(stream) == publish
    with pytest.raises(EndOfStream):
        await receive_packet(stream)


async def test_receive_leaves_following_bytes() -> None:
    trailing = b"\x40\x02"
    stream = ChunkedReceiveStream(b"\x40\x02\x00\x01" + trailing)
    assert await receive_packet(stream) == MQTTPublishAckPacket(packet_id=1)
    assert stream.data == trailing


async def test_eof_mid_packet() -> None:
    stream = ChunkedReceiveStream(b"\x40\x02\x00", chunk_size=1)
    with pytest.raises(InsufficientData):
        await receive_packet(stream)


async def test_receive_max_packet_size() -> None:
    stream = ChunkedReceiveStream(b"\x40\x02\x00\x01")
    with pytest.raises(MQTTPacketTooLarge):
        await receive_packet(stream, max_packet_size=3)


async def test_send_packet() -> None:
    stream = CollectingSendStream()
    publish = MQTTPublishPacket(topic="foo", payload="bar")
    await send_packet(stream, publish)
    await send_packet(stream, MQTTPublishAckPacket(packet_id=1))
    assert stream.data == encode_packet(publish) + b"\x40\x02\x00\x01"
