from __future__ import annotations

import logging
from io import BytesIO

import pytest

from mqttcodec import (
    InsufficientData,
    MQTTFrameLengthMismatch,
    MQTTPacketTooLarge,
    MQTTProtocolError,
    MQTTPublishAckPacket,
    MQTTPublishPacket,
    MQTTSubscribeAckPacket,
    MQTTUnrecognizedPacketType,
    PacketDecoder,
    SubscribeReturnCode,
    encode_packet,
    read_packet,
    write_packet,
)

PUBACK = b"\x40\x02\x00\x01"
UNKNOWN = b"\xf0\x02\x01\x02"


class TestPacketDecoder:
    def test_bytewise(self) -> None:
        publish = MQTTPublishPacket(topic="foo", payload="bar")
        suback = MQTTSubscribeAckPacket(
            packet_id=5, return_codes=[SubscribeReturnCode.FAILURE]
        )
        data = encode_packet(publish) + encode_packet(suback)
        decoder = PacketDecoder()
        received = []
        for i in range(len(data)):
            received.extend(decoder.feed(data[i : i + 1]))

        assert received == [publish, suback]
        assert decoder.pending == 0

    def test_multiple_packets_in_one_chunk(self) -> None:
        decoder = PacketDecoder()
        packets = decoder.feed(PUBACK * 3 + PUBACK[:2])
        assert packets == [MQTTPublishAckPacket(packet_id=1)] * 3
        assert decoder.pending == 2

        assert decoder.feed(PUBACK[2:]) == [MQTTPublishAckPacket(packet_id=1)]
        assert decoder.pending == 0

    def test_incomplete_frame(self) -> None:
        decoder = PacketDecoder()
        assert decoder.feed(b"\x40\x02\x00") == []
        assert decoder.pending == 3

    def test_frame_length_mismatch(self) -> None:
        decoder = PacketDecoder()
        with pytest.raises(MQTTFrameLengthMismatch):
            decoder.feed(b"\x40\x01\x00")

    def test_error_after_decoded_packets(self) -> None:
        bad_frame = b"\x40\x01\x00"
        decoder = PacketDecoder()
        assert decoder.feed(PUBACK + PUBACK + bad_frame) == [
            MQTTPublishAckPacket(packet_id=1)
        ] * 2
        assert decoder.pending == len(bad_frame)

        with pytest.raises(MQTTFrameLengthMismatch):
            decoder.feed(b"")

        assert decoder.pending == len(bad_frame)

    def test_error_after_skipped_packet(self) -> None:
        decoder = PacketDecoder(skip_unrecognized=True)
        with pytest.raises(MQTTFrameLengthMismatch):
            decoder.feed(UNKNOWN + b"\x40\x01\x00")

        assert decoder.pending == 3

    def test_unrecognized_packet_type(self) -> None:
        decoder = PacketDecoder()
        with pytest.raises(MQTTUnrecognizedPacketType):
            decoder.feed(UNKNOWN + PUBACK)

    def test_skip_unrecognized(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.WARNING, logger="mqttcodec")
        decoder = PacketDecoder(skip_unrecognized=True)
        assert decoder.feed(UNKNOWN[:3]) == []
        assert decoder.pending == 3

        assert decoder.feed(UNKNOWN[3:] + PUBACK) == [
            MQTTPublishAckPacket(packet_id=1)
        ]
        assert decoder.pending == 0
        assert "Skipping packet of unrecognized type 15" in caplog.text

    def test_max_packet_size(self) -> None:
        decoder = PacketDecoder(max_packet_size=3)
        with pytest.raises(MQTTPacketTooLarge):
            decoder.feed(PUBACK)

    def test_zero_packet_id(self) -> None:
        decoder = PacketDecoder(allow_zero_packet_id=False)
        with pytest.raises(MQTTProtocolError):
            decoder.feed(b"\x40\x02\x00\x00")

    def test_invalid_max_packet_size(self) -> None:
        with pytest.raises(ValueError):
            PacketDecoder(max_packet_size=1)

    def test_debug_logging(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger="mqttcodec")
        PacketDecoder().feed(PUBACK)
        assert "Decoded packet: MQTTPublishAckPacket(packet_id=1)" in caplog.text


class TestReadPacket:
    def test_read_sequence(self) -> None:
        publish = MQTTPublishPacket(topic="foo", payload="bar")
        stream = BytesIO(encode_packet(publish) + PUBACK)
        assert read_packet(stream) == publish
        assert read_packet(stream) == MQTTPublishAckPacket(packet_id=1)
        with pytest.raises(EOFError):
            read_packet(stream)

    @pytest.mark.parametrize(
        "data",
        [
            pytest.param(b"\x40", id="header"),
            pytest.param(b"\x40\x82", id="remaining_length"),
            pytest.param(b"\x40\x02\x00", id="body"),
        ],
    )
    def test_eof_mid_packet(self, data: bytes) -> None:
        with pytest.raises(InsufficientData):
            read_packet(BytesIO(data))

    def test_unrecognized_then_continue(self) -> None:
        stream = BytesIO(UNKNOWN + PUBACK)
        with pytest.raises(MQTTUnrecognizedPacketType):
            read_packet(stream)

        assert read_packet(stream) == MQTTPublishAckPacket(packet_id=1)

    def test_max_packet_size(self) -> None:
        stream = BytesIO(PUBACK)
        with pytest.raises(MQTTPacketTooLarge):
            read_packet(stream, max_packet_size=3)

        assert stream.tell() == 2

    def test_zero_packet_id(self) -> None:
        with pytest.raises(MQTTProtocolError):
            read_packet(BytesIO(b"\x40\x02\x00\x00"), allow_zero_packet_id=False)


def test_write_packet() -> None:
    stream = BytesIO()
    write_packet(stream, MQTTPublishAckPacket(packet_id=1))
    write_packet(stream, MQTTPublishAckPacket(packet_id=1))
    assert stream.getvalue() == PUBACK * 2
